"""
Error taxonomy shared by the service modules and the HTTP layer.

Services raise these; ``app.py`` renders them as
``{"success": false, "error": ...}`` with the matching status code.
"""


class GotchiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(GotchiError):
    """Missing or malformed input."""

    status_code = 400


class NotFoundError(GotchiError):
    """Unknown wallet, user or referral code."""

    status_code = 404


class ConflictError(GotchiError):
    """Duplicate username, self-referral, already referred, cap reached."""

    status_code = 400


class ForbiddenError(GotchiError):
    """Wallet does not own the resource it addresses."""

    status_code = 403


class CooldownError(GotchiError):
    """Action or task repeated before its cooldown elapsed."""

    status_code = 429


class PersistenceError(GotchiError):
    """Database unavailable or schema mismatch."""

    status_code = 500
