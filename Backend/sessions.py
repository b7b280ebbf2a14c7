"""
Game sessions: a play session is opened by a wallet, scored while it runs
and closed exactly once. Closing a session awards gameplay points from its
final score.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import DateTime, text
from sqlalchemy.orm import Session

from database import run_in_transaction
from errors import ConflictError, ForbiddenError, NotFoundError
from schemas import GameSessionData
from users import add_points, fetch_user, record_activity, utcnow

logger = logging.getLogger(__name__)

GAMEPLAY_BASE_POINTS = 10
SCORE_STEP = 100

_SELECT_SESSION = text(
    """
    SELECT session_id, wallet_address, start_time, end_time, score, completed
    FROM game_sessions
    WHERE session_id = :sid
    """
).columns(start_time=DateTime, end_time=DateTime)


def gameplay_points(score: int) -> int:
    """Base points times one step per 100 score, never less than one step."""
    return GAMEPLAY_BASE_POINTS * max(1, int(score) // SCORE_STEP)


def fetch_session(db: Session, session_id: str) -> Optional[GameSessionData]:
    row = db.execute(_SELECT_SESSION, {"sid": session_id}).fetchone()
    return GameSessionData(**row._mapping) if row else None


def get_session(db: Session, session_id: str, wallet: Optional[str] = None) -> GameSessionData:
    """The session, checked against ``wallet`` when one is given."""
    game = fetch_session(db, session_id)
    if game is None:
        raise NotFoundError("Game session not found")
    if wallet is not None and game.wallet_address != wallet:
        raise ForbiddenError("Not authorized to access this session")
    return game


def start_session(db: Session, wallet: str) -> GameSessionData:
    def work(session: Session):
        if fetch_user(session, wallet) is None:
            raise NotFoundError("User not found")
        session_id = uuid.uuid4().hex
        session.execute(
            text(
                "INSERT INTO game_sessions (wallet_address, session_id, start_time, score, completed) "
                "VALUES (:wallet, :sid, :now, 0, :completed)"
            ),
            {"wallet": wallet, "sid": session_id, "now": utcnow(), "completed": False},
        )
        return fetch_session(session, session_id)

    game = run_in_transaction(db, work)
    logger.info("Started game session %s for %s", game.session_id, wallet)
    return game


def update_session(db: Session, session_id: str, wallet: str, score: int) -> GameSessionData:
    """Record the running score of an open session."""

    def work(session: Session):
        get_session(session, session_id, wallet)
        result = session.execute(
            text(
                "UPDATE game_sessions SET score = :score "
                "WHERE session_id = :sid AND completed = :completed"
            ),
            {"score": int(score), "sid": session_id, "completed": False},
        )
        if result.rowcount == 0:
            raise ConflictError("Game session already ended")
        return fetch_session(session, session_id)

    return run_in_transaction(db, work)


def end_session(db: Session, session_id: str, wallet: str) -> tuple[GameSessionData, int, int]:
    """
    Close an open session and award gameplay points for its score.

    The close is a conditional update on ``completed``, so a session pays
    out once even when two requests end it at the same time. Returns
    ``(session, points_awarded, total_points)``.
    """

    def work(session: Session):
        get_session(session, session_id, wallet)
        result = session.execute(
            text(
                "UPDATE game_sessions SET completed = :done, end_time = :now "
                "WHERE session_id = :sid AND completed = :open"
            ),
            {"done": True, "open": False, "now": utcnow(), "sid": session_id},
        )
        if result.rowcount == 0:
            raise ConflictError("Game session already ended")

        game = fetch_session(session, session_id)
        awarded = gameplay_points(game.score)
        total = add_points(session, wallet, awarded)
        record_activity(session, wallet, "gameplay", "Game session", awarded)
        return game, awarded, total

    game, awarded, total = run_in_transaction(db, work)
    logger.info("Ended game session %s for %s (score=%d, points=%d)", session_id, wallet, game.score, awarded)
    return game, awarded, total
