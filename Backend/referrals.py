"""
Referral program.

A user moves from unreferred to referred exactly once. The edge is written
with a conditional update (``referred_by IS NULL``) and the referrer's
counter with ``referral_count < cap``, so duplicate or concurrent requests
cannot double-apply.
"""

import logging
from typing import NamedTuple, Optional

from sqlalchemy import DateTime, text
from sqlalchemy.orm import Session

from database import run_in_transaction
from errors import ConflictError, NotFoundError
from schemas import ReferredUser, ReferrerInfo
from users import fetch_user, get_user, record_activity

logger = logging.getLogger(__name__)

REFERRAL_CAP = 50
BONUS_THRESHOLD = 100
BONUS_CAP = 1000


class ReferralResult(NamedTuple):
    referrer_wallet: str
    bonus_awarded: int


def referral_bonus(referred_points: int) -> int:
    """One-time bonus for the referrer: 10% of the referred user's points, max 1000."""
    if referred_points < BONUS_THRESHOLD:
        return 0
    return min(BONUS_CAP, referred_points // 10)


def _find_referrer(db: Session, code: str):
    """Resolve a code by referral code first, then by uid."""
    code = code.strip()
    for column in ("referral_code", "uid"):
        row = db.execute(
            text(
                f"SELECT wallet_address, username, referral_count, referral_code, uid "
                f"FROM users WHERE {column} = :code"
            ),
            {"code": code},
        ).fetchone()
        if row:
            return row
    return None


def validate_code(db: Session, code: str) -> ReferrerInfo:
    referrer = _find_referrer(db, code)
    if referrer is None:
        raise NotFoundError("Invalid referral code")
    if referrer.referral_count >= REFERRAL_CAP:
        raise ConflictError("Referrer has reached the maximum referrals limit")
    return ReferrerInfo(
        wallet_address=referrer.wallet_address,
        username=referrer.username or f"{referrer.wallet_address[:6]}...",
        referral_count=referrer.referral_count,
    )


def apply_referral(db: Session, wallet: str, code: str) -> ReferralResult:
    """
    Attach ``wallet`` to the owner of ``code``.

    Fails when the wallet is unknown or already referred, when the code is
    the wallet's own or cannot be resolved, and when the referrer is at the
    cap. Awards the referrer a bonus when the referred user already holds
    at least ``BONUS_THRESHOLD`` points.
    """

    def work(session: Session) -> ReferralResult:
        user = fetch_user(session, wallet)
        if user is None:
            raise NotFoundError("User not found")
        if user.referred_by:
            raise ConflictError("User is already referred by someone")

        referrer = _find_referrer(session, code)
        if referrer is None:
            raise NotFoundError("Invalid referral code")
        if referrer.wallet_address == wallet:
            raise ConflictError("You cannot refer yourself")
        if referrer.referral_count >= REFERRAL_CAP:
            raise ConflictError("Referrer has reached the maximum referrals limit")

        linked = session.execute(
            text(
                "UPDATE users SET referred_by = :referrer "
                "WHERE wallet_address = :wallet AND referred_by IS NULL"
            ),
            {"referrer": referrer.wallet_address, "wallet": wallet},
        )
        if linked.rowcount == 0:
            raise ConflictError("User is already referred by someone")

        counted = session.execute(
            text(
                "UPDATE users SET referral_count = referral_count + 1 "
                "WHERE wallet_address = :referrer AND referral_count < :cap"
            ),
            {"referrer": referrer.wallet_address, "cap": REFERRAL_CAP},
        )
        if counted.rowcount == 0:
            raise ConflictError("Referrer has reached the maximum referrals limit")

        bonus = referral_bonus(user.points)
        if bonus:
            session.execute(
                text(
                    "UPDATE users SET points = points + :bonus, "
                    "referral_points = referral_points + :bonus "
                    "WHERE wallet_address = :referrer"
                ),
                {"bonus": bonus, "referrer": referrer.wallet_address},
            )
            record_activity(session, referrer.wallet_address, "referral_bonus",
                            f"Referral bonus for {wallet[:8]}", bonus)

        return ReferralResult(referrer_wallet=referrer.wallet_address, bonus_awarded=bonus)

    result = run_in_transaction(db, work)
    logger.info("Referral applied: %s -> %s (bonus=%d)", wallet, result.referrer_wallet, result.bonus_awarded)
    return result


def list_referred(db: Session, wallet: str, limit: Optional[int] = None) -> list[ReferredUser]:
    get_user(db, wallet)
    query = (
        "SELECT wallet_address, username, created_at AS joined_at, points "
        "FROM users WHERE referred_by = :wallet ORDER BY created_at ASC, wallet_address ASC"
    )
    params = {"wallet": wallet}
    if limit:
        query += " LIMIT :limit"
        params["limit"] = int(limit)
    rows = db.execute(text(query).columns(joined_at=DateTime), params).fetchall()
    return [
        ReferredUser(
            wallet_address=r.wallet_address,
            username=r.username or f"{r.wallet_address[:6]}...",
            joined_at=r.joined_at,
            points=r.points,
        )
        for r in rows
    ]
