"""
User account store: identity rows keyed by wallet address, the username
registry and the activity log.
"""

import logging
import secrets
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from schemas import Activity, UserData

logger = logging.getLogger(__name__)

USER_COLUMNS = (
    "wallet_address, username, points, referral_code, referred_by, "
    "referral_count, referral_points, uid, created_at, last_points_update"
)

_SELECT_USER = text(f"SELECT {USER_COLUMNS} FROM users WHERE wallet_address = :wallet").columns(
    created_at=DateTime, last_points_update=DateTime
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every timestamp column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_referral_code() -> str:
    return secrets.token_hex(4).upper()


def new_uid(wallet: str) -> str:
    return f"user_{wallet[:8]}_{int(time.time() * 1000)}"


def fetch_user(db: Session, wallet: str) -> Optional[UserData]:
    row = db.execute(_SELECT_USER, {"wallet": wallet}).fetchone()
    return UserData(**row._mapping) if row else None


def get_user(db: Session, wallet: str) -> UserData:
    try:
        user = fetch_user(db, wallet)
    except SQLAlchemyError as exc:
        logger.error("get_user failed for %s: %s", wallet, exc)
        raise PersistenceError("Database error") from exc
    if user is None:
        raise NotFoundError("User not found")
    return user


def _normalize_username(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise ValidationError("Valid username is required")
    return name.strip()


def username_taken(db: Session, name: str, exclude_wallet: Optional[str] = None) -> bool:
    row = db.execute(
        text(
            "SELECT wallet_address FROM users "
            "WHERE LOWER(username) = LOWER(:name) "
            "AND (:exclude IS NULL OR wallet_address <> :exclude) "
            "LIMIT 1"
        ),
        {"name": name, "exclude": exclude_wallet},
    ).fetchone()
    return row is not None


def uid_taken(db: Session, uid: str) -> bool:
    row = db.execute(text("SELECT 1 FROM users WHERE uid = :uid LIMIT 1"), {"uid": uid}).fetchone()
    return row is not None


def is_username_available(db: Session, name: Optional[str]) -> bool:
    """Case-insensitive availability check ("Alice" and "alice" collide)."""
    name = _normalize_username(name)
    try:
        return not username_taken(db, name)
    except SQLAlchemyError as exc:
        logger.error("Username check failed: %s", exc)
        raise PersistenceError("Failed to check username availability") from exc


def _default_username(db: Session, wallet: str) -> str:
    for candidate in (f"User_{wallet[:4]}", f"User_{wallet[:8]}", f"User_{wallet}"):
        if not username_taken(db, candidate):
            return candidate
    return f"User_{wallet[:4]}_{secrets.token_hex(3)}"


def ensure_user(
    db: Session,
    wallet: str,
    uid: Optional[str] = None,
    username: Optional[str] = None,
) -> UserData:
    """
    Return the user for ``wallet``, creating it with defaults if absent.

    Idempotent: the insert is ``ON CONFLICT DO NOTHING`` on the wallet
    address, so concurrent first connections produce one row. The caller
    commits.
    """
    existing = fetch_user(db, wallet)
    if existing is not None:
        return existing

    if username is not None:
        username = _normalize_username(username)
        if username_taken(db, username):
            raise ConflictError("Username is already taken")
    else:
        username = _default_username(db, wallet)

    if uid is not None and uid_taken(db, uid):
        raise ConflictError("UID is already taken")

    now = utcnow()
    db.execute(
        text(
            """
            INSERT INTO users (
                wallet_address, username, points, referral_code, referral_count,
                referral_points, uid, created_at, last_points_update
            )
            VALUES (:wallet, :username, 0, :code, 0, 0, :uid, :now, :now)
            ON CONFLICT (wallet_address) DO NOTHING
            """
        ),
        {
            "wallet": wallet,
            "username": username,
            "code": new_referral_code(),
            "uid": uid or new_uid(wallet),
            "now": now,
        },
    )
    logger.info("Created user %s (%s)", wallet, username)
    return fetch_user(db, wallet)


def update_username(db: Session, wallet: str, name: Optional[str]) -> UserData:
    """Rename a user; fails if another user holds the name in any case."""
    name = _normalize_username(name)
    if fetch_user(db, wallet) is None:
        raise NotFoundError("User not found")
    if username_taken(db, name, exclude_wallet=wallet):
        raise ConflictError("Username is already taken")
    db.execute(
        text("UPDATE users SET username = :name WHERE wallet_address = :wallet"),
        {"name": name, "wallet": wallet},
    )
    return fetch_user(db, wallet)


def add_points(db: Session, wallet: str, delta: int) -> int:
    """Adjust a user's points (never below zero) and return the new total."""
    result = db.execute(
        text(
            """
            UPDATE users
            SET points = CASE WHEN points + :delta < 0 THEN 0 ELSE points + :delta END,
                last_points_update = :now
            WHERE wallet_address = :wallet
            """
        ),
        {"delta": int(delta), "now": utcnow(), "wallet": wallet},
    )
    if result.rowcount == 0:
        raise NotFoundError("User not found")
    (total,) = db.execute(
        text("SELECT points FROM users WHERE wallet_address = :wallet"), {"wallet": wallet}
    ).fetchone()
    return int(total)


# ── Activity log ─────────────────────────────────────────────────

def record_activity(db: Session, wallet: str, activity_type: str, name: str, points: int = 0) -> Activity:
    activity = Activity(
        activity_id=str(uuid.uuid4()),
        activity_type=activity_type,
        name=name,
        points=int(points),
        timestamp=utcnow(),
    )
    db.execute(
        text(
            "INSERT INTO user_activities (wallet_address, activity_id, activity_type, name, points, timestamp) "
            "VALUES (:wallet, :aid, :atype, :name, :points, :ts)"
        ),
        {
            "wallet": wallet,
            "aid": activity.activity_id,
            "atype": activity.activity_type,
            "name": activity.name,
            "points": activity.points,
            "ts": activity.timestamp,
        },
    )
    return activity


def last_activity_time(db: Session, wallet: str, activity_type: str) -> Optional[datetime]:
    row = db.execute(
        text(
            "SELECT MAX(timestamp) AS last_ts FROM user_activities "
            "WHERE wallet_address = :wallet AND activity_type = :atype"
        ).columns(last_ts=DateTime),
        {"wallet": wallet, "atype": activity_type},
    ).fetchone()
    return row.last_ts if row else None


def list_activities(db: Session, wallet: str, limit: int = 10) -> list[Activity]:
    get_user(db, wallet)
    rows = db.execute(
        text(
            "SELECT activity_id, activity_type, name, points, timestamp FROM user_activities "
            "WHERE wallet_address = :wallet ORDER BY timestamp DESC, id DESC LIMIT :limit"
        ).columns(timestamp=DateTime),
        {"wallet": wallet, "limit": int(limit)},
    ).fetchall()
    return [Activity(**r._mapping) for r in rows]


def delete_user(db: Session, wallet: str):
    """Remove a user and every row keyed by its wallet."""
    from account_deletion import delete_account

    return delete_account(db, wallet)
