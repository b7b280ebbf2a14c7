"""
Leaderboard ranking over the users table.

Only users with positive points are ranked. Page listings number entries
positionally (``offset + index + 1``) unless dense ranking is requested; a
single wallet's standing is always a dense rank, so tied players share a
rank and the next distinct score increments it by one.
"""

import logging
from typing import NamedTuple, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from database import run_in_transaction
from errors import NotFoundError
from schemas import LeaderboardEntry, ReferralLeader
from users import ensure_user, update_username, utcnow

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class Standing(NamedTuple):
    rank: int
    total: int
    points: int
    percentile: float


def count_ranked(db: Session) -> int:
    (total,) = db.execute(text("SELECT COUNT(*) FROM users WHERE points > 0")).fetchone()
    return int(total)


def list_top(db: Session, limit: int = 10, offset: int = 0, dense: bool = False) -> tuple[list[LeaderboardEntry], int]:
    """Return one page of standings and the size of the ranked population."""
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    offset = max(0, int(offset))

    rank_expr = "DENSE_RANK() OVER (ORDER BY points DESC)" if dense else "0"
    rows = db.execute(
        text(
            f"""
            SELECT wallet_address, username, points, {rank_expr} AS tie_rank
            FROM users
            WHERE points > 0
            ORDER BY points DESC, wallet_address ASC
            LIMIT :limit OFFSET :offset
            """
        ),
        {"limit": limit, "offset": offset},
    ).fetchall()

    entries = [
        LeaderboardEntry(
            rank=r.tie_rank if dense else offset + idx + 1,
            wallet_address=r.wallet_address,
            username=r.username,
            points=r.points,
        )
        for idx, r in enumerate(rows)
    ]
    return entries, count_ranked(db)


def get_rank(db: Session, wallet: str) -> Standing:
    """
    Dense rank of ``wallet`` among users with positive points.

    A wallet with zero points is unranked: rank 0, percentile 0.
    """
    row = db.execute(
        text("SELECT points FROM users WHERE wallet_address = :wallet"),
        {"wallet": wallet},
    ).fetchone()
    if not row:
        raise NotFoundError("User not found")

    points = int(row.points or 0)
    total = count_ranked(db)
    if points <= 0:
        return Standing(rank=0, total=total, points=points, percentile=0.0)

    (higher,) = db.execute(
        text("SELECT COUNT(DISTINCT points) FROM users WHERE points > :points"),
        {"points": points},
    ).fetchone()
    rank = int(higher) + 1
    percentile = round(100 * (total - rank + 1) / total, 2) if total else 0.0
    return Standing(rank=rank, total=total, points=points, percentile=percentile)


def submit_points(db: Session, wallet: str, points: int, username: Optional[str] = None) -> tuple[bool, int]:
    """
    Record a client-reported point total.

    Points only move up: the stored value is replaced when the new total is
    strictly higher. Returns ``(updated, rank)``.
    """

    def work(session: Session):
        user = ensure_user(session, wallet)
        if username and username.strip() and username.strip() != user.username:
            update_username(session, wallet, username)
        result = session.execute(
            text(
                "UPDATE users SET points = :points, last_points_update = :now "
                "WHERE wallet_address = :wallet AND points < :points"
            ),
            {"points": int(points), "now": utcnow(), "wallet": wallet},
        )
        return result.rowcount > 0

    updated = run_in_transaction(db, work)
    standing = get_rank(db, wallet)
    if updated:
        logger.info("Points for %s raised to %d (rank=%d)", wallet, points, standing.rank)
    return updated, standing.rank


def list_referral_leaders(db: Session, limit: int = 10) -> list[ReferralLeader]:
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    rows = db.execute(
        text(
            """
            SELECT wallet_address, username, referral_count, referral_points
            FROM users
            WHERE referral_count > 0
            ORDER BY referral_count DESC, referral_points DESC, wallet_address ASC
            LIMIT :limit
            """
        ),
        {"limit": limit},
    ).fetchall()
    return [
        ReferralLeader(rank=idx + 1, **r._mapping)
        for idx, r in enumerate(rows)
    ]
