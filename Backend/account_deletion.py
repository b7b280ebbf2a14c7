"""
Account deletion across every table keyed by a wallet address.

Dependent tables are discovered by live schema introspection; when that
fails the declared foreign-key edges from the ORM metadata are used
instead. Dependent rows go first and the ``users`` row last. A failing
dependent table is logged and skipped, so the cleanup is best-effort
rather than atomic across tables.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import NotFoundError, PersistenceError
from models import Base
from users import fetch_user

logger = logging.getLogger(__name__)

WALLET_COLUMN = "wallet_address"
USERS_TABLE = "users"


def _declared_dependents() -> tuple[str, ...]:
    names = []
    for table in Base.metadata.sorted_tables:
        for fk in table.foreign_keys:
            if fk.column.table.name == USERS_TABLE and fk.column.name == WALLET_COLUMN:
                names.append(table.name)
                break
    return tuple(names)


# Single source of the user -> dependent-table edges
DEPENDENT_TABLES = _declared_dependents()


@dataclass
class DeletionReport:
    wallet_address: str
    deleted_tables: list[str] = field(default_factory=list)
    skipped_tables: list[str] = field(default_factory=list)
    used_fallback: bool = False


def discover_wallet_tables(bind) -> list[str]:
    """Every table other than ``users`` that has a wallet address column."""
    inspector = inspect(bind)
    found = []
    for name in inspector.get_table_names():
        if name == USERS_TABLE:
            continue
        columns = {c["name"] for c in inspector.get_columns(name)}
        if WALLET_COLUMN in columns:
            found.append(name)
    return found


def _quote(db: Session, table: str) -> str:
    return db.get_bind().dialect.identifier_preparer.quote(table)


def delete_account(db: Session, wallet: str) -> DeletionReport:
    if fetch_user(db, wallet) is None:
        raise NotFoundError("User not found")

    report = DeletionReport(wallet_address=wallet)
    try:
        tables = discover_wallet_tables(db.get_bind())
    except SQLAlchemyError as exc:
        logger.warning("Schema introspection failed (%s); using declared dependent tables", exc)
        tables = list(DEPENDENT_TABLES)
        report.used_fallback = True

    for table in tables:
        try:
            db.execute(
                text(f"DELETE FROM {_quote(db, table)} WHERE {WALLET_COLUMN} = :wallet"),
                {"wallet": wallet},
            )
            db.commit()
            report.deleted_tables.append(table)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Skipping table %s while deleting %s: %s", table, wallet, exc)
            report.skipped_tables.append(table)

    try:
        # Users this wallet referred keep their accounts but lose the link
        db.execute(text("UPDATE users SET referred_by = NULL WHERE referred_by = :wallet"), {"wallet": wallet})
        db.execute(text("DELETE FROM users WHERE wallet_address = :wallet"), {"wallet": wallet})
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to delete user %s: %s", wallet, exc)
        raise PersistenceError("Failed to delete user account") from exc

    logger.info("Deleted account %s (tables=%s, skipped=%s)",
                wallet, report.deleted_tables, report.skipped_tables)
    return report
