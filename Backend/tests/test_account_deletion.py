from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

import account_deletion
import pets
from errors import NotFoundError
from schemas import PetStateUpdate
from users import record_activity


def _populate(db, wallet):
    pets.upsert_pet_state(db, PetStateUpdate(wallet_address=wallet, hunger=60))
    record_activity(db, wallet, "feed", "Feed", 10)
    db.execute(
        text(
            "INSERT INTO game_sessions (wallet_address, session_id, start_time, score, completed) "
            "VALUES (:wallet, :sid, :start, 120, 1)"
        ),
        {"wallet": wallet, "sid": f"session-{wallet}", "start": datetime(2024, 1, 1)},
    )
    db.commit()


def _rows(db, table, wallet):
    (count,) = db.execute(
        text(f"SELECT COUNT(*) FROM {table} WHERE wallet_address = :wallet"), {"wallet": wallet}
    ).fetchone()
    return count


def test_declared_dependents_come_from_models():
    assert set(account_deletion.DEPENDENT_TABLES) == {"pet_states", "user_activities", "game_sessions"}


def test_discovery_finds_wallet_tables(db):
    found = account_deletion.discover_wallet_tables(db.get_bind())
    assert set(found) == {"pet_states", "user_activities", "game_sessions"}


def test_delete_removes_every_row(db):
    _populate(db, "wallet_gone")
    _populate(db, "wallet_stays")

    report = account_deletion.delete_account(db, "wallet_gone")

    assert set(report.deleted_tables) == {"pet_states", "user_activities", "game_sessions"}
    assert report.skipped_tables == []
    assert not report.used_fallback
    for table in ("users", "pet_states", "user_activities", "game_sessions"):
        assert _rows(db, table, "wallet_gone") == 0
        assert _rows(db, table, "wallet_stays") == 1


@pytest.fixture
def legacy_table(db):
    db.execute(text("CREATE TABLE legacy_rewards (wallet_address VARCHAR(128), amount INTEGER)"))
    db.commit()
    yield "legacy_rewards"
    db.rollback()
    db.execute(text("DROP TABLE legacy_rewards"))
    db.commit()


def test_undeclared_wallet_table_is_cleaned(db, legacy_table):
    db.execute(text("INSERT INTO legacy_rewards VALUES ('wallet_gone', 5)"))
    db.commit()
    _populate(db, "wallet_gone")

    report = account_deletion.delete_account(db, "wallet_gone")

    assert "legacy_rewards" in report.deleted_tables
    assert _rows(db, "legacy_rewards", "wallet_gone") == 0


def test_introspection_failure_uses_declared_tables(db, monkeypatch):
    _populate(db, "wallet_gone")

    def broken(_bind):
        raise OperationalError("information_schema", {}, Exception("permission denied"))

    monkeypatch.setattr(account_deletion, "discover_wallet_tables", broken)
    report = account_deletion.delete_account(db, "wallet_gone")

    assert report.used_fallback
    assert set(report.deleted_tables) == set(account_deletion.DEPENDENT_TABLES)
    assert _rows(db, "users", "wallet_gone") == 0


def test_failing_table_is_skipped(db, monkeypatch):
    _populate(db, "wallet_gone")
    monkeypatch.setattr(
        account_deletion, "discover_wallet_tables", lambda _bind: ["no_such_table", "pet_states"]
    )
    report = account_deletion.delete_account(db, "wallet_gone")

    assert report.skipped_tables == ["no_such_table"]
    assert report.deleted_tables == ["pet_states"]
    assert _rows(db, "users", "wallet_gone") == 0
    # Cascade removes what the skipped path did not
    assert _rows(db, "user_activities", "wallet_gone") == 0


def test_unknown_wallet(db):
    with pytest.raises(NotFoundError):
        account_deletion.delete_account(db, "ghost")


def test_referred_users_lose_the_deleted_referrer(db, make_user):
    make_user("wallet_referrer")
    make_user("wallet_referred")
    db.execute(
        text("UPDATE users SET referred_by = 'wallet_referrer' WHERE wallet_address = 'wallet_referred'")
    )
    db.commit()

    account_deletion.delete_account(db, "wallet_referrer")

    (referred_by,) = db.execute(
        text("SELECT referred_by FROM users WHERE wallet_address = 'wallet_referred'")
    ).fetchone()
    assert referred_by is None
