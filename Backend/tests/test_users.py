import pytest
from sqlalchemy import text

import users
from errors import ConflictError, NotFoundError, ValidationError


def test_ensure_user_is_idempotent(db):
    first = users.ensure_user(db, "wallet_u_1")
    db.commit()
    second = users.ensure_user(db, "wallet_u_1")
    db.commit()
    assert first.uid == second.uid
    assert first.referral_code == second.referral_code
    (count,) = db.execute(text("SELECT COUNT(*) FROM users WHERE wallet_address = 'wallet_u_1'")).fetchone()
    assert count == 1


def test_new_user_defaults(db):
    user = users.ensure_user(db, "AbCdEfGh123")
    assert user.username == "User_AbCd"
    assert user.points == 0
    assert user.referral_count == 0
    assert len(user.referral_code) == 8
    assert user.referral_code == user.referral_code.upper()
    assert user.uid.startswith("user_AbCdEfGh_")


def test_default_username_falls_back_when_taken(db):
    users.ensure_user(db, "same1111")
    other = users.ensure_user(db, "same2222")
    assert other.username == "User_same2222"


def test_client_supplied_uid_is_kept(db):
    user = users.ensure_user(db, "wallet_u_2", uid="custom-uid")
    assert user.uid == "custom-uid"


def test_uid_held_by_another_wallet_is_rejected(db):
    users.ensure_user(db, "wallet_u_2a", uid="shared-uid")
    db.commit()
    with pytest.raises(ConflictError):
        users.ensure_user(db, "wallet_u_2b", uid="shared-uid")
    assert users.fetch_user(db, "wallet_u_2b") is None


def test_username_availability_is_case_insensitive(db, make_user):
    make_user("wallet_u_3", username="Alice")
    assert users.is_username_available(db, "alice") is False
    assert users.is_username_available(db, "  ALICE  ") is False
    assert users.is_username_available(db, "Bob") is True


def test_empty_username_is_invalid(db):
    with pytest.raises(ValidationError):
        users.is_username_available(db, "   ")


def test_update_username_conflict(db, make_user):
    make_user("wallet_u_4", username="Alice")
    make_user("wallet_u_5", username="Carol")
    with pytest.raises(ConflictError):
        users.update_username(db, "wallet_u_5", "ALICE")


def test_update_own_username_in_other_case(db, make_user):
    make_user("wallet_u_6", username="Alice")
    user = users.update_username(db, "wallet_u_6", "alice")
    assert user.username == "alice"


def test_update_username_unknown_wallet(db):
    with pytest.raises(NotFoundError):
        users.update_username(db, "ghost", "Zed")


def test_add_points_never_negative(db, make_user):
    make_user("wallet_u_7", points=30)
    assert users.add_points(db, "wallet_u_7", -100) == 0
    assert users.add_points(db, "wallet_u_7", 45) == 45


def test_activity_log_newest_first(db, make_user):
    make_user("wallet_u_8")
    users.record_activity(db, "wallet_u_8", "feed", "Feed", 10)
    users.record_activity(db, "wallet_u_8", "play", "Play", 20)
    db.commit()
    activities = users.list_activities(db, "wallet_u_8", limit=1)
    assert len(activities) == 1
    assert activities[0].activity_type == "play"


# ── HTTP ─────────────────────────────────────────────────────────

def test_register_user_twice_returns_same_row(client):
    first = client.post("/user", json={"walletAddress": "wallet_h_1"})
    second = client.post("/user", json={"walletAddress": "wallet_h_1"})
    assert first.status_code == second.status_code == 200
    assert first.json()["data"]["uid"] == second.json()["data"]["uid"]
    assert first.json()["data"]["walletAddress"] == "wallet_h_1"


def test_register_with_taken_username(client):
    client.post("/user", json={"walletAddress": "wallet_h_2", "username": "Neo"})
    resp = client.post("/user", json={"walletAddress": "wallet_h_3", "username": "neo"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_get_user(client, make_user):
    make_user("wallet_h_4", points=12)
    resp = client.get("/user", params={"walletAddress": "wallet_h_4"})
    assert resp.status_code == 200
    assert resp.json()["data"]["points"] == 12
    assert client.get("/user", params={"walletAddress": "nobody"}).status_code == 404


def test_check_username_endpoint(client, make_user):
    make_user("wallet_h_5", username="Trinity")
    assert client.post("/check-username", json={"username": "trinity"}).json()["available"] is False
    assert client.post("/check-username", json={"username": "Morpheus"}).json()["available"] is True
    assert client.post("/check-username", json={"username": ""}).status_code == 400


def test_account_update_operation(client, make_user):
    make_user("wallet_h_6", username="Old")
    resp = client.post("/user/account", json={"walletAddress": "wallet_h_6", "operation": "update", "username": "New"})
    assert resp.status_code == 200
    assert client.get("/user", params={"walletAddress": "wallet_h_6"}).json()["data"]["username"] == "New"


def test_account_update_requires_username(client, make_user):
    make_user("wallet_h_7")
    resp = client.post("/user/account", json={"walletAddress": "wallet_h_7", "operation": "update"})
    assert resp.status_code == 400


def test_account_unknown_operation(client, make_user):
    make_user("wallet_h_8")
    resp = client.post("/user/account", json={"walletAddress": "wallet_h_8", "operation": "archive"})
    assert resp.status_code == 400


def test_account_delete_operation(client, make_user):
    make_user("wallet_h_9")
    resp = client.post("/user/account", json={"walletAddress": "wallet_h_9", "operation": "delete"})
    assert resp.status_code == 200
    assert client.get("/user", params={"walletAddress": "wallet_h_9"}).status_code == 404

    again = client.post("/user/account", json={"walletAddress": "wallet_h_9", "operation": "delete"})
    assert again.status_code == 404


def test_activity_endpoint(client, make_user):
    make_user("wallet_h_10")
    client.post("/pet-state/interact", json={"walletAddress": "wallet_h_10", "action": "play"})
    resp = client.get("/user/activity", params={"walletAddress": "wallet_h_10"})
    assert resp.status_code == 200
    assert resp.json()["data"][0]["activityType"] == "play"


def test_register_with_duplicate_uid(client):
    first = client.post("/user", json={"walletAddress": "wallet_uid_1", "uid": "dup-uid"})
    assert first.status_code == 200
    second = client.post("/user", json={"walletAddress": "wallet_uid_2", "uid": "dup-uid"})
    assert second.status_code == 400
    assert second.json() == {"success": False, "error": "UID is already taken"}
