import pytest

import sessions
from errors import ConflictError, ForbiddenError, NotFoundError
from users import fetch_user, list_activities


@pytest.mark.parametrize("score, points", [(0, 10), (99, 10), (100, 10), (250, 20), (1000, 100)])
def test_gameplay_points(score, points):
    assert sessions.gameplay_points(score) == points


def test_start_session(db, make_user):
    wallet = make_user("wallet_s_1")
    game = sessions.start_session(db, wallet)
    assert game.wallet_address == wallet
    assert game.score == 0
    assert game.completed is False
    assert game.end_time is None
    assert sessions.get_session(db, game.session_id, wallet) == game


def test_start_session_unknown_wallet(db):
    with pytest.raises(NotFoundError):
        sessions.start_session(db, "ghost")


def test_other_wallet_cannot_touch_session(db, make_user):
    owner = make_user("wallet_s_2")
    make_user("wallet_s_3")
    game = sessions.start_session(db, owner)

    with pytest.raises(ForbiddenError):
        sessions.get_session(db, game.session_id, "wallet_s_3")
    with pytest.raises(ForbiddenError):
        sessions.update_session(db, game.session_id, "wallet_s_3", 500)
    with pytest.raises(ForbiddenError):
        sessions.end_session(db, game.session_id, "wallet_s_3")
    assert sessions.get_session(db, game.session_id).score == 0


def test_unknown_session(db):
    with pytest.raises(NotFoundError):
        sessions.get_session(db, "no-such-session")


def test_end_awards_points_once(db, make_user):
    wallet = make_user("wallet_s_4", points=5)
    game = sessions.start_session(db, wallet)
    sessions.update_session(db, game.session_id, wallet, 340)

    ended, awarded, total = sessions.end_session(db, game.session_id, wallet)
    assert ended.completed is True
    assert ended.end_time is not None
    assert awarded == 30
    assert total == 35
    assert [a.activity_type for a in list_activities(db, wallet)] == ["gameplay"]

    with pytest.raises(ConflictError):
        sessions.end_session(db, game.session_id, wallet)
    with pytest.raises(ConflictError):
        sessions.update_session(db, game.session_id, wallet, 900)
    assert fetch_user(db, wallet).points == 35


# ── HTTP ─────────────────────────────────────────────────────────

def test_session_lifecycle_endpoints(client, make_user):
    make_user("wallet_hs_1")
    created = client.post("/game-session", json={"walletAddress": "wallet_hs_1"})
    assert created.status_code == 201
    session_id = created.json()["data"]["sessionId"]

    params = {"sessionId": session_id, "walletAddress": "wallet_hs_1"}
    assert client.get("/game-session", params=params).json()["data"]["completed"] is False

    updated = client.put(
        "/game-session", json={"walletAddress": "wallet_hs_1", "sessionId": session_id, "score": 120}
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["score"] == 120

    ended = client.delete("/game-session", params=params)
    assert ended.status_code == 200
    assert ended.json()["pointsAwarded"] == 10
    assert ended.json()["data"]["completed"] is True

    assert client.delete("/game-session", params=params).status_code == 400


def test_session_owner_mismatch_is_forbidden(client, make_user):
    make_user("wallet_hs_2")
    session_id = client.post("/game-session", json={"walletAddress": "wallet_hs_2"}).json()["data"]["sessionId"]
    resp = client.get("/game-session", params={"sessionId": session_id, "walletAddress": "wallet_hs_x"})
    assert resp.status_code == 403
    assert resp.json() == {"success": False, "error": "Not authorized to access this session"}


def test_session_requires_ids(client):
    assert client.get("/game-session", params={"walletAddress": "wallet_hs_3"}).status_code == 400
    assert client.get("/game-session", params={"sessionId": "abc", "walletAddress": "wallet_hs_3"}).status_code == 404


def test_session_score_bounds(client, make_user):
    make_user("wallet_hs_4")
    session_id = client.post("/game-session", json={"walletAddress": "wallet_hs_4"}).json()["data"]["sessionId"]
    resp = client.put(
        "/game-session", json={"walletAddress": "wallet_hs_4", "sessionId": session_id, "score": -1}
    )
    assert resp.status_code == 400
