import pytest
from sqlalchemy import text

import referrals
from errors import ConflictError, NotFoundError
from users import fetch_user, list_activities


def _code(db, wallet):
    return fetch_user(db, wallet).referral_code


@pytest.mark.parametrize("points, bonus", [(0, 0), (99, 0), (100, 10), (250, 25), (10_000, 1000), (50_000, 1000)])
def test_referral_bonus(points, bonus):
    assert referrals.referral_bonus(points) == bonus


def test_apply_referral_awards_bonus_once(db, make_user):
    make_user("wallet_ref")
    make_user("wallet_new", points=250)
    result = referrals.apply_referral(db, "wallet_new", _code(db, "wallet_ref"))
    assert result == referrals.ReferralResult(referrer_wallet="wallet_ref", bonus_awarded=25)

    referrer = fetch_user(db, "wallet_ref")
    assert referrer.points == 25
    assert referrer.referral_points == 25
    assert referrer.referral_count == 1
    assert fetch_user(db, "wallet_new").referred_by == "wallet_ref"
    assert [a.activity_type for a in list_activities(db, "wallet_ref")] == ["referral_bonus"]


def test_second_referral_is_rejected(db, make_user):
    make_user("wallet_ref")
    make_user("wallet_other")
    make_user("wallet_new", points=250)
    referrals.apply_referral(db, "wallet_new", _code(db, "wallet_ref"))
    with pytest.raises(ConflictError):
        referrals.apply_referral(db, "wallet_new", _code(db, "wallet_other"))

    assert fetch_user(db, "wallet_ref").points == 25
    assert fetch_user(db, "wallet_other").referral_count == 0


def test_self_referral_is_rejected(db, make_user):
    make_user("wallet_me")
    with pytest.raises(ConflictError):
        referrals.apply_referral(db, "wallet_me", _code(db, "wallet_me"))
    assert fetch_user(db, "wallet_me").referred_by is None


def test_self_referral_by_uid_is_rejected(db, make_user):
    make_user("wallet_me")
    with pytest.raises(ConflictError):
        referrals.apply_referral(db, "wallet_me", fetch_user(db, "wallet_me").uid)


def test_code_resolves_by_uid(db, make_user):
    make_user("wallet_ref")
    make_user("wallet_new")
    result = referrals.apply_referral(db, "wallet_new", fetch_user(db, "wallet_ref").uid)
    assert result.referrer_wallet == "wallet_ref"
    assert result.bonus_awarded == 0


def test_unknown_code(db, make_user):
    make_user("wallet_new")
    with pytest.raises(NotFoundError):
        referrals.apply_referral(db, "wallet_new", "NOPE1234")
    with pytest.raises(NotFoundError):
        referrals.validate_code(db, "NOPE1234")


def test_unknown_wallet(db, make_user):
    make_user("wallet_ref")
    with pytest.raises(NotFoundError):
        referrals.apply_referral(db, "ghost", _code(db, "wallet_ref"))


def test_referrer_at_cap(db, make_user):
    make_user("wallet_ref")
    make_user("wallet_new")
    db.execute(text("UPDATE users SET referral_count = :cap WHERE wallet_address = 'wallet_ref'"),
               {"cap": referrals.REFERRAL_CAP})
    db.commit()
    code = _code(db, "wallet_ref")
    with pytest.raises(ConflictError):
        referrals.validate_code(db, code)
    with pytest.raises(ConflictError):
        referrals.apply_referral(db, "wallet_new", code)
    assert fetch_user(db, "wallet_new").referred_by is None


def test_validate_code(db, make_user):
    make_user("wallet_ref", username="Morgan")
    info = referrals.validate_code(db, f"  {_code(db, 'wallet_ref')} ")
    assert info.wallet_address == "wallet_ref"
    assert info.username == "Morgan"
    assert info.referral_count == 0


def test_list_referred(db, make_user):
    make_user("wallet_ref")
    make_user("wallet_n1", points=5)
    make_user("wallet_n2")
    code = _code(db, "wallet_ref")
    referrals.apply_referral(db, "wallet_n1", code)
    referrals.apply_referral(db, "wallet_n2", code)
    referred = referrals.list_referred(db, "wallet_ref")
    assert {r.wallet_address for r in referred} == {"wallet_n1", "wallet_n2"}


# ── HTTP ─────────────────────────────────────────────────────────

def test_referral_endpoints(client, make_user):
    make_user("wallet_ref", username="Morgan")
    make_user("wallet_new", points=1000)
    code = client.get("/user", params={"walletAddress": "wallet_ref"}).json()["data"]["referralCode"]

    check = client.get("/referral", params={"code": code})
    assert check.status_code == 200
    assert check.json()["referrer"]["walletAddress"] == "wallet_ref"

    applied = client.post("/referral", json={"walletAddress": "wallet_new", "referralCode": code})
    assert applied.status_code == 200
    assert applied.json()["bonusAwarded"] == 100
    assert applied.json()["referrerWallet"] == "wallet_ref"

    repeat = client.post("/referral", json={"walletAddress": "wallet_new", "referralCode": code})
    assert repeat.status_code == 400

    referred = client.get("/referral/referred", params={"walletAddress": "wallet_ref"}).json()
    assert [r["walletAddress"] for r in referred["referrals"]] == ["wallet_new"]


def test_referral_endpoint_errors(client, make_user):
    make_user("wallet_new")
    assert client.get("/referral", params={"code": "MISSING1"}).status_code == 404
    assert client.get("/referral").status_code == 400
    resp = client.post("/referral", json={"walletAddress": "wallet_new", "referralCode": "MISSING1"})
    assert resp.status_code == 404
