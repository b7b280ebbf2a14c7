"""
Gotchi API routes.

Endpoints:
  GET  /pet-state              — Current pet state (degrades to defaults)
  POST /pet-state              — Create or update a pet state
  POST /pet-state/interact     — Feed, play with or clean the pet
  GET  /leaderboard            — Paged standings
  POST /leaderboard            — Submit a point total
  GET  /leaderboard/rank       — A wallet's dense rank and percentile
  GET  /leaderboard/referrals  — Top referrers
  GET  /referral               — Validate a referral code
  POST /referral               — Apply a referral code
  GET  /referral/referred      — Users referred by a wallet
  POST /user                   — Register a wallet (idempotent)
  GET  /user                   — Fetch a user
  POST /user/account           — Rename or delete an account
  GET  /user/activity          — Recent activity log
  POST /check-username         — Username availability
  GET  /game-session           — A game session owned by a wallet
  POST /game-session           — Start a game session
  PUT  /game-session           — Record the running score
  DELETE /game-session         — End a session and award gameplay points
  GET  /tasks                  — Task catalog with per-player status
  POST /tasks                  — Complete a task

Service modules raise ``errors.GotchiError`` subclasses; the handlers in
``app.py`` turn them into ``{"success": false, "error": ...}`` responses.
"""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import leaderboard
import pets
import referrals
import sessions
import tasks
import users
from cache import LeaderboardCache
from database import get_db, run_in_transaction
from limiter import READ_LIMIT, WRITE_LIMIT, limiter
from schemas import (
    AccountOperationRequest,
    ActivityListResponse,
    GameSessionEndResponse,
    GameSessionResponse,
    GameSessionStartRequest,
    GameSessionUpdateRequest,
    InteractionRequest,
    InteractionResponse,
    LeaderboardMeta,
    LeaderboardResponse,
    MessageResponse,
    PetStateResponse,
    PetStateUpdateRequest,
    PetWriteResponse,
    PointsSubmission,
    PointsSubmitResponse,
    RankResponse,
    ReferralApplyRequest,
    ReferralApplyResponse,
    ReferralCheckResponse,
    ReferralLeaderboardResponse,
    ReferredListResponse,
    TaskCompleteRequest,
    TaskCompleteResponse,
    TaskListResponse,
    UserRequest,
    UserResponse,
    UsernameCheckRequest,
    UsernameCheckResponse,
)

logger = logging.getLogger(__name__)

pet_router = APIRouter(prefix="/pet-state", tags=["Pet State"])
leaderboard_router = APIRouter(prefix="/leaderboard", tags=["Leaderboard"])
referral_router = APIRouter(prefix="/referral", tags=["Referrals"])
user_router = APIRouter(tags=["Users"])
session_router = APIRouter(prefix="/game-session", tags=["Game Sessions"])
task_router = APIRouter(prefix="/tasks", tags=["Tasks"])


def get_cache(request: Request) -> LeaderboardCache:
    """The cache built at startup; a disabled one if startup has not run."""
    cache = getattr(request.app.state, "cache", None)
    return cache if cache is not None else LeaderboardCache(None)


def wallet_query():
    return Query(..., alias="walletAddress", min_length=1, max_length=128)


# ── Pet State ────────────────────────────────────────────────────

@pet_router.get("", response_model=PetStateResponse, response_model_exclude_none=True)
@limiter.limit(READ_LIMIT)
def read_pet_state(request: Request, wallet_address: str = wallet_query(), db: Session = Depends(get_db)):
    """Return the stored state, creating the default for a known user."""
    state, warning = pets.get_pet_state(db, wallet_address)
    return PetStateResponse(data=state, warning=warning)


@pet_router.post("", response_model=PetWriteResponse)
@limiter.limit(WRITE_LIMIT)
def write_pet_state(
    request: Request,
    payload: PetStateUpdateRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    """Accepts stats flat or nested under ``petState``; nested values win."""
    state, created = pets.upsert_pet_state(db, payload.normalized())
    if created:
        response.status_code = status.HTTP_201_CREATED
    return PetWriteResponse(
        message="Pet state created successfully" if created else "Pet state updated successfully",
        data=state,
    )


@pet_router.post("/interact", response_model=InteractionResponse)
@limiter.limit(WRITE_LIMIT)
def interact_with_pet(
    request: Request,
    payload: InteractionRequest,
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_cache),
):
    state, awarded, total = pets.interact(db, payload.wallet_address, payload.action)
    cache.invalidate()
    return InteractionResponse(data=state, points_awarded=awarded, total_points=total)


# ── Leaderboard ──────────────────────────────────────────────────

@leaderboard_router.get("", response_model=LeaderboardResponse, response_model_exclude_none=True)
@limiter.limit(READ_LIMIT)
def read_leaderboard(
    request: Request,
    limit: int = Query(10),
    offset: int = Query(0),
    dense: bool = Query(False),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_cache),
):
    """
    One page of standings, cached for a few seconds.

    A database failure is not fatal here: the client gets an empty page and
    an ``error`` field with status 200 and keeps its local view.
    """
    limit = max(1, min(limit, leaderboard.MAX_PAGE_SIZE))
    offset = max(0, offset)
    cache_key = f"top:{limit}:{offset}:{int(dense)}"
    cached = cache.get(cache_key)
    if cached:
        return LeaderboardResponse(**cached)

    try:
        entries, total = leaderboard.list_top(db, limit=limit, offset=offset, dense=dense)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Leaderboard unavailable: %s", exc)
        return LeaderboardResponse(
            success=False,
            data=[],
            meta=LeaderboardMeta(total=0, limit=limit, offset=offset),
            error="Failed to load leaderboard",
        )

    response = LeaderboardResponse(data=entries, meta=LeaderboardMeta(total=total, limit=limit, offset=offset))
    cache.set(cache_key, response.model_dump(mode="json", exclude_none=True))
    return response


@leaderboard_router.post("", response_model=PointsSubmitResponse)
@limiter.limit(WRITE_LIMIT)
def submit_points(
    request: Request,
    payload: PointsSubmission,
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_cache),
):
    updated, rank = leaderboard.submit_points(db, payload.wallet_address, payload.points, payload.username)
    cache.invalidate()
    return PointsSubmitResponse(
        message="Points updated successfully" if updated else "Points unchanged (not higher than current)",
        updated=updated,
        rank=rank,
    )


@leaderboard_router.get("/rank", response_model=RankResponse)
@limiter.limit(READ_LIMIT)
def read_rank(
    request: Request,
    wallet_address: str = wallet_query(),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_cache),
):
    cache_key = f"rank:{wallet_address}"
    cached = cache.get(cache_key)
    if cached:
        return RankResponse(**cached)

    standing = leaderboard.get_rank(db, wallet_address)
    response = RankResponse(wallet_address=wallet_address, **standing._asdict())
    cache.set(cache_key, response.model_dump(mode="json"))
    return response


@leaderboard_router.get("/referrals", response_model=ReferralLeaderboardResponse)
@limiter.limit(READ_LIMIT)
def read_referral_leaders(request: Request, limit: int = Query(10), db: Session = Depends(get_db)):
    return ReferralLeaderboardResponse(data=leaderboard.list_referral_leaders(db, limit))


# ── Referrals ────────────────────────────────────────────────────

@referral_router.get("", response_model=ReferralCheckResponse)
@limiter.limit(READ_LIMIT)
def check_referral_code(request: Request, code: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    return ReferralCheckResponse(referrer=referrals.validate_code(db, code))


@referral_router.post("", response_model=ReferralApplyResponse)
@limiter.limit(WRITE_LIMIT)
def apply_referral_code(
    request: Request,
    payload: ReferralApplyRequest,
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_cache),
):
    result = referrals.apply_referral(db, payload.wallet_address, payload.referral_code)
    cache.invalidate()
    return ReferralApplyResponse(
        message="Referral applied successfully",
        referrer_wallet=result.referrer_wallet,
        bonus_awarded=result.bonus_awarded,
    )


@referral_router.get("/referred", response_model=ReferredListResponse)
@limiter.limit(READ_LIMIT)
def read_referred_users(request: Request, wallet_address: str = wallet_query(), db: Session = Depends(get_db)):
    return ReferredListResponse(referrals=referrals.list_referred(db, wallet_address))


# ── Users ────────────────────────────────────────────────────────

@user_router.post("/user", response_model=UserResponse)
@limiter.limit(WRITE_LIMIT)
def register_user(request: Request, payload: UserRequest, db: Session = Depends(get_db)):
    """First wallet connection; returns the existing user on repeat calls."""
    user = run_in_transaction(
        db, lambda session: users.ensure_user(session, payload.wallet_address, payload.uid, payload.username)
    )
    return UserResponse(data=user)


@user_router.get("/user", response_model=UserResponse)
@limiter.limit(READ_LIMIT)
def read_user(request: Request, wallet_address: str = wallet_query(), db: Session = Depends(get_db)):
    return UserResponse(data=users.get_user(db, wallet_address))


@user_router.post("/user/account", response_model=MessageResponse)
@limiter.limit(WRITE_LIMIT)
def manage_account(
    request: Request,
    payload: AccountOperationRequest,
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_cache),
):
    if payload.operation == "delete":
        users.delete_user(db, payload.wallet_address)
        cache.invalidate()
        return MessageResponse(message="Account deleted successfully")

    run_in_transaction(db, lambda session: users.update_username(session, payload.wallet_address, payload.username))
    cache.invalidate()
    return MessageResponse(message="Username updated successfully")


@user_router.get("/user/activity", response_model=ActivityListResponse)
@limiter.limit(READ_LIMIT)
def read_activity(
    request: Request,
    wallet_address: str = wallet_query(),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return ActivityListResponse(data=users.list_activities(db, wallet_address, limit))


@user_router.post("/check-username", response_model=UsernameCheckResponse)
@limiter.limit(READ_LIMIT)
def check_username(request: Request, payload: UsernameCheckRequest, db: Session = Depends(get_db)):
    return UsernameCheckResponse(available=users.is_username_available(db, payload.username))


# ── Game Sessions ────────────────────────────────────────────────

@session_router.get("", response_model=GameSessionResponse, response_model_exclude_none=True)
@limiter.limit(READ_LIMIT)
def read_game_session(
    request: Request,
    session_id: str = Query(..., alias="sessionId", min_length=1, max_length=64),
    wallet_address: str = wallet_query(),
    db: Session = Depends(get_db),
):
    return GameSessionResponse(data=sessions.get_session(db, session_id, wallet_address))


@session_router.post("", response_model=GameSessionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(WRITE_LIMIT)
def start_game_session(request: Request, payload: GameSessionStartRequest, db: Session = Depends(get_db)):
    game = sessions.start_session(db, payload.wallet_address)
    return GameSessionResponse(message="Game session created successfully", data=game)


@session_router.put("", response_model=GameSessionResponse)
@limiter.limit(WRITE_LIMIT)
def update_game_session(request: Request, payload: GameSessionUpdateRequest, db: Session = Depends(get_db)):
    game = sessions.update_session(db, payload.session_id, payload.wallet_address, payload.score)
    return GameSessionResponse(message="Game session updated successfully", data=game)


@session_router.delete("", response_model=GameSessionEndResponse)
@limiter.limit(WRITE_LIMIT)
def end_game_session(
    request: Request,
    session_id: str = Query(..., alias="sessionId", min_length=1, max_length=64),
    wallet_address: str = wallet_query(),
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_cache),
):
    """Ends the session once; a second call is rejected."""
    game, awarded, total = sessions.end_session(db, session_id, wallet_address)
    cache.invalidate()
    return GameSessionEndResponse(
        message="Game session ended successfully",
        data=game,
        points_awarded=awarded,
        total_points=total,
    )


# ── Tasks ────────────────────────────────────────────────────────

@task_router.get("", response_model=TaskListResponse)
@limiter.limit(READ_LIMIT)
def read_tasks(request: Request, wallet_address: str = wallet_query(), db: Session = Depends(get_db)):
    return TaskListResponse(tasks=tasks.list_tasks(db, wallet_address))


@task_router.post("", response_model=TaskCompleteResponse)
@limiter.limit(WRITE_LIMIT)
def complete_task(
    request: Request,
    payload: TaskCompleteRequest,
    db: Session = Depends(get_db),
    cache: LeaderboardCache = Depends(get_cache),
):
    awarded, total = tasks.complete_task(db, payload.wallet_address, payload.task_id)
    cache.invalidate()
    return TaskCompleteResponse(message="Task completed successfully", points_awarded=awarded, total_points=total)


routers = (pet_router, leaderboard_router, referral_router, user_router, session_router, task_router)
