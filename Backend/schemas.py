"""
Pydantic schemas for request validation and response serialization.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


WalletAddress = Annotated[str, Field(min_length=1, max_length=128, description="Player wallet address")]

# Largest value an INTEGER column holds
MAX_INT = 2**31 - 1


# ── Pet State ────────────────────────────────────────────────────

class PetStats(CamelModel):
    """Stat values as sent by the client; any may be omitted."""

    health: Optional[float] = None
    happiness: Optional[float] = None
    hunger: Optional[float] = None
    cleanliness: Optional[float] = None
    energy: Optional[float] = None
    is_dead: Optional[bool] = None
    quality_score: Optional[int] = Field(default=None, ge=0, le=MAX_INT)
    last_message: Optional[str] = None
    last_reaction: Optional[str] = None


class PetStateUpdate(PetStats):
    """Normalised pet-state write, resolved once at the HTTP boundary."""

    wallet_address: WalletAddress


class PetStateUpdateRequest(PetStats):
    """
    Request body for ``POST /pet-state``.

    Stats may be sent flat or nested under ``petState``; nested values win.
    """

    wallet_address: WalletAddress
    pet_state: Optional[PetStats] = None

    def normalized(self) -> PetStateUpdate:
        flat = self.model_dump(exclude={"wallet_address", "pet_state"}, exclude_none=True)
        if self.pet_state is not None:
            flat.update(self.pet_state.model_dump(exclude_none=True))
        return PetStateUpdate(wallet_address=self.wallet_address, **flat)


class PetStateData(CamelModel):
    health: int
    happiness: int
    hunger: int
    cleanliness: int
    energy: int
    is_dead: bool
    last_state_update: Optional[datetime] = None
    quality_score: int = 0
    last_message: Optional[str] = None
    last_reaction: Optional[str] = None


class PetStateResponse(CamelModel):
    success: bool = True
    data: PetStateData
    warning: Optional[str] = None


class PetWriteResponse(CamelModel):
    success: bool = True
    message: str
    data: PetStateData


class InteractionRequest(CamelModel):
    wallet_address: WalletAddress
    action: Literal["feed", "play", "clean"]


class InteractionResponse(CamelModel):
    success: bool = True
    data: PetStateData
    points_awarded: int
    total_points: int


# ── Users ────────────────────────────────────────────────────────

class UserData(CamelModel):
    wallet_address: str
    username: Optional[str] = None
    points: int = 0
    referral_code: str
    referred_by: Optional[str] = None
    referral_count: int = 0
    referral_points: int = 0
    uid: str
    created_at: Optional[datetime] = None
    last_points_update: Optional[datetime] = None


class UserRequest(CamelModel):
    """Request body for ``POST /user`` (first wallet connection)."""

    wallet_address: WalletAddress
    uid: Optional[str] = Field(default=None, max_length=128)
    username: Optional[str] = Field(default=None, max_length=64)


class UserResponse(CamelModel):
    success: bool = True
    data: UserData


class AccountOperationRequest(CamelModel):
    wallet_address: WalletAddress
    operation: Literal["delete", "update"]
    username: Optional[str] = Field(default=None, max_length=64)


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class UsernameCheckRequest(CamelModel):
    username: str = Field(..., max_length=64)


class UsernameCheckResponse(CamelModel):
    success: bool = True
    available: bool


class Activity(CamelModel):
    activity_id: str
    activity_type: str
    name: str
    points: int
    timestamp: datetime


class ActivityListResponse(CamelModel):
    success: bool = True
    data: list[Activity]


# ── Leaderboard ──────────────────────────────────────────────────

class LeaderboardEntry(CamelModel):
    """A single entry in the leaderboard response."""

    rank: int
    wallet_address: str
    username: Optional[str] = None
    points: int


class LeaderboardMeta(CamelModel):
    total: int
    limit: int
    offset: int


class LeaderboardResponse(CamelModel):
    success: bool = True
    data: list[LeaderboardEntry]
    meta: LeaderboardMeta
    error: Optional[str] = None


class PointsSubmission(CamelModel):
    """Request body for ``POST /leaderboard``."""

    wallet_address: WalletAddress
    points: int = Field(..., ge=0, le=MAX_INT, description="Current point total reported by the client")
    username: Optional[str] = Field(default=None, max_length=64)


class PointsSubmitResponse(CamelModel):
    success: bool = True
    message: str
    updated: bool
    rank: int


class RankResponse(CamelModel):
    """Response for a player's rank lookup."""

    success: bool = True
    wallet_address: str
    rank: int
    total: int
    points: int
    percentile: float


class ReferralLeader(CamelModel):
    rank: int
    wallet_address: str
    username: Optional[str] = None
    referral_count: int
    referral_points: int


class ReferralLeaderboardResponse(CamelModel):
    success: bool = True
    data: list[ReferralLeader]


# ── Referrals ────────────────────────────────────────────────────

class ReferrerInfo(CamelModel):
    wallet_address: str
    username: Optional[str] = None
    referral_count: int


class ReferralCheckResponse(CamelModel):
    success: bool = True
    valid: bool = True
    referrer: ReferrerInfo


class ReferralApplyRequest(CamelModel):
    wallet_address: WalletAddress
    referral_code: str = Field(..., min_length=1, max_length=128)


class ReferralApplyResponse(CamelModel):
    success: bool = True
    message: str
    referrer_wallet: str
    bonus_awarded: int


class ReferredUser(CamelModel):
    wallet_address: str
    username: Optional[str] = None
    joined_at: Optional[datetime] = None
    points: int


class ReferredListResponse(CamelModel):
    success: bool = True
    referrals: list[ReferredUser]


# ── Game Sessions ────────────────────────────────────────────────

class GameSessionData(CamelModel):
    session_id: str
    wallet_address: str
    start_time: datetime
    end_time: Optional[datetime] = None
    score: int = 0
    completed: bool = False


class GameSessionStartRequest(CamelModel):
    wallet_address: WalletAddress


class GameSessionUpdateRequest(CamelModel):
    """Request body for ``PUT /game-session``."""

    wallet_address: WalletAddress
    session_id: str = Field(..., min_length=1, max_length=64)
    score: int = Field(..., ge=0, le=MAX_INT, description="Current score of the running session")


class GameSessionResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: GameSessionData


class GameSessionEndResponse(CamelModel):
    success: bool = True
    message: str
    data: GameSessionData
    points_awarded: int
    total_points: int


# ── Tasks ────────────────────────────────────────────────────────

class TaskStatus(CamelModel):
    """A catalog task as seen by one player."""

    id: str
    title: str
    description: str
    points_reward: int
    type: Literal["daily", "achievement", "gameplay", "interaction"]
    cooldown_hours: int = 0
    is_available: bool
    is_completed: bool
    cooldown_remaining: int = Field(0, description="Seconds until the task can be completed again")
    requirements_met: bool


class TaskListResponse(CamelModel):
    success: bool = True
    tasks: list[TaskStatus]


class TaskCompleteRequest(CamelModel):
    wallet_address: WalletAddress
    task_id: str = Field(..., min_length=1, max_length=64)


class TaskCompleteResponse(CamelModel):
    success: bool = True
    message: str
    points_awarded: int
    total_points: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error: str
