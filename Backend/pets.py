"""
Pet state store and the stat rules that govern it.

Stats live in [0, 100]. Health is derived from the other four stats:

    health = 0.4 * hunger + 0.2 * happiness + 0.2 * cleanliness + 0.2 * energy

with a penalty of 0.1 per point of hunger above 100 (overfeeding). A pet
whose health or hunger reaches 0 is dead.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import run_in_transaction
from errors import ConflictError, CooldownError, NotFoundError, ValidationError
from schemas import PetStateData, PetStateUpdate
from users import add_points, ensure_user, fetch_user, last_activity_time, record_activity, utcnow

logger = logging.getLogger(__name__)

STAT_MIN = 0
STAT_MAX = 100
STATS = ("health", "happiness", "hunger", "cleanliness", "energy")

DEGRADED_WARNING = "Using default values due to database error"

# Units lost per hour of neglect
DEFAULT_DECAY_RATES = {
    "hunger": 0.5,
    "happiness": 0.4,
    "cleanliness": 0.3,
    "energy": 0.4,
}

ACTION_EFFECTS = {
    "feed": {"hunger": 30, "happiness": 10},
    "play": {"happiness": 35, "energy": -20},
    "clean": {"cleanliness": 40, "happiness": 5},
}
ACTION_BASE_POINTS = {"feed": 50, "play": 60, "clean": 40}
ACTION_COOLDOWN_SECONDS = {"feed": 10, "play": 15, "clean": 20}

_SELECT_PET = text(
    """
    SELECT health, happiness, hunger, cleanliness, energy, is_dead,
           last_state_update, quality_score, last_message, last_reaction
    FROM pet_states
    WHERE wallet_address = :wallet
    """
).columns(last_state_update=DateTime)

_UPSERT_PET = text(
    """
    INSERT INTO pet_states (
        wallet_address, health, happiness, hunger, cleanliness, energy,
        is_dead, quality_score, last_state_update, last_message, last_reaction
    )
    VALUES (
        :wallet, :health, :happiness, :hunger, :cleanliness, :energy,
        :is_dead, :quality_score, :last_state_update, :last_message, :last_reaction
    )
    ON CONFLICT (wallet_address)
    DO UPDATE SET
        health = excluded.health,
        happiness = excluded.happiness,
        hunger = excluded.hunger,
        cleanliness = excluded.cleanliness,
        energy = excluded.energy,
        is_dead = excluded.is_dead,
        quality_score = excluded.quality_score,
        last_state_update = excluded.last_state_update,
        last_message = excluded.last_message,
        last_reaction = excluded.last_reaction
    """
)


# ── Stat rules ───────────────────────────────────────────────────

def clamp_stat(value: float) -> int:
    if math.isnan(value):
        return STAT_MIN
    if math.isinf(value):
        return STAT_MAX if value > 0 else STAT_MIN
    return int(max(STAT_MIN, min(STAT_MAX, round(value))))


def compute_health(hunger: float, happiness: float, cleanliness: float, energy: float) -> int:
    health = hunger * 0.4 + happiness * 0.2 + cleanliness * 0.2 + energy * 0.2
    if hunger > STAT_MAX:
        health -= (hunger - STAT_MAX) * 0.1
    return clamp_stat(max(health, 0))


def is_dead_state(health: float, hunger: float) -> bool:
    return health <= 0 or hunger <= 0


def quality_multiplier(stats: dict) -> float:
    """Care quality in [0.5, 3.0] from the average of the core stats."""
    avg = (stats["health"] + stats["happiness"] + stats["hunger"] + stats["cleanliness"]) / 4
    return max(0.5, min(3.0, avg / 33.33))


def apply_decay(stats: dict, elapsed_minutes: float, rates: Optional[dict] = None) -> dict:
    """Return a copy of ``stats`` decayed by ``elapsed_minutes`` of neglect."""
    rates = rates or DEFAULT_DECAY_RATES
    decayed = dict(stats)
    if elapsed_minutes <= 0:
        return decayed
    for stat, per_hour in rates.items():
        decayed[stat] = max(decayed[stat] - per_hour * (elapsed_minutes / 60), 0)
    decayed["health"] = compute_health(
        decayed["hunger"], decayed["happiness"], decayed["cleanliness"], decayed["energy"]
    )
    return decayed


def default_state(value: int = STAT_MAX) -> PetStateData:
    return PetStateData(
        health=value,
        happiness=value,
        hunger=value,
        cleanliness=value,
        energy=value,
        is_dead=False,
        last_state_update=utcnow(),
        quality_score=0,
    )


# ── Store ────────────────────────────────────────────────────────

def fetch_pet_state(db: Session, wallet: str) -> Optional[PetStateData]:
    row = db.execute(_SELECT_PET, {"wallet": wallet}).fetchone()
    return PetStateData(**row._mapping) if row else None


def _write(db: Session, wallet: str, state: PetStateData) -> None:
    params = state.model_dump()
    params["wallet"] = wallet
    db.execute(_UPSERT_PET, params)


def load_pet_state(db: Session, wallet: str) -> PetStateData:
    """Stored state, creating the default (all stats 100) for a known user."""
    state = fetch_pet_state(db, wallet)
    if state is not None:
        return state
    if fetch_user(db, wallet) is None:
        raise NotFoundError("User not found")
    state = default_state()
    _write(db, wallet, state)
    db.commit()
    logger.info("Created default pet state for %s", wallet)
    return state


def get_pet_state(db: Session, wallet: str) -> tuple[PetStateData, Optional[str]]:
    """
    Return ``(state, warning)``.

    A database failure does not propagate: the caller receives a neutral
    default (all stats 50) and a warning so the game stays playable.
    """
    try:
        return load_pet_state(db, wallet), None
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Pet state for %s unavailable, serving defaults: %s", wallet, exc)
        return default_state(50), DEGRADED_WARNING


def merge_update(current: PetStateData, update: PetStateUpdate) -> PetStateData:
    """Overlay the supplied fields onto ``current`` and re-derive health/death."""
    raw = {stat: getattr(current, stat) for stat in STATS}
    supplied = update.model_dump(include=set(STATS), exclude_none=True)
    raw.update(supplied)

    if "health" in supplied:
        health = clamp_stat(raw["health"])
    else:
        health = compute_health(raw["hunger"], raw["happiness"], raw["cleanliness"], raw["energy"])
    stats = {stat: clamp_stat(raw[stat]) for stat in STATS if stat != "health"}
    stats["health"] = health

    is_dead = bool(update.is_dead) or is_dead_state(health, stats["hunger"])
    if update.is_dead is None and current.is_dead:
        is_dead = True

    return PetStateData(
        **stats,
        is_dead=is_dead,
        last_state_update=utcnow(),
        quality_score=update.quality_score if update.quality_score is not None else current.quality_score,
        last_message=update.last_message if update.last_message is not None else current.last_message,
        last_reaction=update.last_reaction if update.last_reaction is not None else current.last_reaction,
    )


def upsert_pet_state(db: Session, update: PetStateUpdate) -> tuple[PetStateData, bool]:
    """
    Insert or update the pet state for ``update.wallet_address``.

    Every stat is clamped into [0, 100] before it is written. Creates the
    owning user when it does not exist yet. Returns ``(state, created)``.
    """
    wallet = update.wallet_address

    def work(session: Session):
        ensure_user(session, wallet)
        current = fetch_pet_state(session, wallet)
        created = current is None
        state = merge_update(current or default_state(), update)
        _write(session, wallet, state)
        return state, created

    state, created = run_in_transaction(db, work)
    logger.info("Pet state %s for %s (health=%d, dead=%s)",
                "created" if created else "updated", wallet, state.health, state.is_dead)
    return state, created


def interact(db: Session, wallet: str, action: str) -> tuple[PetStateData, int, int]:
    """
    Apply a feed/play/clean action.

    Decay accrued since the last update is applied first, then the action's
    effects. Awards points scaled by care quality and logs the activity.
    A pet that starves during the decay is stored as dead and the action is
    rejected with no points. Returns ``(state, points_awarded, total_points)``.
    """
    if action not in ACTION_EFFECTS:
        raise ValidationError(f"Unknown action '{action}'")

    def work(session: Session):
        if fetch_user(session, wallet) is None:
            raise NotFoundError("User not found")

        now = utcnow()
        last = last_activity_time(session, wallet, action)
        if last is not None and (now - last).total_seconds() < ACTION_COOLDOWN_SECONDS[action]:
            raise CooldownError(f"'{action}' is on cooldown")

        current = fetch_pet_state(session, wallet) or default_state()
        if current.is_dead:
            raise ConflictError("Pet is dead")

        stats = {stat: getattr(current, stat) for stat in STATS}
        stats = apply_decay(stats, _minutes_since(current.last_state_update, now))
        if is_dead_state(stats["health"], stats["hunger"]):
            # Starved while unattended; the death is kept, the action is not
            _write(session, wallet, PetStateData(
                **{stat: clamp_stat(v) for stat, v in stats.items()},
                is_dead=True,
                last_state_update=now,
                quality_score=current.quality_score,
                last_message=current.last_message,
                last_reaction=current.last_reaction,
            ))
            return None

        for stat, delta in ACTION_EFFECTS[action].items():
            stats[stat] = clamp_stat(stats[stat] + delta)
        stats["health"] = compute_health(stats["hunger"], stats["happiness"], stats["cleanliness"], stats["energy"])
        stats = {stat: clamp_stat(v) for stat, v in stats.items()}

        state = PetStateData(
            **stats,
            is_dead=is_dead_state(stats["health"], stats["hunger"]),
            last_state_update=now,
            quality_score=current.quality_score,
            last_message=current.last_message,
            last_reaction=action,
        )
        _write(session, wallet, state)

        awarded = round(ACTION_BASE_POINTS[action] * quality_multiplier(stats))
        total = add_points(session, wallet, awarded)
        record_activity(session, wallet, action, action.capitalize(), awarded)
        return state, awarded, total

    result = run_in_transaction(db, work)
    if result is None:
        logger.info("Pet of %s died of neglect before '%s'", wallet, action)
        raise ConflictError("Pet is dead")
    return result


def _minutes_since(then: Optional[datetime], now: datetime) -> float:
    if then is None:
        return 0.0
    return max((now - then).total_seconds() / 60, 0.0)
