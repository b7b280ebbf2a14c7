"""
Task catalog and task completion.

Repeatable tasks (daily, gameplay, interaction) cool down from their last
completion, which is read back from the activity log. Achievements complete
once and may require a points or referral threshold first.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from database import run_in_transaction
from errors import ConflictError, CooldownError, NotFoundError, ValidationError
from schemas import TaskStatus, UserData
from users import add_points, fetch_user, get_user, last_activity_time, record_activity, utcnow

logger = logging.getLogger(__name__)

ACHIEVEMENT = "achievement"


@dataclass(frozen=True)
class Task:
    id: str
    title: str
    description: str
    points_reward: int
    type: str
    cooldown_hours: int = 0
    # (kind, threshold); kind is "points" or "referrals"
    requirement: Optional[tuple[str, int]] = None

    @property
    def activity_type(self) -> str:
        return f"task:{self.id}"


TASKS = (
    Task("daily_login", "Daily Login", "Log in to the game every day to earn points", 50, "daily",
         cooldown_hours=24),
    Task("pet_feeding", "Feed Your Pet", "Feed your pet to increase their happiness", 20, "interaction",
         cooldown_hours=6),
    Task("play_game", "Play a Game", "Play a game to earn points", 30, "gameplay",
         cooldown_hours=1),
    Task("reach_score_100", "Reach 100 Points", "Earn a total of 100 points", 50, ACHIEVEMENT,
         requirement=("points", 100)),
    Task("refer_friend", "Refer a Friend", "Refer a friend to earn bonus points", 100, ACHIEVEMENT,
         requirement=("referrals", 1)),
)
TASKS_BY_ID = {task.id: task for task in TASKS}


def requirements_met(task: Task, user: UserData) -> bool:
    if task.requirement is None:
        return True
    kind, threshold = task.requirement
    current = user.points if kind == "points" else user.referral_count
    return current >= threshold


def task_status(task: Task, user: UserData, last_completed: Optional[datetime], now: datetime) -> TaskStatus:
    remaining = 0
    if task.type == ACHIEVEMENT:
        completed = last_completed is not None
    else:
        if last_completed is not None:
            elapsed = (now - last_completed).total_seconds()
            remaining = max(0, math.ceil(task.cooldown_hours * 3600 - elapsed))
        completed = remaining > 0
    met = requirements_met(task, user)
    return TaskStatus(
        id=task.id,
        title=task.title,
        description=task.description,
        points_reward=task.points_reward,
        type=task.type,
        cooldown_hours=task.cooldown_hours,
        is_available=met and not completed,
        is_completed=completed,
        cooldown_remaining=remaining,
        requirements_met=met,
    )


def list_tasks(db: Session, wallet: str) -> list[TaskStatus]:
    user = get_user(db, wallet)
    now = utcnow()
    return [task_status(task, user, last_activity_time(db, wallet, task.activity_type), now) for task in TASKS]


def complete_task(db: Session, wallet: str, task_id: str) -> tuple[int, int]:
    """Award a task's points to ``wallet``. Returns ``(points_awarded, total_points)``."""
    task = TASKS_BY_ID.get(task_id)
    if task is None:
        raise NotFoundError("Task not found")

    def work(session: Session):
        user = fetch_user(session, wallet)
        if user is None:
            raise NotFoundError("User not found")

        status = task_status(task, user, last_activity_time(session, wallet, task.activity_type), utcnow())
        if status.is_completed:
            if task.type == ACHIEVEMENT:
                raise ConflictError("Task already completed")
            raise CooldownError("Task is on cooldown")
        if not status.requirements_met:
            raise ValidationError("Task requirements not met")

        total = add_points(session, wallet, task.points_reward)
        record_activity(session, wallet, task.activity_type, task.title, task.points_reward)
        return task.points_reward, total

    awarded, total = run_in_transaction(db, work)
    logger.info("Task %s completed by %s (+%d, total=%d)", task_id, wallet, awarded, total)
    return awarded, total
