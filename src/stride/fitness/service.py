"""Recording workouts: progress row, streak, achievements, notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from stride.core.errors import NotFoundError
from stride.db.models import as_utc
from stride.fitness.achievements import check_progress
from stride.fitness.progress import CompletedSession, ProgressStats, summarize
from stride.fitness.recommendations import WorkoutInfo

if TYPE_CHECKING:
    from stride.db.models import WorkoutProgress
    from stride.db.repository import Repository
    from stride.fitness.achievements import Achievement

logger = logging.getLogger(__name__)


@dataclass
class RecordResult:
    progress: WorkoutProgress
    stats: ProgressStats
    new_achievements: list[Achievement] = field(default_factory=list)


async def load_sessions(repo: Repository, user_id: str) -> list[CompletedSession]:
    """All of a user's completed sessions, most recent first."""
    rows = await repo.list_progress(user_id)
    return [
        CompletedSession(
            workout_id=workout.id,
            title=workout.title,
            difficulty=workout.difficulty,
            completed_at=as_utc(progress.completed_at),
            duration_seconds=progress.duration_seconds,
        )
        for progress, workout in rows
    ]


def history_infos(sessions: list[CompletedSession]) -> list[WorkoutInfo]:
    return [
        WorkoutInfo(s.workout_id, s.title, s.difficulty, s.duration_seconds)
        for s in sessions
    ]


async def record_workout(
    repo: Repository,
    user_id: str,
    workout_id: str,
    *,
    duration_seconds: int,
    rating: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> RecordResult:
    """Store a completed session and update everything derived from it.

    Flushes only; the caller commits.
    """
    now = now or datetime.now(UTC)
    workout = await repo.get_workout(workout_id)
    if workout is None:
        msg = f"Workout not found: {workout_id}"
        raise NotFoundError(msg)

    progress = await repo.record_progress(
        user_id,
        workout_id,
        duration_seconds=duration_seconds,
        rating=rating,
        notes=notes,
        completed_at=now,
    )
    sessions = await load_sessions(repo, user_id)
    stats = summarize(sessions, now.date())
    await repo.save_streak(
        user_id,
        current=stats.current_streak,
        best=stats.best_streak,
        last_workout_date=stats.last_workout_date,
    )

    earned = await repo.list_achievement_ids(user_id)
    new = check_progress(stats, earned)
    prefs = await repo.get_preferences(user_id)
    for achievement in new:
        await repo.grant_achievement(user_id, achievement.id)
        if prefs.achievement:
            await repo.create_notification(
                user_id,
                "achievement",
                f"Achievement unlocked: {achievement.name}",
                achievement.description,
                data={"achievement_id": achievement.id, "points": achievement.points},
            )
    if new:
        logger.info(
            "User %s earned %s", user_id, ", ".join(a.id for a in new)
        )
    return RecordResult(progress, stats, new)
