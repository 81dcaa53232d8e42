"""Workout history statistics and daily streaks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


@dataclass(frozen=True, slots=True)
class CompletedSession:
    """One finished workout, joined with its catalogue entry."""

    workout_id: str
    title: str
    difficulty: str
    completed_at: datetime
    duration_seconds: int = 0


@dataclass(frozen=True, slots=True)
class ProgressStats:
    total_workouts: int = 0
    total_duration_seconds: int = 0
    advanced_workouts: int = 0
    distinct_workouts: int = 0
    current_streak: int = 0
    best_streak: int = 0
    last_workout_date: date | None = None


def compute_streaks(days: Iterable[date], today: date) -> tuple[int, int]:
    """Return ``(current, best)`` streak lengths in days.

    The current streak is still alive if the latest workout day is today
    or yesterday; otherwise it is zero.  Several workouts on one day
    count once.
    """
    ordered = sorted(set(days))
    if not ordered:
        return 0, 0

    best = run = 1
    for prev, cur in zip(ordered, ordered[1:], strict=False):
        run = run + 1 if (cur - prev).days == 1 else 1
        best = max(best, run)

    latest = ordered[-1]
    if (today - latest).days > 1:
        return 0, best

    current = 1
    for prev, cur in zip(reversed(ordered[:-1]), reversed(ordered[1:]), strict=False):
        if (cur - prev).days != 1:
            break
        current += 1
    return current, best


def summarize(sessions: Sequence[CompletedSession], today: date) -> ProgressStats:
    """Aggregate a user's completed sessions."""
    if not sessions:
        return ProgressStats()
    days = [s.completed_at.date() for s in sessions]
    current, best = compute_streaks(days, today)
    return ProgressStats(
        total_workouts=len(sessions),
        total_duration_seconds=sum(s.duration_seconds for s in sessions),
        advanced_workouts=sum(1 for s in sessions if s.difficulty == "advanced"),
        distinct_workouts=len({s.workout_id for s in sessions}),
        current_streak=current,
        best_streak=best,
        last_workout_date=max(days),
    )
