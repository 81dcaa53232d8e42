"""Planned workouts: upcoming and due-today views."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True, slots=True)
class PlannedWorkout:
    id: str
    workout_id: str
    title: str
    difficulty: str
    duration_seconds: int
    scheduled_for: datetime
    completed: bool


def upcoming(entries: list[PlannedWorkout], now: datetime) -> list[PlannedWorkout]:
    """Not yet completed and scheduled at or after *now*."""
    return [e for e in entries if not e.completed and e.scheduled_for >= now]


def due_today(entries: list[PlannedWorkout], now: datetime) -> list[PlannedWorkout]:
    """Not yet completed and scheduled on *now*'s calendar day."""
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return [e for e in entries if not e.completed and start <= e.scheduled_for < end]
