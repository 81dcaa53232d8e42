"""Achievement catalogue and progress checks."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from stride.fitness.progress import ProgressStats


class AchievementKind(enum.Enum):
    STREAK = "streak"
    DURATION = "duration"
    DIFFICULTY = "difficulty"
    VARIETY = "variety"


@dataclass(frozen=True, slots=True)
class Achievement:
    id: str
    name: str
    description: str
    kind: AchievementKind
    threshold: int
    points: int


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("streak-3", "Warming Up", "Work out 3 days in a row",
                AchievementKind.STREAK, 3, 50),
    Achievement("streak-7", "Week Warrior", "Work out 7 days in a row",
                AchievementKind.STREAK, 7, 100),
    Achievement("streak-14", "Fortnight Force", "Work out 14 days in a row",
                AchievementKind.STREAK, 14, 200),
    Achievement("streak-30", "Unstoppable", "Work out 30 days in a row",
                AchievementKind.STREAK, 30, 500),
    Achievement("duration-60", "First Hour", "Train for 1 hour in total",
                AchievementKind.DURATION, 3_600, 50),
    Achievement("duration-300", "Five Hours Strong", "Train for 5 hours in total",
                AchievementKind.DURATION, 18_000, 100),
    Achievement("duration-1200", "Twenty Hour Club", "Train for 20 hours in total",
                AchievementKind.DURATION, 72_000, 300),
    Achievement("duration-3600", "Sixty Hour Legend", "Train for 60 hours in total",
                AchievementKind.DURATION, 216_000, 500),
    Achievement("difficulty-1", "Stepping Up", "Complete an advanced workout",
                AchievementKind.DIFFICULTY, 1, 50),
    Achievement("difficulty-5", "Challenger", "Complete 5 advanced workouts",
                AchievementKind.DIFFICULTY, 5, 100),
    Achievement("difficulty-15", "Elite", "Complete 15 advanced workouts",
                AchievementKind.DIFFICULTY, 15, 300),
    Achievement("difficulty-30", "Master", "Complete 30 advanced workouts",
                AchievementKind.DIFFICULTY, 30, 500),
    Achievement("variety-3", "Explorer", "Complete 3 different workouts",
                AchievementKind.VARIETY, 3, 50),
    Achievement("variety-10", "Adventurer", "Complete 10 different workouts",
                AchievementKind.VARIETY, 10, 100),
    Achievement("variety-20", "Renaissance Athlete", "Complete 20 different workouts",
                AchievementKind.VARIETY, 20, 300),
)

_BY_ID = {a.id: a for a in ACHIEVEMENTS}


def get_achievement(achievement_id: str) -> Achievement | None:
    return _BY_ID.get(achievement_id)


def metric(stats: ProgressStats, kind: AchievementKind) -> int:
    """The stat an achievement kind is measured against."""
    if kind is AchievementKind.STREAK:
        return stats.current_streak
    if kind is AchievementKind.DURATION:
        return stats.total_duration_seconds
    if kind is AchievementKind.DIFFICULTY:
        return stats.advanced_workouts
    return stats.distinct_workouts


def check_progress(stats: ProgressStats, earned: Iterable[str]) -> list[Achievement]:
    """Achievements *stats* qualifies for that are not yet in *earned*."""
    have = set(earned)
    return [
        a
        for a in ACHIEVEMENTS
        if a.id not in have and metric(stats, a.kind) >= a.threshold
    ]


def progress_fraction(stats: ProgressStats, achievement: Achievement) -> float:
    """How far along *achievement* is, clamped to ``[0, 1]``."""
    return min(metric(stats, achievement.kind) / achievement.threshold, 1.0)


def total_points(earned: Iterable[str]) -> int:
    return sum(_BY_ID[a].points for a in set(earned) if a in _BY_ID)
