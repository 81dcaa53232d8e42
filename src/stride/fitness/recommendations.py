"""Workout recommendation scorer.

A pure weighted sum over the catalogue:

- +5 when the workout's difficulty matches the user's level
- +3 when it is one level above (the next step up)
- -10 when it is among the user's five most recent workouts
- +2 when its title has a word none of those recent titles use

The top scorers are returned, ties keeping catalogue order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

LEVELS: tuple[str, ...] = ("beginner", "intermediate", "advanced")
RECENT_WINDOW = 5

LEVEL_MATCH = 5
NEXT_LEVEL = 3
RECENT_PENALTY = -10
NOVELTY_BONUS = 2

_WORD = re.compile(r"[a-z0-9]+")


@dataclass(frozen=True, slots=True)
class WorkoutInfo:
    id: str
    title: str
    difficulty: str
    duration_seconds: int = 0


@dataclass(frozen=True, slots=True)
class ScoredWorkout:
    workout: WorkoutInfo
    score: int


def infer_user_level(completed_count: int) -> str:
    """Level from the number of completed workouts."""
    if completed_count > 20:
        return "advanced"
    if completed_count > 5:
        return "intermediate"
    return "beginner"


def _title_words(title: str) -> set[str]:
    return set(_WORD.findall(title.lower()))


def _next_level(level: str) -> str | None:
    try:
        idx = LEVELS.index(level)
    except ValueError:
        return None
    return LEVELS[idx + 1] if idx + 1 < len(LEVELS) else None


def score_workout(
    workout: WorkoutInfo,
    recent_history: Sequence[WorkoutInfo],
    user_level: str,
) -> int:
    """Score one workout. *recent_history* is most recent first."""
    recent = recent_history[:RECENT_WINDOW]
    score = 0
    if workout.difficulty == user_level:
        score += LEVEL_MATCH
    elif workout.difficulty == _next_level(user_level):
        score += NEXT_LEVEL
    if any(w.id == workout.id for w in recent):
        score += RECENT_PENALTY
    seen_words: set[str] = set()
    for w in recent:
        seen_words |= _title_words(w.title)
    if _title_words(workout.title) - seen_words:
        score += NOVELTY_BONUS
    return score


def recommend(
    workouts: Sequence[WorkoutInfo],
    history: Sequence[WorkoutInfo],
    *,
    user_level: str | None = None,
    limit: int = 5,
) -> list[ScoredWorkout]:
    """Top *limit* workouts by descending score.

    *history* is every completed workout, most recent first; it also
    drives the inferred level when *user_level* is not given.
    """
    level = user_level or infer_user_level(len(history))
    scored = [ScoredWorkout(w, score_workout(w, history, level)) for w in workouts]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[:limit]
