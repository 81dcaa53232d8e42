"""Tests for the workout recommendation scorer."""

from __future__ import annotations

import pytest

from stride.fitness.recommendations import (
    RECENT_WINDOW,
    WorkoutInfo,
    infer_user_level,
    recommend,
    score_workout,
)

# ── Helpers ──────────────────────────────────────────────────────


def _w(id: str, title: str, difficulty: str = "beginner") -> WorkoutInfo:  # noqa: A002
    return WorkoutInfo(id=id, title=title, difficulty=difficulty)


MORNING = _w("h1", "Morning Yoga Flow")
CORE = _w("h2", "Core Strength Basics")


class TestScoreWorkout:
    def test_beginner_match_not_novel(self):
        workout = _w("w1", "Yoga Basics")
        assert score_workout(workout, [MORNING, CORE], "beginner") == 5

    def test_beginner_match_novel(self):
        workout = _w("w1", "Hip Mobility")
        assert score_workout(workout, [MORNING, CORE], "beginner") == 7

    def test_advanced_for_beginner_scores_zero(self):
        workout = _w("w2", "Core Flow", "advanced")
        assert score_workout(workout, [MORNING, CORE], "beginner") == 0

    def test_next_level_up_bonus(self):
        workout = _w("w3", "Core Flow", "intermediate")
        assert score_workout(workout, [MORNING, CORE], "beginner") == 3

    def test_no_bonus_for_level_below(self):
        workout = _w("w4", "Core Flow", "beginner")
        assert score_workout(workout, [MORNING, CORE], "intermediate") == 0

    def test_recently_completed_is_negative(self):
        assert score_workout(MORNING, [MORNING, CORE], "beginner") == -5

    def test_only_recent_window_counts(self):
        older = [_w(f"o{i}", f"Session {i}") for i in range(RECENT_WINDOW)]
        history = [*older, MORNING]
        # MORNING is sixth most recent: no penalty and its words are fresh.
        assert score_workout(MORNING, history, "beginner") == 7

    def test_empty_history_everything_is_novel(self):
        assert score_workout(_w("w1", "Anything"), [], "advanced") == 2

    def test_unknown_level_gets_no_level_points(self):
        assert score_workout(_w("w1", "Yoga", "beginner"), [MORNING], "expert") == 0


class TestInferUserLevel:
    @pytest.mark.parametrize(
        ("count", "level"),
        [
            (0, "beginner"),
            (5, "beginner"),
            (6, "intermediate"),
            (20, "intermediate"),
            (21, "advanced"),
        ],
    )
    def test_thresholds(self, count, level):
        assert infer_user_level(count) == level


class TestRecommend:
    def test_top_five_descending(self):
        catalogue = [
            _w("a", "Power Hour", "advanced"),
            _w("b", "Gentle Stretch"),
            _w("c", "Core Flow", "intermediate"),
            _w("d", "Morning Yoga Flow"),
            _w("e", "Desk Reset"),
            _w("f", "Core Strength Basics"),
            _w("g", "Sun Salutation"),
        ]
        history = [MORNING, CORE]
        picks = recommend(catalogue, history, limit=5)
        assert len(picks) == 5
        scores = [p.score for p in picks]
        assert scores == sorted(scores, reverse=True)
        # Ties keep catalogue order.
        assert [p.workout.id for p in picks] == ["b", "e", "g", "d", "f"]

    def test_level_is_inferred_from_history(self):
        history = [_w(f"h{i}", f"Day {i}") for i in range(6)]
        picks = recommend([_w("x", "Day 1", "intermediate")], history)
        assert picks[0].score == 5

    def test_explicit_level_wins(self):
        picks = recommend([_w("x", "Day", "advanced")], [], user_level="advanced")
        assert picks[0].score == 7

    def test_empty_catalogue(self):
        assert recommend([], [MORNING]) == []
