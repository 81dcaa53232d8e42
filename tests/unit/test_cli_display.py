"""Tests for the Rich chat/training display module."""

from __future__ import annotations

import io
from typing import Any

from rich.console import Console

from stride.chat.tree import MessageTree, SortOrder
from stride.cli.display import ChatDisplay, _snippet
from stride.fitness.progress import ProgressStats
from stride.fitness.recommendations import ScoredWorkout, WorkoutInfo


def _make_display() -> tuple[ChatDisplay, io.StringIO]:
    """Create a display with captured output."""
    buf = io.StringIO()
    console = Console(file=buf, width=100, no_color=True)
    return ChatDisplay(console=console), buf


# ── Snippets ──────────────────────────────────────────────────


class TestSnippet:
    def test_short_text_unchanged(self) -> None:
        assert _snippet("hello", 10) == "hello"

    def test_first_line_only(self) -> None:
        assert _snippet("line one\nline two") == "line one"

    def test_over_limit_truncated(self) -> None:
        assert _snippet("a" * 30, 10) == "a" * 10 + " ..."

    def test_blank(self) -> None:
        assert _snippet("   ") == ""


# ── Thread tree ───────────────────────────────────────────────


class TestThreadTree:
    def test_empty_channel(self) -> None:
        display, buf = _make_display()
        display.show_thread_tree("general", MessageTree())
        assert "No messages in #general." in buf.getvalue()

    def test_nested_threads(self, make_message: Any) -> None:
        rows = [
            make_message("a", content="How deep should squats go?", votes=3),
            make_message("b", "a", content="Below parallel", author_name="Sam"),
            make_message("c", "b", content="Agreed", votes=-1, minute=2),
            make_message("d", content="Rest day", minute=5),
        ]
        display, buf = _make_display()
        display.show_thread_tree("general", MessageTree.build(rows, SortOrder.OLD))
        out = buf.getvalue()

        assert "#general" in out
        assert "4 messages, sorted by old" in out
        assert "+3" in out
        assert "-1" in out
        assert "Sam" in out
        assert out.index("How deep") < out.index("Below parallel")
        assert out.index("Below parallel") < out.index("Agreed")
        assert out.index("Agreed") < out.index("Rest day")

    def test_image_marker(self, make_message: Any) -> None:
        rows = [make_message("a", image_url="https://cdn/x.png")]
        display, buf = _make_display()
        display.show_thread_tree("pics", MessageTree.build(rows))
        assert "[image]" in buf.getvalue()

    def test_image_reference_hidden_from_text(self, make_message: Any) -> None:
        rows = [
            make_message(
                "a",
                content="Form check [Image: https://cdn/squat.png]",
                image_url="https://cdn/squat.png",
            )
        ]
        display, buf = _make_display()
        display.show_thread_tree("pics", MessageTree.build(rows))
        out = buf.getvalue()
        assert "Form check" in out
        assert "[image]" in out
        assert "squat.png" not in out


# ── Training output ───────────────────────────────────────────


class TestRecommendations:
    def test_table(self) -> None:
        picks = [
            ScoredWorkout(WorkoutInfo("w1", "Tempo Run", "intermediate", 2400), 5),
            ScoredWorkout(WorkoutInfo("w2", "Easy Walk", "beginner", 1800), 2),
        ]
        display, buf = _make_display()
        display.show_recommendations("beginner", picks)
        out = buf.getvalue()
        assert "Recommended workouts (beginner)" in out
        assert "Tempo Run" in out
        assert "40" in out
        assert out.index("Tempo Run") < out.index("Easy Walk")

    def test_nothing_to_recommend(self) -> None:
        display, buf = _make_display()
        display.show_recommendations("beginner", [])
        assert "No workouts to recommend yet." in buf.getvalue()


class TestStats:
    def test_summary_line(self) -> None:
        display, buf = _make_display()
        stats = ProgressStats(total_workouts=12, current_streak=3, best_streak=9)
        display.show_stats(stats)
        assert "Workouts: 12  Streak: 3 (best 9)" in buf.getvalue()
