"""Tests for merging live change events into a tree."""

from __future__ import annotations

from typing import Any

from stride.chat.feed import ChangeEvent, EventKind
from stride.chat.reconciler import LiveReconciler
from stride.chat.tree import MessageTree, SortOrder


def _record(make_message: Any, *args: Any, **kwargs: Any) -> dict[str, Any]:
    return make_message(*args, **kwargs).model_dump(mode="json")


def _setup(make_message: Any) -> tuple[MessageTree, LiveReconciler]:
    tree = MessageTree.build(
        [
            make_message("1", votes=3),
            make_message("2", "1", votes=1, minute=1),
            make_message("3", votes=5, minute=2),
        ],
        SortOrder.BEST,
    )
    return tree, LiveReconciler(tree, "general")


class TestInsertEvents:
    def test_nested_reply_insert(self, make_message: Any) -> None:
        tree, rec = _setup(make_message)
        event = ChangeEvent(
            EventKind.INSERT, "general", _record(make_message, "4", "2", minute=3)
        )
        result = rec.apply(event)
        assert result.applied
        assert result.action == "inserted"
        forest = tree.to_forest()
        thread_one = next(n for n in forest if n["id"] == "1")
        assert [r["id"] for r in thread_one["replies"][0]["replies"]] == ["4"]

    def test_replayed_insert_is_skipped(self, make_message: Any) -> None:
        tree, rec = _setup(make_message)
        event = ChangeEvent(EventKind.INSERT, "general", _record(make_message, "3"))
        result = rec.apply(event)
        assert not result.applied
        assert result.reason == "already present"
        assert tree.get("3").vote_count == 5

    def test_other_channel_is_skipped(self, make_message: Any) -> None:
        tree, rec = _setup(make_message)
        record = _record(make_message, "9", channel="random")
        assert not rec.apply(ChangeEvent(EventKind.INSERT, "random", record)).applied
        assert "9" not in tree

    def test_other_table_is_skipped(self, make_message: Any) -> None:
        _, rec = _setup(make_message)
        event = ChangeEvent(
            EventKind.INSERT, "general", _record(make_message, "9"), table="profiles"
        )
        assert rec.apply(event).reason == "other channel"

    def test_invalid_payload_is_dropped(self, make_message: Any) -> None:
        tree, rec = _setup(make_message)
        event = ChangeEvent(EventKind.INSERT, "general", {"id": "bad"})
        result = rec.apply(event)
        assert not result.applied
        assert result.reason == "invalid payload"
        assert "bad" not in tree


class TestUpdateEvents:
    def test_update_keeps_viewer_state(self, make_message: Any) -> None:
        tree = MessageTree.build(
            [make_message("a", votes=1, user_vote=1, author_name="Ana")]
        )
        rec = LiveReconciler(tree, "general")
        record = _record(make_message, "a", votes=7)
        result = rec.apply(ChangeEvent(EventKind.UPDATE, "general", record))
        assert result.action == "updated"
        msg = tree.get("a")
        assert msg.vote_count == 7
        assert msg.user_vote == 1
        assert msg.author_name == "Ana"

    def test_reparent_reports_move(self, make_message: Any) -> None:
        tree, rec = _setup(make_message)
        record = _record(make_message, "2", "3", minute=1)
        result = rec.apply(ChangeEvent(EventKind.UPDATE, "general", record))
        assert result.action == "moved"
        assert tree.reply_ids("3") == ["2"]

    def test_update_unknown_inserts(self, make_message: Any) -> None:
        tree, rec = _setup(make_message)
        record = _record(make_message, "new", minute=9)
        result = rec.apply(ChangeEvent(EventKind.UPDATE, "general", record))
        assert result.action == "inserted"
        assert "new" in tree


class TestDeleteEvents:
    def test_delete_removes_subtree(self, make_message: Any) -> None:
        tree, rec = _setup(make_message)
        result = rec.apply(ChangeEvent(EventKind.DELETE, "general", {"id": "1"}))
        assert result.action == "removed"
        assert sorted(result.removed) == ["1", "2"]
        assert tree.root_ids == ["3"]

    def test_delete_unknown_is_skipped(self, make_message: Any) -> None:
        _, rec = _setup(make_message)
        result = rec.apply(ChangeEvent(EventKind.DELETE, "general", {"id": "zz"}))
        assert not result.applied

    def test_delete_without_id_is_skipped(self, make_message: Any) -> None:
        _, rec = _setup(make_message)
        result = rec.apply(ChangeEvent(EventKind.DELETE, "general", {}))
        assert result.reason == "invalid payload"


class TestEventSequences:
    def test_insert_then_delete_equals_absence(self, make_message: Any) -> None:
        tree, rec = _setup(make_message)
        before = tree.to_forest()
        rec.apply(
            ChangeEvent(
                EventKind.INSERT, "general", _record(make_message, "x", "1", minute=5)
            )
        )
        rec.apply(ChangeEvent(EventKind.DELETE, "general", {"id": "x"}))
        assert tree.to_forest() == before
