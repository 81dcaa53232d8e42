"""Tests for the repository chat backend and ChatSession over a real DB."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from stride.chat.backend import RepositoryChatBackend
from stride.chat.feed import ChangeEvent, ChangeFeed, EventKind
from stride.chat.session import ChatSession
from stride.chat.tree import SortOrder
from stride.cli.app import _create_db
from stride.config.schema import StrideConfig
from stride.core.errors import (
    AuthError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    VoteError,
)
from stride.db.repository import Repository


@pytest.fixture
async def chat_env() -> Any:  # type: ignore[misc]
    """Backend, feed and two users (alice, bob) on an in-memory DB."""
    config = StrideConfig()
    config.database.url = "sqlite+aiosqlite:///:memory:"
    factory, engine = await _create_db(config)
    async with factory() as session:
        repo = Repository(session)
        alice = await repo.create_user("alice@example.com", "x", confirmed=True)
        bob = await repo.create_user("bob@example.com", "x", confirmed=True)
        await repo.create_profile(alice.id, alice.email, "Alice")
        await session.commit()
    feed = ChangeFeed()
    yield SimpleNamespace(
        factory=factory,
        feed=feed,
        backend=RepositoryChatBackend(factory, feed, max_content_length=50),
        alice=alice.id,
        bob=bob.id,
    )
    await engine.dispose()


# ── RepositoryChatBackend ────────────────────────────────────────


class TestPostMessage:
    async def test_post_publishes_insert_with_author(self, chat_env: Any) -> None:
        sub = chat_env.feed.subscribe("general")
        message = await chat_env.backend.post_message(
            "general", chat_env.alice, "  Hello  "
        )
        assert message.content == "Hello"
        assert message.author_name == "Alice"
        event: ChangeEvent = await sub.__anext__()
        assert event.kind is EventKind.INSERT
        assert event.record["id"] == message.id
        assert event.record["author_name"] == "Alice"

    async def test_image_is_appended_to_content(self, chat_env: Any) -> None:
        message = await chat_env.backend.post_message(
            "general", chat_env.alice, "Form check", image_url="https://cdn/a.png"
        )
        assert message.content == "Form check\n\n[Image: https://cdn/a.png]"
        assert message.image_url == "https://cdn/a.png"

    async def test_empty_content_rejected(self, chat_env: Any) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await chat_env.backend.post_message("general", chat_env.alice, "   ")
        assert exc_info.value.field == "content"

    async def test_too_long_rejected(self, chat_env: Any) -> None:
        with pytest.raises(ValidationError):
            await chat_env.backend.post_message("general", chat_env.alice, "x" * 51)

    async def test_reply_to_missing_parent(self, chat_env: Any) -> None:
        with pytest.raises(NotFoundError):
            await chat_env.backend.post_message(
                "general", chat_env.alice, "hi", parent_id="nope"
            )

    async def test_reply_must_stay_in_channel(self, chat_env: Any) -> None:
        parent = await chat_env.backend.post_message("random", chat_env.alice, "p")
        with pytest.raises(ValidationError) as exc_info:
            await chat_env.backend.post_message(
                "general", chat_env.alice, "r", parent_id=parent.id
            )
        assert exc_info.value.field == "parent_id"


class TestListMessages:
    async def test_includes_viewer_votes(self, chat_env: Any) -> None:
        m = await chat_env.backend.post_message("general", chat_env.alice, "one")
        await chat_env.backend.insert_vote(m.id, chat_env.bob, -1)
        rows = await chat_env.backend.list_messages("general", chat_env.bob)
        assert rows[0].user_vote == -1
        assert rows[0].vote_count == -1
        anonymous = await chat_env.backend.list_messages("general")
        assert anonymous[0].user_vote is None

    async def test_fetch_limit_keeps_latest(self, chat_env: Any) -> None:
        chat_env.backend.fetch_limit = 2
        for text in ("a", "b", "c"):
            await chat_env.backend.post_message("general", chat_env.alice, text)
        rows = await chat_env.backend.list_messages("general")
        assert [r.content for r in rows] == ["b", "c"]


class TestDeleteMessage:
    async def test_author_deletes_subtree(self, chat_env: Any) -> None:
        root = await chat_env.backend.post_message("general", chat_env.alice, "r")
        reply = await chat_env.backend.post_message(
            "general", chat_env.bob, "c", parent_id=root.id
        )
        sub = chat_env.feed.subscribe("general")
        removed = await chat_env.backend.delete_message(root.id, chat_env.alice)
        assert set(removed) == {root.id, reply.id}
        event = await sub.__anext__()
        assert event.kind is EventKind.DELETE
        assert event.record["id"] == root.id

    async def test_other_user_cannot_delete(self, chat_env: Any) -> None:
        root = await chat_env.backend.post_message("general", chat_env.alice, "r")
        with pytest.raises(PermissionDeniedError):
            await chat_env.backend.delete_message(root.id, chat_env.bob)

    async def test_admin_can_delete(self, chat_env: Any) -> None:
        root = await chat_env.backend.post_message("general", chat_env.alice, "r")
        removed = await chat_env.backend.delete_message(
            root.id, chat_env.bob, is_admin=True
        )
        assert removed == [root.id]


class TestVotes:
    async def test_vote_lifecycle_publishes_updates(self, chat_env: Any) -> None:
        m = await chat_env.backend.post_message("general", chat_env.alice, "v")
        sub = chat_env.feed.subscribe("general")
        assert await chat_env.backend.insert_vote(m.id, chat_env.bob, 1) == 1
        assert await chat_env.backend.update_vote(m.id, chat_env.bob, -1) == -1
        assert await chat_env.backend.delete_vote(m.id, chat_env.bob) == 0
        counts = []
        for _ in range(3):
            event = await sub.__anext__()
            assert event.kind is EventKind.UPDATE
            counts.append(event.record["vote_count"])
        assert counts == [1, -1, 0]


# ── ChatSession ──────────────────────────────────────────────────


class TestChatSession:
    async def test_load_and_post(self, chat_env: Any) -> None:
        await chat_env.backend.post_message("general", chat_env.alice, "first")
        session = ChatSession("general", chat_env.bob, chat_env.backend)
        await session.load()
        assert len(session.tree) == 1
        posted = await session.post("second")
        assert posted.id in session.tree

    async def test_own_insert_echo_is_skipped(self, chat_env: Any) -> None:
        session = ChatSession("general", chat_env.alice, chat_env.backend)
        sub = chat_env.feed.subscribe("general")
        await session.load()
        await session.post("hello")
        result = session.apply(await sub.__anext__())
        assert not result.applied
        assert len(session.tree) == 1

    async def test_vote_on_deleted_message_rolls_back(self, chat_env: Any) -> None:
        m = await chat_env.backend.post_message("general", chat_env.alice, "v")
        session = ChatSession("general", chat_env.bob, chat_env.backend)
        await session.load()
        # Deleted elsewhere; this view has not heard about it yet.
        await chat_env.backend.delete_message(m.id, chat_env.alice)
        with pytest.raises(VoteError, match="no longer exists"):
            await session.vote(m.id, 1)
        msg = session.tree.get(m.id)
        assert msg.vote_count == 0
        assert msg.user_vote is None

    async def test_sort_and_view(self, chat_env: Any) -> None:
        a = await chat_env.backend.post_message("general", chat_env.alice, "a")
        b = await chat_env.backend.post_message("general", chat_env.alice, "b")
        session = ChatSession(
            "general", chat_env.bob, chat_env.backend, sort=SortOrder.OLD
        )
        await session.load()
        assert [n["id"] for n in session.view()] == [a.id, b.id]
        session.set_sort(SortOrder.NEW)
        assert session.sort is SortOrder.NEW
        assert [n["id"] for n in session.view()] == [b.id, a.id]

    async def test_anonymous_is_read_only(self, chat_env: Any) -> None:
        session = ChatSession("general", None, chat_env.backend)
        await session.load()
        with pytest.raises(AuthError):
            await session.post("hi")
        with pytest.raises(AuthError):
            await session.vote("x", 1)

    async def test_delete_removes_locally(self, chat_env: Any) -> None:
        session = ChatSession("general", chat_env.alice, chat_env.backend)
        await session.load()
        posted = await session.post("bye")
        assert await session.delete(posted.id) == [posted.id]
        assert posted.id not in session.tree
        assert session.message_json(posted.id) is None
