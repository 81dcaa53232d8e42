"""Shared test fixtures for stride."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from stride.chat.tree import ChatMessage
from stride.db.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
async def db_session() -> AsyncSession:  # type: ignore[misc]
    """In-memory SQLite async session with FK enforcement."""
    engine = create_async_engine("sqlite+aiosqlite://")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_fks(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def make_message() -> Any:
    """Factory fixture for ChatMessage.

    ``minute`` offsets ``created_at`` from a fixed base time so ordering
    is deterministic.
    """

    def _make(
        id: str,  # noqa: A002
        parent_id: str | None = None,
        *,
        votes: int = 0,
        minute: int = 0,
        **overrides: Any,
    ) -> ChatMessage:
        defaults: dict[str, Any] = {
            "id": id,
            "content": f"message {id}",
            "created_at": BASE_TIME + timedelta(minutes=minute),
            "user_id": "u-author",
            "channel": "general",
            "parent_id": parent_id,
            "vote_count": votes,
        }
        defaults.update(overrides)
        return ChatMessage(**defaults)

    return _make
