"""Tests for planned workouts."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from stride.core.errors import NotFoundError
from stride.db.models import as_utc
from stride.db.repository import Repository
from stride.fitness.schedule import PlannedWorkout, due_today, upcoming

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

NOW = datetime(2026, 5, 12, 15, 30, tzinfo=UTC)


def _plan(
    id: str,  # noqa: A002
    hours: float,
    *,
    completed: bool = False,
) -> PlannedWorkout:
    return PlannedWorkout(
        id=id,
        workout_id="w1",
        title="Intervals",
        difficulty="intermediate",
        duration_seconds=1800,
        scheduled_for=NOW + timedelta(hours=hours),
        completed=completed,
    )


class TestViews:
    def test_upcoming_skips_past_and_completed(self) -> None:
        entries = [
            _plan("past", -2),
            _plan("soon", 1),
            _plan("done", 3, completed=True),
            _plan("later", 48),
        ]
        assert [e.id for e in upcoming(entries, NOW)] == ["soon", "later"]

    def test_scheduled_exactly_now_is_upcoming(self) -> None:
        assert [e.id for e in upcoming([_plan("now", 0)], NOW)] == ["now"]

    def test_due_today_covers_the_whole_day(self) -> None:
        entries = [
            _plan("morning", -10),
            _plan("evening", 5),
            _plan("tomorrow", 9),
            _plan("yesterday", -16),
            _plan("done", 1, completed=True),
        ]
        assert [e.id for e in due_today(entries, NOW)] == ["morning", "evening"]


class TestRepository:
    async def _setup(self, session: AsyncSession) -> tuple[Repository, str, str, str]:
        repo = Repository(session)
        owner = await repo.create_user("owner@example.com", "hash")
        other = await repo.create_user("other@example.com", "hash")
        workout = await repo.create_workout("Intervals")
        await session.commit()
        return repo, owner.id, other.id, workout.id

    async def test_listed_soonest_first(self, db_session: AsyncSession) -> None:
        repo, owner, _, workout = await self._setup(db_session)
        late = await repo.schedule_workout(owner, workout, NOW + timedelta(days=2))
        early = await repo.schedule_workout(owner, workout, NOW + timedelta(days=1))
        await db_session.commit()

        rows = await repo.list_schedule(owner)
        assert [entry.id for entry, _ in rows] == [early.id, late.id]
        assert rows[0][1].title == "Intervals"
        assert as_utc(rows[0][0].scheduled_for) == NOW + timedelta(days=1)

    async def test_complete_and_delete(self, db_session: AsyncSession) -> None:
        repo, owner, _, workout = await self._setup(db_session)
        entry = await repo.schedule_workout(owner, workout, NOW)
        done = await repo.complete_scheduled(owner, entry.id)
        assert done.completed
        await repo.delete_scheduled(owner, entry.id)
        assert await repo.list_schedule(owner) == []

    async def test_other_users_entries_hidden(self, db_session: AsyncSession) -> None:
        repo, owner, other, workout = await self._setup(db_session)
        entry = await repo.schedule_workout(owner, workout, NOW)
        with pytest.raises(NotFoundError):
            await repo.complete_scheduled(other, entry.id)
        with pytest.raises(NotFoundError):
            await repo.delete_scheduled(other, entry.id)
        assert await repo.list_schedule(other) == []
