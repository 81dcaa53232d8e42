"""Tests for recording workouts end to end against the repository."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

from stride.core.errors import NotFoundError
from stride.db.models import UserStreak
from stride.db.repository import Repository
from stride.fitness.service import history_infos, load_sessions, record_workout

NOW = datetime(2026, 3, 10, 18, 0, tzinfo=UTC)


async def _setup(session: AsyncSession) -> tuple[Repository, str, str, str]:
    repo = Repository(session)
    user = await repo.create_user("runner@example.com", "hash", confirmed=True)
    easy = await repo.create_workout("Easy Flow", duration_seconds=1200)
    hard = await repo.create_workout("Power Hour", difficulty="advanced")
    await session.commit()
    return repo, user.id, easy.id, hard.id


class TestRecordWorkout:
    async def test_first_workout(self, db_session: AsyncSession):
        repo, uid, easy, _ = await _setup(db_session)
        result = await record_workout(repo, uid, easy, duration_seconds=900, now=NOW)
        await db_session.commit()

        assert result.stats.total_workouts == 1
        assert result.stats.current_streak == 1
        assert result.new_achievements == []
        streak = await db_session.get(UserStreak, uid)
        assert streak.current_streak == 1
        assert streak.last_workout_date == date(2026, 3, 10)

    async def test_unknown_workout(self, db_session: AsyncSession):
        repo, uid, _, _ = await _setup(db_session)
        with pytest.raises(NotFoundError):
            await record_workout(repo, uid, "nope", duration_seconds=60, now=NOW)

    async def test_streak_and_achievements_with_notifications(
        self, db_session: AsyncSession
    ):
        repo, uid, easy, hard = await _setup(db_session)
        await record_workout(
            repo, uid, easy, duration_seconds=600, now=NOW - timedelta(days=2)
        )
        await record_workout(
            repo, uid, easy, duration_seconds=600, now=NOW - timedelta(days=1)
        )
        result = await record_workout(
            repo, uid, hard, duration_seconds=2400, now=NOW
        )
        await db_session.commit()

        assert result.stats.current_streak == 3
        assert {a.id for a in result.new_achievements} == {
            "streak-3",
            "difficulty-1",
            "duration-60",
        }
        assert await repo.list_achievement_ids(uid) == {
            "streak-3",
            "difficulty-1",
            "duration-60",
        }
        notes = await repo.list_notifications(uid)
        assert len(notes) == 3
        assert all(n.type == "achievement" for n in notes)
        assert any(n.title == "Achievement unlocked: Warming Up" for n in notes)

    async def test_achievement_not_granted_twice(self, db_session: AsyncSession):
        repo, uid, _, hard = await _setup(db_session)
        first = await record_workout(repo, uid, hard, duration_seconds=60, now=NOW)
        second = await record_workout(repo, uid, hard, duration_seconds=60, now=NOW)
        assert [a.id for a in first.new_achievements] == ["difficulty-1"]
        assert second.new_achievements == []

    async def test_preferences_can_mute_achievement_notifications(
        self, db_session: AsyncSession
    ):
        repo, uid, _, hard = await _setup(db_session)
        await repo.save_preferences(uid, achievement=False)
        result = await record_workout(repo, uid, hard, duration_seconds=60, now=NOW)
        assert result.new_achievements
        assert await repo.list_notifications(uid) == []


class TestHistory:
    async def test_sessions_most_recent_first(self, db_session: AsyncSession):
        repo, uid, easy, hard = await _setup(db_session)
        await record_workout(
            repo, uid, easy, duration_seconds=60, now=NOW - timedelta(days=1)
        )
        await record_workout(repo, uid, hard, duration_seconds=90, now=NOW)

        sessions = await load_sessions(repo, uid)
        assert [s.title for s in sessions] == ["Power Hour", "Easy Flow"]
        assert sessions[0].completed_at.tzinfo is not None
        infos = history_infos(sessions)
        assert [(i.id, i.difficulty) for i in infos] == [
            (hard, "advanced"),
            (easy, "beginner"),
        ]
