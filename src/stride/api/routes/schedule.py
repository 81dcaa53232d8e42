"""Workout schedule: plan, list, complete and remove planned workouts."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from stride.api.auth import get_current_user
from stride.api.errors import http_error
from stride.core.errors import NotFoundError, StrideError
from stride.db.models import as_utc
from stride.db.repository import Repository
from stride.fitness.schedule import PlannedWorkout, due_today, upcoming

router = APIRouter(prefix="/api/schedule", tags=["schedule"])


class ScheduleRequest(BaseModel):
    workout_id: str
    scheduled_for: datetime


def _planned(entry: Any, workout: Any) -> PlannedWorkout:
    return PlannedWorkout(
        id=entry.id,
        workout_id=workout.id,
        title=workout.title,
        difficulty=workout.difficulty,
        duration_seconds=workout.duration_seconds,
        scheduled_for=as_utc(entry.scheduled_for),
        completed=entry.completed,
    )


def _planned_dict(p: PlannedWorkout) -> dict[str, Any]:
    return {
        "id": p.id,
        "workout_id": p.workout_id,
        "title": p.title,
        "difficulty": p.difficulty,
        "duration_seconds": p.duration_seconds,
        "scheduled_for": p.scheduled_for.isoformat(),
        "completed": p.completed,
    }


@router.get("")
async def list_schedule(
    request: Request,
    view: Literal["all", "upcoming", "today"] = "all",
    user: Any = Depends(get_current_user),  # noqa: B008
) -> list[dict[str, Any]]:
    """The caller's planned workouts, soonest first."""
    async with request.app.state.db_factory() as session:
        rows = await Repository(session).list_schedule(user.id)
    entries = [_planned(entry, workout) for entry, workout in rows]
    now = datetime.now(UTC)
    if view == "upcoming":
        entries = upcoming(entries, now)
    elif view == "today":
        entries = due_today(entries, now)
    return [_planned_dict(p) for p in entries]


@router.post("", status_code=201)
async def schedule_workout(
    body: ScheduleRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    scheduled_for = as_utc(body.scheduled_for)
    try:
        async with request.app.state.db_factory() as session:
            repo = Repository(session)
            workout = await repo.get_workout(body.workout_id)
            if workout is None:
                msg = f"Workout not found: {body.workout_id}"
                raise NotFoundError(msg)
            entry = await repo.schedule_workout(user.id, workout.id, scheduled_for)
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return _planned_dict(_planned(entry, workout))


@router.post("/{schedule_id}/complete")
async def complete(
    schedule_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, bool]:
    try:
        async with request.app.state.db_factory() as session:
            await Repository(session).complete_scheduled(user.id, schedule_id)
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"completed": True}


@router.delete("/{schedule_id}")
async def remove(
    schedule_id: str,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, bool]:
    try:
        async with request.app.state.db_factory() as session:
            await Repository(session).delete_scheduled(user.id, schedule_id)
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {"success": True}
