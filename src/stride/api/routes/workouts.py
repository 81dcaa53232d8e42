"""Workouts: catalogue, progress tracking, achievements, recommendations."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from stride.api.auth import get_current_user
from stride.api.errors import http_error
from stride.api.rbac import require_admin
from stride.core.errors import StrideError
from stride.db.repository import Repository
from stride.fitness.achievements import (
    ACHIEVEMENTS,
    progress_fraction,
    total_points,
)
from stride.fitness.progress import summarize
from stride.fitness.recommendations import (
    LEVELS,
    WorkoutInfo,
    infer_user_level,
    recommend,
)
from stride.fitness.service import history_infos, load_sessions, record_workout

router = APIRouter(prefix="/api", tags=["workouts"])


class WorkoutResponse(BaseModel):
    id: str
    title: str
    description: str
    difficulty: str
    duration_seconds: int
    video_url: str | None = None


class CreateWorkoutRequest(BaseModel):
    title: str
    description: str = ""
    difficulty: str = "beginner"
    duration_seconds: int = Field(default=0, ge=0)
    video_url: str | None = None


class ProgressRequest(BaseModel):
    duration_seconds: int = Field(ge=0)
    rating: int | None = Field(default=None, ge=1, le=5)
    notes: str | None = None


def _workout_response(w: Any) -> WorkoutResponse:
    return WorkoutResponse(
        id=w.id,
        title=w.title,
        description=w.description,
        difficulty=w.difficulty,
        duration_seconds=w.duration_seconds,
        video_url=w.video_url,
    )


@router.get("/workouts", response_model=list[WorkoutResponse])
async def list_workouts(
    request: Request, difficulty: str | None = None
) -> list[WorkoutResponse]:
    async with request.app.state.db_factory() as session:
        workouts = await Repository(session).list_workouts(difficulty=difficulty)
    return [_workout_response(w) for w in workouts]


@router.post("/workouts", response_model=WorkoutResponse, status_code=201)
async def create_workout(
    body: CreateWorkoutRequest,
    request: Request,
    user: Any = Depends(require_admin),  # noqa: B008
) -> WorkoutResponse:
    """Add a workout to the catalogue (admin only)."""
    if body.difficulty not in LEVELS:
        raise HTTPException(
            status_code=400, detail=f"difficulty must be one of {LEVELS}"
        )
    async with request.app.state.db_factory() as session:
        workout = await Repository(session).create_workout(
            body.title,
            description=body.description,
            difficulty=body.difficulty,
            duration_seconds=body.duration_seconds,
            video_url=body.video_url,
        )
        await session.commit()
    return _workout_response(workout)


@router.post("/workouts/{workout_id}/progress", status_code=201)
async def record_progress(
    workout_id: str,
    body: ProgressRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    """Record a completed workout; returns updated stats and new achievements."""
    try:
        async with request.app.state.db_factory() as session:
            result = await record_workout(
                Repository(session),
                user.id,
                workout_id,
                duration_seconds=body.duration_seconds,
                rating=body.rating,
                notes=body.notes,
            )
            await session.commit()
    except StrideError as e:
        raise http_error(e) from e
    return {
        "progress_id": result.progress.id,
        "current_streak": result.stats.current_streak,
        "best_streak": result.stats.best_streak,
        "total_workouts": result.stats.total_workouts,
        "new_achievements": [
            {"id": a.id, "name": a.name, "points": a.points}
            for a in result.new_achievements
        ],
    }


@router.get("/progress/stats")
async def progress_stats(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    async with request.app.state.db_factory() as session:
        sessions = await load_sessions(Repository(session), user.id)
    stats = summarize(sessions, datetime.now(UTC).date())
    return {
        "total_workouts": stats.total_workouts,
        "total_duration_seconds": stats.total_duration_seconds,
        "advanced_workouts": stats.advanced_workouts,
        "distinct_workouts": stats.distinct_workouts,
        "current_streak": stats.current_streak,
        "best_streak": stats.best_streak,
        "level": infer_user_level(stats.total_workouts),
    }


@router.get("/achievements")
async def achievements(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    """Every achievement with the caller's progress toward it."""
    async with request.app.state.db_factory() as session:
        repo = Repository(session)
        earned = await repo.list_achievement_ids(user.id)
        sessions = await load_sessions(repo, user.id)
    stats = summarize(sessions, datetime.now(UTC).date())
    return {
        "points": total_points(earned),
        "achievements": [
            {
                "id": a.id,
                "name": a.name,
                "description": a.description,
                "points": a.points,
                "earned": a.id in earned,
                "progress": round(progress_fraction(stats, a), 3),
            }
            for a in ACHIEVEMENTS
        ],
    }


@router.get("/recommendations")
async def recommendations(
    request: Request,
    limit: int = 5,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, Any]:
    """Top-scored workouts for the caller."""
    async with request.app.state.db_factory() as session:
        repo = Repository(session)
        catalogue = await repo.list_workouts()
        sessions = await load_sessions(repo, user.id)
    history = history_infos(sessions)
    level = infer_user_level(len(history))
    workouts = [
        WorkoutInfo(w.id, w.title, w.difficulty, w.duration_seconds) for w in catalogue
    ]
    picks = recommend(workouts, history, user_level=level, limit=limit)
    return {
        "level": level,
        "recommendations": [
            {
                "id": p.workout.id,
                "title": p.workout.title,
                "difficulty": p.workout.difficulty,
                "score": p.score,
            }
            for p in picks
        ],
    }
