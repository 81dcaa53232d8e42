"""Main CLI application.

Click commands for stride: serve, user-create, user-list, workout-add,
messages, recommend, migrate.
"""

from __future__ import annotations

import asyncio
import os
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import click

from stride import __version__
from stride.config.loader import load_config
from stride.core.errors import ConfigError, StrideError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from stride.cli.display import ChatDisplay
    from stride.config.schema import StrideConfig


# ── Helpers ──────────────────────────────────────────────────────


def _error(msg: str) -> None:
    """Print an error message to stderr and exit."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _load_config(config_path: str | None) -> StrideConfig:
    """Load config with user-friendly error handling."""
    try:
        return load_config(path=config_path)
    except ConfigError as e:
        _error(str(e))
        raise  # unreachable, keeps mypy happy


def _expand_url(url: str) -> str:
    if "~" in url:
        url = url.replace("~", str(Path.home()))
    return url


async def _create_db(
    config: StrideConfig,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create async engine and sessionmaker from config."""
    from sqlalchemy import event
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from stride.db.models import Base

    url = _expand_url(config.database.url)

    # Ensure parent directory exists for sqlite
    if url.startswith("sqlite"):
        db_path = url.split("///")[-1] if "///" in url else ""
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine_kwargs: dict[str, object] = {}
    if url.startswith("sqlite"):
        if ":memory:" in url:
            # In-memory SQLite needs StaticPool so all queries share
            # the same connection (and thus the same in-memory DB).
            from sqlalchemy.pool import StaticPool

            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            from sqlalchemy.pool import NullPool

            engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_size"] = config.database.pool_size
        engine_kwargs["max_overflow"] = config.database.max_overflow
        engine_kwargs["pool_timeout"] = config.database.pool_timeout
        engine_kwargs["pool_recycle"] = config.database.pool_recycle
        engine_kwargs["pool_pre_ping"] = True

    engine = create_async_engine(url, **engine_kwargs)

    # Enable foreign keys for SQLite
    if url.startswith("sqlite"):

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_fks(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    # SQLite (in-memory or file) is created on demand for development.
    # PostgreSQL is managed by alembic migrations (``stride migrate``).
    if url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    return factory, engine


def _display() -> ChatDisplay:
    from stride.cli.display import ChatDisplay

    return ChatDisplay()


# ── CLI group ────────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="stride")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """stride - Workouts, progress tracking and community chat."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ── serve ────────────────────────────────────────────────────────


@cli.command()
@click.option("--host", default=None, help="Host to bind to (overrides config).")
@click.option(
    "--port", type=int, default=None, help="Port to bind to (overrides config)."
)
@click.option(
    "--reload", is_flag=True, default=False, help="Enable auto-reload for development."
)
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST and WebSocket API server."""
    import uvicorn

    from stride.api.app import create_app

    config = _load_config(ctx.obj["config_path"])
    if not config.auth.jwt_secret:
        _error("auth.jwt_secret is not set (config file or STRIDE_JWT_SECRET)")

    effective_host = host or config.api.host
    effective_port = port or config.api.port
    click.echo(f"API: http://{effective_host}:{effective_port}")

    if reload:
        # The reloader imports the app in a fresh process that finds the
        # config file through STRIDE_CONFIG.
        if ctx.obj["config_path"]:
            os.environ["STRIDE_CONFIG"] = str(Path(ctx.obj["config_path"]).resolve())
        uvicorn.run(
            "stride.api.app:create_app",
            factory=True,
            host=effective_host,
            port=effective_port,
            reload=True,
        )
        return

    uvicorn.run(create_app(config), host=effective_host, port=effective_port)


# ── migrate ──────────────────────────────────────────────────────


@cli.command()
@click.option("--revision", default="head", help="Target revision.")
@click.pass_context
def migrate(ctx: click.Context, revision: str) -> None:
    """Upgrade the configured database with alembic."""
    from alembic import command
    from alembic.config import Config as AlembicConfig

    config = _load_config(ctx.obj["config_path"])
    ini_path = Path(__file__).resolve().parents[3] / "alembic.ini"
    if not ini_path.exists():
        _error(f"alembic.ini not found at {ini_path}")

    alembic_cfg = AlembicConfig(str(ini_path))
    alembic_cfg.set_main_option("sqlalchemy.url", _expand_url(config.database.url))
    command.upgrade(alembic_cfg, revision)
    click.echo(f"Database upgraded to {revision}.")


# ── user-create ──────────────────────────────────────────────────


@cli.command("user-create")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", "full_name", required=True)
@click.option(
    "--role",
    type=click.Choice(["admin", "member"]),
    default="member",
)
@click.option("--config", "config_path", default=None)
def user_create(
    email: str,
    password: str,
    full_name: str,
    role: str,
    config_path: str | None,
) -> None:
    """Create a confirmed user with a profile."""
    from stride.core.validation import (
        validate_email,
        validate_full_name,
        validate_password,
    )

    config = _load_config(config_path)
    try:
        email = validate_email(email)
        validate_password(password)
        full_name = validate_full_name(full_name)
        asyncio.run(_user_create_async(config, email, password, full_name, role))
    except StrideError as e:
        _error(str(e))


async def _user_create_async(
    config: StrideConfig,
    email: str,
    password: str,
    full_name: str,
    role: str,
) -> None:
    """Async implementation for the user-create command."""
    from stride.api.auth import hash_password
    from stride.db.repository import Repository

    factory, engine = await _create_db(config)
    async with factory() as session:
        repo = Repository(session)
        if await repo.get_user_by_email(email) is not None:
            await engine.dispose()
            _error(f"Email already registered: {email}")

        user = await repo.create_user(
            email, hash_password(password), role=role, confirmed=True
        )
        await repo.create_profile(user.id, email, full_name)
        await session.commit()

    await engine.dispose()
    click.echo(f"User created: {user.id} ({user.email}) role={user.role}")


# ── user-list ────────────────────────────────────────────────────


@cli.command("user-list")
@click.option("--config", "config_path", default=None)
def user_list(config_path: str | None) -> None:
    """List all users."""
    config = _load_config(config_path)
    try:
        asyncio.run(_user_list_async(config))
    except StrideError as e:
        _error(str(e))


async def _user_list_async(config: StrideConfig) -> None:
    """Async implementation for the user-list command."""
    from stride.db.repository import Repository

    factory, engine = await _create_db(config)
    async with factory() as session:
        users = await Repository(session).list_users()

    await engine.dispose()

    if not users:
        click.echo("No users found.")
        return

    for user in users:
        active = "active" if user.is_active else "disabled"
        confirmed = "confirmed" if user.confirmed_at else "unconfirmed"
        click.echo(
            f"  {user.id[:8]}  {user.email}  role={user.role}  {active}  {confirmed}"
        )


# ── workout-add ──────────────────────────────────────────────────


@cli.command("workout-add")
@click.argument("title")
@click.option(
    "--difficulty",
    type=click.Choice(["beginner", "intermediate", "advanced"]),
    default="beginner",
)
@click.option("--minutes", type=int, default=0, help="Length in minutes.")
@click.option("--description", default="")
@click.option("--video-url", default=None)
@click.pass_context
def workout_add(
    ctx: click.Context,
    title: str,
    difficulty: str,
    minutes: int,
    description: str,
    video_url: str | None,
) -> None:
    """Add a workout to the catalogue."""
    config = _load_config(ctx.obj["config_path"])
    try:
        asyncio.run(
            _workout_add_async(
                config, title, difficulty, minutes * 60, description, video_url
            )
        )
    except StrideError as e:
        _error(str(e))


async def _workout_add_async(
    config: StrideConfig,
    title: str,
    difficulty: str,
    duration_seconds: int,
    description: str,
    video_url: str | None,
) -> None:
    from stride.db.repository import Repository

    factory, engine = await _create_db(config)
    async with factory() as session:
        workout = await Repository(session).create_workout(
            title,
            description=description,
            difficulty=difficulty,
            duration_seconds=duration_seconds,
            video_url=video_url,
        )
        await session.commit()

    await engine.dispose()
    click.echo(f"Workout created: {workout.id} ({workout.title}) [{difficulty}]")


# ── messages ─────────────────────────────────────────────────────


@cli.command()
@click.argument("channel", required=False)
@click.option(
    "--sort",
    type=click.Choice(["best", "top", "new", "old"]),
    default=None,
    help="Thread order (defaults to chat.default_sort).",
)
@click.option("--search", "query", default=None, help="Only messages containing this.")
@click.pass_context
def messages(
    ctx: click.Context, channel: str | None, sort: str | None, query: str | None
) -> None:
    """Show a chat channel as threads."""
    config = _load_config(ctx.obj["config_path"])
    try:
        asyncio.run(
            _messages_async(
                config,
                channel or config.chat.default_channel,
                sort or config.chat.default_sort,
                query,
            )
        )
    except StrideError as e:
        _error(str(e))


async def _messages_async(
    config: StrideConfig, channel: str, sort: str, query: str | None
) -> None:
    """Async implementation for the messages command."""
    from stride.chat.backend import RepositoryChatBackend
    from stride.chat.feed import ChangeFeed
    from stride.chat.tree import MessageTree, SortOrder

    factory, engine = await _create_db(config)
    backend = RepositoryChatBackend(
        factory, ChangeFeed(), fetch_limit=config.chat.fetch_limit
    )
    rows = await backend.list_messages(channel)
    await engine.dispose()

    tree = MessageTree.build(rows, SortOrder(sort))
    if query:
        found = tree.search(query)
        if not found:
            click.echo(f"No results for '{query}'.")
            return
        for message in found:
            snippet = message.content[:80].replace("\n", " ")
            click.echo(f"  {message.id[:8]}  {message.vote_count:+d}  {snippet}")
        return

    _display().show_thread_tree(channel, tree)


# ── recommend ────────────────────────────────────────────────────


@cli.command()
@click.argument("email")
@click.option("--limit", type=int, default=5, help="Max results.")
@click.pass_context
def recommend(ctx: click.Context, email: str, limit: int) -> None:
    """Recommend workouts for the user with EMAIL."""
    config = _load_config(ctx.obj["config_path"])
    try:
        asyncio.run(_recommend_async(config, email, limit))
    except StrideError as e:
        _error(str(e))


async def _recommend_async(config: StrideConfig, email: str, limit: int) -> None:
    """Async implementation for the recommend command."""
    from stride.db.repository import Repository
    from stride.fitness.progress import summarize
    from stride.fitness.recommendations import (
        WorkoutInfo,
        infer_user_level,
    )
    from stride.fitness.recommendations import (
        recommend as rank,
    )
    from stride.fitness.service import history_infos, load_sessions

    factory, engine = await _create_db(config)
    async with factory() as session:
        repo = Repository(session)
        user = await repo.get_user_by_email(email)
        if user is None:
            await engine.dispose()
            _error(f"No user with email {email}")
        catalogue = await repo.list_workouts()
        sessions = await load_sessions(repo, user.id)

    await engine.dispose()

    history = history_infos(sessions)
    level = infer_user_level(len(history))
    workouts = [
        WorkoutInfo(w.id, w.title, w.difficulty, w.duration_seconds) for w in catalogue
    ]
    display = _display()
    display.show_stats(summarize(sessions, datetime.now(UTC).date()))
    picks = rank(workouts, history, user_level=level, limit=limit)
    display.show_recommendations(level, picks)
