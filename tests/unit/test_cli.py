"""Tests for the CLI commands: argument parsing, output formatting, errors."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from stride.cli.app import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> str:
    """A config file pointing at a throwaway SQLite database."""
    path = tmp_path / "stride.toml"
    path.write_text(
        f'[database]\nurl = "sqlite+aiosqlite:///{tmp_path / "stride.db"}"\n'
        '[auth]\njwt_secret = "cli-secret"\n'
    )
    return str(path)


def _create_user(
    runner: CliRunner, config_file: str, email: str = "coach@example.com"
) -> str:
    result = runner.invoke(
        cli,
        [
            "user-create",
            "--email",
            email,
            "--password",
            "long-enough-1",
            "--name",
            "Coach Carter",
            "--config",
            config_file,
        ],
    )
    assert result.exit_code == 0, result.output
    return result.output


# ── CLI group ────────────────────────────────────────────────────


class TestCliGroup:
    def test_no_command_shows_help(self, runner: CliRunner) -> None:
        result = runner.invoke(cli)
        assert result.exit_code == 0
        assert "Workouts, progress tracking and community chat" in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "stride" in result.output
        assert "0.1.0" in result.output

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in (
            "serve",
            "migrate",
            "user-create",
            "user-list",
            "workout-add",
            "messages",
            "recommend",
        ):
            assert name in result.output


# ── users ────────────────────────────────────────────────────────


class TestUsers:
    def test_create_and_list(self, runner: CliRunner, config_file: str) -> None:
        output = _create_user(runner, config_file)
        assert "User created:" in output
        assert "role=member" in output

        result = runner.invoke(cli, ["user-list", "--config", config_file])
        assert result.exit_code == 0
        assert "coach@example.com" in result.output
        assert "confirmed" in result.output

    def test_empty_list(self, runner: CliRunner, config_file: str) -> None:
        result = runner.invoke(cli, ["user-list", "--config", config_file])
        assert "No users found." in result.output

    def test_duplicate_email(self, runner: CliRunner, config_file: str) -> None:
        _create_user(runner, config_file)
        result = runner.invoke(
            cli,
            [
                "user-create",
                "--email",
                "COACH@example.com",
                "--password",
                "long-enough-1",
                "--name",
                "Again",
                "--config",
                config_file,
            ],
        )
        assert result.exit_code == 1
        assert "Email already registered" in result.output

    def test_short_password(self, runner: CliRunner, config_file: str) -> None:
        result = runner.invoke(
            cli,
            [
                "user-create",
                "--email",
                "a@example.com",
                "--password",
                "short",
                "--name",
                "A",
                "--config",
                config_file,
            ],
        )
        assert result.exit_code == 1
        assert "Password must be at least" in result.output


# ── workouts / recommend ─────────────────────────────────────────


class TestWorkouts:
    def test_add_and_recommend(self, runner: CliRunner, config_file: str) -> None:
        _create_user(runner, config_file)
        added = runner.invoke(
            cli,
            [
                "--config",
                config_file,
                "workout-add",
                "Morning Mobility",
                "--minutes",
                "20",
            ],
        )
        assert added.exit_code == 0, added.output
        assert "[beginner]" in added.output

        result = runner.invoke(
            cli, ["--config", config_file, "recommend", "coach@example.com"]
        )
        assert result.exit_code == 0, result.output
        assert "Workouts: 0" in result.output
        assert "Recommended workouts (beginner)" in result.output
        assert "Morning Mobility" in result.output

    def test_recommend_unknown_user(
        self, runner: CliRunner, config_file: str
    ) -> None:
        result = runner.invoke(
            cli, ["--config", config_file, "recommend", "nobody@example.com"]
        )
        assert result.exit_code == 1
        assert "No user with email" in result.output

    def test_bad_difficulty(self, runner: CliRunner, config_file: str) -> None:
        result = runner.invoke(
            cli,
            ["--config", config_file, "workout-add", "X", "--difficulty", "insane"],
        )
        assert result.exit_code != 0


# ── messages ─────────────────────────────────────────────────────


class TestMessages:
    def test_empty_channel(self, runner: CliRunner, config_file: str) -> None:
        result = runner.invoke(cli, ["--config", config_file, "messages"])
        assert result.exit_code == 0, result.output
        assert "No messages in #general." in result.output

    def test_search_without_results(
        self, runner: CliRunner, config_file: str
    ) -> None:
        result = runner.invoke(
            cli, ["--config", config_file, "messages", "general", "--search", "squat"]
        )
        assert "No results for 'squat'." in result.output

    def test_unknown_sort(self, runner: CliRunner, config_file: str) -> None:
        result = runner.invoke(
            cli, ["--config", config_file, "messages", "--sort", "hot"]
        )
        assert result.exit_code != 0


# ── serve / migrate ──────────────────────────────────────────────


class TestServe:
    def test_requires_jwt_secret(self, runner: CliRunner, tmp_path: Path) -> None:
        path = tmp_path / "stride.toml"
        path.write_text('[database]\nurl = "sqlite+aiosqlite:///:memory:"\n')
        with patch.dict("os.environ", {"STRIDE_JWT_SECRET": ""}):
            result = runner.invoke(cli, ["--config", str(path), "serve"])
        assert result.exit_code == 1
        assert "jwt_secret is not set" in result.output

    def test_runs_uvicorn(self, runner: CliRunner, config_file: str) -> None:
        with patch("uvicorn.run") as run:
            result = runner.invoke(
                cli, ["--config", config_file, "serve", "--port", "9999"]
            )
        assert result.exit_code == 0, result.output
        assert "API: http://127.0.0.1:9999" in result.output
        assert run.call_args.kwargs["port"] == 9999

    def test_reload_runs_app_factory(self, runner: CliRunner, config_file: str) -> None:
        with patch("uvicorn.run") as run, patch.dict("os.environ", {}):
            result = runner.invoke(cli, ["--config", config_file, "serve", "--reload"])
            exported = os.environ.get("STRIDE_CONFIG")
        assert result.exit_code == 0, result.output
        assert run.call_args.args == ("stride.api.app:create_app",)
        assert run.call_args.kwargs["factory"] is True
        assert run.call_args.kwargs["reload"] is True
        assert exported == str(Path(config_file).resolve())


class TestMigrate:
    def test_upgrades_to_head(self, runner: CliRunner, config_file: str) -> None:
        with patch("alembic.command.upgrade") as upgrade:
            result = runner.invoke(cli, ["--config", config_file, "migrate"])
        assert result.exit_code == 0, result.output
        assert "Database upgraded to head." in result.output
        cfg, revision = upgrade.call_args.args
        assert revision == "head"
        assert cfg.get_main_option("sqlalchemy.url").endswith("stride.db")
