"""Tests for Alembic migrations."""

from __future__ import annotations

import sqlite3

import pytest
from alembic import command
from alembic.config import Config

from stride.db.models import Base


@pytest.fixture
def alembic_config(tmp_path):
    """Create an Alembic config pointing to a temp SQLite DB."""
    db_path = tmp_path / "test.db"
    cfg = Config("alembic.ini")
    cfg.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return cfg, db_path


def _tables(db_path) -> set[str]:
    conn = sqlite3.connect(str(db_path))
    cursor = conn.cursor()
    cursor.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type='table' AND name != 'alembic_version'"
    )
    tables = {row[0] for row in cursor.fetchall()}
    conn.close()
    return tables


class TestMigrations:
    def test_upgrade_creates_every_table(self, alembic_config) -> None:
        cfg, db_path = alembic_config
        command.upgrade(cfg, "head")
        assert _tables(db_path) == set(Base.metadata.tables)

    def test_columns_match_models(self, alembic_config) -> None:
        cfg, db_path = alembic_config
        command.upgrade(cfg, "head")

        conn = sqlite3.connect(str(db_path))
        cursor = conn.cursor()
        for name, table in Base.metadata.tables.items():
            cursor.execute(f"PRAGMA table_info({name})")
            columns = {row[1] for row in cursor.fetchall()}
            assert columns == {c.name for c in table.columns}, name
        conn.close()

    def test_full_downgrade(self, alembic_config) -> None:
        cfg, db_path = alembic_config
        command.upgrade(cfg, "head")
        command.downgrade(cfg, "base")
        assert _tables(db_path) == set()

    def test_reply_cascade(self, alembic_config) -> None:
        """Deleting a message removes its replies and their votes."""
        cfg, db_path = alembic_config
        command.upgrade(cfg, "head")

        conn = sqlite3.connect(str(db_path))
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute(
            "INSERT INTO users (id, email, password_hash, role, is_active, "
            "created_at, updated_at) VALUES ('u1', 'a@b.c', 'x', 'member', "
            "1, '2026-01-01 00:00:00', '2026-01-01 00:00:00')"
        )
        for mid, parent in (("m1", None), ("m2", "m1")):
            conn.execute(
                "INSERT INTO messages (id, channel, user_id, content, parent_id, "
                "vote_count, created_at) VALUES (?, 'general', 'u1', 'hi', ?, 0, "
                "'2026-01-01 00:00:00')",
                (mid, parent),
            )
        conn.execute(
            "INSERT INTO message_votes (id, message_id, user_id, vote_type, "
            "created_at, updated_at) VALUES ('v1', 'm2', 'u1', 1, "
            "'2026-01-01 00:00:00', '2026-01-01 00:00:00')"
        )
        conn.execute("DELETE FROM messages WHERE id = 'm1'")
        conn.commit()

        remaining = conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
        votes = conn.execute("SELECT COUNT(*) FROM message_votes").fetchone()[0]
        conn.close()
        assert remaining == 0
        assert votes == 0
