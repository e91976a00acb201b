from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

from photo_factory import configure_env
from photosweep.db.migrations import MIGRATIONS, apply_migrations
from photosweep.db.session import get_engine


def _recorded_versions(engine) -> list[int]:  # type: ignore[no-untyped-def]
    with engine.begin() as conn:
        return [
            int(row[0])
            for row in conn.execute(text("SELECT version FROM schema_migrations ORDER BY version ASC")).all()
        ]


def test_apply_migrations_records_every_step_once(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite:///{(tmp_path / 'fresh.sqlite3').as_posix()}")

    first = apply_migrations(engine)
    second = apply_migrations(engine)

    assert first == [step.name for step in MIGRATIONS]
    assert second == []
    assert _recorded_versions(engine) == [step.version for step in MIGRATIONS]


def test_apply_migrations_skips_recorded_versions(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite:///{(tmp_path / 'recorded.sqlite3').as_posix()}")
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE schema_migrations (
                    version INTEGER PRIMARY KEY,
                    name VARCHAR(255) NOT NULL,
                    applied_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
        )
        conn.execute(text("INSERT INTO schema_migrations(version, name) VALUES (1, 'baseline')"))

    assert apply_migrations(engine) == []
    assert _recorded_versions(engine) == [1]


def test_initialize_database_creates_tables_with_wal(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    configure_env(monkeypatch, tmp_path)

    with get_engine().connect() as conn:
        journal_mode = conn.execute(text("PRAGMA journal_mode")).scalar_one()
        tables = {
            str(row[0]) for row in conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'")).all()
        }
        scan_run_indexes = {
            str(row["name"]) for row in conn.execute(text("PRAGMA index_list('scan_runs')")).mappings().all()
        }

    assert str(journal_mode).lower() == "wal"
    assert {"group_sets", "scan_runs", "photo_features", "schema_migrations"} <= tables
    assert "ix_scan_runs_started_id" in scan_run_indexes
