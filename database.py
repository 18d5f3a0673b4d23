"""
SQLite record store for EduAdapt.

Uses raw sqlite3 with WAL mode and parameterized queries. Each collection maps
a username to one JSON record (or list of records); writes are per-key and
last-write-wins. A schema_version table handles migrations.
"""

from __future__ import annotations

import fcntl
import json
import sqlite3
from datetime import datetime
from pathlib import Path

from flask import current_app, g

DEFAULT_DB_PATH = Path(__file__).parent / "eduadapt.db"


SCHEMA = """
-- Migration tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);

-- Credentials: one row per username, across all roles
CREATE TABLE IF NOT EXISTS credentials (
    username TEXT PRIMARY KEY,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ''
);

-- Student profiles (JSON document per student)
CREATE TABLE IF NOT EXISTS student_profiles (
    username TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ''
);

-- Teacher profiles (JSON document per teacher)
CREATE TABLE IF NOT EXISTS teacher_profiles (
    username TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ''
);

-- Teacher class groups (JSON list per teacher)
CREATE TABLE IF NOT EXISTS teacher_groups (
    username TEXT PRIMARY KEY,
    data TEXT NOT NULL DEFAULT '[]',
    updated_at TEXT NOT NULL DEFAULT ''
);

-- Subject lookup codes: code -> (student, subject)
CREATE TABLE IF NOT EXISTS subject_codes (
    code TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    subject_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ''
);

-- Per-user workflow session context (wizard step, active group, ...)
CREATE TABLE IF NOT EXISTS workflow_sessions (
    username TEXT PRIMARY KEY,
    data TEXT NOT NULL DEFAULT '{}',
    updated_at TEXT NOT NULL DEFAULT ''
);

-- Audit trail for credential events
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT,
    action TEXT NOT NULL,
    detail TEXT NOT NULL DEFAULT '',
    ip_address TEXT NOT NULL DEFAULT '',
    user_agent TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT ''
);
"""


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: lookup indexes
    (1, """
        CREATE INDEX IF NOT EXISTS idx_subject_codes_user ON subject_codes(username);
        CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_log(username, created_at);
    """),
]


def _db_path() -> str:
    return current_app.config.get("DATABASE", str(DEFAULT_DB_PATH))


def get_db():
    """Return a DB connection from Flask g, creating if needed."""
    if "db" not in g:
        g.db = sqlite3.connect(_db_path())
        g.db.row_factory = sqlite3.Row
        g.db.execute("PRAGMA journal_mode=WAL")
        g.db.execute("PRAGMA foreign_keys=ON")
    return g.db


def close_db(e=None) -> None:
    """Teardown handler — close DB connection."""
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db() -> None:
    """Execute schema DDL to create all tables."""
    db = get_db()
    db.executescript(SCHEMA)
    db.commit()


def run_migrations() -> None:
    """Apply any unapplied versioned migrations.

    Uses file-based locking to prevent race conditions when multiple
    Gunicorn workers start simultaneously.
    """
    lock_file = None
    lock_path = Path(_db_path()).with_suffix(".migration.lock")
    try:
        lock_file = open(lock_path, "w")
        fcntl.flock(lock_file, fcntl.LOCK_EX)
    except OSError:
        lock_file = None

    try:
        db = get_db()
        applied = {
            row["version"]
            for row in db.execute("SELECT version FROM schema_version").fetchall()
        }
        for version, sql in MIGRATIONS:
            if version not in applied:
                try:
                    db.executescript(sql)
                except sqlite3.OperationalError as e:
                    err_msg = str(e).lower()
                    if "duplicate column" not in err_msg and "already exists" not in err_msg:
                        raise
                db.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now().isoformat()),
                )
                db.commit()
    finally:
        if lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def init_app(app) -> None:
    """Register teardown and auto-init on first request."""
    app.teardown_appcontext(close_db)

    @app.before_request
    def _ensure_db():
        if not getattr(app, "_db_initialized", False):
            init_db()
            run_migrations()
            app._db_initialized = True


# ── Keyed JSON records ──────────────────────────────────────

_COLLECTIONS = ("student_profiles", "teacher_profiles", "teacher_groups", "workflow_sessions")


def get_record(collection: str, key: str):
    """Return the decoded JSON stored under ``key``, or None."""
    if collection not in _COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")
    row = get_db().execute(
        f"SELECT data FROM {collection} WHERE username = ?", (key,)
    ).fetchone()
    if row is None:
        return None
    return json.loads(row["data"])


def put_record(collection: str, key: str, value) -> None:
    """Insert or replace the record stored under ``key``."""
    if collection not in _COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")
    db = get_db()
    db.execute(
        f"INSERT INTO {collection} (username, data, updated_at) VALUES (?, ?, ?) "
        "ON CONFLICT(username) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at",
        (key, json.dumps(value), datetime.now().isoformat()),
    )
    db.commit()
