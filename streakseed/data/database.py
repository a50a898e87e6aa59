"""
SQLite database initialization and connection management.

Single responsibility: own the connection, create tables.
All actual queries live in Repository.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Default DB lives at the repo root
DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "streakseed.db"

SCHEMA_SQL = """
-- Goals (one per app) --------------------------------------------------------
CREATE TABLE IF NOT EXISTS goals (
    target_app          TEXT    PRIMARY KEY,
    daily_limit_minutes INTEGER NOT NULL,
    start_date          TEXT    NOT NULL,
    current_streak      INTEGER NOT NULL DEFAULT 0,
    longest_streak      INTEGER NOT NULL DEFAULT 0,
    last_updated        INTEGER,
    last_evaluated_date TEXT
);

-- Usage sessions ---------------------------------------------------------------
CREATE TABLE IF NOT EXISTS usage_sessions (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    target_app          TEXT    NOT NULL,
    start_timestamp     INTEGER NOT NULL,
    end_timestamp       INTEGER NOT NULL,
    duration            INTEGER NOT NULL,
    was_interrupted     INTEGER NOT NULL DEFAULT 0,
    interruption_type   TEXT,
    date                TEXT    NOT NULL,
    UNIQUE(target_app, start_timestamp, end_timestamp)
);

-- Daily stats (derived) ----------------------------------------------------------
CREATE TABLE IF NOT EXISTS daily_stats (
    date                TEXT    NOT NULL,
    target_app          TEXT    NOT NULL,
    total_duration      INTEGER NOT NULL,
    session_count       INTEGER NOT NULL,
    longest_session     INTEGER NOT NULL,
    average_session     INTEGER NOT NULL,
    alerts_shown        INTEGER NOT NULL DEFAULT 0,
    alerts_proceeded    INTEGER NOT NULL DEFAULT 0,
    is_estimated        INTEGER NOT NULL DEFAULT 0,
    last_updated        INTEGER,
    PRIMARY KEY (date, target_app)
);

-- Streak recovery (one per app) --------------------------------------------------
CREATE TABLE IF NOT EXISTS streak_recovery (
    target_app              TEXT    PRIMARY KEY,
    previous_streak         INTEGER NOT NULL,
    recovery_start_date     TEXT    NOT NULL,
    current_recovery_days   INTEGER NOT NULL DEFAULT 0,
    is_recovery_complete    INTEGER NOT NULL DEFAULT 0,
    recovery_completed_date TEXT,
    notification_shown      INTEGER NOT NULL DEFAULT 0,
    timestamp               INTEGER NOT NULL
);

-- Freeze inventory (single row) + armed freezes ----------------------------------
CREATE TABLE IF NOT EXISTS freeze_inventory (
    id                  INTEGER PRIMARY KEY CHECK (id = 1),
    freezes_available   INTEGER NOT NULL,
    max_monthly_freezes INTEGER NOT NULL,
    last_reset_month    TEXT    NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS active_freezes (
    target_app  TEXT PRIMARY KEY,
    freeze_date TEXT NOT NULL
);

-- Intervention results -------------------------------------------------------------
CREATE TABLE IF NOT EXISTS intervention_results (
    id                          INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id                  INTEGER NOT NULL UNIQUE REFERENCES usage_sessions(id),
    target_app                  TEXT    NOT NULL,
    intervention_type           TEXT    NOT NULL,
    content_type                TEXT    NOT NULL,
    hour_of_day                 INTEGER NOT NULL,
    day_of_week                 INTEGER NOT NULL,
    is_weekend                  INTEGER NOT NULL,
    is_late_night               INTEGER NOT NULL,
    session_count               INTEGER NOT NULL,
    quick_reopen                INTEGER NOT NULL,
    current_session_duration_ms INTEGER NOT NULL,
    user_choice                 TEXT    NOT NULL,
    time_to_show_decision_ms    INTEGER NOT NULL,
    final_session_duration_ms   INTEGER,
    session_ended_normally      INTEGER,
    timestamp                   INTEGER NOT NULL
);

-- Indexes for common queries -------------------------------------------------------
CREATE INDEX IF NOT EXISTS idx_sessions_app_date  ON usage_sessions(target_app, date);
CREATE INDEX IF NOT EXISTS idx_sessions_start     ON usage_sessions(start_timestamp);
CREATE INDEX IF NOT EXISTS idx_results_timestamp  ON intervention_results(timestamp);
CREATE INDEX IF NOT EXISTS idx_results_app        ON intervention_results(target_app);
"""


class Database:
    """Thin wrapper around a SQLite connection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.conn: Optional[sqlite3.Connection] = None

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) connection and ensure schema exists."""
        if self.conn is not None:
            return self.conn
        logger.info("Connecting to SQLite at %s", self.db_path)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        if str(self.db_path) != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self.conn

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed.")

    # -- internal ------------------------------------------------------------

    def _create_tables(self) -> None:
        assert self.conn is not None
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()
        logger.info("Database schema ensured.")


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Manages the SQLite connection and makes sure all tables exist on startup.
#
# Key pieces:
#   - SCHEMA_SQL: the full DDL. CREATE IF NOT EXISTS makes it idempotent.
#   - UNIQUE constraints encode the natural keys: (app, start, end) for
#     sessions, (date, app) for stats, session_id for intervention results.
#     The repository upserts against them, so a re-run after a crash never
#     duplicates rows.
#   - freeze_inventory is a single-row table (CHECK id = 1).
#
# Data flow:
#   Startup -> Database.connect() -> tables created -> Repository uses conn
#
# Interviewer-friendly talking points:
#   1. WAL mode lets the nightly rollover write while readers keep reading.
#   2. Foreign keys are OFF by default in SQLite; we turn them on so an
#      intervention result can never point at a missing session.
#   3. Schema lives in code because the engine owns a small local store.
