"""
SQLite database integration and simple migration system.

This module provides functions for obtaining a database connection
(``get_connection``) and applying migrations on application start
(``init_db``).  SQLite is used as a lightweight embedded store; to
switch to another DBMS replace the connection logic and adapt the SQL
in the service layer.

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order.
"""

import json
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .config import settings
from .permissions import DEFAULT_ROLES


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: roles and users
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS roles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE,
            permissions TEXT
        );

        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            username TEXT NOT NULL UNIQUE,
            name TEXT,
            role_id INTEGER,
            disabled INTEGER DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY(role_id) REFERENCES roles(id)
        );
        """,
    ),
    # Migration 2: livechat departments and agent assignments
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS livechat_departments (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            enabled INTEGER NOT NULL DEFAULT 1,
            description TEXT,
            email TEXT,
            show_on_registration INTEGER NOT NULL DEFAULT 1,
            show_on_offline_form INTEGER NOT NULL DEFAULT 1,
            request_tag_before_closing_chat INTEGER NOT NULL DEFAULT 0,
            chat_closing_tags TEXT,
            fallback_forward_department TEXT,
            num_agents INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS livechat_department_agents (
            id TEXT PRIMARY KEY,
            department_id TEXT NOT NULL,
            agent_id TEXT NOT NULL,
            username TEXT,
            count INTEGER NOT NULL DEFAULT 0,
            sort_order INTEGER NOT NULL DEFAULT 0,
            department_enabled INTEGER NOT NULL DEFAULT 1,
            UNIQUE(department_id, agent_id),
            FOREIGN KEY(department_id) REFERENCES livechat_departments(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_livechat_departments_name ON livechat_departments(name);
        CREATE INDEX IF NOT EXISTS idx_department_agents_agent_id ON livechat_department_agents(agent_id);
        """,
    ),
]


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path, use it directly.
    Otherwise resolve it relative to the project root.
    """
    db_url = settings.database_url
    if os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent  # livechat_api/
    return str((base_dir / db_url).resolve())


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    Rows are returned as ``sqlite3.Row`` objects so columns can be
    accessed by name.  Foreign keys are enabled per connection because
    SQLite keeps them off by default.
    """
    conn = sqlite3.connect(get_database_path())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Context manager that yields a cursor and closes the connection on exit."""
    conn = get_connection()
    try:
        yield conn.cursor()
        conn.commit()
    finally:
        conn.close()


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, checks the
    current schema version, and applies any migration in ``MIGRATIONS``
    with a higher version.  Default roles are (re)seeded afterwards.
    """
    with get_cursor() as cursor:
        cursor.execute(
            "CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)"
        )
        cursor.execute("SELECT MAX(version) as version FROM migrations")
        row = cursor.fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in MIGRATIONS:
            if version > current_version:
                cursor.executescript(sql)
                cursor.execute(
                    "INSERT INTO migrations (version) VALUES (?)", (version,)
                )
                current_version = version

        for role_id, name, permissions in DEFAULT_ROLES:
            cursor.execute(
                "INSERT OR IGNORE INTO roles (id, name, permissions) VALUES (?, ?, ?)",
                (role_id, name, json.dumps(permissions)),
            )
