#!/usr/bin/env python3
"""
Create or update a user of the Livechat Departments API.

Users are the callers of the API (agents, monitors, managers).  The
script applies pending migrations, then inserts the user or updates the
existing row with the same id, assigning the requested role.

Usage:
    python manage_users.py --id u1 --username alice --role livechat-manager
    python manage_users.py --db ./livechat.db --id u2 --username bob --role livechat-agent --name "Bob B."
    python manage_users.py --id u2 --username bob --role livechat-agent --disable
"""

import argparse
import sqlite3
import sys

from livechat_api.app.core.config import settings
from livechat_api.app.core.db import get_connection, init_db
from livechat_api.app.core.permissions import DEFAULT_ROLES


def upsert_user(
    conn: sqlite3.Connection,
    user_id: str,
    username: str,
    role_name: str,
    name: str = None,
    disabled: bool = False,
) -> None:
    """Insert or update a user row; raises ``ValueError`` for an unknown role."""
    row = conn.execute("SELECT id FROM roles WHERE name = ?", (role_name,)).fetchone()
    if not row:
        raise ValueError(f"Role {role_name} does not exist")
    conn.execute(
        """
        INSERT INTO users (id, username, name, role_id, disabled)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            username = excluded.username,
            name = excluded.name,
            role_id = excluded.role_id,
            disabled = excluded.disabled,
            updated_at = CURRENT_TIMESTAMP
        """,
        (user_id, username, name, row[0], 1 if disabled else 0),
    )
    conn.commit()


def main():
    role_names = [name for _, name, _ in DEFAULT_ROLES]
    ap = argparse.ArgumentParser(description="Create or update a livechat API user (SQLite).")
    ap.add_argument("--db", help="Path to SQLite DB file. Defaults to DATABASE_URL.")
    ap.add_argument("--id", required=True, help="User id (the token subject)")
    ap.add_argument("--username", required=True, help="Unique username")
    ap.add_argument("--name", help="Display name")
    ap.add_argument("--role", required=True, help=f"Role name, one of: {', '.join(role_names)}")
    ap.add_argument("--disable", action="store_true", help="Mark the user as disabled")
    args = ap.parse_args()

    if args.db:
        settings.database_url = args.db

    init_db()
    conn = get_connection()
    try:
        upsert_user(conn, args.id, args.username, args.role, name=args.name, disabled=args.disable)
    except (ValueError, sqlite3.IntegrityError) as exc:
        print(f"[!] {exc}", file=sys.stderr)
        sys.exit(2)
    finally:
        conn.close()
    print(f"[+] User {args.username} ({args.id}) saved with role {args.role}")


if __name__ == "__main__":
    main()
