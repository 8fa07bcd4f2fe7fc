import sqlite3

import pytest
from fastapi.testclient import TestClient

from livechat_api.app.core.config import settings
from livechat_api.app.core.db import get_connection, init_db
from livechat_api.app.core.security import create_access_token
from livechat_api.app.main import create_app
from manage_users import upsert_user

AGENT_EDITOR_ROLE_ID = 10
REMOVER_ROLE_ID = 11

USERS = {
    "manager": ("u-manager", "manager", "livechat-manager"),
    "monitor": ("u-monitor", "monitor", "livechat-monitor"),
    "agent1": ("u-agent1", "agent.one", "livechat-agent"),
    "agent2": ("u-agent2", "agent.two", "livechat-agent"),
    "plain": ("u-plain", "plain", "user"),
    "agent_editor": ("u-editor", "editor", "department-agent-editor"),
    "remover": ("u-remover", "remover", "department-remover"),
}


def _seed(conn: sqlite3.Connection) -> None:
    conn.execute(
        "INSERT INTO roles (id, name, permissions) VALUES (?, ?, ?)",
        (AGENT_EDITOR_ROLE_ID, "department-agent-editor", '["add-livechat-department-agents"]'),
    )
    conn.execute(
        "INSERT INTO roles (id, name, permissions) VALUES (?, ?, ?)",
        (REMOVER_ROLE_ID, "department-remover", '["remove-livechat-department"]'),
    )
    conn.commit()
    for user_id, username, role in USERS.values():
        upsert_user(conn, user_id, username, role)


@pytest.fixture()
def db(tmp_path, monkeypatch):
    """Point the service at a fresh SQLite file with seeded users."""
    monkeypatch.setattr(settings, "database_url", str(tmp_path / "livechat.db"))
    init_db()
    conn = get_connection()
    try:
        _seed(conn)
    finally:
        conn.close()
    return tmp_path / "livechat.db"


@pytest.fixture()
def app(db):
    return create_app()


@pytest.fixture()
def client(app):
    return TestClient(app)


def headers_for(key: str) -> dict:
    user_id = USERS[key][0]
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


@pytest.fixture()
def auth():
    """Return a function building bearer headers for a seeded user key."""
    return headers_for
