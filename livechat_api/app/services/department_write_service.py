"""
Write-side service for livechat departments.

Creates, updates and removes departments and maintains their agent
assignments.  Business rule violations raise ``LivechatError``; SQLite
failures are wrapped into ``LivechatError("error-database-failure")`` so
callers only ever handle one error type.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from livechat_api.app.core.db import get_connection
from livechat_api.app.core.errors import LivechatError
from livechat_api.app.schemas.department import (
    DepartmentAgentsUpdate,
    DepartmentData,
    DepartmentRead,
    describe_validation_error,
)
from livechat_api.app.services.department_lookup_service import row_to_department


logger = logging.getLogger(__name__)

# DepartmentData field -> column; values are converted by ``_column_value``.
DEPARTMENT_COLUMNS = {
    "name": "name",
    "enabled": "enabled",
    "description": "description",
    "email": "email",
    "show_on_registration": "show_on_registration",
    "show_on_offline_form": "show_on_offline_form",
    "request_tag_before_closing_chat": "request_tag_before_closing_chat",
    "chat_closing_tags": "chat_closing_tags",
    "fallback_forward_department": "fallback_forward_department",
}


def _column_value(field_name: str, value: Any) -> Any:
    if field_name == "chat_closing_tags":
        return json.dumps(value) if value is not None else None
    if isinstance(value, bool):
        return 1 if value else 0
    return value


class DepartmentWriteService:
    """Mutations of departments and department agents."""

    def __init__(self, connection_factory: Callable[[], sqlite3.Connection] = get_connection) -> None:
        self._connect = connection_factory

    async def save_department(
        self,
        department_id: Optional[str],
        department_data: Dict[str, Any],
        department_agents: Optional[Dict[str, Any]] = None,
    ) -> DepartmentRead:
        """Create (``department_id is None``) or update a department.

        Only the fields present in ``department_data`` are written on
        update; ``name`` and ``enabled`` are always required.  When
        ``department_agents`` carries ``upsert``/``remove`` lists they
        are applied in the same transaction.  Returns the saved
        department.
        """
        data = self._validate_department(department_id, department_data)
        agents = self._validate_agents(department_agents) if department_agents else None

        conn = self._connect()
        try:
            cursor = conn.cursor()
            if department_id and not self._department_exists(cursor, department_id):
                raise LivechatError("error-department-not-found", "Department not found")
            fallback = data.fallback_forward_department
            if fallback and not self._department_exists(cursor, fallback):
                raise LivechatError(
                    "error-fallback-department-not-found", "Fallback department not found"
                )

            values = {
                DEPARTMENT_COLUMNS[name]: _column_value(name, getattr(data, name))
                for name in data.model_fields_set
                if name in DEPARTMENT_COLUMNS
            }
            if department_id:
                assignments = ", ".join(f"{column} = ?" for column in values)
                cursor.execute(
                    f"UPDATE livechat_departments SET {assignments}, updated_at = CURRENT_TIMESTAMP "
                    f"WHERE id = ?",
                    (*values.values(), department_id),
                )
                if "enabled" in values:
                    cursor.execute(
                        "UPDATE livechat_department_agents SET department_enabled = ? WHERE department_id = ?",
                        (values["enabled"], department_id),
                    )
            else:
                department_id = uuid.uuid4().hex
                columns = ["id", *values.keys()]
                cursor.execute(
                    f"INSERT INTO livechat_departments ({', '.join(columns)}) "
                    f"VALUES ({', '.join('?' for _ in columns)})",
                    (department_id, *values.values()),
                )
            if agents is not None:
                self._apply_agents(cursor, department_id, agents)
            conn.commit()
            logger.info("Saved livechat department %s", department_id)
            row = cursor.execute(
                "SELECT * FROM livechat_departments WHERE id = ?", (department_id,)
            ).fetchone()
            return row_to_department(row)
        except sqlite3.Error as exc:
            logger.exception("Failed to save livechat department %s", department_id)
            raise LivechatError("error-database-failure", str(exc)) from exc
        finally:
            conn.close()

    async def save_department_agents(self, department_id: str, department_agents: Dict[str, Any]) -> bool:
        """Apply ``upsert``/``remove`` agent lists to an existing department."""
        agents = self._validate_agents(department_agents)
        conn = self._connect()
        try:
            cursor = conn.cursor()
            if not self._department_exists(cursor, department_id):
                raise LivechatError("error-department-not-found", "Department not found")
            self._apply_agents(cursor, department_id, agents)
            conn.commit()
            logger.info(
                "Updated agents of livechat department %s (+%d/-%d)",
                department_id,
                len(agents.upsert),
                len(agents.remove),
            )
            return True
        except sqlite3.Error as exc:
            logger.exception("Failed to save agents of livechat department %s", department_id)
            raise LivechatError("error-database-failure", str(exc)) from exc
        finally:
            conn.close()

    async def remove_department(self, department_id: str) -> bool:
        """Delete a department and its agent assignments.

        Returns ``False`` when the department does not exist.
        """
        conn = self._connect()
        try:
            cursor = conn.cursor()
            if not self._department_exists(cursor, department_id):
                return False
            cursor.execute(
                "DELETE FROM livechat_department_agents WHERE department_id = ?", (department_id,)
            )
            cursor.execute(
                "UPDATE livechat_departments SET fallback_forward_department = NULL "
                "WHERE fallback_forward_department = ?",
                (department_id,),
            )
            cursor.execute("DELETE FROM livechat_departments WHERE id = ?", (department_id,))
            conn.commit()
            logger.info("Removed livechat department %s", department_id)
            return True
        except sqlite3.Error as exc:
            logger.exception("Failed to remove livechat department %s", department_id)
            raise LivechatError("error-database-failure", str(exc)) from exc
        finally:
            conn.close()

    @staticmethod
    def _validate_department(department_id: Optional[str], department_data: Dict[str, Any]) -> DepartmentData:
        try:
            data = DepartmentData.model_validate(department_data)
        except ValidationError as exc:
            raise LivechatError("error-invalid-department", describe_validation_error(exc)) from exc
        if data.request_tag_before_closing_chat and not data.chat_closing_tags:
            raise LivechatError(
                "error-validating-department-chat-closing-tags",
                "At least one closing tag is required when the department requires tag(s) on closing conversations.",
            )
        if department_id and data.fallback_forward_department == department_id:
            raise LivechatError(
                "error-fallback-department-circular",
                "Cannot save department. Circular reference between fallback department and department",
            )
        return data

    @staticmethod
    def _validate_agents(department_agents: Dict[str, Any]) -> DepartmentAgentsUpdate:
        try:
            return DepartmentAgentsUpdate.model_validate(department_agents)
        except ValidationError as exc:
            raise LivechatError("error-invalid-agents", describe_validation_error(exc)) from exc

    @staticmethod
    def _department_exists(cursor: sqlite3.Cursor, department_id: str) -> bool:
        row = cursor.execute(
            "SELECT 1 FROM livechat_departments WHERE id = ?", (department_id,)
        ).fetchone()
        return row is not None

    @staticmethod
    def _apply_agents(cursor: sqlite3.Cursor, department_id: str, agents: DepartmentAgentsUpdate) -> None:
        enabled_row = cursor.execute(
            "SELECT enabled FROM livechat_departments WHERE id = ?", (department_id,)
        ).fetchone()
        department_enabled = enabled_row["enabled"] if enabled_row else 1

        for agent in agents.remove:
            cursor.execute(
                "DELETE FROM livechat_department_agents WHERE department_id = ? AND agent_id = ?",
                (department_id, agent.agent_id),
            )
        for agent in agents.upsert:
            username = agent.username
            if username is None:
                user_row = cursor.execute(
                    "SELECT username FROM users WHERE id = ?", (agent.agent_id,)
                ).fetchone()
                username = user_row["username"] if user_row else None
            cursor.execute(
                """
                INSERT INTO livechat_department_agents
                    (id, department_id, agent_id, username, count, sort_order, department_enabled)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(department_id, agent_id) DO UPDATE SET
                    username = excluded.username,
                    count = excluded.count,
                    sort_order = excluded.sort_order
                """,
                (
                    uuid.uuid4().hex,
                    department_id,
                    agent.agent_id,
                    username,
                    agent.count,
                    agent.order,
                    department_enabled,
                ),
            )
        cursor.execute(
            """
            UPDATE livechat_departments
            SET num_agents = (SELECT COUNT(*) FROM livechat_department_agents WHERE department_id = ?)
            WHERE id = ?
            """,
            (department_id, department_id),
        )
