"""
Read-side service for livechat departments.

Implements listing with filters and pagination, lookup by id,
autocomplete, listing of a department's agents and batch lookup by
ids.  All queries use parameterized statements; sort fields are
whitelisted before they reach SQL.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Callable, Dict, List, Optional

from livechat_api.app.core.db import get_connection
from livechat_api.app.core.request_context import PaginationSpec, build_order_by
from livechat_api.app.schemas.department import (
    AutocompleteSelector,
    DepartmentAgentRead,
    DepartmentAutocompleteItem,
    DepartmentRead,
)


logger = logging.getLogger(__name__)

DEPARTMENT_SORT_COLUMNS = {
    "_id": "id",
    "name": "name",
    "enabled": "enabled",
    "description": "description",
    "numAgents": "num_agents",
    "_updatedAt": "updated_at",
}

AGENT_SORT_COLUMNS = {
    "_id": "id",
    "agentId": "agent_id",
    "username": "username",
    "count": "count",
    "order": "sort_order",
}

# Autocomplete ``conditions`` keys that map onto a boolean column.
AUTOCOMPLETE_CONDITIONS = {
    "enabled": "enabled",
    "showOnRegistration": "show_on_registration",
    "showOnOfflineForm": "show_on_offline_form",
}


def row_to_department(row: sqlite3.Row) -> DepartmentRead:
    """Convert a ``livechat_departments`` row to a ``DepartmentRead``."""
    tags = None
    if row["chat_closing_tags"]:
        try:
            tags = json.loads(row["chat_closing_tags"])
        except (TypeError, json.JSONDecodeError):
            tags = None
    return DepartmentRead(
        id=row["id"],
        name=row["name"],
        enabled=bool(row["enabled"]),
        description=row["description"],
        email=row["email"],
        show_on_registration=bool(row["show_on_registration"]),
        show_on_offline_form=bool(row["show_on_offline_form"]),
        request_tag_before_closing_chat=bool(row["request_tag_before_closing_chat"]),
        chat_closing_tags=tags,
        fallback_forward_department=row["fallback_forward_department"],
        num_agents=row["num_agents"],
        updated_at=row["updated_at"],
    )


def row_to_agent(row: sqlite3.Row) -> DepartmentAgentRead:
    """Convert a ``livechat_department_agents`` row to a ``DepartmentAgentRead``."""
    return DepartmentAgentRead(
        id=row["id"],
        agent_id=row["agent_id"],
        department_id=row["department_id"],
        username=row["username"],
        count=row["count"],
        order=row["sort_order"],
        department_enabled=bool(row["department_enabled"]),
    )


def project_document(document: Dict[str, Any], fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Apply a ``{"field": 1}`` / ``{"field": 0}`` projection to a document.

    Any truthy value makes the projection inclusive (``_id`` is always
    kept); otherwise the listed fields are excluded.
    """
    if not fields:
        return document
    if any(fields.values()):
        keep = {name for name, flag in fields.items() if flag} | {"_id"}
        return {key: value for key, value in document.items() if key in keep}
    return {key: value for key, value in document.items() if key not in fields}


class DepartmentLookupService:
    """Queries over departments and department agents."""

    def __init__(self, connection_factory: Callable[[], sqlite3.Connection] = get_connection) -> None:
        self._connect = connection_factory

    async def list_departments(
        self,
        *,
        user_id: str,
        pagination: PaginationSpec,
        text: Optional[str] = None,
        enabled: bool = False,
        only_my_departments: bool = False,
        exclude_department_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Return ``{"departments": [...], "total": n}`` for one page.

        ``enabled`` only filters when true.  ``text`` is a case
        insensitive substring of the name.  ``only_my_departments``
        restricts the result to departments the user is an agent of.
        """
        clauses: List[str] = []
        params: List[Any] = []
        if enabled:
            clauses.append("enabled = 1")
        if text:
            clauses.append("instr(lower(name), lower(?)) > 0")
            params.append(text)
        if exclude_department_id:
            clauses.append("id != ?")
            params.append(exclude_department_id)
        if only_my_departments:
            clauses.append("id IN (SELECT department_id FROM livechat_department_agents WHERE agent_id = ?)")
            params.append(user_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        order_by = build_order_by(pagination.sort, DEPARTMENT_SORT_COLUMNS, "name ASC")

        conn = self._connect()
        try:
            total = conn.execute(
                f"SELECT COUNT(*) AS total FROM livechat_departments{where}", tuple(params)
            ).fetchone()["total"]
            rows = conn.execute(
                f"SELECT * FROM livechat_departments{where} ORDER BY {order_by} LIMIT ? OFFSET ?",
                (*params, pagination.count, pagination.offset),
            ).fetchall()
        finally:
            conn.close()
        return {"departments": [row_to_department(row) for row in rows], "total": total}

    async def find_department_by_id(
        self,
        *,
        user_id: str,
        department_id: str,
        include_agents: bool = False,
        only_my_departments: bool = False,
    ) -> Dict[str, Any]:
        """Return ``{"department": ..., "agents": ...}``.

        Both values are ``None`` when the department does not exist (or
        is outside the caller's departments with ``only_my_departments``).
        ``agents`` is also ``None`` unless ``include_agents`` is set.
        """
        query = "SELECT * FROM livechat_departments WHERE id = ?"
        params: List[Any] = [department_id]
        if only_my_departments:
            query += " AND id IN (SELECT department_id FROM livechat_department_agents WHERE agent_id = ?)"
            params.append(user_id)
        conn = self._connect()
        try:
            row = conn.execute(query, tuple(params)).fetchone()
            if not row:
                return {"department": None, "agents": None}
            agents = None
            if include_agents:
                agents = self._fetch_agents(conn, department_id)
            return {"department": row_to_department(row), "agents": agents}
        finally:
            conn.close()

    async def find_department_with_agents(self, department_id: str) -> Dict[str, Any]:
        """Return the current department document with all its agents."""
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM livechat_departments WHERE id = ?", (department_id,)
            ).fetchone()
            return {
                "department": row_to_department(row) if row else None,
                "agents": self._fetch_agents(conn, department_id),
            }
        finally:
            conn.close()

    async def autocomplete(
        self,
        *,
        user_id: str,
        selector: AutocompleteSelector,
        only_my_departments: bool = False,
    ) -> Dict[str, Any]:
        """Return ``{"items": [{"_id", "name"}, ...]}`` sorted by name."""
        clauses: List[str] = []
        params: List[Any] = []
        if selector.term:
            clauses.append("instr(lower(name), lower(?)) > 0")
            params.append(selector.term)
        if selector.exceptions:
            clauses.append(f"id NOT IN ({', '.join('?' for _ in selector.exceptions)})")
            params.extend(selector.exceptions)
        for key, value in selector.conditions.items():
            column = AUTOCOMPLETE_CONDITIONS.get(key)
            if column is None:
                logger.debug("Ignoring unsupported autocomplete condition %s", key)
                continue
            clauses.append(f"{column} = ?")
            params.append(1 if value else 0)
        if only_my_departments:
            clauses.append("id IN (SELECT department_id FROM livechat_department_agents WHERE agent_id = ?)")
            params.append(user_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT id, name FROM livechat_departments{where} ORDER BY name ASC",
                tuple(params),
            ).fetchall()
        finally:
            conn.close()
        return {"items": [DepartmentAutocompleteItem(id=row["id"], name=row["name"]) for row in rows]}

    async def list_department_agents(self, *, department_id: str, pagination: PaginationSpec) -> Dict[str, Any]:
        """Return one page of a department's agents with paging metadata."""
        order_by = build_order_by(pagination.sort, AGENT_SORT_COLUMNS, "username ASC")
        conn = self._connect()
        try:
            total = conn.execute(
                "SELECT COUNT(*) AS total FROM livechat_department_agents WHERE department_id = ?",
                (department_id,),
            ).fetchone()["total"]
            rows = conn.execute(
                f"SELECT * FROM livechat_department_agents WHERE department_id = ? "
                f"ORDER BY {order_by} LIMIT ? OFFSET ?",
                (department_id, pagination.count, pagination.offset),
            ).fetchall()
        finally:
            conn.close()
        agents = [row_to_agent(row) for row in rows]
        return {"agents": agents, "count": len(agents), "offset": pagination.offset, "total": total}

    async def list_departments_by_ids(
        self, *, ids: List[str], fields: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Return ``{"departments": [...]}`` for the given ids, projected to ``fields``."""
        if not ids:
            return {"departments": []}
        placeholders = ", ".join("?" for _ in ids)
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT * FROM livechat_departments WHERE id IN ({placeholders}) ORDER BY name ASC",
                tuple(ids),
            ).fetchall()
        finally:
            conn.close()
        departments = [
            project_document(row_to_department(row).model_dump(by_alias=True), fields)
            for row in rows
        ]
        return {"departments": departments}

    @staticmethod
    def _fetch_agents(conn: sqlite3.Connection, department_id: str) -> List[DepartmentAgentRead]:
        rows = conn.execute(
            "SELECT * FROM livechat_department_agents WHERE department_id = ? ORDER BY username ASC",
            (department_id,),
        ).fetchall()
        return [row_to_agent(row) for row in rows]
