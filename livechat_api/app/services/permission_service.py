"""
Service layer for permission checks.

Roles define the permissions granted to users.  Permissions are stored
as a JSON list in the ``permissions`` column of ``roles``; each user
references exactly one role.  Unknown users and users without a role
hold no permissions.
"""

import json
import logging
from typing import Callable, Iterable, Set
import sqlite3

from livechat_api.app.core.db import get_connection


logger = logging.getLogger(__name__)


class PermissionService:
    """Answers whether a user holds a permission."""

    def __init__(self, connection_factory: Callable[[], sqlite3.Connection] = get_connection) -> None:
        self._connect = connection_factory

    async def get_permissions(self, user_id: str) -> Set[str]:
        conn = self._connect()
        try:
            row = conn.execute(
                """
                SELECT r.permissions
                FROM users u JOIN roles r ON r.id = u.role_id
                WHERE u.id = ? AND u.disabled = 0
                """,
                (user_id,),
            ).fetchone()
        finally:
            conn.close()
        if not row or not row["permissions"]:
            return set()
        try:
            return set(json.loads(row["permissions"]))
        except (TypeError, json.JSONDecodeError):
            logger.warning("Role permissions of user %s are not valid JSON", user_id)
            return set()

    async def has_permission(self, user_id: str, permission: str) -> bool:
        return permission in await self.get_permissions(user_id)

    async def has_at_least_one_permission(self, user_id: str, permissions: Iterable[str]) -> bool:
        granted = await self.get_permissions(user_id)
        return any(permission in granted for permission in permissions)
