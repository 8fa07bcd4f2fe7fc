"""
Permission names and the default roles that bundle them.

Permissions are plain strings stored as a JSON list on each role.  The
department endpoints check against the constants defined here.
"""

VIEW_DEPARTMENTS = "view-livechat-departments"
VIEW_ROOM = "view-l-room"
MANAGE_DEPARTMENTS = "manage-livechat-departments"
ADD_DEPARTMENT_AGENTS = "add-livechat-department-agents"
REMOVE_DEPARTMENT = "remove-livechat-department"

ALL_LIVECHAT_PERMISSIONS = [
    VIEW_DEPARTMENTS,
    VIEW_ROOM,
    MANAGE_DEPARTMENTS,
    ADD_DEPARTMENT_AGENTS,
    REMOVE_DEPARTMENT,
]

ROLE_ADMIN = 1
ROLE_MANAGER = 2
ROLE_MONITOR = 3
ROLE_AGENT = 4
ROLE_USER = 5

# (id, name, permissions) seeded on every start.
DEFAULT_ROLES = [
    (ROLE_ADMIN, "admin", ALL_LIVECHAT_PERMISSIONS),
    (ROLE_MANAGER, "livechat-manager", ALL_LIVECHAT_PERMISSIONS),
    (ROLE_MONITOR, "livechat-monitor", [VIEW_DEPARTMENTS, VIEW_ROOM]),
    (ROLE_AGENT, "livechat-agent", [VIEW_ROOM]),
    (ROLE_USER, "user", []),
]
