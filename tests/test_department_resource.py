"""DepartmentResource against recording test doubles (no database)."""

import asyncio
import json

import pytest

from livechat_api.app.core import permissions as perms
from livechat_api.app.core.errors import LivechatError
from livechat_api.app.core.request_context import RequestContext
from livechat_api.app.core.responses import Failure, Success, Unauthorized
from livechat_api.app.resources.departments import DepartmentResource
from livechat_api.app.schemas.department import DepartmentRead


class FakePermissions:
    def __init__(self, *granted):
        self.granted = set(granted)

    async def has_permission(self, user_id, permission):
        return permission in self.granted

    async def has_at_least_one_permission(self, user_id, permission_names):
        return any(name in self.granted for name in permission_names)


class Recorder:
    """Records every awaited call; results come from ``returns``."""

    def __init__(self, **returns):
        self.calls = []
        self.returns = returns

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)

        async def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            result = self.returns.get(name)
            if isinstance(result, Exception):
                raise result
            return result

        return method


DEPARTMENT = DepartmentRead(id="d1", name="Sales", enabled=True)


def make(granted=(), lookup=None, writer=None):
    lookup = lookup or Recorder(
        list_departments={"departments": [DEPARTMENT], "total": 1},
        find_department_by_id={"department": DEPARTMENT, "agents": None},
        find_department_with_agents={"department": DEPARTMENT, "agents": []},
        autocomplete={"items": []},
        list_department_agents={"agents": [], "count": 0, "offset": 0, "total": 0},
        list_departments_by_ids={"departments": []},
    )
    writer = writer or Recorder(
        save_department=DEPARTMENT,
        save_department_agents=True,
        remove_department=True,
    )
    return DepartmentResource(FakePermissions(*granted), lookup, writer), lookup, writer


def run(coro):
    return asyncio.run(coro)


ALL_OPERATIONS = [
    "list_departments",
    "create_department",
    "get_department",
    "update_department",
    "delete_department",
    "autocomplete",
    "list_department_agents",
    "save_department_agents",
    "list_departments_by_ids",
]


@pytest.mark.parametrize("operation", ALL_OPERATIONS)
def test_missing_permission_is_unauthorized_without_collaborator_calls(operation):
    resource, lookup, writer = make(granted=())
    # Invalid input as well: authorization must be decided first.
    context = RequestContext(user_id="u1", body_params="not-an-object")

    result = run(getattr(resource, operation)(context))

    assert isinstance(result, Unauthorized)
    assert lookup.calls == []
    assert writer.calls == []


def test_view_room_permission_is_enough_to_list():
    resource, lookup, _ = make(granted=(perms.VIEW_ROOM,))
    context = RequestContext(
        user_id="u1",
        query_params={"text": "sal", "enabled": "true", "offset": "0", "count": "10"},
    )

    result = run(resource.list_departments(context))

    assert isinstance(result, Success)
    assert result.payload["count"] == 1
    assert result.payload["offset"] == 0
    assert result.payload["total"] == 1
    name, _, kwargs = lookup.calls[0]
    assert name == "list_departments"
    assert kwargs["text"] == "sal"
    assert kwargs["enabled"] is True
    assert kwargs["only_my_departments"] is False
    assert kwargs["pagination"].count == 10


def test_boolean_query_flags_only_accept_literal_true():
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))
    context = RequestContext(user_id="u1", query_params={"enabled": "1", "onlyMyDepartments": "True"})

    run(resource.list_departments(context))

    kwargs = lookup.calls[0][2]
    assert kwargs["enabled"] is False
    assert kwargs["only_my_departments"] is False


def test_invalid_pagination_fails_before_lookup():
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))
    context = RequestContext(user_id="u1", query_params={"count": "many"})

    result = run(resource.list_departments(context))

    assert isinstance(result, Failure)
    assert "Count" in result.error
    assert lookup.calls == []


@pytest.mark.parametrize(
    "body, message",
    [
        ({}, "department is required"),
        ({"department": "Sales"}, "department must be an object"),
        ({"department": {}, "agents": "u1"}, "agents must be an array"),
        (None, "Request body must be a JSON object"),
    ],
)
def test_create_validates_body_shape(body, message):
    resource, _, writer = make(granted=(perms.MANAGE_DEPARTMENTS,))

    result = run(resource.create_department(RequestContext(user_id="u1", body_params=body)))

    assert isinstance(result, Failure)
    assert result.error == message
    assert writer.calls == []


def test_create_passes_agents_as_upsert():
    resource, lookup, writer = make(granted=(perms.MANAGE_DEPARTMENTS,))
    body = {"department": {"name": "Sales", "enabled": True}, "agents": ["a1", "a2"]}

    result = run(resource.create_department(RequestContext(user_id="u1", body_params=body)))

    assert isinstance(result, Success)
    assert writer.calls == [("save_department", (None, body["department"], {"upsert": ["a1", "a2"]}), {})]
    assert lookup.calls[0][0] == "find_department_with_agents"
    assert result.payload["department"] is DEPARTMENT


def test_create_without_agents_sends_empty_agent_update():
    resource, _, writer = make(granted=(perms.MANAGE_DEPARTMENTS,))
    body = {"department": {"name": "Sales", "enabled": True}}

    run(resource.create_department(RequestContext(user_id="u1", body_params=body)))

    assert writer.calls[0][1][2] == {}


def test_create_requires_manage_permission_only():
    resource, _, writer = make(granted=(perms.ADD_DEPARTMENT_AGENTS, perms.VIEW_DEPARTMENTS))
    body = {"department": {"name": "Sales", "enabled": True}}

    result = run(resource.create_department(RequestContext(user_id="u1", body_params=body)))

    assert isinstance(result, Unauthorized)
    assert writer.calls == []


def test_get_unknown_department_is_success_with_unset_fields():
    lookup = Recorder(find_department_by_id={"department": None, "agents": None})
    resource, _, _ = make(granted=(perms.VIEW_ROOM,), lookup=lookup)

    result = run(resource.get_department(RequestContext(user_id="u1", url_params={"_id": "missing"})))

    assert isinstance(result, Success)
    assert result.payload["department"] is None
    assert result.payload["agents"] is None


def test_get_includes_agents_only_with_view_departments_permission():
    resource, lookup, _ = make(granted=(perms.VIEW_ROOM,))
    context = RequestContext(user_id="u1", url_params={"_id": "d1"}, query_params={"includeAgents": "true"})

    run(resource.get_department(context))

    assert lookup.calls[0][2]["include_agents"] is False

    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))
    run(resource.get_department(context))

    assert lookup.calls[0][2]["include_agents"] is True


def test_update_with_manage_permission_saves_then_adds_agents():
    resource, lookup, writer = make(granted=(perms.MANAGE_DEPARTMENTS, perms.ADD_DEPARTMENT_AGENTS))
    body = {"department": {"name": "Sales", "enabled": True}, "agents": ["a1"]}
    context = RequestContext(user_id="u1", url_params={"_id": "d1"}, body_params=body)

    result = run(resource.update_department(context))

    assert isinstance(result, Success)
    assert [call[0] for call in writer.calls] == ["save_department", "save_department_agents"]
    assert writer.calls[1][1] == ("d1", {"upsert": ["a1"]})
    assert lookup.calls[0] == ("find_department_with_agents", ("d1",), {})


def test_update_agents_only_skips_department_save():
    resource, _, writer = make(granted=(perms.ADD_DEPARTMENT_AGENTS,))
    body = {"department": {"name": "Renamed", "enabled": False}, "agents": ["a1"]}
    context = RequestContext(user_id="u1", url_params={"_id": "d1"}, body_params=body)

    result = run(resource.update_department(context))

    assert isinstance(result, Success)
    assert [call[0] for call in writer.calls] == ["save_department_agents"]


def test_update_agents_only_without_agents_writes_nothing_and_fails():
    resource, lookup, writer = make(granted=(perms.ADD_DEPARTMENT_AGENTS,))
    body = {"department": {"name": "Renamed", "enabled": False}}
    context = RequestContext(user_id="u1", url_params={"_id": "d1"}, body_params=body)

    result = run(resource.update_department(context))

    assert isinstance(result, Failure)
    assert result.error is None
    assert writer.calls == []
    assert lookup.calls == []


def test_update_without_agent_permission_ignores_agents():
    resource, _, writer = make(granted=(perms.MANAGE_DEPARTMENTS,))
    body = {"department": {"name": "Sales", "enabled": True}, "agents": ["a1"]}
    context = RequestContext(user_id="u1", url_params={"_id": "d1"}, body_params=body)

    run(resource.update_department(context))

    assert [call[0] for call in writer.calls] == ["save_department"]


def test_update_failure_short_circuits_agent_save():
    writer = Recorder(save_department=LivechatError("error-department-not-found", "Department not found"))
    resource, lookup, writer = make(
        granted=(perms.MANAGE_DEPARTMENTS, perms.ADD_DEPARTMENT_AGENTS), writer=writer
    )
    body = {"department": {"name": "Sales", "enabled": True}, "agents": ["a1"]}
    context = RequestContext(user_id="u1", url_params={"_id": "d1"}, body_params=body)

    result = run(resource.update_department(context))

    assert isinstance(result, Failure)
    assert result.error_type == "error-department-not-found"
    assert "Department not found" in result.error
    assert [call[0] for call in writer.calls] == ["save_department"]
    assert lookup.calls == []


def test_update_falsy_save_result_is_failure():
    writer = Recorder(save_department=None)
    resource, _, writer = make(
        granted=(perms.MANAGE_DEPARTMENTS, perms.ADD_DEPARTMENT_AGENTS), writer=writer
    )
    body = {"department": {"name": "Sales", "enabled": True}, "agents": ["a1"]}
    context = RequestContext(user_id="u1", url_params={"_id": "d1"}, body_params=body)

    result = run(resource.update_department(context))

    assert isinstance(result, Failure)
    assert result.error is None
    assert len(writer.calls) == 1


def test_delete_returning_false_is_failure():
    writer = Recorder(remove_department=False)
    resource, _, _ = make(granted=(perms.REMOVE_DEPARTMENT,), writer=writer)

    result = run(resource.delete_department(RequestContext(user_id="u1", url_params={"_id": "nope"})))

    assert isinstance(result, Failure)
    assert result.error is None


def test_delete_converts_service_error_to_failure():
    writer = Recorder(remove_department=LivechatError("error-database-failure", "disk I/O error"))
    resource, _, _ = make(granted=(perms.MANAGE_DEPARTMENTS,), writer=writer)

    result = run(resource.delete_department(RequestContext(user_id="u1", url_params={"_id": "d1"})))

    assert isinstance(result, Failure)
    assert result.error == "disk I/O error [error-database-failure]"


def test_autocomplete_requires_selector():
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))

    result = run(resource.autocomplete(RequestContext(user_id="u1")))

    assert isinstance(result, Failure)
    assert result.error == "The 'selector' param is required"
    assert lookup.calls == []


@pytest.mark.parametrize("selector", ["{not json", "[1, 2]", '{"exceptions": "d1"}'])
def test_autocomplete_rejects_malformed_selector(selector):
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))

    result = run(resource.autocomplete(RequestContext(user_id="u1", query_params={"selector": selector})))

    assert isinstance(result, Failure)
    assert lookup.calls == []


def test_autocomplete_forwards_parsed_selector():
    resource, lookup, _ = make(granted=(perms.VIEW_ROOM,))
    context = RequestContext(
        user_id="u1",
        query_params={"selector": '{"term": "sa", "exceptions": ["d2"]}', "onlyMyDepartments": "true"},
    )

    result = run(resource.autocomplete(context))

    assert isinstance(result, Success)
    kwargs = lookup.calls[0][2]
    assert kwargs["selector"].term == "sa"
    assert kwargs["selector"].exceptions == ["d2"]
    assert kwargs["only_my_departments"] is True


def test_list_agents_requires_department_id():
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))

    result = run(resource.list_department_agents(RequestContext(user_id="u1")))

    assert isinstance(result, Failure)
    assert result.error == "departmentId is required"
    assert lookup.calls == []


@pytest.mark.parametrize(
    "body, message",
    [
        ({"upsert": []}, "remove is required"),
        ({"upsert": "a1", "remove": []}, "upsert must be an array"),
    ],
)
def test_save_agents_validates_lists(body, message):
    resource, _, writer = make(granted=(perms.ADD_DEPARTMENT_AGENTS,))
    context = RequestContext(user_id="u1", url_params={"departmentId": "d1"}, body_params=body)

    result = run(resource.save_department_agents(context))

    assert isinstance(result, Failure)
    assert result.error == message
    assert writer.calls == []


def test_save_agents_returns_empty_success():
    resource, _, writer = make(granted=(perms.MANAGE_DEPARTMENTS,))
    body = {"upsert": ["a1"], "remove": ["a2"], "extra": True}
    context = RequestContext(user_id="u1", url_params={"departmentId": "d1"}, body_params=body)

    result = run(resource.save_department_agents(context))

    assert isinstance(result, Success)
    assert result.payload == {}
    assert writer.calls == [("save_department_agents", ("d1", {"upsert": ["a1"], "remove": ["a2"]}), {})]


def test_list_by_ids_requires_ids():
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))

    result = run(resource.list_departments_by_ids(RequestContext(user_id="u1")))

    assert isinstance(result, Failure)
    assert result.error == "The 'ids' param is required"
    assert lookup.calls == []


def test_list_by_ids_rejects_non_array():
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))
    context = RequestContext(user_id="u1", query_params={"ids": "d1"})

    result = run(resource.list_departments_by_ids(context))

    assert isinstance(result, Failure)
    assert result.error == "The 'ids' param must be an array"
    assert lookup.calls == []


def test_list_by_ids_forwards_fields_projection():
    resource, lookup, _ = make(granted=(perms.VIEW_ROOM,))
    context = RequestContext(user_id="u1", query_params={"ids": ["d1", "d2"], "fields": '{"name": 1}'})

    result = run(resource.list_departments_by_ids(context))

    assert isinstance(result, Success)
    assert lookup.calls == [("list_departments_by_ids", (), {"ids": ["d1", "d2"], "fields": {"name": 1}})]


def test_list_by_ids_rejects_oversized_id_list():
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))
    ids = [f"d{n}" for n in range(501)]

    result = run(resource.list_departments_by_ids(RequestContext(user_id="u1", query_params={"ids": ids})))

    assert isinstance(result, Failure)
    assert result.error == "The 'ids' param must not contain more than 500 items"
    assert lookup.calls == []


def test_autocomplete_rejects_oversized_exceptions():
    resource, lookup, _ = make(granted=(perms.VIEW_DEPARTMENTS,))
    selector = json.dumps({"exceptions": [f"d{n}" for n in range(501)]})

    result = run(resource.autocomplete(RequestContext(user_id="u1", query_params={"selector": selector})))

    assert isinstance(result, Failure)
    assert result.error == "The 'selector.exceptions' list must not contain more than 500 items"
    assert lookup.calls == []
