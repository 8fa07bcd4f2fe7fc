import asyncio

import pytest

from livechat_api.app.core.errors import LivechatError
from livechat_api.app.core.request_context import PaginationSpec
from livechat_api.app.schemas.department import AutocompleteSelector
from livechat_api.app.services.department_lookup_service import DepartmentLookupService
from livechat_api.app.services.department_write_service import DepartmentWriteService


@pytest.fixture()
def writer(db):
    return DepartmentWriteService()


@pytest.fixture()
def lookup(db):
    return DepartmentLookupService()


def run(coro):
    return asyncio.run(coro)


def test_create_stores_optional_fields(writer):
    department = run(
        writer.save_department(
            None,
            {
                "name": "Sales",
                "enabled": True,
                "email": "sales@example.com",
                "showOnRegistration": False,
                "requestTagBeforeClosingChat": True,
                "chatClosingTags": ["won", "lost"],
            },
        )
    )

    assert department.email == "sales@example.com"
    assert department.show_on_registration is False
    assert department.show_on_offline_form is True
    assert department.chat_closing_tags == ["won", "lost"]
    assert department.num_agents == 0


def test_update_writes_only_given_fields(writer):
    department = run(writer.save_department(None, {"name": "Sales", "enabled": True, "email": "a@example.com"}))

    updated = run(writer.save_department(department.id, {"name": "Sales 2", "enabled": True}))

    assert updated.name == "Sales 2"
    assert updated.email == "a@example.com"


def test_unknown_fallback_department_is_rejected(writer):
    with pytest.raises(LivechatError) as excinfo:
        run(writer.save_department(None, {"name": "S", "enabled": True, "fallbackForwardDepartment": "nope"}))

    assert excinfo.value.error == "error-fallback-department-not-found"


def test_invalid_agent_entries_are_rejected(writer):
    department = run(writer.save_department(None, {"name": "Sales", "enabled": True}))

    with pytest.raises(LivechatError) as excinfo:
        run(writer.save_department_agents(department.id, {"upsert": [42]}))

    assert excinfo.value.error == "error-invalid-agents"


def test_upsert_updates_existing_assignment(writer, lookup):
    department = run(writer.save_department(None, {"name": "Sales", "enabled": True}, {"upsert": ["u-agent1"]}))

    run(writer.save_department_agents(department.id, {"upsert": [{"agentId": "u-agent1", "count": 3}]}))

    snapshot = run(lookup.find_department_with_agents(department.id))
    assert len(snapshot["agents"]) == 1
    assert snapshot["agents"][0].count == 3
    assert snapshot["department"].num_agents == 1


def test_unknown_agent_is_stored_without_username(writer, lookup):
    department = run(writer.save_department(None, {"name": "Sales", "enabled": True}, {"upsert": ["external"]}))

    agents = run(lookup.find_department_with_agents(department.id))["agents"]

    assert agents[0].agent_id == "external"
    assert agents[0].username is None


def test_remove_unknown_department_returns_false(writer):
    assert run(writer.remove_department("missing")) is False


def test_find_by_id_with_only_my_departments(writer, lookup):
    department = run(writer.save_department(None, {"name": "Sales", "enabled": True}, {"upsert": ["u-agent1"]}))

    mine = run(lookup.find_department_by_id(user_id="u-agent1", department_id=department.id, only_my_departments=True))
    theirs = run(lookup.find_department_by_id(user_id="u-agent2", department_id=department.id, only_my_departments=True))

    assert mine["department"].id == department.id
    assert theirs == {"department": None, "agents": None}


def test_autocomplete_ignores_unsupported_conditions(writer, lookup):
    run(writer.save_department(None, {"name": "Sales", "enabled": True}))

    result = run(
        lookup.autocomplete(
            user_id="u-manager",
            selector=AutocompleteSelector(term="SAL", conditions={"color": "blue"}),
        )
    )

    assert [item.name for item in result["items"]] == ["Sales"]


def test_list_departments_sorts_by_whitelisted_fields(writer, lookup):
    for name in ["B", "A", "C"]:
        run(writer.save_department(None, {"name": name, "enabled": True}))

    result = run(
        lookup.list_departments(
            user_id="u-manager",
            pagination=PaginationSpec(offset=0, count=10, sort=[("unknownField", 1), ("name", -1)]),
        )
    )

    assert [d.name for d in result["departments"]] == ["C", "B", "A"]
    assert result["total"] == 3


def test_list_by_ids_with_empty_ids(lookup):
    assert run(lookup.list_departments_by_ids(ids=[])) == {"departments": []}
