"""
Request handling for livechat departments.

``DepartmentResource`` sits between the HTTP routes and the department
services.  Every operation follows the same steps:

1. check the caller's permissions, returning ``Unauthorized`` before
   anything else happens;
2. validate the shape of the required parameters, returning a
   ``Failure`` naming the offending field;
3. call the lookup or write service;
4. wrap the result in an envelope.

The resource holds no state besides its collaborators, which are
injected through the constructor.
"""

import json
import logging
from typing import Any, Dict, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from livechat_api.app.core import permissions as perms
from livechat_api.app.core.errors import LivechatError
from livechat_api.app.core.request_context import RequestContext, RequestParamError
from livechat_api.app.core.responses import Envelope, Failure, Success, Unauthorized
from livechat_api.app.schemas.department import (
    AutocompleteSelector,
    DepartmentAgentsBody,
    DepartmentBody,
    describe_validation_error,
)
from livechat_api.app.services.department_lookup_service import DepartmentLookupService
from livechat_api.app.services.department_write_service import DepartmentWriteService
from livechat_api.app.services.permission_service import PermissionService


logger = logging.getLogger(__name__)

VIEW_PERMISSIONS = [perms.VIEW_DEPARTMENTS, perms.VIEW_ROOM]

# Id lists become one SQL placeholder per element.
MAX_ID_LIST_LENGTH = 500

ModelT = TypeVar("ModelT", bound=BaseModel)


class InvalidRequest(ValueError):
    """Request parameters failed shape validation."""


def _parse_body(model: Type[ModelT], body: Any) -> ModelT:
    if not isinstance(body, dict):
        raise InvalidRequest("Request body must be a JSON object")
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequest(describe_validation_error(exc)) from exc


def _url_param(context: RequestContext, name: str) -> str:
    value = context.url_params.get(name)
    if not isinstance(value, str) or not value:
        raise InvalidRequest(f"{name} is required")
    return value


class DepartmentResource:
    """Department endpoints expressed as plain async methods."""

    def __init__(
        self,
        permissions: PermissionService,
        lookup: DepartmentLookupService,
        writer: DepartmentWriteService,
    ) -> None:
        self.permissions = permissions
        self.lookup = lookup
        self.writer = writer

    async def _can_any(self, context: RequestContext, permission_names: Iterable[str]) -> bool:
        return await self.permissions.has_at_least_one_permission(context.user_id, list(permission_names))

    async def list_departments(self, context: RequestContext) -> Envelope:
        if not await self._can_any(context, VIEW_PERMISSIONS):
            return Unauthorized()
        try:
            pagination = context.get_pagination()
        except RequestParamError as exc:
            return Failure(str(exc))

        result = await self.lookup.list_departments(
            user_id=context.user_id,
            pagination=pagination,
            text=context.query_params.get("text") or None,
            enabled=context.query_flag("enabled"),
            only_my_departments=context.query_flag("onlyMyDepartments"),
            exclude_department_id=context.query_params.get("excludeDepartmentId") or None,
        )
        departments = result["departments"]
        return Success(
            {
                "departments": departments,
                "count": len(departments),
                "offset": pagination.offset,
                "total": result["total"],
            }
        )

    async def create_department(self, context: RequestContext) -> Envelope:
        if not await self.permissions.has_permission(context.user_id, perms.MANAGE_DEPARTMENTS):
            return Unauthorized()
        try:
            body = _parse_body(DepartmentBody, context.body_params)
        except InvalidRequest as exc:
            return Failure(str(exc))

        agents = {"upsert": body.agents} if body.agents else {}
        department = await self.writer.save_department(None, body.department, agents)
        if not department:
            return Failure()
        snapshot = await self.lookup.find_department_with_agents(department.id)
        return Success({"department": department, "agents": snapshot["agents"]})

    async def get_department(self, context: RequestContext) -> Envelope:
        if not await self._can_any(context, VIEW_PERMISSIONS):
            return Unauthorized()
        try:
            department_id = _url_param(context, "_id")
        except InvalidRequest as exc:
            return Failure(str(exc))

        include_agents = context.query_flag("includeAgents") and await self.permissions.has_permission(
            context.user_id, perms.VIEW_DEPARTMENTS
        )
        result = await self.lookup.find_department_by_id(
            user_id=context.user_id,
            department_id=department_id,
            include_agents=include_agents,
            only_my_departments=context.query_flag("onlyMyDepartments"),
        )
        # An unknown department is not an error: clients rely on the empty
        # payload to render the "new department" form.
        return Success({"department": result["department"], "agents": result["agents"]})

    async def update_department(self, context: RequestContext) -> Envelope:
        permission_to_save = await self.permissions.has_permission(context.user_id, perms.MANAGE_DEPARTMENTS)
        permission_to_add_agents = await self.permissions.has_permission(
            context.user_id, perms.ADD_DEPARTMENT_AGENTS
        )
        if not permission_to_save and not permission_to_add_agents:
            return Unauthorized()
        try:
            department_id = _url_param(context, "_id")
            body = _parse_body(DepartmentBody, context.body_params)
        except InvalidRequest as exc:
            return Failure(str(exc))

        # None until one of the writes runs; a request that writes nothing fails.
        saved = None
        try:
            if permission_to_save:
                saved = bool(await self.writer.save_department(department_id, body.department))
            if saved is not False and body.agents is not None and permission_to_add_agents:
                saved = bool(await self.writer.save_department_agents(department_id, {"upsert": body.agents}))
        except LivechatError as exc:
            logger.info("Update of department %s rejected: %s", department_id, exc)
            return Failure.from_error(exc)

        if not saved:
            return Failure()
        snapshot = await self.lookup.find_department_with_agents(department_id)
        return Success(snapshot)

    async def delete_department(self, context: RequestContext) -> Envelope:
        if not await self._can_any(context, [perms.MANAGE_DEPARTMENTS, perms.REMOVE_DEPARTMENT]):
            return Unauthorized()
        try:
            department_id = _url_param(context, "_id")
        except InvalidRequest as exc:
            return Failure(str(exc))

        try:
            removed = await self.writer.remove_department(department_id)
        except LivechatError as exc:
            logger.info("Removal of department %s rejected: %s", department_id, exc)
            return Failure.from_error(exc)
        if removed:
            return Success()
        return Failure()

    async def autocomplete(self, context: RequestContext) -> Envelope:
        if not await self._can_any(context, VIEW_PERMISSIONS):
            return Unauthorized()
        raw_selector = context.query_params.get("selector")
        if not raw_selector:
            return Failure("The 'selector' param is required")
        try:
            selector = AutocompleteSelector.model_validate(json.loads(raw_selector))
        except (TypeError, ValueError):
            # ValidationError is a ValueError subclass
            return Failure("The 'selector' param must be a valid JSON object")
        if len(selector.exceptions) > MAX_ID_LIST_LENGTH:
            return Failure(f"The 'selector.exceptions' list must not contain more than {MAX_ID_LIST_LENGTH} items")

        result = await self.lookup.autocomplete(
            user_id=context.user_id,
            selector=selector,
            only_my_departments=context.query_flag("onlyMyDepartments"),
        )
        return Success(result)

    async def list_department_agents(self, context: RequestContext) -> Envelope:
        if not await self._can_any(context, VIEW_PERMISSIONS):
            return Unauthorized()
        try:
            department_id = _url_param(context, "departmentId")
            pagination = context.get_pagination()
        except (InvalidRequest, RequestParamError) as exc:
            return Failure(str(exc))

        result = await self.lookup.list_department_agents(department_id=department_id, pagination=pagination)
        return Success(result)

    async def save_department_agents(self, context: RequestContext) -> Envelope:
        if not await self._can_any(context, [perms.MANAGE_DEPARTMENTS, perms.ADD_DEPARTMENT_AGENTS]):
            return Unauthorized()
        try:
            department_id = _url_param(context, "departmentId")
            body = _parse_body(DepartmentAgentsBody, context.body_params)
        except InvalidRequest as exc:
            return Failure(str(exc))

        await self.writer.save_department_agents(department_id, {"upsert": body.upsert, "remove": body.remove})
        return Success()

    async def list_departments_by_ids(self, context: RequestContext) -> Envelope:
        if not await self._can_any(context, VIEW_PERMISSIONS):
            return Unauthorized()
        try:
            fields: Optional[Dict[str, Any]] = context.parse_json_query()["fields"]
        except RequestParamError as exc:
            return Failure(str(exc))
        ids = context.query_params.get("ids")
        if not ids:
            return Failure("The 'ids' param is required")
        if not isinstance(ids, list):
            return Failure("The 'ids' param must be an array")
        if len(ids) > MAX_ID_LIST_LENGTH:
            return Failure(f"The 'ids' param must not contain more than {MAX_ID_LIST_LENGTH} items")

        result = await self.lookup.list_departments_by_ids(ids=ids, fields=fields)
        return Success(result)
