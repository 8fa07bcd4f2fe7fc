"""
Livechat department endpoints for API v1.

Routes only translate HTTP into a ``RequestContext``, hand it to
``DepartmentResource`` and render the returned envelope.  Permission
checks and validation live in the resource; authentication (a valid
bearer token) is enforced here through ``get_current_user``.

Collaborators are provided by the ``get_*`` dependencies below so that
tests can replace them through ``app.dependency_overrides``.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from livechat_api.app.core.request_context import RequestContext, parse_query_params
from livechat_api.app.core.responses import render_envelope
from livechat_api.app.core.security import get_current_user
from livechat_api.app.resources.departments import DepartmentResource
from livechat_api.app.services.department_lookup_service import DepartmentLookupService
from livechat_api.app.services.department_write_service import DepartmentWriteService
from livechat_api.app.services.permission_service import PermissionService


logger = logging.getLogger(__name__)

router = APIRouter()


def get_permission_service() -> PermissionService:
    return PermissionService()


def get_lookup_service() -> DepartmentLookupService:
    return DepartmentLookupService()


def get_write_service() -> DepartmentWriteService:
    return DepartmentWriteService()


def get_department_resource(
    permissions: PermissionService = Depends(get_permission_service),
    lookup: DepartmentLookupService = Depends(get_lookup_service),
    writer: DepartmentWriteService = Depends(get_write_service),
) -> DepartmentResource:
    return DepartmentResource(permissions, lookup, writer)


async def get_request_context(
    request: Request,
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> RequestContext:
    """Build the ``RequestContext`` for the authenticated caller.

    A body that is not valid JSON is passed on as ``None``; the
    resource reports it as a validation failure after the permission
    check.
    """
    body: Any = None
    if request.method in {"POST", "PUT"}:
        raw = await request.body()
        if raw:
            try:
                body = json.loads(raw)
            except ValueError:
                logger.debug("Ignoring non-JSON body on %s %s", request.method, request.url.path)
    return RequestContext(
        user_id=current_user["user_id"],
        query_params=parse_query_params(request.query_params.multi_items()),
        body_params=body,
        url_params=dict(request.path_params),
    )


@router.get("/livechat/department")
async def list_departments(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    """List departments with optional ``text``/``enabled``/``onlyMyDepartments`` filters."""
    return render_envelope(await resource.list_departments(context))


@router.post("/livechat/department")
async def create_department(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    """Create a department, optionally with its initial agents."""
    return render_envelope(await resource.create_department(context))


@router.get("/livechat/department.autocomplete")
async def autocomplete_departments(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    return render_envelope(await resource.autocomplete(context))


@router.get("/livechat/department.listByIds")
async def list_departments_by_ids(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    return render_envelope(await resource.list_departments_by_ids(context))


@router.get("/livechat/department/{_id}")
async def get_department(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    """Fetch one department.

    An unknown id still answers ``{"success": true}`` without
    ``department``/``agents``.
    """
    return render_envelope(await resource.get_department(context))


@router.put("/livechat/department/{_id}")
async def update_department(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    return render_envelope(await resource.update_department(context))


@router.delete("/livechat/department/{_id}")
async def delete_department(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    return render_envelope(await resource.delete_department(context))


@router.get("/livechat/department/{departmentId}/agents")
async def list_department_agents(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    return render_envelope(await resource.list_department_agents(context))


@router.post("/livechat/department/{departmentId}/agents")
async def save_department_agents(
    context: RequestContext = Depends(get_request_context),
    resource: DepartmentResource = Depends(get_department_resource),
) -> JSONResponse:
    """Add (``upsert``) and remove agents of a department."""
    return render_envelope(await resource.save_department_agents(context))
