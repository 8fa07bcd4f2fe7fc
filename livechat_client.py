"""Livechat Departments API client.

A thin wrapper around the department endpoints using the ``requests``
library.  Every method returns a tuple ``(data, error)``: on success
``data`` holds the decoded JSON envelope (without interpretation) and
``error`` is ``None``; on failure ``data`` is ``None`` and ``error`` is a
dictionary with ``status_code`` and ``message``.

The client sends the access token in the ``Authorization`` header::

    api = LivechatAPI(base_url="http://localhost:8000/api/v1", api_key=token)
    departments, error = api.list_departments(text="sales", count=20)
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests


logger = logging.getLogger(__name__)

Result = Tuple[Optional[Any], Optional[Dict[str, Any]]]


def _flag(value: Optional[bool]) -> Optional[str]:
    if value is None:
        return None
    return "true" if value else "false"


def _drop_none(params: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None}


class LivechatAPI:
    """Client for the livechat department endpoints."""

    def __init__(
        self,
        *,
        base_url: str,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ) -> None:
        """Initialise the API client.

        Args:
            base_url: Base URL including the version prefix, e.g.
                ``https://example.com/api/v1``.
            api_key: Optional access token sent as ``Bearer <api_key>``.
            session: Optional requests session.  If not supplied a
                session will be created automatically.
            timeout: Per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Low level HTTP helpers
    # ------------------------------------------------------------------
    def _request(
        self, method: str, path: str, *, params: Dict[str, Any] | None = None,
        json_body: Any | None = None
    ) -> Result:
        """Perform an HTTP request to the API.

        Returns ``(data, None)`` with the parsed JSON on success and
        ``(None, {"status_code", "message"})`` on failure.  The message
        is taken from the envelope's ``error`` (or FastAPI's ``detail``).
        """
        url = f"{self.base_url}{path}"
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            logger.debug("Sending %s request to %s", method, url)
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            if response.content:
                return response.json(), None
            return None, None
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            message = ""
            if exc.response is not None:
                try:
                    err_json = exc.response.json()
                    message = err_json.get("error") or err_json.get("detail") or str(err_json)
                except ValueError:
                    message = exc.response.text
            if not message:
                message = str(exc)
            logger.error("API request failed (%s): %s", status, message)
            return None, {"status_code": status, "message": message}
        except requests.RequestException as exc:
            logger.error("API request failed: %s", exc)
            return None, {"status_code": None, "message": str(exc)}

    @staticmethod
    def _paging(offset: Optional[int], count: Optional[int], sort: Optional[Dict[str, int]]) -> Dict[str, Any]:
        return {
            "offset": offset,
            "count": count,
            "sort": json.dumps(sort) if sort else None,
        }

    # ------------------------------------------------------------------
    # Department operations
    # ------------------------------------------------------------------
    def list_departments(
        self,
        *,
        text: Optional[str] = None,
        enabled: Optional[bool] = None,
        only_my_departments: Optional[bool] = None,
        exclude_department_id: Optional[str] = None,
        offset: Optional[int] = None,
        count: Optional[int] = None,
        sort: Optional[Dict[str, int]] = None,
    ) -> Result:
        params = {
            "text": text,
            "enabled": _flag(enabled),
            "onlyMyDepartments": _flag(only_my_departments),
            "excludeDepartmentId": exclude_department_id,
            **self._paging(offset, count, sort),
        }
        return self._request("GET", "/livechat/department", params=_drop_none(params))

    def create_department(self, department: Dict[str, Any], agents: Optional[List[Any]] = None) -> Result:
        body: Dict[str, Any] = {"department": department}
        if agents is not None:
            body["agents"] = agents
        return self._request("POST", "/livechat/department", json_body=body)

    def get_department(
        self,
        department_id: str,
        *,
        include_agents: Optional[bool] = None,
        only_my_departments: Optional[bool] = None,
    ) -> Result:
        params = {
            "includeAgents": _flag(include_agents),
            "onlyMyDepartments": _flag(only_my_departments),
        }
        return self._request("GET", f"/livechat/department/{department_id}", params=_drop_none(params))

    def update_department(
        self, department_id: str, department: Dict[str, Any], agents: Optional[List[Any]] = None
    ) -> Result:
        body: Dict[str, Any] = {"department": department}
        if agents is not None:
            body["agents"] = agents
        return self._request("PUT", f"/livechat/department/{department_id}", json_body=body)

    def delete_department(self, department_id: str) -> Result:
        return self._request("DELETE", f"/livechat/department/{department_id}")

    def autocomplete(
        self,
        term: str = "",
        *,
        exceptions: Optional[List[str]] = None,
        conditions: Optional[Dict[str, Any]] = None,
        only_my_departments: Optional[bool] = None,
    ) -> Result:
        selector = {"term": term, "exceptions": exceptions or [], "conditions": conditions or {}}
        params = {
            "selector": json.dumps(selector),
            "onlyMyDepartments": _flag(only_my_departments),
        }
        return self._request("GET", "/livechat/department.autocomplete", params=_drop_none(params))

    def list_department_agents(
        self,
        department_id: str,
        *,
        offset: Optional[int] = None,
        count: Optional[int] = None,
        sort: Optional[Dict[str, int]] = None,
    ) -> Result:
        return self._request(
            "GET",
            f"/livechat/department/{department_id}/agents",
            params=_drop_none(self._paging(offset, count, sort)),
        )

    def save_department_agents(
        self,
        department_id: str,
        *,
        upsert: Optional[List[Any]] = None,
        remove: Optional[List[Any]] = None,
    ) -> Result:
        body = {"upsert": upsert or [], "remove": remove or []}
        return self._request("POST", f"/livechat/department/{department_id}/agents", json_body=body)

    def list_departments_by_ids(self, ids: List[str], *, fields: Optional[Dict[str, int]] = None) -> Result:
        # ``ids[]`` keeps a single id an array on the server side.
        params: Dict[str, Any] = {"ids[]": list(ids)}
        if fields:
            params["fields"] = json.dumps(fields)
        return self._request("GET", "/livechat/department.listByIds", params=params)
