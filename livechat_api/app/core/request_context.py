"""
Per-request context handed to resource handlers.

``RequestContext`` carries the authenticated user id and the parsed
query, body and URL parameters.  It also implements the pagination and
JSON-query conventions shared by all list endpoints:

* ``offset`` / ``count`` query parameters (``get_pagination_items``)
* ``sort`` and ``fields`` given as JSON objects (``parse_json_query``)

Query strings follow the bracket convention used by the web clients:
``ids[]=a&ids[]=b`` and ``ids=a&ids=b`` both yield a list, a single
``ids=a`` stays a plain string.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import settings


class RequestParamError(ValueError):
    """A query parameter could not be parsed."""


@dataclass
class PaginationSpec:
    offset: int = 0
    count: int = 50
    sort: List[Tuple[str, int]] = field(default_factory=list)


def parse_query_params(items: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """Collapse raw ``(key, value)`` pairs into a parameter dictionary."""
    params: Dict[str, Any] = {}
    for raw_key, value in items:
        is_array = raw_key.endswith("[]")
        key = raw_key[:-2] if is_array else raw_key
        if key in params:
            existing = params[key]
            if not isinstance(existing, list):
                existing = [existing]
            existing.append(value)
            params[key] = existing
        elif is_array:
            params[key] = [value]
        else:
            params[key] = value
    return params


def _parse_json_param(raw: Any, name: str) -> Optional[Dict[str, Any]]:
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw) if isinstance(raw, str) else None
    except ValueError:
        value = None
    if not isinstance(value, dict):
        raise RequestParamError(f"Invalid {name} parameter provided")
    return value


def _parse_sort(raw: Any) -> List[Tuple[str, int]]:
    sort = _parse_json_param(raw, "sort")
    if not sort:
        return []
    pairs: List[Tuple[str, int]] = []
    for key, direction in sort.items():
        if isinstance(direction, str) and direction.lower() in {"asc", "desc"}:
            pairs.append((key, 1 if direction.lower() == "asc" else -1))
        elif direction in (1, -1) and not isinstance(direction, bool):
            pairs.append((key, int(direction)))
        else:
            raise RequestParamError("Invalid sort parameter provided")
    return pairs


def _parse_int(raw: Any, label: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise RequestParamError(f"{label} is not a valid number")


@dataclass
class RequestContext:
    user_id: str
    query_params: Dict[str, Any] = field(default_factory=dict)
    body_params: Any = None
    url_params: Dict[str, str] = field(default_factory=dict)

    def query_flag(self, name: str) -> bool:
        """Boolean query parameters are true only for the literal ``"true"``."""
        return self.query_params.get(name) == "true"

    def get_pagination_items(self) -> Tuple[int, int]:
        """Return ``(offset, count)`` with defaults and the upper limit applied."""
        raw_offset = self.query_params.get("offset")
        raw_count = self.query_params.get("count")
        offset = _parse_int(raw_offset, "Offset") if raw_offset not in (None, "") else 0
        if offset < 0:
            raise RequestParamError("Offset is not a valid number")
        if raw_count in (None, ""):
            count = settings.api_default_count
        else:
            count = _parse_int(raw_count, "Count")
            if count < 1:
                raise RequestParamError("Count is not a valid number")
        return offset, min(count, settings.api_upper_count_limit)

    def parse_json_query(self) -> Dict[str, Any]:
        """Parse the ``sort`` and ``fields`` JSON query parameters."""
        return {
            "sort": _parse_sort(self.query_params.get("sort")),
            "fields": _parse_json_param(self.query_params.get("fields"), "fields"),
        }

    def get_pagination(self) -> PaginationSpec:
        offset, count = self.get_pagination_items()
        return PaginationSpec(offset=offset, count=count, sort=self.parse_json_query()["sort"])


def build_order_by(sort: List[Tuple[str, int]], columns: Dict[str, str], default: str) -> str:
    """Translate sort pairs into an ``ORDER BY`` clause.

    Only fields listed in ``columns`` (API name -> column) are used;
    unknown fields are ignored.  Falls back to ``default``.
    """
    parts = [
        f"{columns[name]} {'ASC' if direction == 1 else 'DESC'}"
        for name, direction in sort
        if name in columns
    ]
    return ", ".join(parts) if parts else default
