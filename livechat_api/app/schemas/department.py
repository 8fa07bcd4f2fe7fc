"""
Pydantic schemas for livechat departments and their agents.

Field names are snake_case in Python and camelCase on the wire; the
document identifiers are exposed as ``_id`` to match the shape the web
clients already consume.  Request schemas are validated explicitly by
the resource layer (after the permission gate), so FastAPI never sees
them as body parameters.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class DepartmentData(BaseModel):
    """Department fields accepted on create and update."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1)
    enabled: bool
    description: Optional[str] = None
    email: Optional[str] = None
    show_on_registration: bool = Field(True, alias="showOnRegistration")
    show_on_offline_form: bool = Field(True, alias="showOnOfflineForm")
    request_tag_before_closing_chat: bool = Field(False, alias="requestTagBeforeClosingChat")
    chat_closing_tags: Optional[List[str]] = Field(None, alias="chatClosingTags")
    fallback_forward_department: Optional[str] = Field(None, alias="fallbackForwardDepartment")


class DepartmentAgentIn(BaseModel):
    """An agent reference in an ``upsert``/``remove`` list.

    Accepts either a bare agent id or an object with ``agentId``.
    """

    model_config = ConfigDict(populate_by_name=True)

    agent_id: str = Field(..., alias="agentId", min_length=1)
    username: Optional[str] = None
    count: int = 0
    order: int = 0

    @model_validator(mode="before")
    @classmethod
    def coerce_agent_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"agentId": value}
        return value


class DepartmentAgentsUpdate(BaseModel):
    upsert: List[DepartmentAgentIn] = Field(default_factory=list)
    remove: List[DepartmentAgentIn] = Field(default_factory=list)


class DepartmentRead(BaseModel):
    """A stored department document."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: str
    enabled: bool
    description: Optional[str] = None
    email: Optional[str] = None
    show_on_registration: bool = Field(True, alias="showOnRegistration")
    show_on_offline_form: bool = Field(True, alias="showOnOfflineForm")
    request_tag_before_closing_chat: bool = Field(False, alias="requestTagBeforeClosingChat")
    chat_closing_tags: Optional[List[str]] = Field(None, alias="chatClosingTags")
    fallback_forward_department: Optional[str] = Field(None, alias="fallbackForwardDepartment")
    num_agents: int = Field(0, alias="numAgents")
    updated_at: Optional[str] = Field(None, alias="_updatedAt")


class DepartmentAgentRead(BaseModel):
    """An agent assignment of a department."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    agent_id: str = Field(..., alias="agentId")
    department_id: str = Field(..., alias="departmentId")
    username: Optional[str] = None
    count: int = 0
    order: int = 0
    department_enabled: bool = Field(True, alias="departmentEnabled")


class DepartmentAutocompleteItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    name: str


# ---------------------------------------------------------------------------
# Request shapes checked by the resource layer
# ---------------------------------------------------------------------------


class DepartmentBody(BaseModel):
    """Body of ``POST``/``PUT`` department requests."""

    department: Dict[str, Any]
    agents: Optional[List[Any]] = None


class DepartmentAgentsBody(BaseModel):
    """Body of ``POST .../agents``; extra keys are tolerated."""

    model_config = ConfigDict(extra="allow")

    upsert: List[Any]
    remove: List[Any]


class AutocompleteSelector(BaseModel):
    model_config = ConfigDict(extra="ignore")

    term: str = ""
    exceptions: List[str] = Field(default_factory=list)
    conditions: Dict[str, Any] = Field(default_factory=dict)


_TYPE_MESSAGES = {
    "missing": "is required",
    "list_type": "must be an array",
    "dict_type": "must be an object",
    "model_type": "must be an object",
    "model_attributes_type": "must be an object",
    "string_type": "must be a string",
    "bool_type": "must be a boolean",
    "bool_parsing": "must be a boolean",
    "int_type": "must be an integer",
    "int_parsing": "must be an integer",
    "string_too_short": "must not be empty",
}


def describe_validation_error(exc: ValidationError) -> str:
    """Render the first validation error as ``"<field> <problem>"``."""
    first = exc.errors()[0]
    field_path = ".".join(str(part) for part in first.get("loc", ())) or "body"
    problem = _TYPE_MESSAGES.get(first.get("type"), "is invalid")
    return f"{field_path} {problem}"
