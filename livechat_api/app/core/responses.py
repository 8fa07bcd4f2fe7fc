"""
Response envelopes shared by every livechat endpoint.

Handlers never build HTTP responses directly.  They return one of
``Success``, ``Failure`` or ``Unauthorized`` and the router renders it
with ``render_envelope``:

* ``Success``      -> 200 ``{"success": true, **payload}``
* ``Failure``      -> 400 ``{"success": false, "error": ...}``
* ``Unauthorized`` -> 403 ``{"success": false, "error": "unauthorized"}``

Payload values may be pydantic models; they are serialised by alias and
``None`` values are dropped, so an unset field is absent from the JSON.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .errors import LivechatError


@dataclass
class Success:
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Failure:
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def from_error(cls, exc: LivechatError) -> "Failure":
        return cls(error=str(exc), error_type=exc.error)


@dataclass
class Unauthorized:
    error: str = "unauthorized"


Envelope = Union[Success, Failure, Unauthorized]


def render_envelope(envelope: Envelope) -> JSONResponse:
    """Convert an envelope into the JSON response sent to the client."""
    if isinstance(envelope, Success):
        body = {"success": True}
        body.update(jsonable_encoder(envelope.payload, by_alias=True, exclude_none=True))
        return JSONResponse(status_code=status.HTTP_200_OK, content=body)
    if isinstance(envelope, Unauthorized):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"success": False, "error": envelope.error},
        )
    body = {"success": False}
    if envelope.error is not None:
        body["error"] = envelope.error
    if envelope.error_type is not None:
        body["errorType"] = envelope.error_type
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)
