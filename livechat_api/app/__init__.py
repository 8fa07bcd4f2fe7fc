"""
Application package initializer.

The project is organised into layers: ``core`` (configuration,
logging, persistence, security and the shared request/response
conventions), ``schemas`` (pydantic models), ``services`` (lookup,
write and permission collaborators), ``resources`` (request handling)
and ``api`` (versioned FastAPI routers).
"""

from .main import app  # noqa: F401
