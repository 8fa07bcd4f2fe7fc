"""
Main entrypoint for the Livechat Departments API.

This module assembles the FastAPI application, sets up logging and
includes versioned routers.  The ``create_app`` function builds and
configures the app, which is then instantiated at module import time
as ``app``, e.g.::

    uvicorn livechat_api.app.main:app --reload
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.db import init_db
from .core.errors import LivechatError
from .core.logging_config import setup_logging
from .api.v1.router import router as v1_router


logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure a FastAPI application.

    Configures logging, mounts the v1 router under ``/api/v1``,
    registers the handler that renders ``LivechatError`` as a failure
    envelope and initialises the database on startup.
    """
    setup_logging(settings.log_level, settings.log_file or None, access_log=settings.log_access)

    app = FastAPI(title=settings.project_name, version=settings.api_version, debug=settings.debug)
    app.include_router(v1_router, prefix="/api/v1")

    @app.exception_handler(LivechatError)
    async def livechat_error_handler(request: Request, exc: LivechatError) -> JSONResponse:
        logger.info("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": str(exc), "errorType": exc.error},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        # Creates the database file if needed and applies pending migrations.
        init_db()

    return app


app = create_app()
