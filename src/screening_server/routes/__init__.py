"""Route registration — mounts all routers under ``/api/v1``."""

from fastapi import FastAPI

from screening_server.routes.fast_path import router as fast_path_router
from screening_server.routes.programs import router as programs_router
from screening_server.routes.sessions import router as sessions_router
from screening_server.routes.steps import router as steps_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    """Include all sub-routers under the versioned API prefix."""
    app.include_router(sessions_router, prefix=API_PREFIX)
    app.include_router(steps_router, prefix=API_PREFIX)
    app.include_router(fast_path_router, prefix=API_PREFIX)
    app.include_router(programs_router, prefix=API_PREFIX)
