"""
FastAPI application hosting the access core.

WHY: The core has no controllers of its own. This app wires the request
context middleware and the exception handlers that any HTTP layer built on
top needs, and exposes the caller's resolved scope for clients choosing an
organization/hostel context.
"""

from typing import Any, Dict

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from hostelcore.access.scope import AccessScope
from hostelcore.core.config import settings
from hostelcore.core.deps import get_access_scope
from hostelcore.core.exception_handlers import (
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from hostelcore.core.exceptions import AppException
from hostelcore.middleware import RequestContextMiddleware


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    WHY: Factory pattern allows tests to build isolated app instances.
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
    )

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Captures request id, client ip, user agent and the selected
    # organization/hostel headers for audit logging and scope narrowing
    app.add_middleware(RequestContextMiddleware)

    @app.get("/health", tags=["health"])
    async def health_check() -> Dict[str, str]:
        return {"status": "healthy", "version": settings.VERSION}

    @app.get("/api/scope", tags=["access"])
    async def current_scope(scope: AccessScope = Depends(get_access_scope)) -> Dict[str, Any]:
        """Organizations, hostels and roles the caller can currently read."""
        return {
            "principal_id": scope.principal_id,
            "organization_ids": sorted(scope.organization_ids),
            "hostel_ids": sorted(scope.hostel_ids),
            "student_ids": sorted(scope.student_ids),
            "is_org_admin_for": sorted(scope.is_org_admin_for),
            "hostel_roles": {
                str(hostel_id): sorted(role.value for role in roles)
                for hostel_id, roles in scope.hostel_roles.items()
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "hostelcore.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
