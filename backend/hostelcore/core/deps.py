"""
FastAPI dependencies for authentication and access scope.

WHY: Any HTTP layer mounted on the core gets the principal and its scope
the same way: the principal from the bearer token, the scope resolved fresh
from the membership graph on every request (never cached on the token).
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from hostelcore.access.resolver import ScopeResolver
from hostelcore.access.scope import AccessScope, Operation, ScopeTarget
from hostelcore.core.auth import JWTAuthProvider
from hostelcore.core.exceptions import AuthenticationError, TokenExpiredError, TokenInvalidError
from hostelcore.db.session import get_db
from hostelcore.middleware.request_context import RequestContext

# HTTP Bearer token security scheme
# Format: "Authorization: Bearer <token>"
security = HTTPBearer()


async def get_current_principal_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> int:
    """
    Get the authenticated principal id from the JWT.

    Raises:
        AuthenticationError: If the token is invalid, expired, or the user
            no longer exists or is inactive
    """
    try:
        return await JWTAuthProvider(db).principal_for(credentials.credentials)
    except (TokenExpiredError, TokenInvalidError) as e:
        # WHY: Re-raise as AuthenticationError for consistent API responses
        raise AuthenticationError(message=str(e), status_code=e.status_code)


def _selected_target(request: Request) -> Optional[ScopeTarget]:
    context: Optional[RequestContext] = getattr(request.state, "context", None)
    if context is None:
        return None
    target = ScopeTarget(
        organization_id=context.selected_organization_id,
        hostel_id=context.selected_hostel_id,
    )
    return None if target.is_empty else target


def access_scope(operation: Operation):
    """
    Factory for a dependency resolving the principal's scope.

    Usage:
        @router.get("/leaves")
        async def list_leaves(scope: AccessScope = Depends(access_scope(Operation.READ))):
            ...
    """

    async def resolve_scope(
        request: Request,
        principal_id: int = Depends(get_current_principal_id),
        db: AsyncSession = Depends(get_db),
    ) -> AccessScope:
        return await ScopeResolver(db).resolve(
            principal_id, operation, target=_selected_target(request)
        )

    return resolve_scope


get_access_scope = access_scope(Operation.READ)
get_write_scope = access_scope(Operation.WRITE)
