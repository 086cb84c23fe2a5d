"""
Request context middleware.

WHAT: Middleware that captures per-request context (request id, client IP,
user agent and the organization/hostel the client has selected) and makes it
available for the whole request lifecycle.

WHY: Audit rows written deep inside the access guard and the membership
services need the client IP and user agent without threading a Request object
through every call. The selected organization/hostel headers let a principal
with several tenancies narrow their scope for one request.

HOW: Stores the context on request.state and in a ContextVar so services can
read it with get_request_context(). Non-HTTP callers (jobs, tests) use
bind_request_context().
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ORGANIZATION_HEADER = "X-Organization-Id"
HOSTEL_HEADER = "X-Hostel-Id"


@dataclass(frozen=True)
class RequestContext:
    """
    Container for request-scoped context data.

    Fields:
    - request_id: Unique identifier for the request (for log correlation)
    - ip_address: Client's real IP (considering proxies)
    - user_agent: Client's browser/application identifier
    - path / method: What was requested
    - selected_organization_id / selected_hostel_id: Optional tenancy
      context chosen by the client; only ever used to narrow scope
    """

    request_id: str
    ip_address: str
    user_agent: Optional[str]
    path: str
    method: str
    selected_organization_id: Optional[int] = None
    selected_hostel_id: Optional[int] = None


# WHY: ContextVar gives each async request its own isolated context
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Get the current request context.

    Returns:
        RequestContext if within a request, None otherwise
    """
    return _request_context.get()


@contextmanager
def bind_request_context(context: RequestContext) -> Iterator[RequestContext]:
    """Bind a context outside of HTTP handling, restoring the previous one on exit."""
    token = _request_context.set(context)
    try:
        yield context
    finally:
        _request_context.reset(token)


def get_client_ip(request: Request) -> str:
    """
    Extract the real client IP address from a request.

    HOW: Checks headers in order of trust:
    1. X-Real-IP (set by some proxies like nginx)
    2. X-Forwarded-For (comma-separated list, first is original client)
    3. request.client.host (direct connection IP)

    Security Note:
        These headers can be spoofed by clients if not behind a trusted proxy.
    """
    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip:
        return x_real_ip.strip()

    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        # Format: "client, proxy1, proxy2"
        return x_forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("User-Agent")


def parse_tenant_header(value: Optional[str]) -> Optional[int]:
    """
    Parse a selected organization/hostel header.

    A malformed value is treated as "nothing selected". It can only ever
    narrow scope, so ignoring garbage never widens access.
    """
    if value is None:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    return int(value)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures and stores request context.

    Stores context in both:
    - request.state (for access from request handlers)
    - ContextVar (for access from services/DAOs without request object)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        context = RequestContext(
            request_id=request_id,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
            path=request.url.path,
            method=request.method,
            selected_organization_id=parse_tenant_header(request.headers.get(ORGANIZATION_HEADER)),
            selected_hostel_id=parse_tenant_header(request.headers.get(HOSTEL_HEADER)),
        )

        request.state.context = context
        token = _request_context.set(context)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            _request_context.reset(token)
