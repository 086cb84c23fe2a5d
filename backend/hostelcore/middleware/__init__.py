"""
Middleware package.

WHY: Middleware provides cross-cutting concerns that apply to all requests;
here, the request context consumed by audit logging and scope narrowing.
"""

from hostelcore.middleware.request_context import (
    RequestContextMiddleware,
    RequestContext,
    bind_request_context,
    get_request_context,
    get_client_ip,
    get_user_agent,
    parse_tenant_header,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestContext",
    "bind_request_context",
    "get_request_context",
    "get_client_ip",
    "get_user_agent",
    "parse_tenant_header",
]
