"""
Route guard middleware for the CRM service

The guard classifies every HTTP request path as public or protected and then
forwards it unchanged. It never blocks a request: protection is enforced by
the authorization dependencies attached to each router
(`vattenmiljo_crm.auth.dependencies`). A route that is mounted without those
dependencies is reachable by anyone, whatever this guard says about its path.
"""

import logging

from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

PUBLIC_PREFIXES: tuple[str, ...] = (
    "/login",
    "/auth/",
    "/api/",
    "/_next",
    "/favicon",
    "/public",
    "/docs",
    "/redoc",
    "/openapi.json",
)
PUBLIC_EXACT: frozenset[str] = frozenset({"/", "/health"})


def is_public_path(path: str) -> bool:
    """Return True if the path is on the public allow-list"""
    return path in PUBLIC_EXACT or path.startswith(PUBLIC_PREFIXES)


class RouteGuardMiddleware:
    """Pass-through guard that records the access class of each request"""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            path = scope.get("path", "")
            access = "public" if is_public_path(path) else "protected"
            scope.setdefault("state", {})["route_access"] = access
            if access == "protected":
                logger.debug("Forwarding protected path %s; enforcement is left to the route", path)
        await self.app(scope, receive, send)
