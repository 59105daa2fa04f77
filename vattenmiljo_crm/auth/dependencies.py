from __future__ import annotations

from typing import Callable, cast

from fastapi import Depends, Request

from vattenmiljo_crm.auth.identity import IdentityProvider
from vattenmiljo_crm.auth.session import SessionAccessor
from vattenmiljo_crm.auth.types import AuthUser, Role, Session
from vattenmiljo_crm.config import Settings
from vattenmiljo_crm.exceptions import InsufficientPermissionError, UnauthorizedError


def get_app_settings(request: Request) -> Settings:
    """Return the settings the app was built with."""
    return cast(Settings, request.app.state.settings)


def get_identity_provider(request: Request) -> IdentityProvider:
    """Return the identity provider client configured for this app."""
    return cast(IdentityProvider, request.app.state.identity_provider)


def get_session_accessor(request: Request) -> SessionAccessor:
    """Return the server-side session accessor configured for this app."""
    return cast(SessionAccessor, request.app.state.session_accessor)


def get_optional_session(
    request: Request, accessor: SessionAccessor = Depends(get_session_accessor)
) -> Session | None:
    """Resolve the caller's session without requiring one."""
    return accessor.get_session(request)


def get_current_user(session: Session | None = Depends(get_optional_session)) -> AuthUser:
    """Require an authenticated, active user."""
    if session is None:
        raise UnauthorizedError("Unauthorized")
    if not session.user.is_active:
        raise UnauthorizedError("Account is inactive")
    return session.user


def require_roles(*allowed: Role) -> Callable[[AuthUser], AuthUser]:
    """Require the current user to be in the allowed role set."""
    allowed_set = set(allowed)

    def _require(user: AuthUser = Depends(get_current_user)) -> AuthUser:
        if user.role not in allowed_set:
            raise InsufficientPermissionError("Insufficient permissions")
        return user

    return _require
