from __future__ import annotations

import logging
from typing import Protocol

from fastapi import Request

from vattenmiljo_crm.auth.types import AuthUser, Session
from vattenmiljo_crm.exceptions import IdentityProviderError

logger = logging.getLogger(__name__)


class SessionVerifier(Protocol):
    def verify_id_token(self, token: str) -> Session:
        """Resolve a session from a bearer ID token."""
        ...

    def verify_session_cookie(self, cookie: str) -> Session:
        """Resolve a session from a session cookie value."""
        ...


def extract_bearer_token(request: Request) -> str | None:
    """Return the bearer token from the Authorization header, if any."""
    header = request.headers.get("authorization")
    if header and header.lower().startswith("bearer "):
        token = header.split(" ", maxsplit=1)[1].strip()
        return token or None
    return None


class SessionAccessor:
    """Answers "who is calling" for a request: bearer token first, then the auth cookie."""

    def __init__(self, provider: SessionVerifier, cookie_name: str = "auth-user") -> None:
        self._provider = provider
        self._cookie_name = cookie_name

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    def get_session(self, request: Request) -> Session | None:
        """Return the caller's session, or None when there is none or the provider fails."""
        token = extract_bearer_token(request)
        if token:
            try:
                return self._provider.verify_id_token(token)
            except IdentityProviderError as exc:
                logger.info("Bearer token rejected, trying session cookie: %s", exc.provider_code)

        cookie = request.cookies.get(self._cookie_name)
        if not cookie:
            return None
        try:
            return self._provider.verify_session_cookie(cookie)
        except IdentityProviderError as exc:
            logger.info("Session cookie rejected: %s", exc.provider_code)
            return None

    def get_user(self, request: Request) -> AuthUser | None:
        """Return just the user of the current session."""
        session = self.get_session(request)
        return session.user if session else None
