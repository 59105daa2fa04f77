"""Client-side session handling against the Firebase Auth REST API.

`AuthClient` signs in with email and password using the project's web API
key and keeps the resulting session in memory. Views that need to follow the
session use `ClientSession`, which subscribes on entry and always releases
its subscription on exit::

    with ClientSession(client) as view:
        if view.user is None:
            ...

`logout` is the sign-out action used by the UI: it drops the local session,
clears the server cookie and tells the caller where to navigate next.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any

import httpx

from vattenmiljo_crm.auth.events import SessionCallback, SessionEvent, SessionEvents, Subscription
from vattenmiljo_crm.auth.types import AuthUser, Session, derive_display_name, resolve_role
from vattenmiljo_crm.exceptions import IdentityProviderError

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
LOGIN_ROUTE = "/login"


def _provider_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or f"HTTP {response.status_code}")
    if isinstance(error, str):
        return error
    return f"HTTP {response.status_code}"


def _parse_custom_attributes(raw: object) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw:
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


class AuthClient:
    def __init__(
        self,
        api_key: str,
        http: httpx.Client | None = None,
        events: SessionEvents | None = None,
    ) -> None:
        self._api_key = api_key
        self._http = http or httpx.Client(timeout=10.0)
        self._events = events or SessionEvents()
        self._session: Session | None = None
        self._refresh_token: str | None = None

    def _post(self, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._http.post(url, params={"key": self._api_key}, **kwargs)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(str(exc), provider_code="NETWORK_ERROR") from exc
        if response.status_code >= 400:
            message = _provider_message(response)
            raise IdentityProviderError(message, provider_code=message.split(" ", 1)[0])
        try:
            return response.json()
        except ValueError as exc:
            raise IdentityProviderError(
                "Invalid response from identity provider", provider_code="INVALID_RESPONSE"
            ) from exc

    def _lookup(self, id_token: str) -> AuthUser:
        data = self._post(f"{IDENTITY_TOOLKIT_URL}/accounts:lookup", json={"idToken": id_token})
        users = data.get("users") or []
        if not users:
            raise IdentityProviderError("USER_NOT_FOUND", provider_code="USER_NOT_FOUND")
        record = users[0]
        claims = _parse_custom_attributes(record.get("customAttributes"))
        email = record.get("email") or ""
        return AuthUser(
            id=record["localId"],
            email=email,
            name=derive_display_name(record.get("displayName") or claims.get("name"), email),
            role=resolve_role(claims.get("role")),
            is_active=not record.get("disabled", False),
            avatar=record.get("photoUrl"),
        )

    def _store(self, id_token: str, refresh_token: str, expires_in: object) -> Session:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(str(expires_in)))
        session = Session(user=self._lookup(id_token), access_token=id_token, expires_at=expires_at)
        self._session = session
        self._refresh_token = refresh_token
        return session

    def sign_in_with_password(self, email: str, password: str) -> Session:
        """Sign in and notify subscribers with SIGNED_IN."""
        data = self._post(
            f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithPassword",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        session = self._store(data["idToken"], data["refreshToken"], data.get("expiresIn", 3600))
        self._events.emit(SessionEvent.SIGNED_IN, session)
        return session

    def refresh(self) -> Session | None:
        """Trade the refresh token for a new ID token."""
        if not self._refresh_token:
            return None
        data = self._post(
            SECURE_TOKEN_URL,
            data={"grant_type": "refresh_token", "refresh_token": self._refresh_token},
        )
        session = self._store(data["id_token"], data["refresh_token"], data.get("expires_in", 3600))
        self._events.emit(SessionEvent.TOKEN_REFRESHED, session)
        return session

    def get_session(self) -> Session | None:
        """Return the current session, refreshing it once it has expired."""
        session = self._session
        if session is None:
            return None
        if session.expires_at and session.expires_at <= datetime.now(timezone.utc):
            try:
                return self.refresh()
            except IdentityProviderError as exc:
                logger.warning("Session refresh failed: %s", exc.message)
                self._session = None
                self._refresh_token = None
                return None
        return session

    def sign_out(self) -> None:
        """Drop the local session and notify subscribers with SIGNED_OUT."""
        self._session = None
        self._refresh_token = None
        self._events.emit(SessionEvent.SIGNED_OUT, None)

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        return self._events.subscribe(callback)

    def close(self) -> None:
        self._http.close()


class ClientSession:
    """Session view for a UI component, with a loading flag and scoped subscription."""

    def __init__(self, client: AuthClient) -> None:
        self._client = client
        self._subscription: Subscription | None = None
        self.session: Session | None = None
        self.loading = True
        self.last_event: SessionEvent | None = None

    @property
    def user(self) -> AuthUser | None:
        return self.session.user if self.session else None

    @property
    def access_token(self) -> str | None:
        return self.session.access_token if self.session else None

    def _on_change(self, event: SessionEvent, session: Session | None) -> None:
        self.last_event = event
        self.session = session
        self.loading = False

    def __enter__(self) -> "ClientSession":
        # Subscribe first so a change during the initial lookup is not lost.
        self._subscription = self._client.on_session_change(self._on_change)
        try:
            self.session = self._client.get_session()
        except IdentityProviderError as exc:
            logger.error("Error getting session: %s", exc.message)
            self.session = None
        finally:
            self.loading = False
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None


def logout(client: AuthClient, http: httpx.Client) -> str:
    """Sign out locally and on the server; return the route to navigate to."""
    client.sign_out()
    try:
        http.post("/auth/logout")
    except httpx.HTTPError as exc:
        logger.warning("Server logout failed: %s", exc)
    http.cookies.clear()
    return LOGIN_ROUTE
