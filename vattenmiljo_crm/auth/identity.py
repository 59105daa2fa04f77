from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Mapping

import firebase_admin
from firebase_admin import auth, credentials, exceptions

from vattenmiljo_crm.auth.events import SessionCallback, SessionEvent, SessionEvents, Subscription
from vattenmiljo_crm.auth.types import AuthUser, Role, Session, derive_display_name, resolve_role
from vattenmiljo_crm.config import Settings
from vattenmiljo_crm.exceptions import IdentityProviderError

logger = logging.getLogger(__name__)

APP_NAME = "vattenmiljo-crm"


def build_firebase_app(settings: Settings) -> firebase_admin.App:
    """Create or return the named Firebase app for these settings."""
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass

    if settings.firebase_credentials:
        credential: credentials.Base = credentials.Certificate(settings.firebase_credentials)
    else:
        credential = credentials.ApplicationDefault()

    options: dict[str, object] = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket
    return firebase_admin.initialize_app(credential, options, name=APP_NAME)


@contextmanager
def _provider_errors(operation: str) -> Iterator[None]:
    """Re-raise Firebase failures as IdentityProviderError."""
    try:
        yield
    except exceptions.FirebaseError as exc:
        logger.warning("Identity provider rejected %s: %s", operation, exc)
        raise IdentityProviderError(str(exc), provider_code=exc.code) from exc
    except ValueError as exc:
        # The Admin SDK validates arguments locally (e.g. short passwords).
        logger.warning("Invalid argument for %s: %s", operation, exc)
        raise IdentityProviderError(str(exc), provider_code="INVALID_ARGUMENT") from exc


def user_from_record(record: auth.UserRecord) -> AuthUser:
    """Build an AuthUser from a Firebase user record."""
    claims: Mapping[str, Any] = record.custom_claims or {}
    email = record.email or ""
    return AuthUser(
        id=record.uid,
        email=email,
        name=derive_display_name(record.display_name or claims.get("name"), email),
        role=resolve_role(claims.get("role")),
        is_active=not record.disabled,
        avatar=record.photo_url,
    )


def user_from_claims(claims: Mapping[str, Any], is_active: bool = True) -> AuthUser:
    """Build an AuthUser from decoded token claims."""
    email = str(claims.get("email") or "")
    return AuthUser(
        id=str(claims.get("uid") or claims.get("sub") or ""),
        email=email,
        name=derive_display_name(claims.get("name"), email),
        role=resolve_role(claims.get("role")),
        is_active=is_active,
        avatar=claims.get("picture"),
    )


def _expiry(claims: Mapping[str, Any]) -> datetime | None:
    exp = claims.get("exp")
    if isinstance(exp, (int, float)):
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    return None


class IdentityProvider:
    """Handle to the hosted identity service, bound to one Firebase app."""

    def __init__(self, app: firebase_admin.App, events: SessionEvents | None = None) -> None:
        self._app = app
        self._events = events or SessionEvents()

    @classmethod
    def from_settings(cls, settings: Settings) -> "IdentityProvider":
        return cls(build_firebase_app(settings))

    @property
    def app(self) -> firebase_admin.App:
        return self._app

    # --- Accounts ---

    def create_user(
        self,
        email: str,
        password: str,
        name: str | None = None,
        role: Role = Role.ADMIN,
        email_confirmed: bool = True,
    ) -> AuthUser:
        """Create an account with role metadata; confirmed accounts skip email verification."""
        display_name = derive_display_name(name, email)
        with _provider_errors("create_user"):
            record = auth.create_user(
                email=email,
                password=password,
                display_name=display_name,
                email_verified=email_confirmed,
                app=self._app,
            )
            auth.set_custom_user_claims(record.uid, {"role": role.value}, app=self._app)
        logger.info("Created user %s with role %s", record.uid, role.value)
        return AuthUser(
            id=record.uid,
            email=record.email or email,
            name=display_name,
            role=role,
            is_active=not record.disabled,
            avatar=record.photo_url,
        )

    def get_user(self, uid: str) -> AuthUser | None:
        """Return the user for a uid, or None if the provider has no such account."""
        try:
            with _provider_errors("get_user"):
                record = auth.get_user(uid, app=self._app)
        except IdentityProviderError as exc:
            if isinstance(exc.__cause__, auth.UserNotFoundError):
                return None
            raise
        return user_from_record(record)

    def get_user_by_email(self, email: str) -> AuthUser | None:
        """Return the user for an email, or None if not found."""
        try:
            with _provider_errors("get_user_by_email"):
                record = auth.get_user_by_email(email, app=self._app)
        except IdentityProviderError as exc:
            if isinstance(exc.__cause__, auth.UserNotFoundError):
                return None
            raise
        return user_from_record(record)

    def update_user_by_id(
        self,
        uid: str,
        password: str | None = None,
        name: str | None = None,
        disabled: bool | None = None,
    ) -> AuthUser:
        """Update credentials, display name or the disabled flag."""
        changes: dict[str, object] = {}
        if password is not None:
            changes["password"] = password
        if name is not None:
            changes["display_name"] = name
        if disabled is not None:
            changes["disabled"] = disabled
        with _provider_errors("update_user_by_id"):
            record = auth.update_user(uid, app=self._app, **changes)
        self._events.emit(SessionEvent.USER_UPDATED, None)
        return user_from_record(record)

    def set_role(self, uid: str, role: Role) -> None:
        """Replace the role claim; takes effect on the user's next token."""
        with _provider_errors("set_role"):
            auth.set_custom_user_claims(uid, {"role": role.value}, app=self._app)
        self._events.emit(SessionEvent.USER_UPDATED, None)

    # --- Sessions ---

    def verify_id_token(self, token: str) -> Session:
        """Resolve a session from a Firebase ID token."""
        with _provider_errors("verify_id_token"):
            try:
                claims = auth.verify_id_token(token, app=self._app, check_revoked=True)
                active = True
            except auth.UserDisabledError:
                claims = auth.verify_id_token(token, app=self._app, check_revoked=False)
                active = False
        return Session(
            user=user_from_claims(claims, active),
            access_token=token,
            expires_at=_expiry(claims),
        )

    def verify_session_cookie(self, cookie: str) -> Session:
        """Resolve a session from a session cookie value."""
        with _provider_errors("verify_session_cookie"):
            try:
                claims = auth.verify_session_cookie(cookie, check_revoked=True, app=self._app)
                active = True
            except auth.UserDisabledError:
                claims = auth.verify_session_cookie(cookie, check_revoked=False, app=self._app)
                active = False
        return Session(
            user=user_from_claims(claims, active),
            access_token=cookie,
            expires_at=_expiry(claims),
        )

    def get_session(self, token: str | None) -> Session | None:
        """Resolve a session from either token kind; None when no token is given."""
        if not token:
            return None
        try:
            return self.verify_id_token(token)
        except IdentityProviderError:
            return self.verify_session_cookie(token)

    def create_session_cookie(self, id_token: str, expires_in: timedelta) -> str:
        """Exchange a fresh ID token for a session cookie value."""
        session = self.verify_id_token(id_token)
        with _provider_errors("create_session_cookie"):
            cookie = auth.create_session_cookie(id_token, expires_in=expires_in, app=self._app)
        self._events.emit(SessionEvent.SIGNED_IN, session)
        return cookie

    def sign_out(self, uid: str) -> None:
        """Revoke refresh tokens so outstanding sessions stop verifying."""
        with _provider_errors("sign_out"):
            auth.revoke_refresh_tokens(uid, app=self._app)
        self._events.emit(SessionEvent.SIGNED_OUT, None)

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        """Subscribe to session changes made through this client."""
        return self._events.subscribe(callback)
