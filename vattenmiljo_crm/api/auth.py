from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vattenmiljo_crm.api.body import JsonBody, read_json_body
from vattenmiljo_crm.api.errors import (
    INVALID_ACCOUNT_DETAILS,
    MISSING_CREDENTIALS,
    SERVER_ERROR,
    USER_CREATED,
    setup_failure,
)
from vattenmiljo_crm.auth.dependencies import (
    get_app_settings,
    get_identity_provider,
    get_optional_session,
    get_session_accessor,
)
from vattenmiljo_crm.auth.identity import IdentityProvider
from vattenmiljo_crm.auth.session import SessionAccessor
from vattenmiljo_crm.auth.throttle import throttle_request
from vattenmiljo_crm.auth.types import Role, Session
from vattenmiljo_crm.config import Settings
from vattenmiljo_crm.exceptions import IdentityProviderError, UnauthorizedError

logger = logging.getLogger(__name__)

router = APIRouter()

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# --- Schemas ---


class SetupRequest(BaseModel):
    """Request to provision an account."""

    email: str = Field(..., description="Login email")
    password: str = Field(..., description="Initial password")
    name: str | None = Field(default=None, description="Display name")
    role: Role | None = Field(default=None, description="Assigned role, admin when omitted")


class SessionExchangeRequest(BaseModel):
    """Request to trade a fresh ID token for a session cookie."""

    model_config = ConfigDict(populate_by_name=True)

    id_token: str = Field(..., alias="idToken", description="Firebase ID token")


# --- Provisioning ---


@router.post("/api/auth/setup", dependencies=[Depends(throttle_request)])
def setup_user(
    settings: Settings = Depends(get_app_settings),
    provider: IdentityProvider = Depends(get_identity_provider),
    body: JsonBody = Depends(read_json_body),
) -> JSONResponse:
    """Create a pre-confirmed account with role metadata."""
    if not settings.setup_enabled:
        raise HTTPException(status_code=404, detail="Not Found")

    if body.malformed:
        logger.error("Setup API error: request body is not a JSON object")
        return JSONResponse(status_code=500, content=setup_failure(SERVER_ERROR))

    email, password = body.fields.get("email"), body.fields.get("password")
    if not (isinstance(email, str) and email and isinstance(password, str) and password):
        return JSONResponse(status_code=400, content=setup_failure(MISSING_CREDENTIALS))

    try:
        request = SetupRequest.model_validate(body.fields)
    except ValidationError as exc:
        logger.info("Rejected setup request: %s", exc.errors(include_url=False))
        return JSONResponse(status_code=400, content=setup_failure(INVALID_ACCOUNT_DETAILS))

    try:
        user = provider.create_user(
            email=request.email,
            password=request.password,
            name=request.name,
            role=request.role or Role.ADMIN,
            email_confirmed=True,
        )
    except IdentityProviderError as exc:
        logger.error("Error creating user: %s", exc.message)
        return JSONResponse(status_code=400, content=setup_failure(exc.message))
    except Exception:
        logger.exception("Setup API error")
        return JSONResponse(status_code=500, content=setup_failure(SERVER_ERROR))

    return JSONResponse(
        content={
            "success": True,
            "message": USER_CREATED,
            "user": {"id": user.id, "email": user.email, "name": user.name},
        }
    )


# --- Session ---


@router.get("/api/auth/session")
def read_session(session: Session | None = Depends(get_optional_session)) -> dict[str, object]:
    """Return the caller's session, or null when anonymous."""
    if session is None:
        return {"session": None}
    expires_at = session.expires_at.isoformat() if session.expires_at else None
    return {"session": {"user": session.user.to_payload(), "expiresAt": expires_at}}


@router.post("/api/auth/session", dependencies=[Depends(throttle_request)])
def create_session(
    request: SessionExchangeRequest,
    settings: Settings = Depends(get_app_settings),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> JSONResponse:
    """Set the session cookie for a freshly signed-in user."""
    expires_in = timedelta(seconds=settings.session_max_age_seconds)
    try:
        cookie = provider.create_session_cookie(request.id_token, expires_in)
    except IdentityProviderError as exc:
        raise UnauthorizedError("Invalid ID token") from exc

    response = JSONResponse(content={"success": True})
    response.set_cookie(
        settings.auth_cookie_name,
        cookie,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return response


# --- Logout ---


@router.post("/auth/logout")
def logout(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    accessor: SessionAccessor = Depends(get_session_accessor),
    provider: IdentityProvider = Depends(get_identity_provider),
) -> JSONResponse:
    """Clear the auth cookie; succeeds whether or not a session existed."""
    session = accessor.get_session(request)
    if session is not None:
        try:
            provider.sign_out(session.user.id)
        except IdentityProviderError as exc:
            logger.warning("Token revocation failed for %s: %s", session.user.id, exc.message)

    response = JSONResponse(content={"success": True})
    response.set_cookie(
        settings.auth_cookie_name,
        "",
        max_age=0,
        expires=EPOCH,
        httponly=True,
        secure=settings.cookie_secure,
    )
    return response
