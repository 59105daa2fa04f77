from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse

from vattenmiljo_crm.auth.client import LOGIN_ROUTE
from vattenmiljo_crm.auth.dependencies import get_optional_session
from vattenmiljo_crm.auth.permissions import get_user_permissions
from vattenmiljo_crm.auth.types import Session

router = APIRouter()

INACTIVE_ROUTE = "/auth/inactive"


@router.get("/dashboard", response_model=None)
def dashboard(
    session: Session | None = Depends(get_optional_session),
) -> RedirectResponse | JSONResponse:
    """Send anonymous visitors to the login page, otherwise return the app shell."""
    if session is None:
        return RedirectResponse(LOGIN_ROUTE, status_code=307)

    user = session.user
    if not user.is_active:
        return RedirectResponse(INACTIVE_ROUTE, status_code=307)

    # The role is the one resolved from the user's stored claims.
    return JSONResponse(
        content={
            "user": user.to_payload(),
            "permissions": get_user_permissions(user.role).to_payload(),
        }
    )
