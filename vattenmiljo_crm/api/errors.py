from __future__ import annotations

from typing import TypedDict, cast

from fastapi import Request
from fastapi.responses import JSONResponse

from vattenmiljo_crm.exceptions import CrmError

MISSING_CREDENTIALS = "E-post och lösenord krävs"
INVALID_ACCOUNT_DETAILS = "Ogiltiga användaruppgifter"
USER_CREATED = "Användare skapad framgångsrikt"
SERVER_ERROR = "Ett serverfel uppstod"


class ErrorDetail(TypedDict):
    error: str
    code: str


class SetupResult(TypedDict, total=False):
    success: bool
    message: str
    user: dict[str, object]


def error_detail(code: str, message: str) -> ErrorDetail:
    """Create a standardized error payload."""
    return {"error": message, "code": code}


def setup_failure(message: str) -> SetupResult:
    """Create the failure payload used by the provisioning endpoint."""
    return {"success": False, "message": message}


def crm_error_handler(_: Request, exc: Exception) -> JSONResponse:
    """Render a CrmError raised from a dependency or handler."""
    err = cast(CrmError, exc)
    return JSONResponse(
        status_code=err.status_code,
        content=error_detail(err.code, err.message),
    )
