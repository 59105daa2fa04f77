"""
Error types shared by the auth boundary and the identity provider client
"""


class CrmError(Exception):
    """Base exception for CRM service operations"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnauthorizedError(CrmError):
    """No usable session, or the account behind it is inactive"""

    status_code = 401
    code = "AUTH_REQUIRED"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class InsufficientPermissionError(CrmError):
    """The session's role is not allowed to perform the operation"""

    status_code = 403
    code = "RBAC_FORBIDDEN"

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class RateLimitedError(CrmError):
    """The client exceeded the request budget for a rate-limited endpoint"""

    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, message: str = "Rate limit exceeded.") -> None:
        super().__init__(message)


class IdentityProviderError(CrmError):
    """The hosted identity provider rejected an operation"""

    status_code = 400
    code = "PROVIDER_ERROR"

    def __init__(self, message: str, provider_code: str | None = None) -> None:
        super().__init__(message)
        self.provider_code = provider_code
