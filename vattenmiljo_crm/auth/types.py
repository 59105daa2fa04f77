from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Användare"


class Role(str, Enum):
    SALESPERSON = "salesperson"
    INTERNAL = "internal"
    INSTALLER = "installer"
    ADMIN = "admin"


# Spellings found in stored user metadata, normalized to the enum.
_ROLE_ALIASES: dict[str, Role] = {
    "salesperson": Role.SALESPERSON,
    "sales": Role.SALESPERSON,
    "internal": Role.INTERNAL,
    "inhouse": Role.INTERNAL,
    "in-house": Role.INTERNAL,
    "installer": Role.INSTALLER,
    "admin": Role.ADMIN,
}


def resolve_role(value: object) -> Role:
    """Map a stored role value to a Role; unknown or missing values get the least privilege."""
    if isinstance(value, Role):
        return value
    if not value:
        return Role.SALESPERSON
    role = _ROLE_ALIASES.get(str(value).strip().lower())
    if role is None:
        logger.warning("Unknown role value %r, falling back to %s", value, Role.SALESPERSON.value)
        return Role.SALESPERSON
    return role


def derive_display_name(name: object, email: str | None) -> str:
    """Return the display name, else the email local part, else a placeholder."""
    if name:
        return str(name)
    if email:
        local = email.split("@", maxsplit=1)[0]
        if local:
            return local
    return DEFAULT_DISPLAY_NAME


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str
    name: str
    role: Role
    is_active: bool = True
    avatar: str | None = None

    def to_payload(self) -> dict[str, object]:
        """Serialize for JSON responses."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "isActive": self.is_active,
            "avatar": self.avatar,
        }


@dataclass(frozen=True)
class Session:
    user: AuthUser
    access_token: str
    expires_at: datetime | None = None
