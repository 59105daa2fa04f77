from __future__ import annotations

from dataclasses import asdict, dataclass

from vattenmiljo_crm.auth.types import Role


@dataclass(frozen=True)
class Permissions:
    can_create_customers: bool = False
    can_edit_all_customers: bool = False
    can_delete_customers: bool = False
    can_view_all_customers: bool = False
    can_manage_users: bool = False
    can_access_reports: bool = False
    can_manage_settings: bool = False

    def to_payload(self) -> dict[str, bool]:
        """Serialize with camelCase keys."""
        out: dict[str, bool] = {}
        for key, value in asdict(self).items():
            head, *rest = key.split("_")
            out[head + "".join(part.capitalize() for part in rest)] = value
        return out


_ROLE_PERMISSIONS: dict[Role, Permissions] = {
    Role.ADMIN: Permissions(
        can_create_customers=True,
        can_edit_all_customers=True,
        can_delete_customers=True,
        can_view_all_customers=True,
        can_manage_users=True,
        can_access_reports=True,
        can_manage_settings=True,
    ),
    Role.INTERNAL: Permissions(
        can_create_customers=True,
        can_edit_all_customers=True,
        can_view_all_customers=True,
        can_access_reports=True,
    ),
    Role.SALESPERSON: Permissions(can_create_customers=True),
    Role.INSTALLER: Permissions(),
}


def get_user_permissions(role: Role) -> Permissions:
    """Return the operation permissions granted to a role."""
    return _ROLE_PERMISSIONS.get(role, Permissions())


def can_access_customer(role: Role, user_id: str, customer_assigned_to: str | None) -> bool:
    """Return True if the user may open a customer with the given assignment."""
    if role in (Role.ADMIN, Role.INTERNAL, Role.INSTALLER):
        return True
    if role is Role.SALESPERSON:
        # Own customers or unassigned ones.
        return customer_assigned_to is None or customer_assigned_to == user_id
    return False
