# Overview: Role constants, portal admission and the per-session capability set.

"""
Roles and capabilities.

Role logic is resolved in exactly one place: resolve_capabilities() turns a
profile into a frozen Capabilities value once per session change. Routes,
services and views consume the flags as plain booleans and never compare
role strings themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, fields


ADMIN = "admin"
MANAGER = "manager"
DRIVER = "driver"
CUSTOMER = "customer"

ROLES = (ADMIN, MANAGER, DRIVER, CUSTOMER)
STAFF_ROLES = (ADMIN, MANAGER, DRIVER)

# Which roles may sign in through which portal
PORTAL_STORE = "store"
PORTAL_ADMIN = "admin"
PORTAL_ROLES = {
    PORTAL_STORE: frozenset({ADMIN, MANAGER, DRIVER}),
    PORTAL_ADMIN: frozenset({ADMIN}),
}


@dataclass(frozen=True)
class Capabilities:
    is_admin: bool = False
    is_manager: bool = False
    is_driver: bool = False
    is_customer: bool = False

    can_view_dashboard: bool = False
    can_view_orders: bool = False
    can_manage_orders: bool = False
    can_manage_inventory: bool = False
    can_manage_catalog: bool = False
    can_run_logistics: bool = False
    can_manage_staff: bool = False
    can_manage_locations: bool = False

    @classmethod
    def names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    def to_dict(self) -> dict:
        return asdict(self)


NO_CAPABILITIES = Capabilities()


def resolve_capabilities(profile) -> Capabilities:
    """Derive the full flag set from profile.role. Unknown or missing roles get nothing."""
    role = getattr(profile, "role", None) if profile is not None else None
    if role not in ROLES:
        return NO_CAPABILITIES

    is_admin = role == ADMIN
    is_manager = role == MANAGER
    is_driver = role == DRIVER
    staff = is_admin or is_manager

    return Capabilities(
        is_admin=is_admin,
        is_manager=is_manager,
        is_driver=is_driver,
        is_customer=role == CUSTOMER,
        can_view_dashboard=role in STAFF_ROLES,
        can_view_orders=staff,
        can_manage_orders=staff,
        can_manage_inventory=staff,
        can_manage_catalog=is_admin,
        # Managers don't run the global delivery sheet; drivers work off it
        can_run_logistics=is_admin or is_driver,
        can_manage_staff=is_admin,
        can_manage_locations=is_admin,
    )


def portal_admits(portal: str, role: str | None) -> bool:
    return role in PORTAL_ROLES.get(portal, frozenset())
