# Overview: Service-layer operations for staff accounts and own-profile settings.

"""
Staff Service

Admin-only account management (provisioning, password reset, role and
location assignment, deletion) plus the self-service profile settings every
signed-in user has.

Provisioned and reset accounts get must_change_password so the first login
forces a new password.
"""

from __future__ import annotations

import logging
import secrets
import string

from ..extensions import db
from ..models import Location, Order, Profile
from ..roles import ADMIN, MANAGER, STAFF_ROLES
from ..validation import NotFoundError, ValidationError
from . import auth_service, session_service
from .transactions import atomic, commit


logger = logging.getLogger(__name__)

_TEMP_SPECIALS = "!@#$%^&*"


class StaffError(ValueError):
    """Staff operation refused by a business rule."""


def generate_temp_password(length: int = 14) -> str:
    """Random password that always satisfies validate_password_strength."""
    alphabet = string.ascii_letters + string.digits + _TEMP_SPECIALS
    required = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(_TEMP_SPECIALS),
    ]
    rest = [secrets.choice(alphabet) for _ in range(max(length, 8) - len(required))]
    chars = required + rest
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def _get_profile(profile_id: str) -> Profile:
    profile = db.session.get(Profile, profile_id)
    if profile is None:
        raise NotFoundError("Staff member not found")
    return profile


def _check_location(location_id: str | None) -> str | None:
    location_id = location_id or None
    if location_id and db.session.get(Location, location_id) is None:
        raise ValidationError("Location not found")
    return location_id


def _check_staff_role(role: str | None) -> str:
    if role not in STAFF_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(STAFF_ROLES)}")
    return role


def list_staff() -> list[Profile]:
    return (
        db.session.query(Profile)
        .filter(Profile.role.in_(STAFF_ROLES))
        .order_by(Profile.role, Profile.full_name, Profile.email)
        .all()
    )


def provision_staff(
    *,
    email: str,
    password: str,
    full_name: str | None = None,
    role: str = MANAGER,
    location_id: str | None = None,
) -> Profile:
    """
    Create a staff account (the create-user operation).

    Raises:
        ValidationError: bad role, unknown location, duplicate email
        PasswordValidationError: weak password
    """
    role = _check_staff_role(role)
    location_id = _check_location(location_id)

    try:
        profile = auth_service.create_profile(
            email,
            password,
            role=role,
            full_name=full_name,
            assigned_location_id=location_id,
            must_change_password=True,
        )
        commit()
    except auth_service.PasswordValidationError:
        db.session.rollback()
        raise
    except ValueError as e:
        db.session.rollback()
        raise ValidationError(str(e))

    logger.info("Provisioned %s account %s", role, profile.id)
    return profile


def reset_password(profile_id: str, new_password: str | None = None) -> str:
    """
    Admin reset of another account's password (the reset-password operation).

    Returns the new plaintext password so the admin can hand it over. The
    target's sessions are revoked and they must pick a new password on the
    next login.
    """
    profile = _get_profile(profile_id)
    password = new_password or generate_temp_password()

    profile.password_hash = auth_service.hash_password(password)
    profile.must_change_password = True
    session_service.revoke_all_profile_sessions(profile.id, "Password reset", flush_only=True)
    commit()

    logger.info("Password reset for profile %s", profile.id)
    return password


def update_assignment(profile_id: str, *, role: str | None = None, location_id=...) -> Profile:
    """
    Change a staff member's role and/or assigned location.

    location_id=None clears the assignment; leaving it out keeps it. Takes
    effect from the profile's next request.
    """
    profile = _get_profile(profile_id)

    if role is not None:
        profile.role = _check_staff_role(role)
    if location_id is not ...:
        profile.assigned_location_id = _check_location(location_id)

    commit()
    logger.info(
        "Profile %s assignment: role=%s location=%s",
        profile.id, profile.role, profile.assigned_location_id,
    )
    return profile


def delete_staff(profile_id: str, *, acting_profile_id: str) -> None:
    """
    Delete a staff account in one transaction: detach orders that reference
    it (as cashier or customer), drop its sessions, delete the profile.

    Only manager and driver accounts qualify, and never the caller's own.
    """
    profile = _get_profile(profile_id)
    if profile.id == acting_profile_id:
        raise StaffError("You cannot delete your own account")
    if profile.role == ADMIN:
        raise StaffError("Admin accounts cannot be deleted")
    if profile.role not in STAFF_ROLES:
        raise StaffError("Only staff accounts can be deleted")

    with atomic():
        orders = db.session.query(Order).filter(
            db.or_(Order.cashier_id == profile.id, Order.customer_id == profile.id)
        ).all()
        for order in orders:
            if order.cashier_id == profile.id:
                order.cashier_id = None
            if order.customer_id == profile.id:
                order.customer_id = None

        # Sessions go with the account
        for token in list(profile.session_tokens):
            db.session.delete(token)

        db.session.delete(profile)

    logger.info("Deleted staff member %s", profile_id)


# -- own profile ---------------------------------------------------------------

def update_own_profile(profile: Profile, payload: dict) -> Profile:
    """First/last name and phone; full_name follows the two name parts."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    unknown = set(payload) - {"first_name", "last_name", "phone"}
    if unknown:
        raise ValidationError(f"Unknown or read-only fields: {', '.join(sorted(unknown))}")

    changes = {}
    for key, limit in (("first_name", 128), ("last_name", 128), ("phone", 32)):
        if key in payload:
            value = str(payload[key] or "").strip() or None
            if value and len(value) > limit:
                raise ValidationError(f"{key} must be at most {limit} characters")
            changes[key] = value

    for key, value in changes.items():
        setattr(profile, key, value)

    full_name = " ".join(p for p in (profile.first_name, profile.last_name) if p)
    if full_name:
        profile.full_name = full_name

    commit()
    return profile


def set_avatar(profile: Profile, url: str) -> Profile:
    profile.avatar_url = url
    commit()
    return profile
