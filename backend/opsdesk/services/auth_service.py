# Overview: Service-layer operations for auth; password hashing, login and portal admission.

"""
Authentication Service

Uses bcrypt for password hashing and validates password strength.

Login is two-staged:
1. Credentials are checked. A failure here is InvalidCredentialsError (401).
2. A session is opened and the profile's role is checked against the
   portal. If the role is not admitted the session is revoked straight away
   and AccessDeniedError (403) is raised, so a user who knows their
   password but lacks the role never keeps a usable token.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Profile
from ..roles import ROLES, PORTAL_ROLES, PORTAL_STORE, portal_admits
from ..time_utils import utcnow
from . import session_service
from .transactions import commit


logger = logging.getLogger(__name__)

ACCESS_DENIED_MESSAGE = "Access denied: Not authorized for this portal"


class AuthError(Exception):
    """Base class for login failures."""
    status_code = 400


class InvalidCredentialsError(AuthError):
    """Wrong email/password (or wrong master key)."""
    status_code = 401


class AccessDeniedError(AuthError):
    """Credentials were fine but the account may not use this portal."""
    status_code = 403


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _bcrypt_rounds() -> int:
    try:
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    except RuntimeError:
        # Outside an app context (e.g. a script importing the service)
        return 12


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch rather than an error.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def create_profile(
    email: str,
    password: str,
    *,
    role: str = "customer",
    full_name: str | None = None,
    assigned_location_id: str | None = None,
    must_change_password: bool = False,
) -> Profile:
    """
    Create a profile with a bcrypt password hash. Does not commit.

    Raises:
        ValueError: unknown role or email already registered
        PasswordValidationError: weak password
    """
    email = normalize_email(email)
    if not email or "@" not in email:
        raise ValueError("A valid email is required")
    if role not in ROLES:
        raise ValueError(f"Invalid role '{role}'. Must be one of: {', '.join(ROLES)}")

    existing = db.session.query(Profile).filter(Profile.email == email).first()
    if existing:
        raise ValueError("Email already exists")

    full_name = (full_name or "").strip() or None
    first_name = last_name = None
    if full_name:
        parts = full_name.split(" ", 1)
        first_name = parts[0]
        last_name = parts[1] if len(parts) > 1 else None

    profile = Profile(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        first_name=first_name,
        last_name=last_name,
        role=role,
        assigned_location_id=assigned_location_id,
        must_change_password=must_change_password,
    )
    db.session.add(profile)
    return profile


def authenticate(email: str, password: str) -> Profile | None:
    """
    Check credentials. Returns the active Profile on success, None otherwise.

    Does not touch sessions or roles; see login().
    """
    email = normalize_email(email)
    if not email or not password:
        return None

    profile = db.session.query(Profile).filter(
        Profile.email == email,
        Profile.is_active.is_(True),
    ).first()

    if not profile:
        return None

    if not verify_password(password, profile.password_hash):
        return None

    return profile


def login(
    email: str,
    password: str,
    portal: str = PORTAL_STORE,
    *,
    user_agent: str | None = None,
    ip_address: str | None = None,
):
    """
    Sign in through a portal.

    Returns (profile, session_record, plaintext_token).

    Raises:
        InvalidCredentialsError: email/password do not match an active profile
        AccessDeniedError: profile role is not admitted by the portal; the
            session created for the attempt has already been revoked
    """
    if portal not in PORTAL_ROLES:
        raise AccessDeniedError(f"Unknown portal '{portal}'")

    profile = authenticate(email, password)
    if profile is None:
        logger.info("Failed login for %s via %s portal", normalize_email(email), portal)
        raise InvalidCredentialsError("Invalid credentials")

    session, token = session_service.create_session(
        profile.id,
        portal=portal,
        user_agent=user_agent,
        ip_address=ip_address,
    )

    if not portal_admits(portal, profile.role):
        session_service.revoke_session(token, reason="Access denied")
        logger.warning(
            "Profile %s with role %s refused by %s portal", profile.id, profile.role, portal
        )
        raise AccessDeniedError(ACCESS_DENIED_MESSAGE)

    profile.last_login_at = utcnow()
    commit()
    return profile, session, token


def master_key_login(key: str, *, user_agent: str | None = None, ip_address: str | None = None):
    """
    "Super Admin" login: the key is the password of the configured
    SUPER_ADMIN_EMAIL account, always through the admin portal.
    """
    email = current_app.config.get("SUPER_ADMIN_EMAIL")
    if not key or not email:
        raise InvalidCredentialsError("Invalid Secret Key")
    try:
        return login(email, key, "admin", user_agent=user_agent, ip_address=ip_address)
    except InvalidCredentialsError:
        raise InvalidCredentialsError("Invalid Secret Key")
    except AccessDeniedError:
        raise AccessDeniedError("Key is valid but account permissions are missing")


def change_password(profile: Profile, current_password: str | None, new_password: str) -> None:
    """
    Self-service password change. Clears must_change_password.

    current_password may be omitted only while must_change_password is set
    (first login after provisioning or an admin reset).
    """
    if not profile.must_change_password or current_password:
        if not verify_password(current_password or "", profile.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

    profile.password_hash = hash_password(new_password)
    profile.must_change_password = False
    commit()
