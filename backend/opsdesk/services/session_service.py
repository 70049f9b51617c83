# Overview: Service-layer operations for sessions; bearer token issue, validation and revocation.

"""
Session Token Management Service

Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

Each session records the portal it was opened through. Validation re-reads
the profile on every request and re-derives the capability flags, so a role
change or location reassignment applies from the next request on. A profile
that is gone, deactivated, or no longer admitted by the session's portal has
its session revoked.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revocable on logout or security events
- Tracks client IP and user agent for security monitoring
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import Profile, SessionToken
from ..roles import Capabilities, portal_admits, resolve_capabilities
from ..time_utils import utcnow
from .transactions import commit


logger = logging.getLogger(__name__)

# Configuration constants
SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)  # Maximum session length
SESSION_IDLE_TIMEOUT = timedelta(hours=2)        # Activity timeout
REVOKED_RETENTION = timedelta(days=30)


@dataclass
class SessionContext:
    """
    Everything a request needs to know about its caller.

    Built once per request by validate_session and handed down explicitly
    (Flask g.session_context); nothing else re-derives role logic.
    """
    profile: Profile
    session: SessionToken
    capabilities: Capabilities

    @property
    def portal(self) -> str:
        return self.session.portal

    @property
    def location_id(self) -> str | None:
        return self.profile.assigned_location_id

    def to_dict(self) -> dict:
        return {
            "profile": self.profile.to_dict(),
            "portal": self.portal,
            "capabilities": self.capabilities.to_dict(),
        }


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy (unlike passwords), so a fast hash is enough.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    profile_id: str,
    *,
    portal: str = "store",
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create new session token for a profile.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    profile = db.session.get(Profile, profile_id)
    if not profile:
        raise ValueError("Profile not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        profile_id=profile.id,
        portal=portal,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str, now=None) -> None:
    session.is_revoked = True
    session.revoked_at = now or utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is unknown, expired, idle too long or revoked
    - Profile is gone or deactivated
    - Profile role is no longer admitted by the session's portal

    Updates last_used_at on successful validation (activity tracking).
    """
    if not token:
        return None

    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    # Check absolute timeout
    if session.expires_at < now:
        return None

    # Check idle timeout
    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout", now)
        commit()
        return None

    profile = session.profile
    if not profile or not profile.is_active:
        _revoke(session, "Profile missing or deactivated", now)
        commit()
        return None

    if not portal_admits(session.portal, profile.role):
        _revoke(session, "Access denied", now)
        commit()
        logger.info("Revoked session %s: role %s no longer admitted", session.id, profile.role)
        return None

    session.last_used_at = now
    commit()

    return SessionContext(
        profile=profile,
        session=session,
        capabilities=resolve_capabilities(profile),
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    commit()
    return True


def revoke_all_profile_sessions(profile_id: str, reason: str = "Revoke all sessions", *, flush_only: bool = False) -> int:
    """
    Revoke all active sessions for a profile.

    Returns count of sessions revoked. With flush_only the caller owns the
    transaction (e.g. staff deletion) and nothing is committed here.
    """
    now = utcnow()

    sessions = db.session.query(SessionToken).filter_by(
        profile_id=profile_id,
        is_revoked=False,
    ).all()

    for session in sessions:
        _revoke(session, reason, now)

    if flush_only:
        db.session.flush()
    else:
        commit()
    return len(sessions)


def cleanup_expired_sessions() -> int:
    """
    Delete expired and revoked sessions older than 30 days.

    Returns count of sessions deleted.
    """
    now = utcnow()
    cutoff = now - REVOKED_RETENTION

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True),
        ),
        SessionToken.created_at < cutoff,
    ).delete(synchronize_session=False)

    commit()
    return deleted
