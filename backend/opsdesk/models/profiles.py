from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .mixins import new_id


class Profile(db.Model):
    """
    Account identity plus the two fields every visibility rule depends on.

    role: admin | manager | driver | customer
    assigned_location_id: NULL means global scope (admins) or "not yet
    assigned" (a manager in that state sees nothing).

    Credentials live on the profile itself: one row per login.
    """
    __tablename__ = "profiles"
    __table_args__ = (
        db.Index("ix_profiles_role", "role"),
        db.Index("ix_profiles_assigned_location", "assigned_location_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    full_name = db.Column(db.String(255), nullable=True)
    first_name = db.Column(db.String(128), nullable=True)
    last_name = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    avatar_url = db.Column(db.String(512), nullable=True)

    role = db.Column(db.String(16), nullable=False, default="customer")
    assigned_location_id = db.Column(db.String(36), db.ForeignKey("locations.id"), nullable=True)

    # Set on provisioning and admin reset; cleared when the user picks a new password
    must_change_password = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    assigned_location = db.relationship("Location", backref=db.backref("assigned_profiles", lazy=True))

    def __repr__(self) -> str:
        return f"<Profile id={self.id} email={self.email!r} role={self.role}>"

    @property
    def display_name(self) -> str:
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.full_name or "Unknown"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "phone": self.phone,
            "avatar_url": self.avatar_url,
            "role": self.role,
            "assigned_location_id": self.assigned_location_id,
            "location_name": self.assigned_location.name if self.assigned_location else None,
            "must_change_password": self.must_change_password,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer session for one login.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout
    - 2-hour idle timeout
    - The portal the user signed in through is recorded; role checks on
      every request are made against that portal
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_profile_active", "profile_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False, index=True)
    portal = db.Column(db.String(16), nullable=False, default="store")

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    profile = db.relationship("Profile", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "portal": self.portal,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }
