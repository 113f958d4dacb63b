"""
Database models for the Twofactor Authenticator service
"""

import enum
import uuid

from passlib.context import CryptContext
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from twofactor.database import Base

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Sentinel for a factor whose code has never been accepted; below any real time-step
UNUSED_STEP = -1


def _new_uuid() -> str:
    return str(uuid.uuid4())


class TwoFactorType(enum.IntEnum):
    """Second factor kinds, one row per (user, kind)"""
    AUTHENTICATOR = 0
    EMAIL = 1
    DUO = 2
    YUBIKEY = 3
    U2F = 4
    REMEMBER = 5
    ORGANIZATION_DUO = 6
    WEBAUTHN = 7


class EventType(enum.IntEnum):
    """Account security event codes"""
    USER_LOGGED_IN = 1000
    USER_CHANGED_PASSWORD = 1001
    USER_UPDATED_2FA = 1002
    USER_DISABLED_2FA = 1003
    USER_RECOVERED_2FA = 1004
    USER_FAILED_LOG_IN = 1005
    USER_FAILED_LOG_IN_2FA = 1006
    ORGANIZATION_USER_REVOKED = 1511


class MembershipRole(str, enum.Enum):
    """Organization roles, lowest privilege first"""
    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return list(MembershipRole).index(self)


class MembershipStatus(enum.IntEnum):
    REVOKED = -1
    INVITED = 0
    ACCEPTED = 1
    CONFIRMED = 2


class User(Base):
    """User model for authentication"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Recovery code issued on first authenticator activation
    totp_recover = Column(String(64), nullable=True)

    def verify_password(self, plain_password: str) -> bool:
        """Verify a password against the hash"""
        return pwd_context.verify(plain_password, self.hashed_password)

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password"""
        return pwd_context.hash(password)

    def to_dict(self) -> dict:
        """Convert user to dictionary (excluding password and recovery code)"""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_login": self.last_login.isoformat() if self.last_login else None,
        }


class TwoFactor(Base):
    """
    A persisted second factor

    For authenticator factors `data` holds the base32 shared secret and
    `last_used` the highest accepted time-step.
    """
    __tablename__ = "twofactor"
    __table_args__ = (UniqueConstraint("user_id", "atype", name="uq_twofactor_user_type"),)

    id = Column(String(36), primary_key=True, default=_new_uuid)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    atype = Column(Integer, nullable=False)
    enabled = Column(Boolean, default=False, nullable=False)
    data = Column(String(255), nullable=False)
    last_used = Column(BigInteger, default=UNUSED_STEP, nullable=False)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "type": self.atype,
            "object": "twoFactorProvider",
        }


class Event(Base):
    """Account security event"""
    __tablename__ = "event"

    id = Column(String(36), primary_key=True, default=_new_uuid)
    event_type = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    org_id = Column(Integer, nullable=True)
    membership_id = Column(Integer, nullable=True)
    act_user_id = Column(Integer, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    require_two_factor = Column(Boolean, default=False, nullable=False)


class Membership(Base):
    """User membership in an organization"""
    __tablename__ = "memberships"
    __table_args__ = (UniqueConstraint("user_id", "org_id", name="uq_membership_user_org"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    atype = Column(String(20), default=MembershipRole.USER.value, nullable=False)
    status = Column(Integer, default=MembershipStatus.INVITED, nullable=False)

    @property
    def role(self) -> MembershipRole:
        return MembershipRole(self.atype)

    def revoke(self):
        self.status = MembershipStatus.REVOKED
