# backend/ernamdb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import relationship

from ernamdb.database import Base
from ernamdb.utils.identifiers import generate_uuid7


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class AccountRole(str, enum.Enum):
    """High-level roles used across the portal.

    Which operations a role may call is decided in `ernamdb.security`,
    never inside the training engine.
    """

    PARTICIPANT = "participant"
    INSTRUCTOR = "instructor"
    ORG_ADMIN = "org_admin"
    ERNAM_ADMIN = "ernam_admin"     # Platform admin


class AccountStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class OrganizationType(str, enum.Enum):
    AIRPORT = "airport"
    AIRLINE = "airline"
    GOVERNMENT = "government"
    SECURITY_COMPANY = "security_company"
    OTHER = "other"


class OrganizationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# ORGANIZATION
# ---------------------------------------------------------------------------


class Organization(Base):
    """
    Client organisation (airport, airline, authority...) whose staff attend
    training. Profile CRUD lives outside this service; the table is here so
    compliance can be scoped per organisation.
    """

    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    name = Column(String(255), nullable=False)
    type = Column(
        Enum(OrganizationType, name="organization_type_enum"),
        nullable=False,
        default=OrganizationType.OTHER,
    )
    country = Column(String(64), nullable=True)
    status = Column(
        Enum(OrganizationStatus, name="organization_status_enum"),
        nullable=False,
        default=OrganizationStatus.PENDING,
        index=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    users = relationship("User", back_populates="organization", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.id})>"


# ---------------------------------------------------------------------------
# USER
# ---------------------------------------------------------------------------


class User(Base):
    """
    Portal user profile. Identity and passwords are owned by the external
    identity provider; `id` is the provider's subject id.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role_status", "role", "status"),
        Index("idx_users_org_role", "organization_id", "role"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)

    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    email = Column(String(255), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(64), nullable=True)

    role = Column(
        Enum(AccountRole, name="account_role_enum"),
        nullable=False,
        default=AccountRole.PARTICIPANT,
        index=True,
    )
    status = Column(
        Enum(AccountStatus, name="account_status_enum"),
        nullable=False,
        default=AccountStatus.PENDING,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    organization = relationship("Organization", back_populates="users", lazy="joined")

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"
