"""
OrganizationUser ORM model.

One table holds both memberships and outstanding invitations:
a row with status=PENDING and no user_id is an invitation.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.organization import Organization
    from app.models.user import User


class OrgRole(str, enum.Enum):
    """Organization member role enumeration."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


ADMIN_ROLES = (OrgRole.OWNER, OrgRole.ADMIN)
MANAGER_ROLES = (OrgRole.OWNER, OrgRole.ADMIN, OrgRole.MANAGER)


class MemberStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class OrganizationUser(Base, UUIDMixin, TimestampMixin):
    """Membership of a user in an organization, or a pending invitation."""

    __tablename__ = "organization_users"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_users_org_user"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[OrgRole] = mapped_column(
        Enum(OrgRole, name="org_role"), nullable=False, default=OrgRole.MEMBER
    )
    department: Mapped[str | None] = mapped_column(String(50), nullable=True)
    position: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[MemberStatus] = mapped_column(
        Enum(MemberStatus, name="member_status"),
        nullable=False,
        default=MemberStatus.PENDING,
    )
    invitation_token: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True
    )
    invitation_expiry: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    invited_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    organization: Mapped[Organization] = relationship(
        "Organization", back_populates="memberships"
    )
    user: Mapped[User | None] = relationship("User", foreign_keys=[user_id])

    def __repr__(self) -> str:
        return (
            f"<OrganizationUser org={self.organization_id} email={self.email!r} "
            f"role={self.role} status={self.status}>"
        )
