"""
Organization ORM model.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.member import OrganizationUser


class OrganizationStatus(str, enum.Enum):
    """Organization lifecycle status. DELETED is a soft delete."""

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    INACTIVE = "INACTIVE"
    DELETED = "DELETED"


DEFAULT_ORGANIZATION_SETTINGS: dict[str, Any] = {
    "require_invoice_approval": False,
    "require_expense_approval": False,
    "auto_reminders": True,
    "allow_member_invites": True,
}


class Organization(Base, UUIDMixin, TimestampMixin):
    """Represents a tenant organization."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[OrganizationStatus] = mapped_column(
        Enum(OrganizationStatus, name="organization_status"),
        nullable=False,
        default=OrganizationStatus.ACTIVE,
        index=True,
    )
    industry: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    size: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Subscription (managed by the billing integration)
    is_subscribed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subscription_tier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cancel_scheduled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subscription_end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Opaque key-value blob, updated by shallow merge
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Relationships
    memberships: Mapped[list[OrganizationUser]] = relationship(
        "OrganizationUser",
        back_populates="organization",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r} status={self.status}>"
