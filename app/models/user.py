"""
User ORM model.
"""

from __future__ import annotations

import enum
from uuid import UUID

from sqlalchemy import Boolean, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDMixin


class AccountType(str, enum.Enum):
    """Business accounts may own exactly one organization."""

    INDIVIDUAL = "individual"
    BUSINESS = "business"


class User(Base, UUIDMixin, TimestampMixin):
    """Represents an authenticated user. Credentials live in the auth service."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        Enum(AccountType, name="account_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AccountType.INDIVIDUAL,
    )
    default_organization_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL", use_alter=True),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_business(self) -> bool:
        return self.account_type == AccountType.BUSINESS

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
