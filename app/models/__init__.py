"""
SQLAlchemy ORM models.

All models imported here to ensure they are registered with Base.metadata.
"""

from app.models.base import Base, TimestampMixin, UUIDMixin
from app.models.billing import (
    Client,
    ClientStatus,
    Contract,
    Document,
    DocumentType,
    Invoice,
    InvoiceStatus,
    Payment,
)
from app.models.member import MemberStatus, OrganizationUser, OrgRole
from app.models.notification import Notification, NotificationPriority, NotificationType
from app.models.organization import Organization, OrganizationStatus
from app.models.user import AccountType, User

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "AccountType",
    "Client",
    "ClientStatus",
    "Contract",
    "Document",
    "DocumentType",
    "Invoice",
    "InvoiceStatus",
    "MemberStatus",
    "Notification",
    "NotificationPriority",
    "NotificationType",
    "Organization",
    "OrganizationStatus",
    "OrganizationUser",
    "OrgRole",
    "Payment",
    "User",
]
