"""
Pydantic schemas for notifications.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.models.member import OrgRole
from app.models.notification import NotificationPriority, NotificationType


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------

class NotificationResponse(BaseModel):
    """Single notification response."""
    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    entity_type: str | None
    entity_id: uuid.UUID | None
    channels: list[str]
    data: dict[str, Any]
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    """Response for GET /notifications."""
    data: list[NotificationResponse]
    total: int
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


# ---------------------------------------------------------------------------
# Internal schema used to fan a notification out to organization members
# ---------------------------------------------------------------------------

class OrganizationNotificationCreate(BaseModel):
    """Internal schema (not exposed via API). Serialized into the Celery task."""
    type: NotificationType
    organization_id: uuid.UUID
    data: dict[str, Any] = Field(default_factory=dict)
    channels: list[str] = Field(default_factory=lambda: ["IN_APP"])
    exclude_roles: list[OrgRole] = Field(default_factory=list)
    exclude_user_ids: list[uuid.UUID] = Field(default_factory=list)
    entity_type: str | None = None
    entity_id: uuid.UUID | None = None
