"""
Business logic for notifications.
Handles templated fan-out to organization members and read-state management.
All queries scoped by user_id (and organization_id when given).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification, NotificationPriority, NotificationType
from app.schemas.notification import (
    NotificationListResponse,
    NotificationResponse,
    OrganizationNotificationCreate,
)
from app.services.membership_store import MembershipStore


@dataclass(frozen=True)
class NotificationTemplate:
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM


TEMPLATES: dict[NotificationType, NotificationTemplate] = {
    NotificationType.ORG_MEMBER_JOINED: NotificationTemplate(
        title="New Team Member",
        message="{member_name} has joined your organization",
    ),
    NotificationType.ORG_MEMBER_LEFT: NotificationTemplate(
        title="Team Member Left",
        message="{member_name} has left your organization",
    ),
    NotificationType.ORG_ROLE_CHANGED: NotificationTemplate(
        title="Role Updated",
        message="{member_name} is now {role}",
    ),
    NotificationType.ORG_SETTINGS_UPDATED: NotificationTemplate(
        title="Organization Settings Updated",
        message="Organization settings were updated by {updated_by}",
        priority=NotificationPriority.LOW,
    ),
}


def render_template(template: str, data: dict[str, Any]) -> str:
    """Replace {key} placeholders; unknown placeholders are left as-is."""
    for key, value in data.items():
        template = template.replace("{" + key + "}", str(value))
    return template


class NotificationService:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Fan a templated notification out to organization members
    # Called from the notification Celery task
    # ------------------------------------------------------------------

    async def create_organization_notification(
        self, data: OrganizationNotificationCreate
    ) -> list[Notification]:
        """
        Insert one notification per active member of the organization.

        Raises:
            ValueError: if the notification type has no template.
        """
        template = TEMPLATES.get(data.type)
        if template is None:
            raise ValueError(f"Unknown notification type: {data.type}")

        recipients = await MembershipStore(self._db).list_recipients(
            data.organization_id,
            exclude_roles=data.exclude_roles,
            exclude_user_ids=data.exclude_user_ids,
        )

        title = render_template(template.title, data.data)
        message = render_template(template.message, data.data)
        notifications = [
            Notification(
                organization_id=data.organization_id,
                user_id=member.user_id,
                type=data.type,
                title=title,
                message=message,
                priority=template.priority,
                entity_type=data.entity_type,
                entity_id=data.entity_id,
                channels=list(data.channels),
                data=dict(data.data),
                is_read=False,
            )
            for member in recipients
        ]
        self._db.add_all(notifications)
        await self._db.flush()
        return notifications

    # ------------------------------------------------------------------
    # GET /notifications
    # ------------------------------------------------------------------

    def _scope(self, user_id: uuid.UUID, organization_id: uuid.UUID | None) -> list:
        clauses = [Notification.user_id == user_id]
        if organization_id is not None:
            clauses.append(Notification.organization_id == organization_id)
        return clauses

    async def list_notifications(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID | None = None,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 25,
    ) -> NotificationListResponse:
        """
        List notifications for the current user, newest first.
        Optionally scoped to one organization and filtered to unread.
        """
        scope = self._scope(user_id, organization_id)
        base_stmt = select(Notification).where(*scope)

        if unread_only:
            base_stmt = base_stmt.where(Notification.is_read.is_(False))

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = await self._db.scalar(count_stmt) or 0

        unread_count = await self.unread_count(user_id, organization_id)

        rows_stmt = (
            base_stmt
            .order_by(Notification.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self._db.execute(rows_stmt)
        notifications = result.scalars().all()

        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in notifications],
            total=total,
            unread_count=unread_count,
        )

    async def unread_count(
        self, user_id: uuid.UUID, organization_id: uuid.UUID | None = None
    ) -> int:
        stmt = select(func.count()).where(
            *self._scope(user_id, organization_id),
            Notification.is_read.is_(False),
        )
        return await self._db.scalar(stmt) or 0

    # ------------------------------------------------------------------
    # PATCH /notifications/{id}/read
    # ------------------------------------------------------------------

    async def mark_read(
        self,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> NotificationResponse:
        """
        Mark a single notification as read.
        Scoped to user_id to prevent cross-user updates.
        """
        notification = await self._db.scalar(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        if not notification:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={
                    "code": "NOTIFICATION_NOT_FOUND",
                    "message": "Notification not found",
                },
            )

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(UTC)
            await self._db.flush()
        return NotificationResponse.model_validate(notification)

    # ------------------------------------------------------------------
    # POST /notifications/mark-all-read
    # ------------------------------------------------------------------

    async def mark_all_read(
        self,
        user_id: uuid.UUID,
        organization_id: uuid.UUID | None = None,
    ) -> dict[str, int]:
        """
        Mark all unread notifications as read.
        Returns count of updated rows.
        """
        result = await self._db.execute(
            update(Notification)
            .where(
                *self._scope(user_id, organization_id),
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        return {"updated": result.rowcount}
