"""
Notification endpoints.

GET    /notifications               - list user notifications (paginated)
GET    /notifications/unread-count  - unread badge count
PATCH  /notifications/{id}/read     - mark single notification as read
POST   /notifications/mark-all-read - mark all notifications as read

An optional X-Organization-Id header narrows results to one organization.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.models.user import User
from app.schemas.notification import (
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from app.services.notification_service import NotificationService

router = APIRouter()


def get_notification_service(
    db: AsyncSession = Depends(get_db),
) -> NotificationService:
    return NotificationService(db=db)


# ---------------------------------------------------------------------------
# GET /notifications
# ---------------------------------------------------------------------------

@router.get(
    "/notifications",
    response_model=NotificationListResponse,
    summary="List notifications for current user",
)
async def list_notifications(
    unread: bool = Query(default=False, description="Filter to unread only"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=25, ge=1, le=100),
    x_organization_id: UUID | None = Header(default=None),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    return await service.list_notifications(
        user_id=current_user.id,
        organization_id=x_organization_id,
        unread_only=unread,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/notifications/unread-count",
    response_model=UnreadCountResponse,
    summary="Count unread notifications",
)
async def get_unread_count(
    x_organization_id: UUID | None = Header(default=None),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> UnreadCountResponse:
    count = await service.unread_count(current_user.id, x_organization_id)
    return UnreadCountResponse(unread_count=count)


# ---------------------------------------------------------------------------
# PATCH /notifications/{notification_id}/read
# ---------------------------------------------------------------------------

@router.patch(
    "/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a single notification as read",
)
async def mark_notification_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationResponse:
    return await service.mark_read(
        notification_id=notification_id,
        user_id=current_user.id,
    )


# ---------------------------------------------------------------------------
# POST /notifications/mark-all-read
# ---------------------------------------------------------------------------

@router.post(
    "/notifications/mark-all-read",
    status_code=status.HTTP_200_OK,
    summary="Mark all notifications as read",
)
async def mark_all_notifications_read(
    x_organization_id: UUID | None = Header(default=None),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> dict:
    return await service.mark_all_read(
        user_id=current_user.id,
        organization_id=x_organization_id,
    )
