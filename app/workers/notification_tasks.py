"""
Notification background tasks.
Fans an organization notification out to member inboxes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from app.schemas.notification import OrganizationNotificationCreate
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="app.workers.notification_tasks.dispatch_organization_notification",
    bind=True,
    max_retries=3,
    default_retry_delay=10,
)
def dispatch_organization_notification(self, payload: dict[str, Any]) -> dict[str, Any]:
    """Insert one notification row per recipient in a fresh session."""
    data = OrganizationNotificationCreate.model_validate(payload)
    try:
        # Fresh event loop per task; forked workers inherit a closed one
        from app.core.database import async_engine
        async_engine.sync_engine.dispose()

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            created = loop.run_until_complete(_create(data))
        finally:
            loop.close()
        return {"status": "dispatched", "type": data.type.value, "recipients": created}
    except Exception as exc:
        logger.error("dispatch_organization_notification failed: %s", exc)
        raise self.retry(exc=exc)


async def _create(data: OrganizationNotificationCreate) -> int:
    from app.core.database import AsyncSessionLocal
    from app.services.notification_service import NotificationService

    async with AsyncSessionLocal() as session:
        notifications = await NotificationService(db=session).create_organization_notification(data)
        await session.commit()
    return len(notifications)


def queue_organization_notification(data: OrganizationNotificationCreate) -> None:
    """Dispatcher handed to the organization and invitation services."""
    dispatch_organization_notification.delay(data.model_dump(mode="json"))
