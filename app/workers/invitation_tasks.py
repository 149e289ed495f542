"""
Periodic invitation maintenance.

Deletes expired pending invitations across all organizations. Scheduled
daily by Celery beat; also runnable once with
``python -m app.workers.invitation_tasks``.
"""

from __future__ import annotations

import asyncio
import logging

from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_cleanup() -> int:
    from app.core.database import AsyncSessionLocal
    from app.services.invitation_service import InvitationService
    from app.workers.email_tasks import queue_invitation_email
    from app.workers.notification_tasks import queue_organization_notification

    async with AsyncSessionLocal() as session:
        service = InvitationService(
            db=session,
            send_email=queue_invitation_email,
            notify=queue_organization_notification,
        )
        deleted = await service.cleanup_all_expired()
        await session.commit()
    return deleted


@celery_app.task(
    name="app.workers.invitation_tasks.cleanup_expired_invitations",
    bind=True,
    max_retries=3,
    default_retry_delay=300,
)
def cleanup_expired_invitations(self) -> dict[str, int]:
    try:
        from app.core.database import async_engine
        async_engine.sync_engine.dispose()

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            deleted = loop.run_until_complete(run_cleanup())
        finally:
            loop.close()
        return {"deleted": deleted}
    except Exception as exc:
        logger.error("cleanup_expired_invitations failed: %s", exc)
        raise self.retry(exc=exc)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    count = asyncio.run(run_cleanup())
    logger.info("Cleanup finished, %d invitations removed", count)
