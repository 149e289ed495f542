"""
Invitation lifecycle.

Create, validate, accept, cancel, resend and expire invitations.
Email and notification side effects are queued through injected
dispatchers and never fail the operation that triggered them.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import run_after_commit
from app.models.member import MemberStatus, OrganizationUser, OrgRole
from app.models.notification import NotificationType
from app.models.organization import Organization
from app.models.user import User
from app.schemas.notification import OrganizationNotificationCreate
from app.services.membership_store import MembershipStore

logger = logging.getLogger(__name__)

EmailDispatcher = Callable[..., object]
NotificationDispatcher = Callable[[OrganizationNotificationCreate], object]


def generate_invitation_token() -> str:
    return str(uuid.uuid4())


def queue_notification_after_commit(
    db: AsyncSession, notify: NotificationDispatcher, payload: OrganizationNotificationCreate
) -> None:
    """Hand payload to notify once db commits. Dispatch failures are logged only."""

    def dispatch() -> None:
        try:
            notify(payload)
        except Exception:
            logger.exception(
                "Failed to queue %s notification for org %s",
                payload.type.value,
                payload.organization_id,
            )

    run_after_commit(db, dispatch)


class InvitationService:
    """Handles the PENDING -> ACTIVE lifecycle of organization_users rows."""

    def __init__(
        self,
        db: AsyncSession,
        send_email: EmailDispatcher,
        notify: NotificationDispatcher,
    ) -> None:
        self.db = db
        self.store = MembershipStore(db)
        self.send_email = send_email
        self.notify = notify

    @staticmethod
    def _expiry(now: datetime) -> datetime:
        return now + timedelta(days=settings.INVITATION_EXPIRY_DAYS)

    # -----------------------------------------------------------------------
    # Side effects
    # -----------------------------------------------------------------------

    def _queue_email(
        self, invitation: OrganizationUser, organization: Organization, inviter: User
    ) -> None:
        # captured now; the row may be rotated again before commit
        message = {
            "to_email": invitation.email,
            "organization_id": str(organization.id),
            "organization_name": organization.name,
            "inviter_name": inviter.name,
            "role": invitation.role.value,
            "invitation_token": invitation.invitation_token,
        }

        def dispatch() -> None:
            try:
                self.send_email(**message)
            except Exception:
                logger.exception(
                    "Failed to queue invitation email to %s for org %s",
                    message["to_email"],
                    message["organization_id"],
                )

        run_after_commit(self.db, dispatch)

    def _queue_notification(self, payload: OrganizationNotificationCreate) -> None:
        queue_notification_after_commit(self.db, self.notify, payload)

    # -----------------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------------

    async def create(
        self,
        organization: Organization,
        email: str,
        role: OrgRole,
        invited_by: User,
        department: str | None = None,
        position: str | None = None,
    ) -> OrganizationUser:
        """
        Persist a PENDING invitation and queue the invitation email.

        - Rejects emails that already belong to an active member
        - Rejects a second live invitation for the same email (use resend)
        """
        email = email.lower()
        now = datetime.now(UTC)

        if await self.store.find_active_member_by_email(organization.id, email) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "ALREADY_MEMBER", "message": "User is already a member of this organization"},
            )

        if await self.store.find_pending_for_email(organization.id, email, live_at=now) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "INVITE_EXISTS", "message": "A pending invitation already exists for this email"},
            )

        invitation = await self.store.add(
            OrganizationUser(
                organization_id=organization.id,
                email=email,
                role=role,
                department=department,
                position=position,
                status=MemberStatus.PENDING,
                invitation_token=generate_invitation_token(),
                invitation_expiry=self._expiry(now),
                invited_by=invited_by.id,
            )
        )
        logger.info("Invitation created for %s in org %s as %s", email, organization.id, role.value)

        self._queue_email(invitation, organization, invited_by)
        return invitation

    # -----------------------------------------------------------------------
    # Validate
    # -----------------------------------------------------------------------

    async def validate(self, token: str) -> OrganizationUser | None:
        """
        Return the invitation if the token is usable, else None.

        Usable means PENDING, unaccepted, unexpired, and the organization
        is ACTIVE. Callers cannot tell a wrong token from an expired one.
        """
        return await self.store.find_valid_invitation(token, datetime.now(UTC))

    # -----------------------------------------------------------------------
    # Accept
    # -----------------------------------------------------------------------

    async def accept(self, token: str, user: User) -> OrganizationUser:
        """
        Bind the invitation to the user and activate the membership.

        Runs inside the request transaction; the ORG_MEMBER_JOINED
        notification is queued best-effort afterwards.
        """
        await self.cleanup_expired(token)

        invitation = await self.validate(token)
        if invitation is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "INVITATION_NOT_FOUND", "message": "Invitation not found or expired"},
            )

        if await self.store.get_membership(invitation.organization_id, user.id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "ALREADY_MEMBER", "message": "You are already a member of this organization"},
            )

        invitation.user_id = user.id
        invitation.status = MemberStatus.ACTIVE
        invitation.invitation_token = None
        invitation.invitation_expiry = None
        await self.db.flush()
        logger.info("User %s joined org %s as %s", user.id, invitation.organization_id, invitation.role.value)

        self._queue_notification(
            OrganizationNotificationCreate(
                type=NotificationType.ORG_MEMBER_JOINED,
                organization_id=invitation.organization_id,
                data={
                    "member_name": user.name,
                    "member_email": user.email,
                    "role": invitation.role.value,
                },
                entity_type="organization_user",
                entity_id=invitation.id,
            )
        )
        return invitation

    # -----------------------------------------------------------------------
    # Cancel
    # -----------------------------------------------------------------------

    async def cancel(self, organization_id: UUID, invitation_id: UUID) -> bool:
        """Delete a pending invitation. Returns False if nothing matched."""
        cancelled = await self.store.delete_pending(organization_id, invitation_id)
        if cancelled:
            logger.info("Invitation %s cancelled in org %s", invitation_id, organization_id)
        return cancelled

    # -----------------------------------------------------------------------
    # Resend
    # -----------------------------------------------------------------------

    async def resend(
        self,
        organization: Organization,
        email: str,
        invited_by: User,
        role: OrgRole | None = None,
        department: str | None = None,
        position: str | None = None,
    ) -> tuple[OrganizationUser, bool]:
        """
        Rotate the token of the newest pending invitation, or create one.

        Omitted role/department/position keep their existing values.
        Returns (invitation, created).
        """
        email = email.lower()
        existing = await self.store.find_pending_for_email(organization.id, email)

        if existing is None:
            invitation = await self.create(
                organization,
                email,
                role or OrgRole.MEMBER,
                invited_by,
                department=department,
                position=position,
            )
            return invitation, True

        existing.invitation_token = generate_invitation_token()
        existing.invitation_expiry = self._expiry(datetime.now(UTC))
        existing.role = role or existing.role
        existing.department = department or existing.department
        existing.position = position or existing.position
        existing.invited_by = invited_by.id
        await self.db.flush()
        logger.info("Invitation %s resent to %s", existing.id, email)

        self._queue_email(existing, organization, invited_by)
        return existing, False

    # -----------------------------------------------------------------------
    # Expiry cleanup
    # -----------------------------------------------------------------------

    async def cleanup_expired(self, token: str) -> bool:
        """Delete the invitation for this token if it has expired."""
        return await self.store.delete_expired_token(token, datetime.now(UTC))

    async def cleanup_expired_for_org(self, organization_id: UUID) -> int:
        """Delete every expired invitation of one organization."""
        deleted = await self.store.delete_expired(datetime.now(UTC), organization_id)
        if deleted:
            logger.info(
                "Deleted %d expired invitations for org %s: %s",
                len(deleted),
                organization_id,
                [
                    {"email": i.email, "role": i.role.value, "expired_at": str(i.invitation_expiry)}
                    for i in deleted
                ],
            )
        return len(deleted)

    async def cleanup_all_expired(self) -> int:
        """Delete expired invitations across all organizations."""
        deleted = await self.store.delete_expired(datetime.now(UTC))
        logger.info("Deleted %d expired invitations", len(deleted))
        return len(deleted)

    # -----------------------------------------------------------------------
    # List
    # -----------------------------------------------------------------------

    async def list_pending(self, organization_id: UUID) -> Sequence[OrganizationUser]:
        """Outstanding invitations, newest first."""
        return await self.store.list_pending(organization_id, datetime.now(UTC))
