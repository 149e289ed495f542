"""
Query helpers over the organization_users table.

Rows in that table are either memberships or pending invitations, so
every invitation query pins status=PENDING and user_id IS NULL.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from app.models.member import MemberStatus, OrganizationUser, OrgRole
from app.models.organization import Organization, OrganizationStatus
from app.models.user import User


def _pending():
    return (
        OrganizationUser.status == MemberStatus.PENDING,
        OrganizationUser.user_id.is_(None),
    )


class MembershipStore:
    """Thin accessor used by the invitation and organization services."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def add(self, record: OrganizationUser) -> OrganizationUser:
        self.db.add(record)
        await self.db.flush()
        return record

    # -----------------------------------------------------------------------
    # Memberships
    # -----------------------------------------------------------------------

    async def get_membership(
        self, organization_id: UUID, user_id: UUID
    ) -> OrganizationUser | None:
        return await self.db.scalar(
            select(OrganizationUser).where(
                OrganizationUser.organization_id == organization_id,
                OrganizationUser.user_id == user_id,
            )
        )

    async def find_active_member_by_email(
        self, organization_id: UUID, email: str
    ) -> OrganizationUser | None:
        return await self.db.scalar(
            select(OrganizationUser)
            .join(User, OrganizationUser.user_id == User.id)
            .where(
                OrganizationUser.organization_id == organization_id,
                OrganizationUser.status == MemberStatus.ACTIVE,
                func.lower(User.email) == email,
            )
        )

    async def list_members(
        self, organization_id: UUID
    ) -> Sequence[tuple[OrganizationUser, User | None]]:
        result = await self.db.execute(
            select(OrganizationUser, User)
            .outerjoin(User, OrganizationUser.user_id == User.id)
            .where(OrganizationUser.organization_id == organization_id)
            .order_by(OrganizationUser.created_at.asc())
        )
        return result.all()

    async def list_recipients(
        self,
        organization_id: UUID,
        exclude_roles: Sequence[OrgRole] = (),
        exclude_user_ids: Sequence[UUID] = (),
    ) -> Sequence[OrganizationUser]:
        """Active members with a linked user, minus the excluded roles and users."""
        stmt = select(OrganizationUser).where(
            OrganizationUser.organization_id == organization_id,
            OrganizationUser.status == MemberStatus.ACTIVE,
            OrganizationUser.user_id.is_not(None),
        )
        if exclude_roles:
            stmt = stmt.where(OrganizationUser.role.not_in(list(exclude_roles)))
        if exclude_user_ids:
            stmt = stmt.where(OrganizationUser.user_id.not_in(list(exclude_user_ids)))
        result = await self.db.execute(stmt.order_by(OrganizationUser.created_at.asc()))
        return result.scalars().all()

    # -----------------------------------------------------------------------
    # Invitations
    # -----------------------------------------------------------------------

    async def find_valid_invitation(
        self, token: str, now: datetime
    ) -> OrganizationUser | None:
        """Pending, unexpired invitation whose organization is ACTIVE."""
        return await self.db.scalar(
            select(OrganizationUser)
            .join(OrganizationUser.organization)
            .options(contains_eager(OrganizationUser.organization))
            .where(
                OrganizationUser.invitation_token == token,
                *_pending(),
                OrganizationUser.invitation_expiry > now,
                Organization.status == OrganizationStatus.ACTIVE,
            )
        )

    async def find_pending_for_email(
        self, organization_id: UUID, email: str, live_at: datetime | None = None
    ) -> OrganizationUser | None:
        """Newest pending invitation for the email; only unexpired ones when live_at is set."""
        stmt = select(OrganizationUser).where(
            OrganizationUser.organization_id == organization_id,
            OrganizationUser.email == email,
            *_pending(),
        )
        if live_at is not None:
            stmt = stmt.where(OrganizationUser.invitation_expiry > live_at)
        return await self.db.scalar(
            stmt.order_by(OrganizationUser.created_at.desc()).limit(1)
        )

    async def list_pending(
        self, organization_id: UUID, now: datetime
    ) -> Sequence[OrganizationUser]:
        result = await self.db.execute(
            select(OrganizationUser)
            .where(
                OrganizationUser.organization_id == organization_id,
                *_pending(),
                OrganizationUser.invitation_expiry > now,
            )
            .order_by(OrganizationUser.created_at.desc())
        )
        return result.scalars().all()

    async def list_expired(
        self, now: datetime, organization_id: UUID | None = None
    ) -> Sequence[OrganizationUser]:
        stmt = select(OrganizationUser).where(
            *_pending(), OrganizationUser.invitation_expiry < now
        )
        if organization_id is not None:
            stmt = stmt.where(OrganizationUser.organization_id == organization_id)
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def delete_expired(
        self, now: datetime, organization_id: UUID | None = None
    ) -> Sequence[OrganizationUser]:
        """Delete expired invitations and return the deleted rows."""
        expired = await self.list_expired(now, organization_id)
        for record in expired:
            await self.db.delete(record)
        await self.db.flush()
        return expired

    async def delete_expired_token(self, token: str, now: datetime) -> bool:
        record = await self.db.scalar(
            select(OrganizationUser).where(
                OrganizationUser.invitation_token == token,
                *_pending(),
                OrganizationUser.invitation_expiry < now,
            )
        )
        if record is None:
            return False
        await self.db.delete(record)
        await self.db.flush()
        return True

    async def delete_pending(self, organization_id: UUID, invitation_id: UUID) -> bool:
        record = await self.db.scalar(
            select(OrganizationUser).where(
                OrganizationUser.id == invitation_id,
                OrganizationUser.organization_id == organization_id,
                *_pending(),
            )
        )
        if record is None:
            return False
        await self.db.delete(record)
        await self.db.flush()
        return True
