"""
Organization business logic.

Handles org creation, the caller's organization list, member management
and settings. All member queries scoped by organization_id.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.member import MemberStatus, OrganizationUser, OrgRole
from app.models.notification import NotificationType
from app.models.organization import (
    DEFAULT_ORGANIZATION_SETTINGS,
    Organization,
    OrganizationStatus,
)
from app.models.user import User
from app.schemas.notification import OrganizationNotificationCreate
from app.schemas.organization import (
    MemberResponse,
    MembersListResponse,
    MemberUpdateRequest,
    OrganizationCreateRequest,
    OrganizationResponse,
    OrganizationUpdateRequest,
    UserOrganizationResponse,
)
from app.services.invitation_service import NotificationDispatcher, queue_notification_after_commit
from app.services.membership_store import MembershipStore

logger = logging.getLogger(__name__)


def merge_settings(existing: dict[str, Any] | None, incoming: dict[str, Any]) -> dict[str, Any]:
    """Shallow merge: top-level keys from incoming replace existing ones wholesale."""
    return {**(existing or {}), **incoming}


class OrganizationService:
    """Handles all organization operations."""

    def __init__(self, db: AsyncSession, notify: NotificationDispatcher) -> None:
        self.db = db
        self.store = MembershipStore(db)
        self.notify = notify

    def _queue_notification(self, payload: OrganizationNotificationCreate) -> None:
        queue_notification_after_commit(self.db, self.notify, payload)

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create_organization(
        self, data: OrganizationCreateRequest, creator: User
    ) -> OrganizationResponse:
        """
        Create a new organization owned by the creator.

        - Business accounts may own only one organization
        - Creator becomes an ACTIVE OWNER
        - Business accounts get it set as their default organization

        Everything is flushed into the request transaction, so a failure
        at any step leaves nothing behind.
        """
        if creator.is_business:
            owned = await self.db.scalar(
                select(OrganizationUser.id)
                .join(Organization, OrganizationUser.organization_id == Organization.id)
                .where(
                    OrganizationUser.user_id == creator.id,
                    OrganizationUser.role == OrgRole.OWNER,
                    Organization.status != OrganizationStatus.DELETED,
                )
                .limit(1)
            )
            if owned is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail={
                        "code": "BUSINESS_ORG_LIMIT",
                        "message": "Business accounts can only have one organization",
                    },
                )

        org = Organization(
            name=data.name,
            industry=data.industry,
            description=data.description,
            type="BUSINESS" if creator.is_business else data.type,
            size=data.size,
            status=OrganizationStatus.ACTIVE,
            is_subscribed=True,
            subscription_tier="business",
            cancel_scheduled=False,
            settings=merge_settings(DEFAULT_ORGANIZATION_SETTINGS, data.settings or {}),
            created_by=creator.id,
        )
        self.db.add(org)
        await self.db.flush()

        await self.store.add(
            OrganizationUser(
                organization_id=org.id,
                user_id=creator.id,
                email=creator.email,
                role=OrgRole.OWNER,
                status=MemberStatus.ACTIVE,
            )
        )

        if creator.is_business:
            creator.default_organization_id = org.id
            await self.db.flush()

        logger.info("Organization %s created by %s", org.id, creator.id)
        return OrganizationResponse.model_validate(org)

    # -----------------------------------------------------------------------
    # List the caller's organizations
    # -----------------------------------------------------------------------

    async def list_user_organizations(self, user: User) -> list[UserOrganizationResponse]:
        """Organizations where the user is an ACTIVE member, oldest first."""
        result = await self.db.execute(
            select(Organization, OrganizationUser)
            .join(OrganizationUser, OrganizationUser.organization_id == Organization.id)
            .where(
                OrganizationUser.user_id == user.id,
                OrganizationUser.status == MemberStatus.ACTIVE,
                Organization.status != OrganizationStatus.DELETED,
            )
            .order_by(Organization.created_at.asc())
        )

        organizations = []
        for org, membership in result.all():
            item = UserOrganizationResponse(
                **OrganizationResponse.model_validate(org).model_dump(),
                role=membership.role,
                user_status=membership.status,
            )
            if user.is_business:
                is_owner = membership.role == OrgRole.OWNER
                item.needs_activation = not org.is_subscribed and is_owner
                item.can_manage_subscription = is_owner
            organizations.append(item)
        return organizations

    # -----------------------------------------------------------------------
    # Get / Update / Delete Organization
    # -----------------------------------------------------------------------

    async def get_organization(self, organization_id: UUID) -> Organization:
        org = await self.db.get(Organization, organization_id)
        if org is None or org.status == OrganizationStatus.DELETED:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "ORG_NOT_FOUND", "message": "Organization not found"},
            )
        return org

    async def update_organization(
        self, org: Organization, data: OrganizationUpdateRequest
    ) -> OrganizationResponse:
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(org, field, value)
        await self.db.flush()
        return OrganizationResponse.model_validate(org)

    async def delete_organization(self, org: Organization) -> None:
        """Soft delete: the row stays, status flips to DELETED."""
        org.status = OrganizationStatus.DELETED
        await self.db.flush()
        logger.info("Organization %s soft-deleted", org.id)

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    async def list_members(self, organization_id: UUID) -> MembersListResponse:
        """All membership rows, including pending invitations, oldest first."""
        rows = await self.store.list_members(organization_id)
        members = [
            MemberResponse(
                id=member.id,
                user_id=member.user_id,
                email=user.email if user is not None else member.email,
                name=user.name if user is not None else None,
                role=member.role,
                status=member.status,
                department=member.department,
                position=member.position,
                created_at=member.created_at,
            )
            for member, user in rows
        ]
        return MembersListResponse(members=members, total=len(members))

    async def _get_member(self, organization_id: UUID, user_id: UUID) -> OrganizationUser:
        member = await self.store.get_membership(organization_id, user_id)
        if member is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"code": "MEMBER_NOT_FOUND", "message": "Member not found"},
            )
        return member

    async def update_member(
        self, organization_id: UUID, user_id: UUID, data: MemberUpdateRequest
    ) -> MemberResponse:
        """
        Patch role, department or position of a member.

        No guard against demoting the last OWNER.
        """
        member = await self._get_member(organization_id, user_id)
        previous_role = member.role

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(member, field, value)
        await self.db.flush()

        user = await self.db.get(User, user_id)
        if member.role != previous_role:
            self._queue_notification(
                OrganizationNotificationCreate(
                    type=NotificationType.ORG_ROLE_CHANGED,
                    organization_id=organization_id,
                    data={
                        "member_name": user.name if user else member.email,
                        "role": member.role.value,
                        "previous_role": previous_role.value,
                    },
                    entity_type="organization_user",
                    entity_id=member.id,
                )
            )

        return MemberResponse(
            id=member.id,
            user_id=member.user_id,
            email=user.email if user else member.email,
            name=user.name if user else None,
            role=member.role,
            status=member.status,
            department=member.department,
            position=member.position,
            created_at=member.created_at,
        )

    async def remove_member(
        self, organization_id: UUID, user_id: UUID, removed_by: User
    ) -> None:
        """Hard-delete the membership row and tell the remaining members."""
        member = await self._get_member(organization_id, user_id)
        user = await self.db.get(User, user_id)
        member_name = user.name if user else member.email

        await self.db.delete(member)
        await self.db.flush()
        logger.info("User %s removed from org %s by %s", user_id, organization_id, removed_by.id)

        self._queue_notification(
            OrganizationNotificationCreate(
                type=NotificationType.ORG_MEMBER_LEFT,
                organization_id=organization_id,
                data={"member_name": member_name, "removed_by": removed_by.name},
                exclude_user_ids=[user_id],
            )
        )

    # -----------------------------------------------------------------------
    # Settings
    # -----------------------------------------------------------------------

    async def get_settings(self, org: Organization) -> dict[str, Any]:
        return dict(org.settings or {})

    async def update_settings(
        self, org: Organization, incoming: dict[str, Any], updated_by: User
    ) -> dict[str, Any]:
        """Shallow-merge incoming keys into the settings blob."""
        # reassign so the JSON column is flagged dirty
        org.settings = merge_settings(org.settings, incoming)
        await self.db.flush()

        self._queue_notification(
            OrganizationNotificationCreate(
                type=NotificationType.ORG_SETTINGS_UPDATED,
                organization_id=org.id,
                data={"updated_by": updated_by.name, "keys": sorted(incoming)},
                exclude_user_ids=[updated_by.id],
            )
        )
        return dict(org.settings)
