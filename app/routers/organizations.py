"""
Organization management endpoints.

Create, update, soft delete, members, invitations and settings.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user, get_org_member, require_role
from app.models.member import ADMIN_ROLES, MANAGER_ROLES, OrganizationUser, OrgRole
from app.models.organization import Organization
from app.models.user import User
from app.schemas.organization import (
    CleanupResponse,
    InvitationAcceptRequest,
    InvitationInfoResponse,
    InvitationResponse,
    InvitationsListResponse,
    InviteRequest,
    MemberResponse,
    MembersListResponse,
    MemberUpdateRequest,
    MessageResponse,
    OrganizationCreateRequest,
    OrganizationResponse,
    OrganizationSettingsResponse,
    OrganizationSettingsUpdate,
    OrganizationUpdateRequest,
    ResendInvitationRequest,
    ResendInvitationResponse,
    UserOrganizationResponse,
)
from app.services.invitation_service import InvitationService
from app.services.organization_service import OrganizationService
from app.workers.email_tasks import queue_invitation_email
from app.workers.notification_tasks import queue_organization_notification

router = APIRouter()

OrgContext = tuple[Organization, OrganizationUser]


def get_org_service(db: AsyncSession = Depends(get_db)) -> OrganizationService:
    """Dependency that constructs OrganizationService."""
    return OrganizationService(db=db, notify=queue_organization_notification)


def get_invitation_service(db: AsyncSession = Depends(get_db)) -> InvitationService:
    """Dependency that constructs InvitationService."""
    return InvitationService(
        db=db,
        send_email=queue_invitation_email,
        notify=queue_organization_notification,
    )


# ---------------------------------------------------------------------------
# Create / list the caller's organizations
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """
    Create a new organization.

    - Creator is automatically assigned the OWNER role
    - Business accounts may own only one organization
    """
    return await service.create_organization(data, current_user)


@router.get(
    "",
    response_model=list[UserOrganizationResponse],
    summary="List organizations the caller belongs to",
)
async def list_my_organizations(
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> list[UserOrganizationResponse]:
    return await service.list_user_organizations(current_user)


# ---------------------------------------------------------------------------
# Invitation by token (not org-scoped: the caller is not a member yet)
# ---------------------------------------------------------------------------

@router.get(
    "/invitations/{token}",
    response_model=InvitationInfoResponse,
    summary="Look up a pending invitation",
)
async def get_invitation_info(
    token: str,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InvitationInfoResponse:
    invitation = await service.validate(token)
    if invitation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "INVITATION_NOT_FOUND", "message": "Invitation not found or expired"},
        )
    return InvitationInfoResponse(
        email=invitation.email,
        role=invitation.role,
        organization_id=invitation.organization_id,
        organization_name=invitation.organization.name,
        expires_at=invitation.invitation_expiry,
    )


@router.post(
    "/accept-invitation",
    response_model=MemberResponse,
    summary="Accept an invitation",
)
async def accept_invitation(
    data: InvitationAcceptRequest,
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> MemberResponse:
    """
    Accept an organization invitation.

    - Token must be pending, unexpired, and its organization active
    - A token can be used only once
    """
    membership = await service.accept(data.token, current_user)
    return MemberResponse(
        id=membership.id,
        user_id=membership.user_id,
        email=membership.email,
        name=current_user.name,
        role=membership.role,
        status=membership.status,
        department=membership.department,
        position=membership.position,
        created_at=membership.created_at,
    )


# ---------------------------------------------------------------------------
# Get / Update / Delete Organization
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Get organization",
)
async def get_organization(
    org_and_member: OrgContext = Depends(get_org_member),
) -> OrganizationResponse:
    """Get organization details. Must be a member."""
    org, _ = org_and_member
    return OrganizationResponse.model_validate(org)


@router.put(
    "/{org_id}",
    response_model=OrganizationResponse,
    summary="Update organization profile",
)
async def update_organization(
    data: OrganizationUpdateRequest,
    org_and_member: OrgContext = Depends(require_role(*ADMIN_ROLES)),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """Update name, industry, description, type or size. Requires OWNER or ADMIN."""
    org, _ = org_and_member
    return await service.update_organization(org, data)


@router.delete(
    "/{org_id}",
    response_model=MessageResponse,
    summary="Delete organization",
)
async def delete_organization(
    org_and_member: OrgContext = Depends(require_role(OrgRole.OWNER)),
    service: OrganizationService = Depends(get_org_service),
) -> MessageResponse:
    """Soft delete. Requires OWNER."""
    org, _ = org_and_member
    await service.delete_organization(org)
    return MessageResponse(message="Organization deleted successfully")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/members",
    response_model=MembersListResponse,
    summary="List organization members",
)
async def list_members(
    org_and_member: OrgContext = Depends(get_org_member),
    service: OrganizationService = Depends(get_org_service),
) -> MembersListResponse:
    """List members and pending invitations of the organization."""
    org, _ = org_and_member
    return await service.list_members(org.id)


@router.put(
    "/{org_id}/members/{user_id}",
    response_model=MemberResponse,
    summary="Update a member",
)
async def update_member(
    user_id: UUID,
    data: MemberUpdateRequest,
    org_and_member: OrgContext = Depends(require_role(*ADMIN_ROLES)),
    service: OrganizationService = Depends(get_org_service),
) -> MemberResponse:
    """Change role, department or position. Requires OWNER or ADMIN."""
    org, _ = org_and_member
    return await service.update_member(org.id, user_id, data)


@router.delete(
    "/{org_id}/members/{user_id}",
    response_model=MessageResponse,
    summary="Remove a member from the organization",
)
async def remove_member(
    user_id: UUID,
    org_and_member: OrgContext = Depends(require_role(*ADMIN_ROLES)),
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> MessageResponse:
    org, _ = org_and_member
    await service.remove_member(org.id, user_id, current_user)
    return MessageResponse(message="Member removed successfully")


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

@router.post(
    "/{org_id}/invite",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a new member",
)
async def invite_member(
    data: InviteRequest,
    org_and_member: OrgContext = Depends(require_role(*MANAGER_ROLES)),
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> InvitationResponse:
    """
    Invite a user to the organization by email.

    - Requires OWNER, ADMIN or MANAGER
    - Sends invitation email via Celery
    - Token expires in 7 days
    """
    org, _ = org_and_member
    invitation = await service.create(
        org,
        data.email,
        data.role,
        current_user,
        department=data.department,
        position=data.position,
    )
    return InvitationResponse.model_validate(invitation)


@router.get(
    "/{org_id}/invitations/pending",
    response_model=InvitationsListResponse,
    summary="List pending invitations",
)
async def list_pending_invitations(
    org_and_member: OrgContext = Depends(require_role(*MANAGER_ROLES)),
    service: InvitationService = Depends(get_invitation_service),
) -> InvitationsListResponse:
    org, _ = org_and_member
    invitations = await service.list_pending(org.id)
    return InvitationsListResponse(
        invitations=[InvitationResponse.model_validate(i) for i in invitations],
        count=len(invitations),
    )


@router.post(
    "/{org_id}/invitations/cleanup",
    response_model=CleanupResponse,
    summary="Delete expired invitations",
)
async def cleanup_expired_invitations(
    org_and_member: OrgContext = Depends(require_role(*ADMIN_ROLES)),
    service: InvitationService = Depends(get_invitation_service),
) -> CleanupResponse:
    org, _ = org_and_member
    deleted = await service.cleanup_expired_for_org(org.id)
    return CleanupResponse(
        message=f"Cleaned up {deleted} expired invitations",
        deleted_count=deleted,
    )


@router.post(
    "/{org_id}/invitations/resend",
    response_model=ResendInvitationResponse,
    summary="Resend or re-create an invitation",
)
async def resend_invitation(
    data: ResendInvitationRequest,
    org_and_member: OrgContext = Depends(require_role(*MANAGER_ROLES)),
    current_user: User = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service),
) -> ResendInvitationResponse:
    """Issue a fresh token for the pending invitation, creating one if none exists."""
    org, _ = org_and_member
    invitation, created = await service.resend(
        org,
        data.email,
        current_user,
        role=data.role,
        department=data.department,
        position=data.position,
    )
    return ResendInvitationResponse(
        message="New invitation sent successfully" if created else "Invitation resent successfully",
        invitation=InvitationResponse.model_validate(invitation),
    )


@router.delete(
    "/{org_id}/invitations/{invitation_id}",
    response_model=MessageResponse,
    summary="Cancel a pending invitation",
)
async def cancel_invitation(
    invitation_id: UUID,
    org_and_member: OrgContext = Depends(require_role(*MANAGER_ROLES)),
    service: InvitationService = Depends(get_invitation_service),
) -> MessageResponse:
    org, _ = org_and_member
    if not await service.cancel(org.id, invitation_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "INVITATION_NOT_FOUND", "message": "Invitation not found"},
        )
    return MessageResponse(message="Invitation cancelled successfully")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@router.get(
    "/{org_id}/settings",
    response_model=OrganizationSettingsResponse,
    summary="Get organization settings",
)
async def get_settings(
    org_and_member: OrgContext = Depends(get_org_member),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationSettingsResponse:
    org, _ = org_and_member
    return OrganizationSettingsResponse(settings=await service.get_settings(org))


@router.put(
    "/{org_id}/settings",
    response_model=OrganizationSettingsResponse,
    summary="Update organization settings",
)
async def update_settings(
    data: OrganizationSettingsUpdate,
    org_and_member: OrgContext = Depends(require_role(*ADMIN_ROLES)),
    current_user: User = Depends(get_current_user),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationSettingsResponse:
    """Shallow merge: nested objects in the body replace the stored ones."""
    org, _ = org_and_member
    settings = await service.update_settings(org, data.root, current_user)
    return OrganizationSettingsResponse(settings=settings)
