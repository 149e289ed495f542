"""
Organization schemas.

Request/response models for organization, member, invitation and
settings endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, RootModel, field_validator

from app.models.member import MemberStatus, OrgRole
from app.models.organization import OrganizationStatus

# Roles an invitation may grant; OWNER is only assigned at creation
INVITABLE_ROLES = (OrgRole.ADMIN, OrgRole.MANAGER, OrgRole.MEMBER, OrgRole.VIEWER)

BOOLEAN_SETTINGS = (
    "require_invoice_approval",
    "require_expense_approval",
    "auto_reminders",
    "allow_member_invites",
)


def _invitable(role: OrgRole | None) -> OrgRole | None:
    if role is not None and role not in INVITABLE_ROLES:
        raise ValueError("Role must be one of ADMIN, MANAGER, MEMBER, VIEWER")
    return role


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(BaseModel):
    """Request body for POST /organizations."""

    name: str = Field(min_length=1, max_length=100)
    industry: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=500)
    type: str | None = Field(default=None, max_length=50)
    size: str | None = Field(default=None, max_length=50)
    settings: dict[str, Any] | None = None

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Organization name is required")
        return v


class OrganizationUpdateRequest(BaseModel):
    """Request body for PUT /organizations/{org_id}."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    industry: str | None = Field(default=None, max_length=50)
    description: str | None = Field(default=None, max_length=500)
    type: str | None = Field(default=None, max_length=50)
    size: str | None = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def name_must_not_be_null(cls, v: str | None) -> str:
        # omitted keeps the current name; null or blank is rejected
        if v is None or not v.strip():
            raise ValueError("Organization name cannot be empty")
        return v.strip()


class OrganizationResponse(BaseModel):
    """Organization detail response."""

    id: UUID
    name: str
    status: OrganizationStatus
    industry: str | None
    description: str | None
    type: str | None
    size: str | None
    is_subscribed: bool
    subscription_tier: str | None
    cancel_scheduled: bool
    subscription_end_date: datetime | None
    settings: dict[str, Any]
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserOrganizationResponse(OrganizationResponse):
    """An organization as seen by one of its members."""

    role: OrgRole
    user_status: MemberStatus
    needs_activation: bool | None = None
    can_manage_subscription: bool | None = None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class OrganizationSettingsUpdate(RootModel[dict[str, Any]]):
    """Arbitrary settings patch; the well-known flags must be booleans."""

    @field_validator("root")
    @classmethod
    def known_flags_must_be_boolean(cls, v: dict[str, Any]) -> dict[str, Any]:
        for key in BOOLEAN_SETTINGS:
            if key in v and not isinstance(v[key], bool):
                raise ValueError(f"{key} must be a boolean")
        return v


class OrganizationSettingsResponse(BaseModel):
    settings: dict[str, Any]


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    """Single membership row; pending invitations have no user yet."""

    id: UUID
    user_id: UUID | None
    email: str
    name: str | None = None
    role: OrgRole
    status: MemberStatus
    department: str | None
    position: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MembersListResponse(BaseModel):
    """Response for GET /organizations/{org_id}/members."""

    members: list[MemberResponse]
    total: int


class MemberUpdateRequest(BaseModel):
    """Request body for PUT /organizations/{org_id}/members/{user_id}."""

    role: OrgRole | None = None
    department: str | None = Field(default=None, max_length=50)
    position: str | None = Field(default=None, max_length=50)

    @field_validator("role")
    @classmethod
    def role_must_be_invitable(cls, v: OrgRole | None) -> OrgRole | None:
        return _invitable(v)

    @field_validator("role", mode="before")
    @classmethod
    def role_must_not_be_null(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("Role cannot be null")
        return v


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class InviteRequest(BaseModel):
    """Request body for POST /organizations/{org_id}/invite."""

    email: EmailStr
    role: OrgRole = OrgRole.MEMBER
    department: str | None = Field(default=None, max_length=50)
    position: str | None = Field(default=None, max_length=50)

    @field_validator("role")
    @classmethod
    def role_must_be_invitable(cls, v: OrgRole | None) -> OrgRole | None:
        return _invitable(v)


class ResendInvitationRequest(BaseModel):
    """Request body for POST /organizations/{org_id}/invitations/resend.

    Omitted fields keep the values of the existing invitation.
    """

    email: EmailStr
    role: OrgRole | None = None
    department: str | None = Field(default=None, max_length=50)
    position: str | None = Field(default=None, max_length=50)

    @field_validator("role")
    @classmethod
    def role_must_be_invitable(cls, v: OrgRole | None) -> OrgRole | None:
        return _invitable(v)


class InvitationAcceptRequest(BaseModel):
    token: str = Field(min_length=1, max_length=64)


class InvitationResponse(BaseModel):
    """Invitation detail response."""

    id: UUID
    organization_id: UUID
    email: str
    role: OrgRole
    department: str | None
    position: str | None
    status: MemberStatus
    invitation_expiry: datetime | None
    invited_by: UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class InvitationsListResponse(BaseModel):
    """Response for GET /organizations/{org_id}/invitations/pending."""

    invitations: list[InvitationResponse]
    count: int


class InvitationInfoResponse(BaseModel):
    """Public view of a valid invitation, looked up by token."""

    email: str
    role: OrgRole
    organization_id: UUID
    organization_name: str
    expires_at: datetime | None


class ResendInvitationResponse(BaseModel):
    message: str
    invitation: InvitationResponse


class CleanupResponse(BaseModel):
    message: str
    deleted_count: int


class MessageResponse(BaseModel):
    message: str
