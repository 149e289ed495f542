"""
Organization service tests.

Covers creation rules per account type, the caller's organization list,
member management notifications and the shallow settings merge.
"""

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from app.models import (
    AccountType,
    MemberStatus,
    NotificationType,
    Organization,
    OrganizationStatus,
    OrganizationUser,
    OrgRole,
)
from app.schemas.organization import (
    MemberUpdateRequest,
    OrganizationCreateRequest,
    OrganizationUpdateRequest,
)
from app.services.organization_service import merge_settings


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

class TestCreateOrganization:

    @pytest.mark.asyncio
    async def test_business_user_gets_active_subscribed_default_org(self, org_service, make_user, db):
        creator = await make_user(name="Bea Business", account_type=AccountType.BUSINESS)

        created = await org_service.create_organization(
            OrganizationCreateRequest(name="  Bea Corp  ", industry="Consulting"), creator
        )
        await db.commit()

        assert created.name == "Bea Corp"
        assert created.status == OrganizationStatus.ACTIVE
        assert created.is_subscribed is True
        assert created.type == "BUSINESS"
        assert created.settings["auto_reminders"] is True
        assert creator.default_organization_id == created.id

        membership = await db.scalar(
            select(OrganizationUser).where(OrganizationUser.organization_id == created.id)
        )
        assert membership.user_id == creator.id
        assert membership.role == OrgRole.OWNER
        assert membership.status == MemberStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_business_user_cannot_create_second_org(self, org_service, make_user, db):
        creator = await make_user(account_type=AccountType.BUSINESS)
        await org_service.create_organization(OrganizationCreateRequest(name="First"), creator)
        await db.commit()

        with pytest.raises(HTTPException) as exc_info:
            await org_service.create_organization(OrganizationCreateRequest(name="Second"), creator)

        assert exc_info.value.status_code == 409
        assert exc_info.value.detail["code"] == "BUSINESS_ORG_LIMIT"

    @pytest.mark.asyncio
    async def test_individual_user_can_create_several(self, org_service, make_user, db):
        creator = await make_user()

        first = await org_service.create_organization(OrganizationCreateRequest(name="One"), creator)
        second = await org_service.create_organization(OrganizationCreateRequest(name="Two"), creator)
        await db.commit()

        assert first.id != second.id
        assert creator.default_organization_id is None

    @pytest.mark.asyncio
    async def test_initial_settings_override_defaults(self, org_service, make_user):
        creator = await make_user()

        created = await org_service.create_organization(
            OrganizationCreateRequest(name="Custom", settings={"auto_reminders": False, "locale": "de"}),
            creator,
        )

        assert created.settings["auto_reminders"] is False
        assert created.settings["locale"] == "de"
        assert created.settings["allow_member_invites"] is True

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValueError):
            OrganizationCreateRequest(name="   ")


# ---------------------------------------------------------------------------
# Caller's organizations
# ---------------------------------------------------------------------------

class TestListUserOrganizations:

    @pytest.mark.asyncio
    async def test_lists_active_memberships_oldest_first(
        self, org_service, make_user, make_org, add_member, invitation_service
    ):
        user = await make_user()
        other = await make_user()
        owned = await make_org(user, name="Mine")
        joined = await make_org(other, name="Theirs")
        await add_member(joined, user, OrgRole.VIEWER)
        deleted = await make_org(user, name="Gone", status=OrganizationStatus.DELETED)
        invited_only = await make_org(other, name="Invited")
        await invitation_service.create(invited_only, user.email, OrgRole.MEMBER, other)

        organizations = await org_service.list_user_organizations(user)

        assert [o.name for o in organizations] == ["Mine", "Theirs"]
        assert organizations[0].role == OrgRole.OWNER
        assert organizations[1].role == OrgRole.VIEWER
        assert all(o.user_status == MemberStatus.ACTIVE for o in organizations)
        assert deleted.id not in {o.id for o in organizations}
        assert owned.id == organizations[0].id

    @pytest.mark.asyncio
    async def test_business_owner_flags(self, org_service, make_user, make_org, add_member, db):
        owner = await make_user(account_type=AccountType.BUSINESS)
        org = await make_org(owner)
        org.is_subscribed = False
        await db.commit()
        staff = await make_user(account_type=AccountType.BUSINESS)
        await add_member(org, staff, OrgRole.ADMIN)

        [owner_view] = await org_service.list_user_organizations(owner)
        [staff_view] = await org_service.list_user_organizations(staff)

        assert owner_view.needs_activation is True
        assert owner_view.can_manage_subscription is True
        assert staff_view.needs_activation is False
        assert staff_view.can_manage_subscription is False

    @pytest.mark.asyncio
    async def test_individual_has_no_subscription_flags(self, org_service, make_user, make_org):
        user = await make_user()
        await make_org(user)

        [view] = await org_service.list_user_organizations(user)

        assert view.needs_activation is None
        assert view.can_manage_subscription is None


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------

class TestUpdateAndDelete:

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, org_service, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner, name="Before")
        org.industry = "Retail"

        updated = await org_service.update_organization(org, OrganizationUpdateRequest(name="After"))

        assert updated.name == "After"
        assert updated.industry == "Retail"

    @pytest.mark.asyncio
    async def test_delete_is_soft(self, org_service, make_user, make_org, db):
        owner = await make_user()
        org = await make_org(owner)

        await org_service.delete_organization(org)
        await db.commit()

        row = await db.scalar(select(Organization).where(Organization.id == org.id))
        assert row is not None
        assert row.status == OrganizationStatus.DELETED

        with pytest.raises(HTTPException) as exc_info:
            await org_service.get_organization(org.id)
        assert exc_info.value.status_code == 404


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class TestMembers:

    @pytest.mark.asyncio
    @pytest.mark.filterwarnings("error::sqlalchemy.exc.SADeprecationWarning")
    async def test_list_members_includes_pending_invitations(
        self, org_service, invitation_service, make_user, make_org
    ):
        owner = await make_user(name="Owner")
        org = await make_org(owner)
        await invitation_service.create(org, "pending@example.com", OrgRole.MEMBER, owner)

        result = await org_service.list_members(org.id)

        assert result.total == 2
        assert result.members[0].name == "Owner"
        assert result.members[1].user_id is None
        assert result.members[1].status == MemberStatus.PENDING
        assert result.members[1].email == "pending@example.com"

    @pytest.mark.asyncio
    async def test_role_change_notifies(
        self, org_service, notification_dispatcher, make_user, make_org, add_member, db
    ):
        owner = await make_user()
        org = await make_org(owner)
        member = await make_user(name="Mo Member")
        await add_member(org, member, OrgRole.MEMBER)

        updated = await org_service.update_member(
            org.id, member.id, MemberUpdateRequest(role=OrgRole.MANAGER, department="Ops")
        )
        notification_dispatcher.assert_not_called()
        await db.commit()

        assert updated.role == OrgRole.MANAGER
        assert updated.department == "Ops"
        payload = notification_dispatcher.call_args.args[0]
        assert payload.type == NotificationType.ORG_ROLE_CHANGED
        assert payload.data["previous_role"] == "MEMBER"
        assert payload.data["role"] == "MANAGER"

    @pytest.mark.asyncio
    async def test_non_role_change_does_not_notify(
        self, org_service, notification_dispatcher, make_user, make_org, add_member, db
    ):
        owner = await make_user()
        org = await make_org(owner)
        member = await make_user()
        await add_member(org, member)

        await org_service.update_member(org.id, member.id, MemberUpdateRequest(position="Analyst"))
        await db.commit()

        notification_dispatcher.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_unknown_member_is_404(self, org_service, make_user, make_org):
        owner = await make_user()
        org = await make_org(owner)
        stranger = await make_user()

        with pytest.raises(HTTPException) as exc_info:
            await org_service.update_member(org.id, stranger.id, MemberUpdateRequest(position="x"))

        assert exc_info.value.detail["code"] == "MEMBER_NOT_FOUND"

    def test_owner_role_cannot_be_assigned(self):
        with pytest.raises(ValueError):
            MemberUpdateRequest(role=OrgRole.OWNER)

    def test_explicit_null_is_rejected_but_omission_is_not(self):
        with pytest.raises(ValueError):
            MemberUpdateRequest(role=None)
        with pytest.raises(ValueError):
            OrganizationUpdateRequest(name=None)

        assert MemberUpdateRequest(position="Analyst").role is None
        assert "name" not in OrganizationUpdateRequest(industry="Retail").model_dump(exclude_unset=True)

    @pytest.mark.asyncio
    async def test_remove_member_notifies_everyone_else(
        self, org_service, notification_dispatcher, make_user, make_org, add_member, db
    ):
        owner = await make_user(name="Olga")
        org = await make_org(owner)
        leaver = await make_user(name="Leo")
        await add_member(org, leaver)

        await org_service.remove_member(org.id, leaver.id, owner)
        await db.commit()

        assert await org_service.store.get_membership(org.id, leaver.id) is None
        payload = notification_dispatcher.call_args.args[0]
        assert payload.type == NotificationType.ORG_MEMBER_LEFT
        assert payload.data == {"member_name": "Leo", "removed_by": "Olga"}
        assert payload.exclude_user_ids == [leaver.id]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class TestSettings:

    def test_merge_is_shallow(self):
        merged = merge_settings({"a": {"x": 1}, "b": 2}, {"a": {"y": 2}})

        assert merged == {"a": {"y": 2}, "b": 2}

    def test_merge_handles_missing_settings(self):
        assert merge_settings(None, {"auto_reminders": False}) == {"auto_reminders": False}

    @pytest.mark.asyncio
    async def test_update_settings_persists_and_notifies(
        self, org_service, notification_dispatcher, make_user, make_org, db
    ):
        owner = await make_user(name="Sam")
        org = await make_org(owner, settings={"branding": {"color": "red", "logo": "a.png"}, "auto_reminders": True})

        settings = await org_service.update_settings(org, {"branding": {"color": "blue"}}, owner)
        await db.commit()

        assert settings == {"branding": {"color": "blue"}, "auto_reminders": True}
        await db.refresh(org)
        assert org.settings == settings
        payload = notification_dispatcher.call_args.args[0]
        assert payload.type == NotificationType.ORG_SETTINGS_UPDATED
        assert payload.data == {"updated_by": "Sam", "keys": ["branding"]}
        assert payload.exclude_user_ids == [owner.id]
