"""
HTTP tests through the ASGI app.

Auth failures, organization scoping, role checks, the invite/accept
flow and the analytics download surface.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from app.core.database import get_db
from app.core.security import blacklist_redis_key, create_access_token
from app.main import app
from app.models import OrganizationUser, OrgRole
from app.routers.analytics import get_analytics_service
from app.services.analytics_service import AnalyticsService

ORGS = "/api/v1/organizations"
ANALYTICS = "/api/v1/analytics"


async def invitation_token(session_factory, email: str) -> str:
    async with session_factory() as session:
        return await session.scalar(
            select(OrganizationUser.invitation_token).where(OrganizationUser.email == email)
        )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class TestAuthentication:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get(ORGS)

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "MISSING_TOKEN"

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get(ORGS, headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_TOKEN"

    @pytest.mark.asyncio
    async def test_revoked_token(self, client, fake_redis, make_user):
        user = await make_user()
        token = create_access_token(str(user.id), jti="revoked-jti")
        fake_redis.keys.add(blacklist_redis_key("revoked-jti"))

        response = await client.get(ORGS, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "TOKEN_REVOKED"


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

class TestOrganizationRoutes:

    @pytest.mark.asyncio
    async def test_create_and_list(self, client, make_user, headers):
        user = await make_user()

        created = await client.post(ORGS, json={"name": "Acme", "industry": "Retail"}, headers=headers(user))
        listed = await client.get(ORGS, headers=headers(user))

        assert created.status_code == 201
        assert created.json()["name"] == "Acme"
        assert created.json()["status"] == "ACTIVE"
        assert [o["role"] for o in listed.json()] == ["OWNER"]

    @pytest.mark.asyncio
    async def test_create_without_name_is_validation_error(self, client, make_user, headers):
        user = await make_user()

        response = await client.post(ORGS, json={}, headers=headers(user))

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert detail["errors"][0]["field"] == "name"

    @pytest.mark.asyncio
    async def test_non_member_is_forbidden(self, client, make_user, make_org, headers):
        org = await make_org(await make_user())
        outsider = await make_user()

        response = await client.get(f"{ORGS}/{org.id}", headers=headers(outsider))

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "NOT_ORG_MEMBER"

    @pytest.mark.asyncio
    async def test_deleted_org_is_not_found(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)

        deleted = await client.delete(f"{ORGS}/{org.id}", headers=headers(owner))
        response = await client.get(f"{ORGS}/{org.id}", headers=headers(owner))

        assert deleted.status_code == 200
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_viewer_cannot_invite(self, client, make_user, make_org, add_member, headers):
        org = await make_org(await make_user())
        viewer = await make_user()
        await add_member(org, viewer, OrgRole.VIEWER)

        response = await client.post(
            f"{ORGS}/{org.id}/invite", json={"email": "x@example.com"}, headers=headers(viewer)
        )

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INSUFFICIENT_ROLE"

    @pytest.mark.asyncio
    async def test_settings_round_trip(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner, settings={"branding": {"color": "red"}, "auto_reminders": True})

        updated = await client.put(
            f"{ORGS}/{org.id}/settings", json={"branding": {"logo": "x.png"}}, headers=headers(owner)
        )
        rejected = await client.put(
            f"{ORGS}/{org.id}/settings", json={"auto_reminders": "yes"}, headers=headers(owner)
        )
        fetched = await client.get(f"{ORGS}/{org.id}/settings", headers=headers(owner))

        assert updated.status_code == 200
        assert rejected.status_code == 400
        assert fetched.json()["settings"] == {"branding": {"logo": "x.png"}, "auto_reminders": True}

    @pytest.mark.asyncio
    async def test_null_name_and_role_are_validation_errors(
        self, client, make_user, make_org, add_member, headers
    ):
        owner = await make_user()
        org = await make_org(owner, name="Acme")
        member = await make_user()
        await add_member(org, member)

        null_name = await client.put(f"{ORGS}/{org.id}", json={"name": None}, headers=headers(owner))
        null_role = await client.put(
            f"{ORGS}/{org.id}/members/{member.id}", json={"role": None}, headers=headers(owner)
        )
        omitted = await client.put(f"{ORGS}/{org.id}", json={"industry": "Retail"}, headers=headers(owner))

        for response, field in ((null_name, "name"), (null_role, "role")):
            assert response.status_code == 400
            detail = response.json()["detail"]
            assert detail["code"] == "VALIDATION_ERROR"
            assert detail["errors"][0]["field"] == field
        assert omitted.status_code == 200
        assert omitted.json()["name"] == "Acme"


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class TestInvitationFlow:

    @pytest.mark.asyncio
    async def test_invite_lookup_accept(
        self, client, session_factory, email_dispatcher, make_user, make_org, headers
    ):
        owner = await make_user()
        org = await make_org(owner, name="Acme")
        invitee = await make_user(email="new@example.com")

        invited = await client.post(
            f"{ORGS}/{org.id}/invite",
            json={"email": "new@example.com", "role": "ADMIN"},
            headers=headers(owner),
        )
        assert invited.status_code == 201
        assert "invitation_token" not in invited.json()
        email_dispatcher.assert_called_once()

        token = await invitation_token(session_factory, "new@example.com")
        info = await client.get(f"{ORGS}/invitations/{token}", headers=headers(invitee))
        assert info.json()["organization_name"] == "Acme"

        accepted = await client.post(
            f"{ORGS}/accept-invitation", json={"token": token}, headers=headers(invitee)
        )
        assert accepted.status_code == 200
        assert accepted.json()["role"] == "ADMIN"
        assert accepted.json()["status"] == "ACTIVE"

        again = await client.post(
            f"{ORGS}/accept-invitation", json={"token": token}, headers=headers(invitee)
        )
        assert again.status_code == 404

        members = await client.get(f"{ORGS}/{org.id}/members", headers=headers(invitee))
        assert members.json()["total"] == 2

    @pytest.mark.asyncio
    async def test_invite_requires_valid_email(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)

        response = await client.post(f"{ORGS}/{org.id}/invite", json={"role": "MEMBER"}, headers=headers(owner))

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "VALIDATION_ERROR"
        assert detail["errors"][0]["field"] == "email"

    @pytest.mark.asyncio
    async def test_cannot_invite_as_owner(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)

        response = await client.post(
            f"{ORGS}/{org.id}/invite", json={"email": "o@example.com", "role": "OWNER"}, headers=headers(owner)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_pending_list_and_cancel(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)
        invited = await client.post(
            f"{ORGS}/{org.id}/invite", json={"email": "p@example.com"}, headers=headers(owner)
        )
        invitation_id = invited.json()["id"]

        pending = await client.get(f"{ORGS}/{org.id}/invitations/pending", headers=headers(owner))
        cancelled = await client.delete(f"{ORGS}/{org.id}/invitations/{invitation_id}", headers=headers(owner))
        missing = await client.delete(f"{ORGS}/{org.id}/invitations/{invitation_id}", headers=headers(owner))

        assert pending.json()["count"] == 1
        assert cancelled.status_code == 200
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_resend_creates_when_missing(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)

        response = await client.post(
            f"{ORGS}/{org.id}/invitations/resend", json={"email": "r@example.com"}, headers=headers(owner)
        )

        assert response.status_code == 200
        assert response.json()["message"] == "New invitation sent successfully"
        assert response.json()["invitation"]["role"] == "MEMBER"


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

class TestAnalyticsRoutes:

    @pytest.mark.asyncio
    async def test_header_is_required(self, client, make_user, headers):
        user = await make_user()

        response = await client.get(f"{ANALYTICS}/overview", headers=headers(user))

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ORG_CONTEXT_REQUIRED"

    @pytest.mark.asyncio
    async def test_overview_for_empty_org(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)

        response = await client.get(
            f"{ANALYTICS}/overview", params={"timeRange": "THIS_MONTH"}, headers=headers(owner, org)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total_revenue"] == 0
        assert len(body["monthly_stats"]) == 1

    @pytest.mark.asyncio
    async def test_csv_download(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)

        response = await client.get(
            f"{ANALYTICS}/export", params={"format": "csv"}, headers=headers(owner, org)
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == "attachment; filename=analytics-report.csv"
        assert response.text.splitlines()[0] == "section,metric,dimension,count,value"

    @pytest.mark.asyncio
    async def test_unknown_export_format(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)

        response = await client.get(
            f"{ANALYTICS}/export", params={"format": "pdf"}, headers=headers(owner, org)
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_FORMAT"

    @pytest.mark.asyncio
    async def test_unknown_time_range(self, client, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)

        response = await client.get(
            f"{ANALYTICS}/overview", params={"timeRange": "FOREVER"}, headers=headers(owner, org)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_report_fits_in_a_single_connection_pool(self, client, engine, make_user, make_org, headers):
        owner = await make_user()
        org = await make_org(owner)
        tiny_engine = create_async_engine(
            engine.url, poolclass=AsyncAdaptedQueuePool, pool_size=1, max_overflow=0, pool_timeout=3
        )
        tiny_sessions = async_sessionmaker(tiny_engine, class_=AsyncSession, expire_on_commit=False)

        async def tiny_get_db():
            async with tiny_sessions() as session:
                yield session
                await session.commit()

        app.dependency_overrides[get_db] = tiny_get_db
        app.dependency_overrides[get_analytics_service] = lambda: AnalyticsService(tiny_sessions)
        try:
            response = await client.get(f"{ANALYTICS}/report", headers=headers(owner, org))
        finally:
            await tiny_engine.dispose()

        assert response.status_code == 200
        assert "invoices" in response.json()
