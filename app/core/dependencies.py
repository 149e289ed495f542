"""
FastAPI dependency injection functions.

Provides current user, Redis connections, organization scoping and role
enforcement. The resolved caller and organization are handed to services
as explicit arguments.
"""

from __future__ import annotations

from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.security import blacklist_redis_key, decode_access_token
from app.models.member import MemberStatus, OrganizationUser, OrgRole
from app.models.organization import Organization, OrganizationStatus
from app.models.user import User

# ---------------------------------------------------------------------------
# HTTP Bearer scheme (auto_error=False so we can return custom 401)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """
    Return a shared async Redis client.

    Uses a module-level pool so connections are reused across requests.
    """
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------

def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> User:
    """
    Validate Bearer JWT and return the authenticated User.

    Raises 401 if:
    - No token provided
    - Token is invalid or expired
    - JTI is blacklisted
    - User does not exist or is inactive
    """
    if credentials is None:
        raise _unauthorized("MISSING_TOKEN", "Authorization header required")

    try:
        payload = decode_access_token(credentials.credentials)
        user_id = UUID(payload.get("sub", ""))
    except (JWTError, ValueError):
        raise _unauthorized("INVALID_TOKEN", "Token is invalid or expired")

    jti: str = payload.get("jti", "")
    if await redis.exists(blacklist_redis_key(jti)):
        raise _unauthorized("TOKEN_REVOKED", "Token has been revoked")

    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None or not user.is_active:
        raise _unauthorized("USER_NOT_FOUND", "User not found or inactive")

    return user


# ---------------------------------------------------------------------------
# Organization membership + role enforcement
# ---------------------------------------------------------------------------

async def load_org_membership(
    org_id: UUID,
    user: User,
    db: AsyncSession,
) -> tuple[Organization, OrganizationUser]:
    """
    Resolve an ACTIVE organization and the user's ACTIVE membership in it.

    Raises 404 if the org does not exist (or is deleted / inactive),
    403 if the user is not an active member.
    """
    org = await db.scalar(
        select(Organization).where(
            Organization.id == org_id,
            Organization.status == OrganizationStatus.ACTIVE,
        )
    )
    if org is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "ORG_NOT_FOUND", "message": "Organization not found"},
        )

    member = await db.scalar(
        select(OrganizationUser).where(
            OrganizationUser.organization_id == org.id,
            OrganizationUser.user_id == user.id,
            OrganizationUser.status == MemberStatus.ACTIVE,
        )
    )
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "NOT_ORG_MEMBER", "message": "You are not a member of this organization"},
        )

    return org, member


async def get_org_member(
    org_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> tuple[Organization, OrganizationUser]:
    """Organization scope from the {org_id} path parameter."""
    return await load_org_membership(org_id, current_user, db)


async def get_header_org_member(
    x_organization_id: UUID | None = Header(default=None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> tuple[Organization, OrganizationUser]:
    """Organization scope from the X-Organization-Id header."""
    if x_organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "ORG_CONTEXT_REQUIRED", "message": "X-Organization-Id header required"},
        )
    return await load_org_membership(x_organization_id, current_user, db)


def require_role(*roles: OrgRole):
    """
    Dependency factory that enforces one of the given roles.

    Usage:
        @router.post("/{org_id}/...")
        async def endpoint(
            org_and_member: tuple = Depends(require_role(*ADMIN_ROLES)),
        ):
            org, member = org_and_member
    """
    async def role_checker(
        org_and_member: tuple[Organization, OrganizationUser] = Depends(get_org_member),
    ) -> tuple[Organization, OrganizationUser]:
        _, member = org_and_member
        if member.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "INSUFFICIENT_ROLE",
                    "message": f"Required role: {[r.value for r in roles]}",
                },
            )
        return org_and_member

    return role_checker
