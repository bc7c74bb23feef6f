from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.api.v1.auth import get_current_user
from heritage_admin.core.roles import ALL_ROLES, ProfileRole
from heritage_admin.db.session import get_db
from heritage_admin.models.profile import Profile
from heritage_admin.models.tenant import Tenant


async def get_current_tenant(
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(get_current_user),
) -> Tenant:
    """
    Resolve the caller's tenant from their profile. Every tenant-scoped query
    filters on this tenant's id.
    """
    if profile.tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tenant assigned to your account",
        )

    tenant = await db.get(Tenant, profile.tenant_id)
    if not tenant:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Tenant not found",
        )

    if not tenant.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This organization is inactive",
        )

    return tenant


def require_roles(*allowed_roles: str):
    """
    Enforce profile.role is in allowed_roles.
    """
    allowed = {r.value if isinstance(r, ProfileRole) else str(r) for r in allowed_roles}
    unknown = allowed - ALL_ROLES
    if unknown:
        raise ValueError(f"Unknown role(s): {sorted(unknown)}. Allowed: {sorted(ALL_ROLES)}")

    async def _checker(profile: Profile = Depends(get_current_user)) -> Profile:
        if profile.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return profile

    return _checker


require_super_admin = require_roles(ProfileRole.SUPER_ADMIN)
