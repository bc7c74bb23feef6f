from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.api.v1.auth import build_me_response, get_current_user
from heritage_admin.db.session import get_db
from heritage_admin.models.profile import Profile
from heritage_admin.schemas.auth import AccountUpdateRequest, MeResponse

router = APIRouter(prefix="/account", tags=["account"])


@router.get("", response_model=MeResponse)
async def get_account(
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(get_current_user),
):
    return await build_me_response(db, profile)


@router.patch("", response_model=MeResponse)
async def update_account(
    payload: AccountUpdateRequest,
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(get_current_user),
):
    """
    Partial update of the caller's own name fields.
    Omitted fields are unchanged; null or blank clears them.
    """
    data = payload.model_dump(exclude_unset=True)
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    for field, value in data.items():
        setattr(profile, field, value)

    # Keep full_name in step when only the parts change
    if "full_name" not in data and ("first_name" in data or "last_name" in data):
        parts = [p for p in (profile.first_name, profile.last_name) if p]
        profile.full_name = " ".join(parts) or profile.full_name

    await db.commit()
    await db.refresh(profile)
    return await build_me_response(db, profile)
