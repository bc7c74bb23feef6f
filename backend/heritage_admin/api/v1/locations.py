# heritage_admin/api/v1/locations.py
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.api.deps.services import get_geocoder, get_object_storage
from heritage_admin.api.deps.tenant import get_current_tenant, require_roles
from heritage_admin.core.config import settings
from heritage_admin.core.errors import GeocodingError, StorageError
from heritage_admin.core.roles import CONTENT_WRITER_ROLES
from heritage_admin.db.session import get_db
from heritage_admin.models.location import Location
from heritage_admin.models.profile import Profile
from heritage_admin.models.tenant import Tenant
from heritage_admin.schemas.location import (
    GeocodeOut,
    GeocodeRequest,
    ImageDelete,
    LocationCreate,
    LocationOut,
    LocationUpdate,
    MuseumHoursUpdate,
    validate_latitude,
    validate_longitude,
)
from heritage_admin.services.geocoding import GeocodeResult, Geocoder
from heritage_admin.services.storage import ObjectStorage, location_image_path

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/locations", tags=["locations"])

require_writer = require_roles(*sorted(CONTENT_WRITER_ROLES))

IMAGE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

# Columns that may not be set to null through PATCH
NON_NULLABLE_FIELDS = {"name", "featured", "active"}

# Compare-and-swap retries for concurrent image writes to one location
IMAGE_WRITE_ATTEMPTS = 5


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
async def _get_location(
    db: AsyncSession,
    tenant: Tenant,
    location_id: uuid.UUID,
    *,
    lock: bool = False,
) -> Location:
    stmt = select(Location).where(
        Location.id == location_id,
        Location.tenant_id == tenant.id,
    )
    if lock:
        stmt = stmt.with_for_update()
    loc = (await db.execute(stmt)).scalars().first()
    if not loc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return loc


async def _swap_image_urls(db: AsyncSession, loc: Location, new_urls: list[str]) -> bool:
    """
    Write image_urls only if nobody else has since the row was read.
    Backends without row locks (SQLite) rely on this check alone.
    """
    stmt = (
        update(Location)
        .where(Location.id == loc.id, Location.images_version == loc.images_version)
        .values(image_urls=new_urls, images_version=loc.images_version + 1)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    if res.rowcount != 1:
        await db.rollback()
        return False
    await db.commit()
    return True


def _image_limit_reached() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"A location can have at most {settings.MAX_IMAGES_PER_LOCATION} images",
    )


async def _geocode_or_400(geocoder: Geocoder, address: str) -> GeocodeResult:
    try:
        result = await geocoder.geocode(address)
        validate_latitude(result.lat)
        validate_longitude(result.lng)
    except (GeocodingError, ValueError) as exc:
        logger.info("Geocoding failed for %r: %s", address, getattr(exc, "message", exc))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Could not geocode address")
    return result


# ---------------------------------------------------------
# Read
# ---------------------------------------------------------
@router.get("", response_model=List[LocationOut])
async def list_locations(
    active: Optional[bool] = Query(default=None),
    featured: Optional[bool] = Query(default=None),
    q: Optional[str] = Query(default=None, max_length=200),
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    stmt = select(Location).where(Location.tenant_id == tenant.id)
    if active is not None:
        stmt = stmt.where(Location.active.is_(active))
    if featured is not None:
        stmt = stmt.where(Location.featured.is_(featured))
    if q and q.strip():
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(Location.name.ilike(like), Location.address.ilike(like)))
    stmt = stmt.order_by(Location.name.asc())

    res = await db.execute(stmt)
    return list(res.scalars().all())


@router.get("/{location_id}", response_model=LocationOut)
async def get_location(
    location_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    return await _get_location(db, tenant, location_id)


# ---------------------------------------------------------
# Write
# ---------------------------------------------------------
@router.post("/geocode", response_model=GeocodeOut)
async def geocode_address(
    payload: GeocodeRequest,
    _tenant: Tenant = Depends(get_current_tenant),
    _writer: Profile = Depends(require_writer),
    geocoder: Geocoder = Depends(get_geocoder),
):
    result = await _geocode_or_400(geocoder, payload.address.strip())
    return GeocodeOut(lat=result.lat, lng=result.lng, display_name=result.display_name)


@router.post("", response_model=LocationOut, status_code=status.HTTP_201_CREATED)
async def create_location(
    payload: LocationCreate,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    writer: Profile = Depends(require_writer),
    geocoder: Geocoder = Depends(get_geocoder),
):
    lat, lng = payload.lat, payload.lng
    if lat is None:
        result = await _geocode_or_400(geocoder, payload.address)
        lat, lng = result.lat, result.lng

    loc = Location(
        id=uuid.uuid4(),
        tenant_id=tenant.id,
        name=payload.name,
        description=payload.description,
        address=payload.address,
        lat=lat,
        lng=lng,
        audio_url=payload.audio_url,
        image_urls=[],
        hours=[],
        featured=payload.featured,
        active=payload.active,
    )
    db.add(loc)
    await db.commit()
    await db.refresh(loc)

    logger.info("Location %s created in tenant %s by %s", loc.id, tenant.id, writer.id)
    return loc


@router.patch("/{location_id}", response_model=LocationOut)
async def update_location(
    location_id: uuid.UUID,
    payload: LocationUpdate,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    _writer: Profile = Depends(require_writer),
    geocoder: Geocoder = Depends(get_geocoder),
):
    loc = await _get_location(db, tenant, location_id)
    changes = payload.model_dump(exclude_unset=True)

    for field in NON_NULLABLE_FIELDS & changes.keys():
        if changes[field] is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field}: may not be null")

    if "name" in changes:
        changes["name"] = changes["name"].strip()
        if not changes["name"]:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name: Name is required")

    # A new address without explicit coordinates moves the pin
    new_address = (changes.get("address") or "").strip()
    if "lat" not in changes and new_address and new_address != (loc.address or ""):
        result = await _geocode_or_400(geocoder, new_address)
        changes["lat"], changes["lng"] = result.lat, result.lng

    for field, value in changes.items():
        setattr(loc, field, value)

    await db.commit()
    await db.refresh(loc)
    return loc


@router.delete("/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_location(
    location_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    writer: Profile = Depends(require_writer),
    storage: ObjectStorage = Depends(get_object_storage),
):
    loc = await _get_location(db, tenant, location_id)
    paths = [p for p in (storage.path_from_url(u) for u in (loc.image_urls or [])) if p]

    await db.delete(loc)
    await db.commit()

    # Orphaned objects are harmless; the row is already gone
    if paths:
        try:
            await storage.remove(paths)
        except StorageError as exc:
            logger.warning("Could not remove %d image(s) of deleted location %s: %s", len(paths), location_id, exc.message)

    logger.info("Location %s deleted from tenant %s by %s", location_id, tenant.id, writer.id)
    return None


@router.put("/{location_id}/hours", response_model=LocationOut)
async def replace_hours(
    location_id: uuid.UUID,
    payload: MuseumHoursUpdate,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    _writer: Profile = Depends(require_writer),
):
    loc = await _get_location(db, tenant, location_id)
    loc.hours = [entry.model_dump() for entry in payload.hours]
    await db.commit()
    await db.refresh(loc)
    return loc


# ---------------------------------------------------------
# Images
# ---------------------------------------------------------
@router.post("/{location_id}/images", response_model=LocationOut, status_code=status.HTTP_201_CREATED)
async def upload_image(
    location_id: uuid.UUID,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    _writer: Profile = Depends(require_writer),
    storage: ObjectStorage = Depends(get_object_storage),
):
    loc = await _get_location(db, tenant, location_id)

    content_type = (file.content_type or "").lower()
    ext = IMAGE_EXTENSIONS.get(content_type)
    if ext is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file: Only image files are allowed")

    if len(loc.image_urls or []) >= settings.MAX_IMAGES_PER_LOCATION:
        raise _image_limit_reached()

    # One byte past the limit is enough to reject
    data = await file.read(settings.MAX_IMAGE_BYTES + 1)
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="file: File is empty")
    if len(data) > settings.MAX_IMAGE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"file: Image must be {settings.MAX_IMAGE_BYTES // (1024 * 1024)}MB or smaller",
        )

    path = location_image_path(str(loc.id), f"{uuid.uuid4()}.{ext}")
    public_url = await storage.upload(path, data, content_type)

    try:
        for _ in range(IMAGE_WRITE_ATTEMPTS):
            # Re-read under the row lock; the count may have moved during the upload
            loc = await _get_location(db, tenant, location_id, lock=True)
            current = list(loc.image_urls or [])
            if len(current) >= settings.MAX_IMAGES_PER_LOCATION:
                raise _image_limit_reached()
            if await _swap_image_urls(db, loc, current + [public_url]):
                break
        else:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="The location's images changed too often; please retry",
            )
    except Exception:
        await db.rollback()
        try:
            await storage.remove([path])
        except StorageError as exc:
            logger.warning("Could not remove unattached upload %s: %s", path, exc.message)
        raise

    await db.refresh(loc)
    return loc


@router.delete("/{location_id}/images", response_model=LocationOut)
async def delete_image(
    location_id: uuid.UUID,
    payload: ImageDelete,
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    _writer: Profile = Depends(require_writer),
    storage: ObjectStorage = Depends(get_object_storage),
):
    for _ in range(IMAGE_WRITE_ATTEMPTS):
        loc = await _get_location(db, tenant, location_id, lock=True)
        current = list(loc.image_urls or [])
        if payload.url not in current:
            await db.rollback()
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
        if await _swap_image_urls(db, loc, [u for u in current if u != payload.url]):
            break
    else:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The location's images changed too often; please retry",
        )

    # The URL is already detached; a leftover object is only wasted space
    path = storage.path_from_url(payload.url)
    if path:
        try:
            await storage.remove([path])
        except StorageError as exc:
            logger.warning("Could not remove image %s of location %s: %s", path, location_id, exc.message)

    await db.refresh(loc)
    return loc
