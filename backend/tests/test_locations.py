# tests/test_locations.py
from __future__ import annotations

import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from heritage_admin.models.location import Location

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


async def location_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Location))).scalar_one()


# ---------------------------------------------------------
# Create + coordinate validation
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_create_with_coordinates(client, make_tenant, make_profile, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")

    r = await client.post(
        "/api/locations",
        json={"name": "  Covered Bridge ", "lat": 39.1, "lng": -86.5, "featured": True},
        headers=headers_for(editor),
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["name"] == "Covered Bridge"
    assert body["tenant_id"] == str(tenant.id)
    assert body["lat"] == 39.1
    assert body["featured"] is True
    assert body["image_urls"] == []
    assert body["hours"] == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "coords",
    [
        {"lat": 91, "lng": 0},
        {"lat": -90.5, "lng": 0},
        {"lat": 0, "lng": 180.01},
        {"lat": 0, "lng": -181},
        {"lat": 10},
    ],
)
async def test_out_of_range_coordinates_rejected_before_persistence(
    client, db, make_tenant, make_profile, headers_for, coords
):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")

    r = await client.post("/api/locations", json={"name": "Nowhere", **coords}, headers=headers_for(editor))
    assert r.status_code == 400
    assert await location_count(db) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ['{"name": "Nowhere", "lat": NaN, "lng": 0}', '{"name": "Nowhere", "lat": 0, "lng": Infinity}'])
async def test_non_finite_coordinates_rejected(client, db, make_tenant, make_profile, headers_for, raw):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")

    r = await client.post(
        "/api/locations",
        content=raw,
        headers={**headers_for(editor), "Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert await location_count(db) == 0


@pytest.mark.asyncio
async def test_create_geocodes_address(client, geocoder, make_tenant, make_profile, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    geocoder.add("55 S Van Buren St, Nashville, IN", 39.2070, -86.2510)

    r = await client.post(
        "/api/locations",
        json={"name": "Courthouse", "address": "55 S Van Buren St, Nashville, IN"},
        headers=headers_for(editor),
    )
    assert r.status_code == 201, r.text
    assert r.json()["lat"] == 39.2070
    assert r.json()["lng"] == -86.2510


@pytest.mark.asyncio
async def test_geocode_failure_is_400_and_nothing_saved(client, db, make_tenant, make_profile, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")

    r = await client.post(
        "/api/locations",
        json={"name": "Lost", "address": "Nowhere at all"},
        headers=headers_for(editor),
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Could not geocode address"
    assert await location_count(db) == 0


@pytest.mark.asyncio
async def test_neither_coordinates_nor_address_is_400(client, make_tenant, make_profile, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")

    r = await client.post("/api/locations", json={"name": "Floating"}, headers=headers_for(editor))
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_geocode_endpoint(client, geocoder, make_tenant, make_profile, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    geocoder.add("1 Main St", 40.0, -85.0)

    ok = await client.post("/api/locations/geocode", json={"address": "1  main st"}, headers=headers_for(editor))
    assert ok.status_code == 200
    assert ok.json()["lat"] == 40.0

    miss = await client.post("/api/locations/geocode", json={"address": "2 Main St"}, headers=headers_for(editor))
    assert miss.status_code == 400


# ---------------------------------------------------------
# Roles + tenant isolation
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_viewer_can_read_but_not_write(client, db, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    viewer = await make_profile(tenant, role="viewer")
    loc = await make_location(tenant)

    r = await client.get("/api/locations", headers=headers_for(viewer))
    assert r.status_code == 200
    assert [x["id"] for x in r.json()] == [str(loc.id)]

    r = await client.post("/api/locations", json={"name": "X", "lat": 1, "lng": 1}, headers=headers_for(viewer))
    assert r.status_code == 403
    r = await client.patch(f"/api/locations/{loc.id}", json={"name": "Renamed"}, headers=headers_for(viewer))
    assert r.status_code == 403
    r = await client.delete(f"/api/locations/{loc.id}", headers=headers_for(viewer))
    assert r.status_code == 403
    assert await location_count(db) == 1


@pytest.mark.asyncio
async def test_other_tenant_locations_are_invisible(client, make_tenant, make_profile, make_location, headers_for):
    mine = await make_tenant()
    theirs = await make_tenant()
    editor = await make_profile(mine, role="county_admin")
    foreign = await make_location(theirs, name="Their Mill")

    r = await client.get("/api/locations", headers=headers_for(editor))
    assert r.json() == []

    assert (await client.get(f"/api/locations/{foreign.id}", headers=headers_for(editor))).status_code == 404
    r = await client.patch(f"/api/locations/{foreign.id}", json={"name": "Mine now"}, headers=headers_for(editor))
    assert r.status_code == 404
    assert (await client.delete(f"/api/locations/{foreign.id}", headers=headers_for(editor))).status_code == 404


@pytest.mark.asyncio
async def test_profile_without_tenant_is_403(client, make_profile, headers_for):
    lonely = await make_profile(None, role="editor")
    r = await client.get("/api/locations", headers=headers_for(lonely))
    assert r.status_code == 403
    assert r.json()["detail"] == "No tenant assigned to your account"


@pytest.mark.asyncio
async def test_list_filters(client, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    await make_location(tenant, name="Mill", featured=True)
    await make_location(tenant, name="Jail", active=False)
    await make_location(tenant, name="School", address="9 Schoolhouse Rd")

    featured = await client.get("/api/locations", params={"featured": "true"}, headers=headers_for(editor))
    assert [x["name"] for x in featured.json()] == ["Mill"]

    inactive = await client.get("/api/locations", params={"active": "false"}, headers=headers_for(editor))
    assert [x["name"] for x in inactive.json()] == ["Jail"]

    search = await client.get("/api/locations", params={"q": "schoolhouse"}, headers=headers_for(editor))
    assert [x["name"] for x in search.json()] == ["School"]


# ---------------------------------------------------------
# Update / delete
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_patch_updates_only_given_fields(client, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant, name="Mill", description="Old mill")

    r = await client.patch(f"/api/locations/{loc.id}", json={"featured": True}, headers=headers_for(editor))
    assert r.status_code == 200
    assert r.json()["featured"] is True
    assert r.json()["description"] == "Old mill"


@pytest.mark.asyncio
async def test_patch_rejects_bad_coordinates(client, db, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant, lat=39.0, lng=-86.0)

    r = await client.patch(f"/api/locations/{loc.id}", json={"lat": 100, "lng": 0}, headers=headers_for(editor))
    assert r.status_code == 400
    r = await client.patch(f"/api/locations/{loc.id}", json={"lat": 10}, headers=headers_for(editor))
    assert r.status_code == 400

    stored = await db.get(Location, loc.id)
    assert (stored.lat, stored.lng) == (39.0, -86.0)


@pytest.mark.asyncio
async def test_patch_new_address_regeocodes(client, geocoder, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)
    geocoder.add("10 New Rd", 38.5, -87.5)

    r = await client.patch(f"/api/locations/{loc.id}", json={"address": "10 New Rd"}, headers=headers_for(editor))
    assert r.status_code == 200
    assert (r.json()["lat"], r.json()["lng"]) == (38.5, -87.5)


@pytest.mark.asyncio
async def test_patch_blank_text_is_stored_as_null(client, db, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant, lat=39.0, lng=-86.0, description="Old mill")

    r = await client.patch(
        f"/api/locations/{loc.id}",
        json={"address": "   ", "description": " ", "audio_url": "  https://cdn.test/tour.mp3 "},
        headers=headers_for(editor),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["address"] is None
    assert body["description"] is None
    assert body["audio_url"] == "https://cdn.test/tour.mp3"
    assert (body["lat"], body["lng"]) == (39.0, -86.0)

    stored = await db.get(Location, loc.id)
    assert stored.address is None


@pytest.mark.asyncio
async def test_delete_removes_row_and_images(client, db, storage, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)

    up = await client.post(
        f"/api/locations/{loc.id}/images",
        files={"file": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers_for(editor),
    )
    assert up.status_code == 201
    assert len(storage.stored_objects) == 1

    r = await client.delete(f"/api/locations/{loc.id}", headers=headers_for(editor))
    assert r.status_code == 204
    assert await location_count(db) == 0
    assert storage.stored_objects == {}


@pytest.mark.asyncio
async def test_delete_survives_storage_failure(client, db, storage, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    url = f"{storage.base_url}/storage/v1/object/public/{storage.bucket}/locations/x/a.png"
    loc = await make_location(tenant, image_urls=[url])
    storage.fail_remove = "bucket unavailable"

    r = await client.delete(f"/api/locations/{loc.id}", headers=headers_for(editor))
    assert r.status_code == 204
    assert await location_count(db) == 0


# ---------------------------------------------------------
# Museum hours
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_replace_hours(client, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)

    r = await client.put(
        f"/api/locations/{loc.id}/hours",
        json={
            "hours": [
                {"day": "Saturday", "open": "10:00", "close": "16:00"},
                {"day": "monday", "closed": True, "open": "09:00", "close": "17:00"},
            ]
        },
        headers=headers_for(editor),
    )
    assert r.status_code == 200, r.text
    hours = r.json()["hours"]
    assert [h["day"] for h in hours] == ["monday", "saturday"]
    assert hours[0]["closed"] is True
    assert hours[0]["open"] is None
    assert hours[1]["open"] == "10:00"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "hours",
    [
        [{"day": "monday", "open": "17:00", "close": "09:00"}],
        [{"day": "monday", "open": "9:00", "close": "17:00"}],
        [{"day": "monday", "open": "09:00"}],
        [{"day": "funday", "open": "09:00", "close": "17:00"}],
        [
            {"day": "monday", "open": "09:00", "close": "12:00"},
            {"day": "monday", "open": "13:00", "close": "17:00"},
        ],
    ],
)
async def test_invalid_hours_rejected(client, make_tenant, make_profile, make_location, headers_for, hours):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)

    r = await client.put(f"/api/locations/{loc.id}/hours", json={"hours": hours}, headers=headers_for(editor))
    assert r.status_code == 400


# ---------------------------------------------------------
# Images
# ---------------------------------------------------------
@pytest.mark.asyncio
async def test_upload_image_stores_under_location_path(client, storage, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)

    r = await client.post(
        f"/api/locations/{loc.id}/images",
        files={"file": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers_for(editor),
    )
    assert r.status_code == 201, r.text
    urls = r.json()["image_urls"]
    assert len(urls) == 1
    (path,) = storage.stored_objects.keys()
    assert path.startswith(f"locations/{loc.id}/")
    assert path.endswith(".png")
    assert urls[0].endswith(path)


@pytest.mark.asyncio
async def test_upload_rejects_non_images(client, storage, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)

    r = await client.post(
        f"/api/locations/{loc.id}/images",
        files={"file": ("notes.pdf", b"%PDF-1.7", "application/pdf")},
        headers=headers_for(editor),
    )
    assert r.status_code == 400
    assert storage.stored_objects == {}


@pytest.mark.asyncio
async def test_upload_rejects_oversized_file(client, storage, monkeypatch, make_tenant, make_profile, make_location, headers_for):
    from heritage_admin.core.config import settings

    monkeypatch.setattr(settings, "MAX_IMAGE_BYTES", 16)
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)

    r = await client.post(
        f"/api/locations/{loc.id}/images",
        files={"file": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers_for(editor),
    )
    assert r.status_code == 400
    assert storage.stored_objects == {}


@pytest.mark.asyncio
async def test_sixth_image_is_conflict(client, storage, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    existing = [f"https://cdn.test/{i}.png" for i in range(5)]
    loc = await make_location(tenant, image_urls=existing)

    r = await client.post(
        f"/api/locations/{loc.id}/images",
        files={"file": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers_for(editor),
    )
    assert r.status_code == 409
    assert storage.stored_objects == {}


async def upload(client, loc, headers):
    return await client.post(
        f"/api/locations/{loc.id}/images",
        files={"file": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_concurrent_uploads_keep_every_url(client, storage, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)
    headers = headers_for(editor)

    responses = await asyncio.gather(*(upload(client, loc, headers) for _ in range(3)))
    assert [r.status_code for r in responses] == [201, 201, 201]

    r = await client.get(f"/api/locations/{loc.id}", headers=headers)
    urls = r.json()["image_urls"]
    assert len(urls) == 3
    assert len(storage.stored_objects) == 3
    assert {storage.path_from_url(u) for u in urls} == set(storage.stored_objects)


@pytest.mark.asyncio
async def test_concurrent_uploads_respect_image_limit(client, storage, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant, image_urls=[f"https://cdn.test/{i}.png" for i in range(4)])
    headers = headers_for(editor)

    responses = await asyncio.gather(*(upload(client, loc, headers) for _ in range(3)))
    assert sorted(r.status_code for r in responses) == [201, 409, 409]

    r = await client.get(f"/api/locations/{loc.id}", headers=headers)
    assert len(r.json()["image_urls"]) == 5
    # losers clean up what they stored
    assert len(storage.stored_objects) == 1


@pytest.mark.asyncio
async def test_delete_image(client, storage, make_tenant, make_profile, make_location, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    loc = await make_location(tenant)

    up = await client.post(
        f"/api/locations/{loc.id}/images",
        files={"file": ("photo.png", PNG_BYTES, "image/png")},
        headers=headers_for(editor),
    )
    url = up.json()["image_urls"][0]

    r = await client.request("DELETE", f"/api/locations/{loc.id}/images", json={"url": url}, headers=headers_for(editor))
    assert r.status_code == 200
    assert r.json()["image_urls"] == []
    assert storage.stored_objects == {}

    again = await client.request("DELETE", f"/api/locations/{loc.id}/images", json={"url": url}, headers=headers_for(editor))
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_unknown_location_is_404(client, make_tenant, make_profile, headers_for):
    tenant = await make_tenant()
    editor = await make_profile(tenant, role="editor")
    r = await client.get(f"/api/locations/{uuid.uuid4()}", headers=headers_for(editor))
    assert r.status_code == 404
