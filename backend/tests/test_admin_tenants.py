# tests/test_admin_tenants.py
from __future__ import annotations

import pytest
from sqlalchemy import func, select

from heritage_admin.api.v1 import tenants as tenants_api
from heritage_admin.models.tenant import Tenant


@pytest.mark.asyncio
async def test_super_admin_creates_tenant(client, db, make_profile, headers_for):
    admin = await make_profile(None, role="super_admin")

    r = await client.post(
        "/api/admin/tenants",
        json={"name": "Lawrence County Museum", "slug": "lawrence-county", "state": "IN"},
        headers=headers_for(admin),
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    assert body["tenant"]["slug"] == "lawrence-county"
    assert body["tenant"]["subscription_status"] == "inactive"
    assert body["tenant"]["active"] is True

    stored = (await db.execute(select(Tenant).where(Tenant.slug == "lawrence-county"))).scalar_one()
    assert stored.state == "IN"


@pytest.mark.asyncio
async def test_duplicate_slug_conflict_makes_no_writes(client, db, make_tenant, make_profile, headers_for):
    admin = await make_profile(None, role="super_admin")
    await make_tenant(name="Original", slug="lawrence-county")

    r = await client.post(
        "/api/admin/tenants",
        json={"name": "Copy", "slug": "lawrence-county", "state": "OH"},
        headers=headers_for(admin),
    )
    assert r.status_code == 409

    n = (await db.execute(select(func.count()).select_from(Tenant))).scalar_one()
    assert n == 1
    name = (await db.execute(select(Tenant.name).where(Tenant.slug == "lawrence-county"))).scalar_one()
    assert name == "Original"


@pytest.mark.asyncio
async def test_slug_taken_after_precheck_is_still_conflict(client, db, monkeypatch, make_tenant, make_profile, headers_for):
    admin = await make_profile(None, role="super_admin")
    await make_tenant(name="Original", slug="lawrence-county")

    async def not_found(db, slug):
        return None

    monkeypatch.setattr(tenants_api, "get_tenant_by_slug", not_found)

    r = await client.post(
        "/api/admin/tenants",
        json={"name": "Copy", "slug": "lawrence-county", "state": "OH"},
        headers=headers_for(admin),
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "A tenant with this slug already exists"
    assert (await db.execute(select(func.count()).select_from(Tenant))).scalar_one() == 1

@pytest.mark.asyncio
async def test_invalid_state_is_400(client, make_profile, headers_for):
    admin = await make_profile(None, role="super_admin")

    r = await client.post(
        "/api/admin/tenants",
        json={"name": "Somewhere", "slug": "somewhere", "state": "Indiana"},
        headers=headers_for(admin),
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "state: Invalid state code. Must be 2 uppercase letters (e.g., IN, OH)"


@pytest.mark.asyncio
async def test_missing_state_is_400(client, make_profile, headers_for):
    admin = await make_profile(None, role="super_admin")

    r = await client.post(
        "/api/admin/tenants",
        json={"name": "Somewhere", "slug": "somewhere"},
        headers=headers_for(admin),
    )
    assert r.status_code == 400
    assert r.json()["detail"].startswith("state:")


@pytest.mark.asyncio
@pytest.mark.parametrize("role", ["county_admin", "editor", "viewer"])
async def test_non_super_admin_is_forbidden(client, db, make_tenant, make_profile, headers_for, role):
    tenant = await make_tenant()
    user = await make_profile(tenant, role=role)

    r = await client.post(
        "/api/admin/tenants",
        json={"name": "Sneaky", "slug": "sneaky", "state": "IN"},
        headers=headers_for(user),
    )
    assert r.status_code == 403
    assert (await db.execute(select(Tenant).where(Tenant.slug == "sneaky"))).scalar_one_or_none() is None


@pytest.mark.asyncio
async def test_unauthenticated_is_401(client):
    r = await client.post("/api/admin/tenants", json={"name": "Nobody", "slug": "nobody", "state": "IN"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_list_orders_by_state_then_name(client, make_tenant, make_profile, headers_for):
    admin = await make_profile(None, role="super_admin")
    await make_tenant(name="Zeta", state="IN")
    await make_tenant(name="Alpha", state="OH")
    await make_tenant(name="Beta", state="IN")

    r = await client.get("/api/admin/tenants", headers=headers_for(admin))
    assert r.status_code == 200
    assert [(t["state"], t["name"]) for t in r.json()] == [("IN", "Beta"), ("IN", "Zeta"), ("OH", "Alpha")]
