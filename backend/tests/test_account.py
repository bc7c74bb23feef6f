# tests/test_account.py
from __future__ import annotations

import pytest


@pytest.mark.asyncio
async def test_get_account(client, make_tenant, make_profile, headers_for):
    tenant = await make_tenant(name="Greene County")
    user = await make_profile(tenant, role="editor", email="me@greene.org")

    r = await client.get("/api/account", headers=headers_for(user))
    assert r.status_code == 200
    body = r.json()
    assert body["email"] == "me@greene.org"
    assert body["role"] == "editor"
    assert body["tenant"]["name"] == "Greene County"


@pytest.mark.asyncio
async def test_update_name_parts(client, make_tenant, make_profile, headers_for):
    tenant = await make_tenant()
    user = await make_profile(tenant, full_name="Old Name")

    r = await client.patch(
        "/api/account",
        json={"first_name": "  Grace ", "last_name": "Hopper"},
        headers=headers_for(user),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["first_name"] == "Grace"
    assert body["last_name"] == "Hopper"
    assert body["full_name"] == "Grace Hopper"


@pytest.mark.asyncio
async def test_empty_update_is_400(client, make_profile, headers_for):
    user = await make_profile(None)
    r = await client.patch("/api/account", json={}, headers=headers_for(user))
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_role_cannot_be_changed_through_account(client, make_profile, headers_for):
    user = await make_profile(None, role="viewer")
    r = await client.patch("/api/account", json={"role": "super_admin"}, headers=headers_for(user))
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_malformed_json_body_is_400(client, make_profile, headers_for):
    user = await make_profile(None)
    r = await client.patch(
        "/api/account",
        content='{"first_name": "Grace",',
        headers={**headers_for(user), "Content-Type": "application/json"},
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "body: Invalid JSON"
    assert r.json()["errors"] == [{"field": "body", "message": "Invalid JSON"}]
