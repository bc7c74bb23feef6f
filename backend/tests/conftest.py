from __future__ import annotations

import os
import uuid

# Settings are read at import time; pin test values before anything imports them.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SUPABASE_URL", "https://project.supabase.test")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-32-characters")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_PRICE_MONTHLY", "price_monthly_test")
os.environ.setdefault("STRIPE_PRICE_YEARLY", "price_yearly_test")
os.environ.setdefault("APP_URL", "http://dashboard.test")
os.environ.setdefault("USE_IN_MEMORY_BACKENDS", "true")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from heritage_admin.api.deps.services import (
    get_billing_gateway,
    get_geocoder,
    get_identity_provider,
    get_object_storage,
)
from heritage_admin.core.config import settings
from heritage_admin.core.security import create_access_token
from heritage_admin.db.session import get_db
from heritage_admin.models.location import Location
from heritage_admin.models.profile import Profile
from heritage_admin.models.tenant import Tenant
from heritage_admin.services.billing import InMemoryBillingGateway
from heritage_admin.services.geocoding import InMemoryGeocoder
from heritage_admin.services.identity import InMemoryIdentityProvider
from heritage_admin.services.storage import InMemoryObjectStorage

# Ensure Base + models are registered before create_all
from heritage_admin.db.base import Base  # noqa: F401
import heritage_admin.models  # noqa: F401


# ---------------------------------------------------------
# Engine + schema lifecycle (one sqlite file per test)
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'heritage.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )


# ---------------------------------------------------------
# DB session for assertions / setup
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    """
    Session for test assertions ONLY. Rows are created through the factory
    fixtures so this session's identity map never holds stale objects.
    """
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# Hosted collaborators (in-memory doubles)
# ---------------------------------------------------------
@pytest.fixture()
def identity():
    return InMemoryIdentityProvider()


@pytest.fixture()
def storage():
    return InMemoryObjectStorage(base_url=settings.SUPABASE_URL, bucket=settings.SUPABASE_STORAGE_BUCKET)


@pytest.fixture()
def billing():
    return InMemoryBillingGateway()


@pytest.fixture()
def geocoder():
    return InMemoryGeocoder()


# ---------------------------------------------------------
# FastAPI app + dependency override
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker, identity, storage, billing, geocoder):
    from heritage_admin.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    fastapi_app.dependency_overrides[get_identity_provider] = lambda: identity
    fastapi_app.dependency_overrides[get_object_storage] = lambda: storage
    fastapi_app.dependency_overrides[get_billing_gateway] = lambda: billing
    fastapi_app.dependency_overrides[get_geocoder] = lambda: geocoder
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


# ---------------------------------------------------------
# HTTP client
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------
# Factories
# ---------------------------------------------------------
@pytest.fixture()
def make_tenant(sessionmaker):
    async def _make(name: str | None = None, slug: str | None = None, state: str = "IN", **fields) -> Tenant:
        suffix = uuid.uuid4().hex[:8]
        tenant = Tenant(
            name=name or f"Test County Historical Society {suffix}",
            slug=slug or f"test-county-{suffix}",
            state=state,
            active=fields.pop("active", True),
            subscription_status=fields.pop("subscription_status", "inactive"),
            subscription_tier=fields.pop("subscription_tier", "standard"),
            **fields,
        )
        async with sessionmaker() as session:
            session.add(tenant)
            await session.commit()
            await session.refresh(tenant)
        return tenant

    return _make


@pytest.fixture()
def make_profile(sessionmaker, identity):
    """
    Creates the profile row and a matching user in the identity double.
    """

    async def _make(
        tenant: Tenant | None,
        role: str = "county_admin",
        email: str | None = None,
        password: str = "correct-horse-battery",
        full_name: str = "Test User",
    ) -> Profile:
        user_id = uuid.uuid4()
        email = (email or f"user-{user_id.hex[:8]}@example.com").lower()
        identity.users[str(user_id)] = {
            "email": email,
            "password": password,
            "confirmed": True,
            "full_name": full_name,
        }
        profile = Profile(
            id=user_id,
            tenant_id=tenant.id if tenant else None,
            role=role,
            email=email,
            full_name=full_name,
        )
        async with sessionmaker() as session:
            session.add(profile)
            await session.commit()
            await session.refresh(profile)
        return profile

    return _make


@pytest.fixture()
def make_location(sessionmaker):
    async def _make(tenant: Tenant, name: str = "Old Courthouse", **fields) -> Location:
        loc = Location(
            tenant_id=tenant.id,
            name=name,
            address=fields.pop("address", "1 Main St, Nashville, IN"),
            lat=fields.pop("lat", 39.2073),
            lng=fields.pop("lng", -86.2511),
            image_urls=fields.pop("image_urls", []),
            hours=fields.pop("hours", []),
            featured=fields.pop("featured", False),
            active=fields.pop("active", True),
            **fields,
        )
        async with sessionmaker() as session:
            session.add(loc)
            await session.commit()
            await session.refresh(loc)
        return loc

    return _make


def auth_headers(profile: Profile) -> dict[str, str]:
    token = create_access_token(str(profile.id), email=profile.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers_for():
    return auth_headers
