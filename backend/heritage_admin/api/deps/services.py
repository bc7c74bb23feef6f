"""
Providers for hosted collaborators. Routes depend on these so tests (and
USE_IN_MEMORY_BACKENDS=true local runs) can swap in the in-memory doubles.
"""

from __future__ import annotations

from functools import lru_cache

from heritage_admin.core.config import settings
from heritage_admin.services.billing import BillingGateway, InMemoryBillingGateway, StripeGateway
from heritage_admin.services.geocoding import Geocoder, InMemoryGeocoder, NominatimGeocoder
from heritage_admin.services.identity import (
    IdentityProvider,
    InMemoryIdentityProvider,
    SupabaseIdentityProvider,
)
from heritage_admin.services.storage import (
    InMemoryObjectStorage,
    ObjectStorage,
    SupabaseObjectStorage,
)


@lru_cache
def get_identity_provider() -> IdentityProvider:
    if settings.USE_IN_MEMORY_BACKENDS:
        return InMemoryIdentityProvider()
    return SupabaseIdentityProvider(
        url=settings.SUPABASE_URL,
        service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
        anon_key=settings.SUPABASE_ANON_KEY,
    )


@lru_cache
def get_object_storage() -> ObjectStorage:
    if settings.USE_IN_MEMORY_BACKENDS:
        return InMemoryObjectStorage(base_url=settings.SUPABASE_URL, bucket=settings.SUPABASE_STORAGE_BUCKET)
    return SupabaseObjectStorage(
        url=settings.SUPABASE_URL,
        service_role_key=settings.SUPABASE_SERVICE_ROLE_KEY,
        bucket=settings.SUPABASE_STORAGE_BUCKET,
    )


@lru_cache
def get_billing_gateway() -> BillingGateway:
    if settings.USE_IN_MEMORY_BACKENDS:
        return InMemoryBillingGateway()
    return StripeGateway(api_key=settings.STRIPE_SECRET_KEY)


@lru_cache
def get_geocoder() -> Geocoder:
    if settings.USE_IN_MEMORY_BACKENDS:
        return InMemoryGeocoder()
    return NominatimGeocoder(
        url=settings.GEOCODER_URL,
        user_agent=settings.GEOCODER_USER_AGENT,
        timeout=settings.GEOCODER_TIMEOUT_SECONDS,
    )
