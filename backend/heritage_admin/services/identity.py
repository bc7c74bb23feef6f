"""
Identity provider seam: Supabase Auth in deployments, an in-memory double for
tests and local development.

Every Supabase SDK call is synchronous, so the Supabase implementation runs
them in the threadpool to keep the event loop free.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

from fastapi.concurrency import run_in_threadpool
from supabase import Client, create_client

from heritage_admin.core.errors import IdentityProviderError
from heritage_admin.core.security import create_access_token

logger = logging.getLogger(__name__)

LIST_USERS_PAGE_SIZE = 200


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: Optional[str]
    user_id: str


class InvalidCredentials(Exception):
    pass


class IdentityProvider(Protocol):
    """Operations the API needs from the hosted auth service."""

    async def find_user_by_email(self, email: str) -> Optional[AuthUser]:
        ...

    async def create_user(
        self,
        email: str,
        password: str,
        *,
        email_confirm: bool,
        full_name: Optional[str] = None,
    ) -> AuthUser:
        ...

    async def delete_user(self, user_id: str) -> None:
        ...

    async def send_confirmation_email(self, email: str, redirect_to: str) -> None:
        ...

    async def sign_in(self, email: str, password: str) -> AuthSession:
        ...

    async def send_password_reset(self, email: str, redirect_to: str) -> None:
        ...


@dataclass
class InMemoryIdentityProvider:
    """Test double for auth interactions. Issues real (locally signed) JWTs."""

    users: dict = field(default_factory=dict)  # id -> {"email", "password", "confirmed", "full_name"}
    sent_confirmations: list = field(default_factory=list)
    sent_password_resets: list = field(default_factory=list)
    deleted_user_ids: list = field(default_factory=list)

    # failure injection for saga tests
    fail_create_user: Optional[str] = None
    fail_delete_user: Optional[str] = None
    fail_send_confirmation: Optional[str] = None

    async def find_user_by_email(self, email: str) -> Optional[AuthUser]:
        email = email.strip().lower()
        for user_id, data in self.users.items():
            if data["email"] == email:
                return AuthUser(id=user_id, email=email)
        return None

    async def create_user(
        self,
        email: str,
        password: str,
        *,
        email_confirm: bool,
        full_name: Optional[str] = None,
    ) -> AuthUser:
        if self.fail_create_user:
            raise IdentityProviderError(self.fail_create_user)
        email = email.strip().lower()
        if await self.find_user_by_email(email) is not None:
            raise IdentityProviderError("A user with this email address has already been registered")
        user_id = str(uuid.uuid4())
        self.users[user_id] = {
            "email": email,
            "password": password,
            "confirmed": email_confirm,
            "full_name": full_name,
        }
        return AuthUser(id=user_id, email=email)

    async def delete_user(self, user_id: str) -> None:
        if self.fail_delete_user:
            raise IdentityProviderError(self.fail_delete_user)
        if self.users.pop(user_id, None) is None:
            raise IdentityProviderError("User not found")
        self.deleted_user_ids.append(user_id)

    async def send_confirmation_email(self, email: str, redirect_to: str) -> None:
        if self.fail_send_confirmation:
            raise IdentityProviderError(self.fail_send_confirmation)
        self.sent_confirmations.append((email, redirect_to))

    async def sign_in(self, email: str, password: str) -> AuthSession:
        user = await self.find_user_by_email(email)
        if user is None or self.users[user.id]["password"] != password:
            raise InvalidCredentials()
        return AuthSession(
            access_token=create_access_token(user.id, email=user.email),
            refresh_token=None,
            user_id=user.id,
        )

    async def send_password_reset(self, email: str, redirect_to: str) -> None:
        self.sent_password_resets.append((email.strip().lower(), redirect_to))


class SupabaseIdentityProvider:
    """
    Supabase Auth (GoTrue) through the official Python SDK.

    Admin operations use the service-role key and bypass RLS; sign-in and
    user-facing emails go through a fresh anon-key client so the admin
    client never carries a user session.
    """

    def __init__(self, url: str, service_role_key: str, anon_key: str):
        self._url = url
        self._service_role_key = service_role_key
        self._anon_key = anon_key
        self._admin: Optional[Client] = None

    def _admin_client(self) -> Client:
        if self._admin is None:
            self._admin = create_client(self._url, self._service_role_key)
        return self._admin

    def _anon_client(self) -> Client:
        return create_client(self._url, self._anon_key)

    async def find_user_by_email(self, email: str) -> Optional[AuthUser]:
        email = email.strip().lower()

        def _scan() -> Optional[AuthUser]:
            admin = self._admin_client().auth.admin
            page = 1
            while True:
                users = admin.list_users(page=page, per_page=LIST_USERS_PAGE_SIZE)
                for u in users:
                    if (u.email or "").lower() == email:
                        return AuthUser(id=str(u.id), email=email)
                if len(users) < LIST_USERS_PAGE_SIZE:
                    return None
                page += 1

        try:
            return await run_in_threadpool(_scan)
        except Exception as exc:  # SDK raises several unrelated error types
            raise IdentityProviderError(str(exc)) from exc

    async def create_user(
        self,
        email: str,
        password: str,
        *,
        email_confirm: bool,
        full_name: Optional[str] = None,
    ) -> AuthUser:
        attrs = {
            "email": email,
            "password": password,
            "email_confirm": email_confirm,
            "user_metadata": {"full_name": full_name} if full_name else {},
        }
        try:
            res = await run_in_threadpool(self._admin_client().auth.admin.create_user, attrs)
        except Exception as exc:
            raise IdentityProviderError(str(exc)) from exc
        return AuthUser(id=str(res.user.id), email=res.user.email or email)

    async def delete_user(self, user_id: str) -> None:
        try:
            await run_in_threadpool(self._admin_client().auth.admin.delete_user, user_id)
        except Exception as exc:
            raise IdentityProviderError(str(exc)) from exc

    async def send_confirmation_email(self, email: str, redirect_to: str) -> None:
        credentials = {
            "type": "signup",
            "email": email,
            "options": {"email_redirect_to": redirect_to},
        }
        try:
            await run_in_threadpool(self._anon_client().auth.resend, credentials)
        except Exception as exc:
            raise IdentityProviderError(str(exc)) from exc

    async def sign_in(self, email: str, password: str) -> AuthSession:
        client = self._anon_client()
        try:
            res = await run_in_threadpool(
                client.auth.sign_in_with_password,
                {"email": email, "password": password},
            )
        except Exception as exc:
            # GoTrue answers bad credentials with a 400 AuthApiError
            logger.info("Sign-in rejected for %s: %s", email, exc)
            raise InvalidCredentials() from exc
        if res.session is None or res.user is None:
            raise InvalidCredentials()
        return AuthSession(
            access_token=res.session.access_token,
            refresh_token=res.session.refresh_token,
            user_id=str(res.user.id),
        )

    async def send_password_reset(self, email: str, redirect_to: str) -> None:
        try:
            await run_in_threadpool(
                self._anon_client().auth.reset_password_for_email,
                email,
                {"redirect_to": redirect_to},
            )
        except Exception as exc:
            raise IdentityProviderError(str(exc)) from exc
