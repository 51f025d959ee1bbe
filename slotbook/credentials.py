"""Owner calendar credentials: expiry checks and single-flight refresh.

Refreshing the same refresh token twice in parallel can invalidate one of
the results, so refresh for a given owner is serialised. The lock covers
only the check-refresh-persist step; callers make their calendar calls
after releasing it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from slotbook.config import settings
from slotbook.errors import CredentialExpiredError
from slotbook.locks import KeyedLocks
from slotbook.models.credential import CalendarCredential
from slotbook.store.base import SchedulingStore

log = logging.getLogger("slotbook.credentials")


class TokenRefresher(ABC):
    """Exchanges a refresh token for a new access token."""

    @abstractmethod
    async def refresh(self, credential: CalendarCredential) -> CalendarCredential:
        """Return a copy of ``credential`` with a fresh access token and expiry."""


class GoogleTokenRefresher(TokenRefresher):
    """Refresh against Google's OAuth 2.0 token endpoint."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        token_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client_id = client_id if client_id is not None else settings.google_client_id
        self._client_secret = (
            client_secret if client_secret is not None else settings.google_client_secret
        )
        self._token_url = token_url or settings.google_token_url
        self._timeout = timeout or settings.gateway_timeout_seconds

    async def refresh(self, credential: CalendarCredential) -> CalendarCredential:
        if not credential.refresh_token:
            raise CredentialExpiredError(f"Owner {credential.owner_id} has no refresh token")

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._token_url,
                    data={
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                        "refresh_token": credential.refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as exc:
            raise CredentialExpiredError(f"Token refresh request failed: {exc}") from exc

        if response.status_code != 200:
            log.error("Token refresh failed for owner %s: %s", credential.owner_id, response.text)
            raise CredentialExpiredError(
                f"Token refresh rejected with HTTP {response.status_code}"
            )

        tokens = response.json()
        access_token = tokens.get("access_token")
        if not access_token:
            raise CredentialExpiredError("No access token in refresh response")

        expires_in = int(tokens.get("expires_in", 3600))
        return credential.model_copy(
            update={
                "access_token": access_token,
                # Google only rotates the refresh token occasionally
                "refresh_token": tokens.get("refresh_token") or credential.refresh_token,
                "expires_at": datetime.now(tz=timezone.utc) + timedelta(seconds=expires_in),
                "disconnected": False,
            }
        )


class CredentialManager:
    """Hands out credentials that are valid for at least the safety margin."""

    def __init__(
        self,
        store: SchedulingStore,
        refresher: TokenRefresher,
        margin: timedelta | None = None,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._margin = (
            margin
            if margin is not None
            else timedelta(seconds=settings.token_refresh_margin_seconds)
        )
        self._locks = KeyedLocks()

    async def ensure_fresh(self, owner_id: str) -> Optional[CalendarCredential]:
        """Return a usable credential, or None if no calendar is connected.

        Raises:
            CredentialExpiredError: refresh failed. The credential is marked
                disconnected and later calls return None until the owner
                reconnects.
        """
        async with self._locks.hold(owner_id):
            credential = await self._store.get_credential(owner_id)
            if credential is None or credential.disconnected:
                return None
            if not credential.needs_refresh(self._margin):
                return credential

            log.info("Refreshing calendar token for owner %s", owner_id)
            try:
                refreshed = await self._refresher.refresh(credential)
            except CredentialExpiredError:
                await self._store.save_credential(
                    credential.model_copy(update={"disconnected": True})
                )
                log.warning(
                    "Calendar for owner %s marked disconnected after failed refresh",
                    owner_id,
                )
                raise
            await self._store.save_credential(refreshed)
            return refreshed

    async def connect(self, credential: CalendarCredential) -> CalendarCredential:
        """Store a newly authorised credential, clearing any disconnected mark.

        A push channel already registered for the owner is carried over
        unless the new credential names one, so it can still be stopped.
        """
        async with self._locks.hold(credential.owner_id):
            update: dict = {"disconnected": False}
            previous = await self._store.get_credential(credential.owner_id)
            if previous is not None and credential.channel_id is None:
                update["channel_id"] = previous.channel_id
                update["resource_id"] = previous.resource_id
            credential = credential.model_copy(update=update)
            await self._store.save_credential(credential)
            log.info("Calendar connected for owner %s", credential.owner_id)
            return credential

    async def update_channel(
        self, owner_id: str, channel_id: Optional[str], resource_id: Optional[str]
    ) -> Optional[CalendarCredential]:
        """Record (or clear, with None) the owner's push channel."""
        async with self._locks.hold(owner_id):
            credential = await self._store.get_credential(owner_id)
            if credential is None:
                return None
            credential = credential.model_copy(
                update={"channel_id": channel_id, "resource_id": resource_id}
            )
            await self._store.save_credential(credential)
            return credential
