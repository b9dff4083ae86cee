# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/credential_manager.py

import logging
from typing import Dict, Optional

import httpx

from .accounts import Account, now_ms
from .config import DEFAULT_REFRESH_MARGIN_MS
from .errors import AuthExpired
from .providers import PROVIDER_ADAPTERS, ProviderAdapter, get_adapter
from .storage import AccountStorage

lib_logger = logging.getLogger("bridge_library")


class CredentialManager:
    """
    Keeps account credentials usable.

    An account is refreshed when it expires within the refresh margin. The
    refresh call itself belongs to the provider adapter (OAuth exchange for
    Antigravity, session verification for Codex). One attempt is made per
    call; any failure surfaces as AuthExpired and the account is left as is.
    """

    def __init__(
        self,
        storage: AccountStorage,
        http_client: httpx.AsyncClient,
        refresh_margin_ms: int = DEFAULT_REFRESH_MARGIN_MS,
        adapters: Optional[Dict[str, ProviderAdapter]] = None,
    ):
        self.storage = storage
        self.http_client = http_client
        self.refresh_margin_ms = refresh_margin_ms
        if adapters is None:
            adapters = {name: get_adapter(name) for name in PROVIDER_ADAPTERS}
        self.adapters = adapters

    def needs_refresh(self, account: Account, now: Optional[int] = None) -> bool:
        return account.expires_within(self.refresh_margin_ms, now)

    async def ensure_fresh(self, account: Account) -> Account:
        if not self.needs_refresh(account):
            return account
        lib_logger.info(
            f"Credential for '{account.email}' ({account.provider}) expires soon, refreshing"
        )
        return await self.refresh(account)

    async def refresh(self, account: Account) -> Account:
        adapter = self.adapters.get(account.provider)
        if adapter is None:
            raise AuthExpired(
                f"No refresh path for provider '{account.provider}'",
                account_id=account.id,
            )

        try:
            account = await adapter.refresh(account, self.http_client)
        except AuthExpired as e:
            lib_logger.warning(
                f"Refresh failed for '{account.email}' ({account.provider}): {e.message}"
            )
            raise
        except httpx.HTTPError as e:
            lib_logger.warning(
                f"Refresh request failed for '{account.email}' ({account.provider}): {e}"
            )
            raise AuthExpired(
                f"Refresh request failed: {e}", status_code=502, account_id=account.id
            ) from e

        await self.storage.save(account)
        lib_logger.debug(
            f"Credential for '{account.email}' valid for another "
            f"{max(0, account.expires_at - now_ms()) // 1000}s"
        )
        return account
