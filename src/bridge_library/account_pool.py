# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/account_pool.py

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from .accounts import Account, now_ms
from .errors import AuthExpired
from .model_registry import PROVIDER_ANTIGRAVITY, PROVIDER_CODEX, PROVIDERS
from .storage import AccountStorage

if TYPE_CHECKING:
    from .credential_manager import CredentialManager

lib_logger = logging.getLogger("bridge_library")


@dataclass
class RotationState:
    """Accounts of one provider plus the rotation cursor into them."""

    accounts: List[Account] = field(default_factory=list)
    cursor: int = 0

    def current(self) -> Optional[Account]:
        if not self.accounts:
            return None
        return self.accounts[self.cursor % len(self.accounts)]

    def advance(self) -> Optional[Account]:
        self.cursor += 1
        return self.current()


class RotatingAccountPool:
    """
    Strict round-robin selection of accounts, one RotationState per provider.

    The pool never blocks: reading the current account and advancing the
    cursor happen without any await in between, so requests interleaved on
    the event loop never see a half-updated cursor. Two requests rate
    limited at the same time may each advance, moving the cursor by more
    than one step.
    """

    def __init__(self, storage: AccountStorage, accounts: Iterable[Account] = ()):
        self.storage = storage
        self._states: Dict[str, RotationState] = {
            provider: RotationState() for provider in PROVIDERS
        }
        for account in accounts:
            self.add(account)

    def state(self, provider: str) -> RotationState:
        return self._states[provider]

    def add(self, account: Account) -> None:
        if account.provider not in self._states:
            raise ValueError(f"Unknown provider '{account.provider}' for account '{account.id}'")
        self._states[account.provider].accounts.append(account)

    def current(self, provider: str) -> Optional[Account]:
        return self._states[provider].current()

    def advance(self, provider: str) -> Optional[Account]:
        state = self._states[provider]
        account = state.advance()
        if account is not None:
            lib_logger.info(
                f"Rotated to {provider} account "
                f"{state.cursor % len(state.accounts) + 1}/{len(state.accounts)}"
            )
        return account

    async def touch(self, account: Account) -> None:
        account.last_used = now_ms()
        await self.storage.save(account)

    def counts(self) -> Dict[str, int]:
        return {provider: len(state.accounts) for provider, state in self._states.items()}


async def initialize_pool(
    storage: AccountStorage, credential_manager: "CredentialManager"
) -> RotatingAccountPool:
    """
    Build the pool from stored accounts.

    Antigravity accounts close to expiry are refreshed; every Codex account
    is verified. Accounts that fail are logged and left out of the pool.
    """
    pool = RotatingAccountPool(storage)
    for account in await storage.load():
        if not account.is_active:
            lib_logger.debug(f"Skipping inactive account '{account.email}'")
            continue
        if account.provider not in PROVIDERS:
            lib_logger.warning(
                f"Skipping account '{account.email}' with unknown provider '{account.provider}'"
            )
            continue

        try:
            if account.provider == PROVIDER_CODEX:
                await credential_manager.refresh(account)
            elif account.provider == PROVIDER_ANTIGRAVITY:
                await credential_manager.ensure_fresh(account)
        except AuthExpired as e:
            lib_logger.error(f"Failed to initialize {account.provider} account '{account.email}': {e.message}")
            continue

        pool.add(account)
        lib_logger.info(f"Loaded {account.provider} account '{account.email}'")

    counts = pool.counts()
    lib_logger.info(
        f"Loaded {counts[PROVIDER_ANTIGRAVITY]} Antigravity + {counts[PROVIDER_CODEX]} Codex accounts"
    )
    return pool
