# SPDX-License-Identifier: MIT

import asyncio
import tempfile
import unittest
from pathlib import Path
from typing import Dict, List

import httpx

from bridge_library.account_pool import RotatingAccountPool, initialize_pool
from bridge_library.accounts import Account, now_ms
from bridge_library.credential_manager import CredentialManager
from bridge_library.errors import AuthExpired
from bridge_library.storage import AccountStorage


def _account(account_id: str, provider: str = "antigravity", **kwargs) -> Account:
    return Account(id=account_id, provider=provider, email=f"{account_id}@example.com", **kwargs)


class _StubAdapter:
    """Refresh stand-in: fails for ids listed in ``failing``."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.refreshed: List[str] = []

    async def refresh(self, account: Account, client) -> Account:
        self.refreshed.append(account.id)
        if account.id in self.failing:
            raise AuthExpired("session expired", account_id=account.id)
        account.expires_at = now_ms() + 3_600_000
        return account


class RotatingAccountPoolTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.storage = AccountStorage(Path(self._temp_dir.name) / "accounts.json")

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def test_empty_provider_has_no_current_account(self) -> None:
        pool = RotatingAccountPool(self.storage)
        self.assertIsNone(pool.current("codex"))
        self.assertIsNone(pool.advance("codex"))

    def test_full_cycle_visits_every_account_once(self) -> None:
        accounts = [_account(f"ag-{i}") for i in range(4)]
        pool = RotatingAccountPool(self.storage, accounts)

        visited = []
        for _ in range(len(accounts)):
            visited.append(pool.current("antigravity").id)
            pool.advance("antigravity")

        self.assertEqual(sorted(visited), sorted(a.id for a in accounts))
        self.assertEqual(pool.current("antigravity").id, "ag-0")

    def test_providers_rotate_independently(self) -> None:
        pool = RotatingAccountPool(
            self.storage,
            [_account("ag-0"), _account("ag-1"), _account("cx-0", "codex")],
        )
        pool.advance("antigravity")
        self.assertEqual(pool.current("antigravity").id, "ag-1")
        self.assertEqual(pool.current("codex").id, "cx-0")
        self.assertEqual(pool.counts(), {"antigravity": 2, "codex": 1})

    def test_unknown_provider_is_rejected(self) -> None:
        pool = RotatingAccountPool(self.storage)
        with self.assertRaises(ValueError):
            pool.add(_account("x", "bedrock"))

    def test_touch_stamps_and_persists(self) -> None:
        account = _account("ag-0")
        pool = RotatingAccountPool(self.storage, [account])
        asyncio.run(pool.touch(account))
        self.assertIsNotNone(account.last_used)
        stored = asyncio.run(self.storage.load())
        self.assertEqual(stored[0].last_used, account.last_used)


class InitializePoolTest(unittest.TestCase):
    def test_skips_inactive_and_failed_accounts(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = AccountStorage(Path(temp_dir) / "accounts.json")
            fresh = now_ms() + 3_600_000

            async def run() -> None:
                for account in [
                    _account("ag-ok", expires_at=fresh, refresh_token="r"),
                    _account("ag-stale", expires_at=0, refresh_token="r"),
                    _account("ag-off", expires_at=fresh, is_active=False),
                    _account("cx-ok", "codex", session_token="s"),
                    _account("cx-dead", "codex", session_token="s"),
                ]:
                    await storage.save(account)

                adapters: Dict[str, _StubAdapter] = {
                    "antigravity": _StubAdapter(),
                    "codex": _StubAdapter(failing={"cx-dead"}),
                }
                async with httpx.AsyncClient() as http_client:
                    manager = CredentialManager(storage, http_client, adapters=adapters)
                    pool = await initialize_pool(storage, manager)

                self.assertEqual(
                    [a.id for a in pool.state("antigravity").accounts], ["ag-ok", "ag-stale"]
                )
                self.assertEqual([a.id for a in pool.state("codex").accounts], ["cx-ok"])
                # Only the stale Antigravity account is refreshed, every Codex one is verified
                self.assertEqual(adapters["antigravity"].refreshed, ["ag-stale"])
                self.assertEqual(adapters["codex"].refreshed, ["cx-ok", "cx-dead"])

            asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
