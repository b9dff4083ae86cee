# SPDX-License-Identifier: MIT

import asyncio
import tempfile
import unittest
from pathlib import Path
from urllib.parse import parse_qs

import httpx

from bridge_library.accounts import Account, now_ms
from bridge_library.config import CODEX_SESSION_WINDOW_MS
from bridge_library.credential_manager import CredentialManager
from bridge_library.errors import AuthExpired
from bridge_library.storage import AccountStorage


class CredentialManagerTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.storage = AccountStorage(Path(self._temp_dir.name) / "accounts.json")
        self.requests = []

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def run_with(self, handler, coro_factory):
        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        async def run():
            transport = httpx.MockTransport(recording_handler)
            async with httpx.AsyncClient(transport=transport) as client:
                manager = CredentialManager(self.storage, client)
                return await coro_factory(manager)

        return asyncio.run(run())

    def test_fresh_account_is_not_refreshed(self) -> None:
        account = Account(
            id="ag", provider="antigravity", email="a@x", access_token="old",
            refresh_token="r", expires_at=now_ms() + 3_600_000,
        )

        def handler(request):
            raise AssertionError("no refresh expected")

        result = self.run_with(handler, lambda m: m.ensure_fresh(account))
        self.assertIs(result, account)
        self.assertEqual(self.requests, [])

    def test_expiring_antigravity_account_is_refreshed_and_saved(self) -> None:
        account = Account(
            id="ag", provider="antigravity", email="a@x", access_token="old",
            refresh_token="refresh-1", expires_at=now_ms() + 10_000,
        )

        def handler(request):
            form = parse_qs(request.content.decode())
            self.assertEqual(form["grant_type"], ["refresh_token"])
            self.assertEqual(form["refresh_token"], ["refresh-1"])
            return httpx.Response(200, json={"access_token": "new", "expires_in": 3600})

        before = now_ms()
        self.run_with(handler, lambda m: m.ensure_fresh(account))

        self.assertEqual(account.access_token, "new")
        self.assertEqual(account.refresh_token, "refresh-1")
        self.assertGreaterEqual(account.expires_at, before + 3_600_000)
        self.assertEqual(str(self.requests[0].url), "https://oauth2.googleapis.com/token")
        stored = asyncio.run(self.storage.load())
        self.assertEqual(stored[0].access_token, "new")

    def test_rejected_refresh_raises_and_leaves_account(self) -> None:
        account = Account(
            id="ag", provider="antigravity", email="a@x", access_token="old",
            refresh_token="r", expires_at=0,
        )

        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant"})

        with self.assertRaises(AuthExpired) as ctx:
            self.run_with(handler, lambda m: m.refresh(account))
        self.assertEqual(ctx.exception.account_id, "ag")
        self.assertEqual(account.access_token, "old")
        self.assertEqual(asyncio.run(self.storage.load()), [])

    def test_codex_session_verification_extends_expiry(self) -> None:
        account = Account(id="cx", provider="codex", email="", session_token="sess-1")

        def handler(request):
            self.assertTrue(request.url.path.endswith("/me"))
            self.assertIn("sess-1", request.headers["Cookie"])
            return httpx.Response(200, json={"email": "user@chatgpt.test"})

        before = now_ms()
        self.run_with(handler, lambda m: m.refresh(account))
        self.assertEqual(account.email, "user@chatgpt.test")
        self.assertGreaterEqual(account.expires_at, before + CODEX_SESSION_WINDOW_MS)

    def test_network_failure_becomes_auth_expired(self) -> None:
        account = Account(id="cx", provider="codex", email="", session_token="s")

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(AuthExpired) as ctx:
            self.run_with(handler, lambda m: m.refresh(account))
        self.assertEqual(ctx.exception.status_code, 502)

    def test_unknown_provider_cannot_refresh(self) -> None:
        account = Account(id="x", provider="bedrock", email="")
        with self.assertRaises(AuthExpired):
            self.run_with(lambda r: httpx.Response(200), lambda m: m.refresh(account))


if __name__ == "__main__":
    unittest.main()
