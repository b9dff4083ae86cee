# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/providers/codex_auth_base.py

import logging
import os

import httpx

from ..accounts import Account, now_ms
from ..config import CODEX_SESSION_WINDOW_MS
from ..errors import AuthExpired
from ..model_registry import CODEX_ENDPOINT

lib_logger = logging.getLogger("bridge_library")

SESSION_COOKIE_NAME = "__Secure-next-auth.session-token"


def session_cookie(session_token: str) -> str:
    return f"{SESSION_COOKIE_NAME}={session_token}"


class CodexAuthBase:
    """
    ChatGPT session verification.

    Session tokens cannot be refreshed. "Refreshing" a Codex account means
    calling ``/me`` with the session cookie: success proves the session is
    alive, re-reads the email and pushes the estimated expiry forward.
    """

    API_BASE = os.getenv("CODEX_API_BASE", CODEX_ENDPOINT).rstrip("/")

    async def verify_session(self, account: Account, client: httpx.AsyncClient) -> Account:
        if not account.session_token:
            raise AuthExpired(
                f"Account '{account.id}' has no session token",
                account_id=account.id,
            )

        response = await client.get(
            f"{self.API_BASE}/me",
            headers={
                "Content-Type": "application/json",
                "Cookie": session_cookie(account.session_token),
            },
        )
        if response.status_code >= 400:
            raise AuthExpired(
                f"Token verification failed: {response.status_code} {response.text}",
                status_code=response.status_code,
                account_id=account.id,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthExpired(
                f"Token verification returned an unreadable body: {e}",
                account_id=account.id,
            ) from e

        if isinstance(data, dict) and data.get("email"):
            account.email = data["email"]
        account.expires_at = now_ms() + CODEX_SESSION_WINDOW_MS
        lib_logger.info(f"Verified Codex session for '{account.email}'")
        return account
