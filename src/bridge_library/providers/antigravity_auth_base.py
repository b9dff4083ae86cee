# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/providers/antigravity_auth_base.py

import logging
import os

import httpx

from ..accounts import Account, now_ms
from ..errors import AuthExpired

lib_logger = logging.getLogger("bridge_library")

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


class AntigravityAuthBase:
    """
    Antigravity OAuth2 refresh-token exchange.

    Accounts are created elsewhere (browser OAuth flow); this base only
    trades the stored refresh token for a new access token.
    """

    CLIENT_ID = os.getenv(
        "ANTIGRAVITY_OAUTH_CLIENT_ID",
        "REPLACE_WITH_ANTIGRAVITY_OAUTH_CLIENT_ID",
    )
    CLIENT_SECRET = os.getenv(
        "ANTIGRAVITY_OAUTH_CLIENT_SECRET",
        "REPLACE_WITH_ANTIGRAVITY_OAUTH_CLIENT_SECRET",
    )
    TOKEN_URI = GOOGLE_TOKEN_URI

    async def refresh_access_token(
        self, account: Account, client: httpx.AsyncClient
    ) -> Account:
        if not account.refresh_token:
            raise AuthExpired(
                f"Account '{account.id}' has no refresh token",
                account_id=account.id,
            )

        lib_logger.debug(f"Refreshing Antigravity token for '{account.email}'")
        response = await client.post(
            self.TOKEN_URI,
            data={
                "client_id": self.CLIENT_ID,
                "client_secret": self.CLIENT_SECRET,
                "refresh_token": account.refresh_token,
                "grant_type": "refresh_token",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status_code >= 400:
            raise AuthExpired(
                f"Token refresh failed: {response.text}",
                status_code=response.status_code,
                account_id=account.id,
            )

        try:
            data = response.json()
            access_token = data["access_token"]
            expires_in = int(data.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as e:
            raise AuthExpired(
                f"Token refresh returned an unreadable body: {e}",
                account_id=account.id,
            ) from e

        account.access_token = access_token
        account.expires_at = now_ms() + expires_in * 1000
        # Google only rotates the refresh token occasionally
        if data.get("refresh_token"):
            account.refresh_token = data["refresh_token"]
        lib_logger.info(f"Refreshed Antigravity token for '{account.email}'")
        return account
