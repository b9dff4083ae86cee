# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .defaults import (
    ACCOUNT_STORAGE_VERSION,
    CODEX_SESSION_WINDOW_MS,
    DEFAULT_ACCOUNTS_FILE,
    DEFAULT_ANTIGRAVITY_PROJECT_ID,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_REFRESH_MARGIN_MS,
    THINKING_SAFE_MAX_OUTPUT_TOKENS,
)

__all__ = [
    "ACCOUNT_STORAGE_VERSION",
    "CODEX_SESSION_WINDOW_MS",
    "DEFAULT_ACCOUNTS_FILE",
    "DEFAULT_ANTIGRAVITY_PROJECT_ID",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "DEFAULT_REFRESH_MARGIN_MS",
    "THINKING_SAFE_MAX_OUTPUT_TOKENS",
]
