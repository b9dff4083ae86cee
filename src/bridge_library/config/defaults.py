# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Centralized defaults for the bridge library.

This file contains the tunable values for:
- Gateway bind address
- Credential refresh timing
- Thinking / output token ceilings
- Account storage location

Environment variables override the ones marked below at runtime.
"""

from pathlib import Path

# =============================================================================
# GATEWAY DEFAULTS
# =============================================================================

# Bind address for the HTTP gateway
# Override: HOST=<address>, PORT=<port>
DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 8787

# =============================================================================
# CREDENTIAL LIFECYCLE DEFAULTS
# =============================================================================

# A credential expiring within this window is refreshed before use
DEFAULT_REFRESH_MARGIN_MS: int = 60_000

# ChatGPT session tokens have no real expiry field; a successful verification
# pushes the estimated expiry this far into the future
CODEX_SESSION_WINDOW_MS: int = 7 * 24 * 60 * 60 * 1000

# =============================================================================
# GENERATION DEFAULTS
# =============================================================================

# When a fixed thinking budget is not strictly below maxOutputTokens,
# maxOutputTokens is raised to this ceiling
THINKING_SAFE_MAX_OUTPUT_TOKENS: int = 128_000

# Project used for Antigravity requests when the account has none
# Override: ANTIGRAVITY_PROJECT_ID=<project>
DEFAULT_ANTIGRAVITY_PROJECT_ID: str = "anthropic-web-app"

# =============================================================================
# STORAGE DEFAULTS
# =============================================================================

# Override: BRIDGE_ACCOUNTS_FILE=<path>
DEFAULT_ACCOUNTS_FILE: Path = Path.home() / ".droid-bridge" / "accounts.json"
ACCOUNT_STORAGE_VERSION: int = 1
