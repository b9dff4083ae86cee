# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/utils/__init__.py

from .paths import get_accounts_file, get_default_root, get_logs_dir

__all__ = [
    "get_accounts_file",
    "get_default_root",
    "get_logs_dir",
]
