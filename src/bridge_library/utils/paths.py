# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/utils/paths.py

import os
import sys
from pathlib import Path
from typing import Optional, Union

from ..config import DEFAULT_ACCOUNTS_FILE


def get_default_root() -> Path:
    """Application root: the executable's directory when frozen, else the CWD."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    return Path.cwd()


def get_logs_dir(root: Optional[Union[str, Path]] = None) -> Path:
    """
    Directory for log files, created on demand.

    Override: BRIDGE_LOG_DIR=<path>
    """
    override = os.getenv("BRIDGE_LOG_DIR")
    if override:
        logs_dir = Path(override).expanduser()
    else:
        logs_dir = Path(root or get_default_root()) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_accounts_file() -> Path:
    """
    Location of the account storage file.

    Override: BRIDGE_ACCOUNTS_FILE=<path>
    """
    override = os.getenv("BRIDGE_ACCOUNTS_FILE")
    return Path(override).expanduser() if override else DEFAULT_ACCOUNTS_FILE
