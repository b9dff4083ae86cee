# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/storage.py

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Union

from .accounts import Account
from .config import ACCOUNT_STORAGE_VERSION

lib_logger = logging.getLogger("bridge_library")


class AccountStorage:
    """
    JSON file holding every provider account: ``{"version": 1, "accounts": [...]}``.

    Writes rewrite the whole file (last write wins). Concurrent external
    writers are not coordinated with.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _read_unlocked(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {"version": ACCOUNT_STORAGE_VERSION, "accounts": []}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            lib_logger.warning(f"Failed to load accounts from '{self.path}': {e}")
            return {"version": ACCOUNT_STORAGE_VERSION, "accounts": []}
        if not isinstance(data, dict) or not isinstance(data.get("accounts"), list):
            lib_logger.warning(f"Ignoring malformed account file '{self.path}'")
            return {"version": ACCOUNT_STORAGE_VERSION, "accounts": []}
        return data

    def _write_unlocked(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2)

    async def load(self) -> List[Account]:
        async with self._lock:
            data = await asyncio.to_thread(self._read_unlocked)
        accounts = []
        for raw in data["accounts"]:
            try:
                accounts.append(Account.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                lib_logger.warning(f"Skipping unreadable account entry: {e}")
        return accounts

    async def save(self, account: Account) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_unlocked)
            rows = data["accounts"]
            for index, row in enumerate(rows):
                if isinstance(row, dict) and row.get("id") == account.id:
                    rows[index] = account.to_dict()
                    break
            else:
                rows.append(account.to_dict())
            await asyncio.to_thread(self._write_unlocked, data)
