# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Account:
    """
    One upstream credential.

    Mutable: the credential manager rewrites the token fields after a refresh
    and the pool stamps ``last_used`` after a call. The storage collaborator
    owns the durable copy; every mutation is written back through it.
    """

    id: str
    provider: str
    email: str
    access_token: str = ""
    refresh_token: str = ""
    expires_at: int = 0
    session_token: Optional[str] = None
    project_id: Optional[str] = None
    last_used: Optional[int] = None
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            id=str(data["id"]),
            provider=str(data["provider"]),
            email=str(data.get("email") or ""),
            access_token=data.get("accessToken") or "",
            refresh_token=data.get("refreshToken") or "",
            expires_at=int(data.get("expiresAt") or 0),
            session_token=data.get("sessionToken"),
            project_id=data.get("projectId"),
            last_used=data.get("lastUsed"),
            is_active=bool(data.get("isActive", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "provider": self.provider,
            "email": self.email,
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresAt": self.expires_at,
            "isActive": self.is_active,
        }
        if self.session_token is not None:
            data["sessionToken"] = self.session_token
        if self.project_id is not None:
            data["projectId"] = self.project_id
        if self.last_used is not None:
            data["lastUsed"] = self.last_used
        return data

    def expires_within(self, margin_ms: int, now: Optional[int] = None) -> bool:
        current = now_ms() if now is None else now
        return self.expires_at < current + margin_ms

    def __repr__(self) -> str:
        return f"Account(id={self.id!r}, provider={self.provider!r}, email={self.email!r})"
