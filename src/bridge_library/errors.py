# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/errors.py

from typing import Any, Dict, Optional


class BridgeError(Exception):
    """
    Base class for every error the bridge reports to a client.

    Carries the HTTP status the gateway should answer with. The payload
    shape matches the OpenAI error envelope used by the bridge.
    """

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "type": "api_error",
                "code": self.status_code,
            }
        }


class UnknownModel(BridgeError):
    status_code = 400


class InvalidClientRequest(BridgeError):
    status_code = 400


class NoAccountAvailable(BridgeError):
    status_code = 503


class AuthExpired(BridgeError):
    """A refresh or verification call failed; the account is unusable."""

    status_code = 401

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        account_id: Optional[str] = None,
    ):
        super().__init__(message, status_code)
        self.account_id = account_id


class UpstreamError(BridgeError):
    """Any non-2xx upstream answer, passed through with the upstream body."""

    status_code = 502

    def __init__(self, status_code: int, body: str):
        super().__init__(body, status_code)
        self.body = body


class RateLimited(UpstreamError):
    status_code = 429

    def __init__(self, body: str, status_code: int = 429):
        super().__init__(status_code, body)


class MalformedUpstreamEvent(Exception):
    """A single SSE frame could not be parsed. Never reaches the client."""

    def __init__(self, raw: str, reason: str = ""):
        super().__init__(reason or "Malformed upstream event")
        self.raw = raw
