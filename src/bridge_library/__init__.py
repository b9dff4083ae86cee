# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .account_pool import RotatingAccountPool, RotationState, initialize_pool
from .accounts import Account
from .client import BridgeClient, ChatRequest, CompletionStream
from .credential_manager import CredentialManager
from .errors import (
    AuthExpired,
    BridgeError,
    InvalidClientRequest,
    MalformedUpstreamEvent,
    NoAccountAvailable,
    RateLimited,
    UnknownModel,
    UpstreamError,
)
from .model_registry import DEFAULT_REGISTRY, ModelEntry, ModelRegistry
from .providers import PROVIDER_ADAPTERS
from .storage import AccountStorage

__all__ = [
    "Account",
    "AccountStorage",
    "AuthExpired",
    "BridgeClient",
    "BridgeError",
    "ChatRequest",
    "CompletionStream",
    "CredentialManager",
    "DEFAULT_REGISTRY",
    "InvalidClientRequest",
    "MalformedUpstreamEvent",
    "ModelEntry",
    "ModelRegistry",
    "NoAccountAvailable",
    "PROVIDER_ADAPTERS",
    "RateLimited",
    "RotatingAccountPool",
    "RotationState",
    "UnknownModel",
    "UpstreamError",
    "initialize_pool",
]

