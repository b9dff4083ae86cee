# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..accounts import Account
from ..messages import CanonicalMessage, CanonicalTool, CompletionResult
from ..model_registry import ModelEntry
from ..streaming import ParsedUpstreamEvent


# =============================================================================
# REQUEST TYPES
# =============================================================================


@dataclass
class RequestOptions:
    """Sampling options taken from the client request."""

    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stop: Optional[List[str]] = None
    stream: bool = False


@dataclass
class UpstreamRequest:
    """A fully built upstream HTTP call, ready for httpx."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    json: Dict[str, Any] = field(default_factory=dict)


class ProviderAdapter(ABC):
    """
    Translation layer between the canonical chat model and one upstream API.

    An adapter is stateless between requests. It builds the upstream call,
    parses a full upstream body into a CompletionResult, and turns the lines
    of a streamed upstream body into ParsedUpstreamEvent values. It also
    owns the provider-specific credential refresh call.
    """

    # Provider key as used by the model registry and the account pool
    provider_name: str = ""

    @abstractmethod
    def build_request(
        self,
        entry: ModelEntry,
        account: Account,
        messages: List[CanonicalMessage],
        tools: List[CanonicalTool],
        options: RequestOptions,
    ) -> UpstreamRequest:
        pass

    @abstractmethod
    def parse_response(self, body_text: str) -> CompletionResult:
        """Parse a complete (non-streamed) upstream body."""
        pass

    @abstractmethod
    def iter_events(
        self, lines: AsyncIterator[str]
    ) -> AsyncIterator[ParsedUpstreamEvent]:
        """
        Parse a streamed upstream body.

        Implementations yield events in arrival order and always finish with
        exactly one Done, even when the upstream ends without a terminal
        marker. Frames that cannot be parsed surface as Unrecognized.
        """
        pass

    @abstractmethod
    async def refresh(self, account: Account, client: httpx.AsyncClient) -> Account:
        """
        Refresh or verify the account against the provider.

        Mutates and returns the account. Raises AuthExpired on failure.
        """
        pass
