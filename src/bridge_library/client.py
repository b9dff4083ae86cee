# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/client.py

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import httpx

from .account_pool import RotatingAccountPool
from .accounts import Account
from .credential_manager import CredentialManager
from .errors import (
    InvalidClientRequest,
    MalformedUpstreamEvent,
    NoAccountAvailable,
    RateLimited,
    UnknownModel,
    UpstreamError,
)
from .messages import (
    CanonicalMessage,
    CanonicalTool,
    messages_from_openai,
    tools_from_openai,
)
from .model_registry import DEFAULT_REGISTRY, ModelEntry, ModelRegistry
from .providers import ProviderAdapter, RequestOptions, UpstreamRequest
from .streaming import StreamNormalizer

lib_logger = logging.getLogger("bridge_library")

CompletionResponse = Union[Dict[str, Any], "CompletionStream"]


@dataclass
class ChatRequest:
    """A client chat request after translation to the canonical model."""

    model: str
    messages: List[CanonicalMessage]
    tools: List[CanonicalTool] = field(default_factory=list)
    options: RequestOptions = field(default_factory=RequestOptions)

    @property
    def stream(self) -> bool:
        return self.options.stream

    @classmethod
    def from_openai(cls, body: Dict[str, Any]) -> "ChatRequest":
        model = body.get("model")
        if not isinstance(model, str) or not model:
            raise InvalidClientRequest("Request body requires a 'model' string")
        raw_messages = body.get("messages")
        if not isinstance(raw_messages, list):
            raise InvalidClientRequest("Request body requires a 'messages' list")

        stop = body.get("stop")
        if isinstance(stop, str):
            stop = [stop]

        return cls(
            model=model,
            messages=messages_from_openai(raw_messages),
            tools=tools_from_openai(body.get("tools")),
            options=RequestOptions(
                max_tokens=body.get("max_tokens"),
                temperature=body.get("temperature"),
                top_p=body.get("top_p"),
                stop=stop,
                stream=bool(body.get("stream", False)),
            ),
        )


class CompletionStream:
    """
    Async iterator of SSE frames for one streamed completion.

    Owns the upstream response. It is closed when the frames run out, when
    parsing fails, or when the consumer calls ``aclose()``. ``on_complete``
    runs only after the stream was fully drained.
    """

    def __init__(
        self,
        response: httpx.Response,
        adapter: ProviderAdapter,
        normalizer: StreamNormalizer,
        on_complete: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.response = response
        self.request_id = normalizer.request_id
        self._adapter = adapter
        self._normalizer = normalizer
        self._on_complete = on_complete
        self._frames = self._generate()

    async def _generate(self) -> AsyncIterator[str]:
        try:
            events = self._adapter.iter_events(self.response.aiter_lines())
            async for frame in self._normalizer.frames(events):
                yield frame
        finally:
            await self.response.aclose()
        if self._on_complete is not None:
            await self._on_complete()

    def __aiter__(self) -> "CompletionStream":
        return self

    async def __anext__(self) -> str:
        return await self._frames.__anext__()

    async def aclose(self) -> None:
        await self._frames.aclose()
        await self.response.aclose()


class BridgeClient:
    """
    Routes canonical chat requests to the provider behind each model.

    Per request: resolve the model, take the provider's current account,
    make sure its credential is fresh, send the upstream call and translate
    the answer. A 429 rotates the pool and retries once, and only when the
    rotation produced a different account. The retry happens before any
    response byte reaches the client.
    """

    def __init__(
        self,
        pool: RotatingAccountPool,
        credential_manager: CredentialManager,
        http_client: httpx.AsyncClient,
        registry: ModelRegistry = DEFAULT_REGISTRY,
        adapters: Optional[Dict[str, ProviderAdapter]] = None,
    ):
        self.pool = pool
        self.credential_manager = credential_manager
        self.http_client = http_client
        self.registry = registry
        self.adapters = adapters if adapters is not None else credential_manager.adapters

    def resolve_model(self, public_id: str) -> ModelEntry:
        entry = self.registry.lookup(public_id)
        if entry is None:
            raise UnknownModel(
                f"Unknown model: {public_id}. Available: {', '.join(self.registry.ids())}"
            )
        return entry

    def _adapter_for(self, entry: ModelEntry) -> ProviderAdapter:
        adapter = self.adapters.get(entry.provider)
        if adapter is None:
            raise UpstreamError(500, f"No adapter for provider '{entry.provider}'")
        return adapter

    async def _send(self, upstream: UpstreamRequest) -> httpx.Response:
        http_request = self.http_client.build_request(
            upstream.method, upstream.url, headers=upstream.headers, json=upstream.json
        )
        try:
            return await self.http_client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            lib_logger.error(f"Upstream request to {upstream.url} failed: {e}")
            raise UpstreamError(502, f"Upstream request failed: {e}") from e

    async def _read_body(self, response: httpx.Response) -> str:
        try:
            await response.aread()
            return response.text
        finally:
            await response.aclose()

    async def _dispatch(
        self, entry: ModelEntry, adapter: ProviderAdapter, request: ChatRequest
    ) -> Tuple[Account, httpx.Response]:
        account = self.pool.current(entry.provider)
        if account is None:
            raise NoAccountAvailable(
                f"No {entry.provider} accounts available. Add one with the add-account command"
            )

        retried = False
        while True:
            account = await self.credential_manager.ensure_fresh(account)
            upstream = adapter.build_request(
                entry, account, request.messages, request.tools, request.options
            )
            lib_logger.info(
                f"{'Stream' if request.stream else 'Request'}: {entry.public_id} -> "
                f"{entry.upstream_model} via '{account.email}'"
            )
            response = await self._send(upstream)

            if response.status_code == 429:
                body = await self._read_body(response)
                lib_logger.warning(f"Rate limited on '{account.email}', rotating account")
                rotated = self.pool.advance(entry.provider)
                if not retried and rotated is not None and rotated.id != account.id:
                    retried = True
                    account = rotated
                    continue
                raise RateLimited(body)

            if response.status_code >= 400:
                body = await self._read_body(response)
                lib_logger.error(f"API error {response.status_code}: {body[:200]}")
                raise UpstreamError(response.status_code, body)

            return account, response

    async def acompletion(self, request: ChatRequest) -> CompletionResponse:
        """
        Run one chat completion.

        Returns a ``chat.completion`` dict, or a CompletionStream of SSE
        frames when the request asks for streaming. Errors before the first
        frame raise BridgeError subclasses.
        """
        entry = self.resolve_model(request.model)
        adapter = self._adapter_for(entry)
        account, response = await self._dispatch(entry, adapter, request)
        normalizer = StreamNormalizer(request.model)

        if request.stream:

            async def _on_complete() -> None:
                await self.pool.touch(account)
                lib_logger.info(f"Completed: {normalizer.request_id}")

            return CompletionStream(response, adapter, normalizer, _on_complete)

        body = await self._read_body(response)
        try:
            result = adapter.parse_response(body)
        except MalformedUpstreamEvent as e:
            lib_logger.error(f"Could not parse upstream response: {e}")
            raise UpstreamError(502, f"Malformed upstream response: {e}") from e

        await self.pool.touch(account)
        lib_logger.info(f"Completed: {normalizer.request_id}")
        return normalizer.completion(result)
