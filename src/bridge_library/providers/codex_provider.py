# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/providers/codex_provider.py
"""
Codex Provider - ChatGPT subscription Responses API

System messages become the ``instructions`` string, the rest of the
conversation becomes Responses ``input`` items. The upstream is always
called in streaming mode; full responses are rebuilt from the event body.

Two response shapes exist in the wild:
- output items: ``output: [{type: "message", content: [{type: "output_text", text}]}]``
- conversation message: ``message.content.parts[0]``
The output-items shape wins when both are present.

Some events carry the full accumulated text instead of a delta. The stream
parser remembers what was already emitted per output item and only yields
the forward difference.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from ..accounts import Account
from ..errors import MalformedUpstreamEvent, UpstreamError
from ..messages import (
    CanonicalMessage,
    CanonicalTool,
    CompletionResult,
    ImagePart,
    TextPart,
    ToolCall,
)
from ..model_registry import PROVIDER_CODEX, ModelEntry
from ..streaming import (
    Done,
    ParsedUpstreamEvent,
    TextDelta,
    ToolCallDelta,
    Unrecognized,
    generate_call_id,
    iter_sse_data,
)
from .codex_auth_base import CodexAuthBase, session_cookie
from .provider_interface import ProviderAdapter, RequestOptions, UpstreamRequest

lib_logger = logging.getLogger("bridge_library")

RESPONSES_ENDPOINT_PATH = "/codex/responses"

DEFAULT_TEXT_KEY = "default"


# =============================================================================
# RESPONSE SHAPE HELPERS
# =============================================================================


def _output_items(obj: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    """Return the ``output`` list, top level or nested under ``response``."""
    output = obj.get("output")
    if not isinstance(output, list):
        response = obj.get("response")
        if isinstance(response, dict):
            output = response.get("output")
    if not isinstance(output, list):
        return None
    return [item for item in output if isinstance(item, dict)]


def _message_item_text(item: Dict[str, Any]) -> str:
    return "".join(
        part["text"]
        for part in item.get("content") or []
        if isinstance(part, dict)
        and part.get("type") == "output_text"
        and isinstance(part.get("text"), str)
    )


def _conversation_message_text(obj: Dict[str, Any]) -> Optional[str]:
    """Older shape: ``message.content.parts[0]``."""
    message = obj.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if isinstance(parts, list) and parts and isinstance(parts[0], str):
        return parts[0]
    return None


def _function_call_from_item(item: Dict[str, Any]) -> ToolCall:
    arguments = item.get("arguments")
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments or {})
    return ToolCall(
        id=item.get("call_id") or item.get("id") or generate_call_id(),
        name=item.get("name") or "",
        arguments=arguments,
    )


def _extract_usage(obj: Dict[str, Any]) -> Optional[Dict[str, int]]:
    usage = obj.get("usage")
    if not isinstance(usage, dict):
        response = obj.get("response")
        usage = response.get("usage") if isinstance(response, dict) else None
    if not isinstance(usage, dict):
        return None
    prompt_tokens = int(usage.get("input_tokens", 0) or 0)
    completion_tokens = int(usage.get("output_tokens", 0) or 0)
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": int(usage.get("total_tokens", 0) or 0)
        or prompt_tokens + completion_tokens,
    }


def _status_finish_reason(response: Dict[str, Any]) -> str:
    return "length" if response.get("status") == "incomplete" else "stop"


# =============================================================================
# STREAM PARSING
# =============================================================================


class _TextDiffer:
    """
    Tracks the text already emitted for each output item.

    Deltas are appended as-is. Snapshots (full accumulated text) only yield
    the part beyond what was emitted. The upstream is assumed to grow text
    monotonically; a snapshot that rewrites earlier text is logged and
    yields nothing.
    """

    def __init__(self):
        self._emitted: Dict[str, str] = {}

    @property
    def has_text(self) -> bool:
        return any(self._emitted.values())

    def append(self, key: str, delta: str) -> str:
        self._emitted[key] = self._emitted.get(key, "") + delta
        return delta

    def snapshot(self, key: str, text: str) -> str:
        emitted = self._emitted.get(key, "")
        if emitted.startswith(text):
            return ""
        if not text.startswith(emitted):
            lib_logger.warning(
                f"Codex snapshot for '{key}' does not extend the emitted text "
                f"({len(emitted)} chars emitted, {len(text)} chars received); skipping"
            )
            return ""
        self._emitted[key] = text
        return text[len(emitted):]


class _CodexStreamParser:
    """Turns decoded Codex SSE frames into ParsedUpstreamEvent values."""

    def __init__(self):
        self.differ = _TextDiffer()
        self.finish_reason: Optional[str] = None
        self.usage: Optional[Dict[str, int]] = None
        self.completed = False
        self._seen_call_ids: set = set()

    def _text_event(self, key: str, text: str, snapshot: bool) -> List[ParsedUpstreamEvent]:
        if snapshot:
            delta = self.differ.snapshot(key, text)
        else:
            delta = self.differ.append(key, text)
        return [TextDelta(delta)] if delta else []

    def _tool_event(self, item: Dict[str, Any]) -> List[ParsedUpstreamEvent]:
        call = _function_call_from_item(item)
        if call.id in self._seen_call_ids:
            return []
        self._seen_call_ids.add(call.id)
        return [ToolCallDelta(call)]

    def _completed_events(self, frame: Dict[str, Any]) -> List[ParsedUpstreamEvent]:
        response = frame.get("response")
        response = response if isinstance(response, dict) else {}
        events: List[ParsedUpstreamEvent] = []
        # Only fall back to the final output when nothing streamed before it
        streamed_text = self.differ.has_text
        for item in _output_items(frame) or []:
            if item.get("type") == "message" and not streamed_text:
                text = _message_item_text(item)
                key = item.get("id") or DEFAULT_TEXT_KEY
                events.extend(self._text_event(key, text, snapshot=True))
            elif item.get("type") == "function_call":
                events.extend(self._tool_event(item))

        if frame.get("type") == "response.incomplete":
            self.finish_reason = "length"
        else:
            self.finish_reason = _status_finish_reason(response)
        self.usage = _extract_usage(frame) or self.usage
        self.completed = True
        return events

    def feed(self, frame: Dict[str, Any]) -> List[ParsedUpstreamEvent]:
        event_type = frame.get("type")
        key = frame.get("item_id") or DEFAULT_TEXT_KEY

        if event_type == "response.output_text.delta":
            delta = frame.get("delta")
            return self._text_event(key, delta, snapshot=False) if isinstance(delta, str) else []

        if event_type == "response.output_text.done":
            text = frame.get("text")
            return self._text_event(key, text, snapshot=True) if isinstance(text, str) else []

        if event_type == "response.output_item.done":
            item = frame.get("item")
            if not isinstance(item, dict):
                return []
            if item.get("type") == "function_call":
                return self._tool_event(item)
            if item.get("type") == "message":
                item_key = item.get("id") or DEFAULT_TEXT_KEY
                return self._text_event(item_key, _message_item_text(item), snapshot=True)
            return []

        if event_type in ("response.completed", "response.incomplete"):
            return self._completed_events(frame)

        if event_type in ("error", "response.failed"):
            raise UpstreamError(502, json.dumps(frame))

        # Older conversation shape resends the whole message each time
        text = _conversation_message_text(frame)
        if text is not None:
            message_id = frame["message"].get("id") or DEFAULT_TEXT_KEY
            return self._text_event(message_id, text, snapshot=True)

        return []

    def done(self) -> Done:
        return Done(finish_reason=self.finish_reason, usage=self.usage)


def _decode_frame(data: str) -> Dict[str, Any]:
    try:
        frame = json.loads(data)
    except ValueError as e:
        raise MalformedUpstreamEvent(data, str(e)) from e
    if not isinstance(frame, dict):
        raise MalformedUpstreamEvent(data, "Frame is not a JSON object")
    return frame


# =============================================================================
# PROVIDER IMPLEMENTATION
# =============================================================================


class CodexProvider(CodexAuthBase, ProviderAdapter):
    """Adapter for the ChatGPT Codex Responses endpoint."""

    provider_name = PROVIDER_CODEX

    # =========================================================================
    # REQUEST BUILDING
    # =========================================================================

    def _input_content(self, message: CanonicalMessage) -> List[Dict[str, Any]]:
        text_type = "output_text" if message.role == "assistant" else "input_text"
        content = []
        for part in message.parts():
            if isinstance(part, TextPart):
                content.append({"type": text_type, "text": part.text})
            elif isinstance(part, ImagePart) and message.role == "user":
                content.append(
                    {
                        "type": "input_image",
                        "image_url": f"data:{part.mime_type};base64,{part.data}",
                        "detail": "auto",
                    }
                )
        return content

    def _convert_messages(
        self, messages: List[CanonicalMessage]
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        instructions: List[str] = []
        codex_input: List[Dict[str, Any]] = []

        for message in messages:
            if message.role == "system":
                instructions.append(message.text())
                continue

            if message.role == "tool":
                codex_input.append(
                    {
                        "type": "function_call_output",
                        "call_id": message.tool_call_id,
                        "output": message.text(),
                    }
                )
                continue

            content = self._input_content(message)
            if content:
                codex_input.append({"role": message.role, "content": content})

            for call in message.tool_calls:
                codex_input.append(
                    {
                        "type": "function_call",
                        "call_id": call.id,
                        "name": call.name,
                        "arguments": call.arguments,
                    }
                )

        return ("\n\n".join(instructions) if instructions else None), codex_input

    def _convert_tools(self, tools: List[CanonicalTool]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "name": tool.name,
                "description": tool.description or "",
                "parameters": tool.parameters or {"type": "object", "properties": {}},
            }
            for tool in tools
        ]

    def _build_request_headers(self, account: Account) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "OpenAI-Beta": "responses=experimental",
            "Cookie": session_cookie(account.session_token or ""),
        }
        if account.access_token:
            headers["Authorization"] = f"Bearer {account.access_token}"
        return headers

    def build_request(
        self,
        entry: ModelEntry,
        account: Account,
        messages: List[CanonicalMessage],
        tools: List[CanonicalTool],
        options: RequestOptions,
    ) -> UpstreamRequest:
        instructions, codex_input = self._convert_messages(messages)

        payload: Dict[str, Any] = {
            "model": entry.upstream_model,
            "input": codex_input,
            "tool_choice": "auto",
            "stream": True,
            "store": False,
        }
        if instructions:
            payload["instructions"] = instructions
        if tools:
            payload["tools"] = self._convert_tools(tools)
        if entry.thinking.kind == "level":
            payload["reasoning"] = {"effort": entry.thinking.level}

        return UpstreamRequest(
            method="POST",
            url=f"{entry.endpoint}{RESPONSES_ENDPOINT_PATH}",
            headers=self._build_request_headers(account),
            json=payload,
        )

    # =========================================================================
    # RESPONSE TRANSFORMATION
    # =========================================================================

    def _result_from_object(self, obj: Dict[str, Any]) -> CompletionResult:
        items = _output_items(obj)
        if items is not None:
            text = "".join(
                _message_item_text(item) for item in items if item.get("type") == "message"
            )
            tool_calls = [
                _function_call_from_item(item)
                for item in items
                if item.get("type") == "function_call"
            ]
            response = obj.get("response") if isinstance(obj.get("response"), dict) else obj
            finish_reason = _status_finish_reason(response)
        else:
            text = _conversation_message_text(obj) or ""
            tool_calls = []
            finish_reason = "stop"

        if tool_calls and finish_reason == "stop":
            finish_reason = "tool_calls"
        return CompletionResult(
            text=text,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=_extract_usage(obj),
        )

    def _result_from_sse(self, body_text: str) -> CompletionResult:
        parser = _CodexStreamParser()
        text_parts: List[str] = []
        tool_calls: List[ToolCall] = []

        for line in body_text.splitlines():
            line = line.strip()
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if not data or data == "[DONE]":
                continue
            try:
                frame = _decode_frame(data)
            except MalformedUpstreamEvent as e:
                lib_logger.warning(f"Skipping malformed Codex frame: {e}")
                continue
            for event in parser.feed(frame):
                if isinstance(event, TextDelta):
                    text_parts.append(event.text)
                elif isinstance(event, ToolCallDelta):
                    tool_calls.append(event.tool_call)

        finish_reason = parser.finish_reason or "stop"
        if tool_calls and finish_reason == "stop":
            finish_reason = "tool_calls"
        return CompletionResult(
            text="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            usage=parser.usage,
        )

    def parse_response(self, body_text: str) -> CompletionResult:
        stripped = body_text.lstrip()
        if stripped.startswith("{"):
            try:
                obj = json.loads(stripped)
            except ValueError:
                obj = None
            if isinstance(obj, dict):
                return self._result_from_object(obj)
        return self._result_from_sse(body_text)

    async def iter_events(
        self, lines: AsyncIterator[str]
    ) -> AsyncIterator[ParsedUpstreamEvent]:
        parser = _CodexStreamParser()
        async for data in iter_sse_data(lines):
            try:
                frame = _decode_frame(data)
            except MalformedUpstreamEvent as e:
                lib_logger.warning(f"Skipping malformed Codex stream frame: {e}")
                yield Unrecognized(e.raw)
                continue
            for event in parser.feed(frame):
                yield event
            if parser.completed:
                break
        yield parser.done()

    # =========================================================================
    # CREDENTIALS
    # =========================================================================

    async def refresh(self, account: Account, client: httpx.AsyncClient) -> Account:
        return await self.verify_session(account, client)
