# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/providers/antigravity_provider.py
"""
Antigravity Provider - Google generative-content API (Gemini and Claude models)

Translates canonical chat messages into the Antigravity ``v1internal``
envelope and parses both full and SSE responses back into canonical results.

Key behaviours:
- System messages collapse into a single systemInstruction block
- Tool results are replayed as functionResponse parts right after the
  assistant turn that issued the matching call
- Tool parameter schemas are sanitized for the upstream schema dialect
- Thinking is suppressed for Claude models once tool history exists
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from ..accounts import Account
from ..config import DEFAULT_ANTIGRAVITY_PROJECT_ID, THINKING_SAFE_MAX_OUTPUT_TOKENS
from ..errors import MalformedUpstreamEvent
from ..messages import (
    CanonicalMessage,
    CanonicalTool,
    CompletionResult,
    ImagePart,
    TextPart,
    ToolCall,
    has_tool_history,
)
from ..model_registry import PROVIDER_ANTIGRAVITY, ModelEntry
from ..streaming import (
    Done,
    ParsedUpstreamEvent,
    TextDelta,
    ToolCallDelta,
    Unrecognized,
    generate_call_id,
    iter_sse_data,
)
from .antigravity_auth_base import AntigravityAuthBase
from .provider_interface import ProviderAdapter, RequestOptions, UpstreamRequest
from .utilities.gemini_shared_utils import FINISH_REASON_MAP, clean_schema

lib_logger = logging.getLogger("bridge_library")


# =============================================================================
# CONFIGURATION CONSTANTS
# =============================================================================

ANTIGRAVITY_HEADERS = {
    "User-Agent": "antigravity/1.11.5 windows/amd64",
    "X-Goog-Api-Client": "google-cloud-sdk vscode_cloudshelleditor/0.1",
    "Client-Metadata": '{"ideType":"IDE_UNSPECIFIED","platform":"PLATFORM_UNSPECIFIED","pluginType":"GEMINI"}',
}

# userAgent field inside the request envelope (not the HTTP header)
BRIDGE_USER_AGENT = "droid-provider-bridge"


def _generate_request_id() -> str:
    return f"bridge-{uuid.uuid4()}"


def _parse_json_object(raw: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


# =============================================================================
# PROVIDER IMPLEMENTATION
# =============================================================================


class AntigravityProvider(AntigravityAuthBase, ProviderAdapter):
    """Adapter for the Antigravity generative-content endpoint."""

    provider_name = PROVIDER_ANTIGRAVITY

    def __init__(self):
        self.default_project_id = os.getenv(
            "ANTIGRAVITY_PROJECT_ID", DEFAULT_ANTIGRAVITY_PROJECT_ID
        )

    # =========================================================================
    # MESSAGE TRANSFORMATION
    # =========================================================================

    def _tool_response_part(
        self, message: CanonicalMessage, call_names: Dict[str, str]
    ) -> Dict[str, Any]:
        text = message.text()
        response = _parse_json_object(text)
        if response is None:
            response = {"result": text}
        name = message.tool_name or call_names.get(message.tool_call_id, "unknown")
        return {
            "functionResponse": {
                "name": name,
                "id": message.tool_call_id,
                "response": response,
            }
        }

    def _function_call_part(self, call: ToolCall) -> Dict[str, Any]:
        args = _parse_json_object(call.arguments)
        if args is None:
            lib_logger.debug(
                f"Tool call '{call.name}' has unparseable arguments, sending {{}}"
            )
            args = {}
        return {"functionCall": {"name": call.name, "args": args, "id": call.id}}

    def _content_parts(self, message: CanonicalMessage) -> List[Dict[str, Any]]:
        parts = []
        for part in message.parts():
            if isinstance(part, TextPart) and part.text:
                parts.append({"text": part.text})
            elif isinstance(part, ImagePart):
                parts.append(
                    {"inlineData": {"mimeType": part.mime_type, "data": part.data}}
                )
        return parts

    def _transform_messages(
        self, messages: List[CanonicalMessage]
    ) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
        """
        Convert canonical messages to ``contents`` plus an optional
        ``systemInstruction``.

        Tool results are indexed by call id up front and emitted as one user
        turn immediately after the assistant turn holding the calls. Results
        whose call id matches no assistant call are buffered where they
        appear; they are flushed before the next user turn, after the next
        assistant turn with calls, or as a trailing user turn.
        """
        system_texts: List[str] = []
        contents: List[Dict[str, Any]] = []

        call_names = {
            call.id: call.name
            for m in messages
            if m.role == "assistant"
            for call in m.tool_calls
        }
        tool_results = {
            m.tool_call_id: self._tool_response_part(m, call_names)
            for m in messages
            if m.role == "tool"
        }
        pending: List[Dict[str, Any]] = []

        for message in messages:
            if message.role == "tool":
                if message.tool_call_id not in call_names:
                    pending.append(tool_results[message.tool_call_id])
                continue
            if message.role == "system":
                system_texts.append(message.text())
                continue

            role = "model" if message.role == "assistant" else "user"
            if role == "user" and pending:
                contents.append({"role": "user", "parts": pending})
                pending = []

            parts = self._content_parts(message)
            for call in message.tool_calls:
                parts.append(self._function_call_part(call))
                if call.id in tool_results:
                    pending.append(tool_results[call.id])

            if parts:
                contents.append({"role": role, "parts": parts})

            if message.tool_calls and pending:
                contents.append({"role": "user", "parts": pending})
                pending = []

        if pending:
            contents.append({"role": "user", "parts": pending})

        system_instruction = None
        if system_texts:
            system_instruction = {"parts": [{"text": "\n\n".join(system_texts)}]}
        return contents, system_instruction

    def _build_tools_payload(
        self, tools: List[CanonicalTool]
    ) -> Optional[List[Dict[str, Any]]]:
        if not tools:
            return None
        declarations = []
        for tool in tools:
            declaration: Dict[str, Any] = {"name": tool.name}
            if tool.description:
                declaration["description"] = tool.description
            if tool.parameters:
                declaration["parameters"] = clean_schema(tool.parameters)
            declarations.append(declaration)
        return [{"functionDeclarations": declarations}]

    def _get_thinking_config(
        self,
        entry: ModelEntry,
        messages: List[CanonicalMessage],
        generation_config: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Build thinkingConfig for the entry, or None when thinking is off.

        Claude models reject extended thinking when replaying tool turns, so
        any tool history disables it for them. With a fixed budget the output
        limit must stay strictly above the budget.
        """
        thinking = entry.thinking
        if not thinking.enabled:
            return None
        if entry.is_claude_family and has_tool_history(messages):
            lib_logger.debug(
                f"Disabling thinking for '{entry.public_id}': conversation has tool history"
            )
            return None

        if thinking.kind == "budget":
            if generation_config.get("maxOutputTokens", 0) <= thinking.budget:
                generation_config["maxOutputTokens"] = THINKING_SAFE_MAX_OUTPUT_TOKENS
            return {"thinking_budget": thinking.budget, "include_thoughts": True}
        return {"thinkingLevel": thinking.level, "includeThoughts": True}

    # =========================================================================
    # REQUEST BUILDING
    # =========================================================================

    def build_request(
        self,
        entry: ModelEntry,
        account: Account,
        messages: List[CanonicalMessage],
        tools: List[CanonicalTool],
        options: RequestOptions,
    ) -> UpstreamRequest:
        contents, system_instruction = self._transform_messages(messages)

        generation_config: Dict[str, Any] = {
            "maxOutputTokens": options.max_tokens or entry.output_limit,
        }
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if options.top_p is not None:
            generation_config["topP"] = options.top_p
        if options.stop:
            generation_config["stopSequences"] = list(options.stop)

        request: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_instruction:
            request["systemInstruction"] = system_instruction

        tools_payload = self._build_tools_payload(tools)
        if tools_payload:
            request["tools"] = tools_payload
            if entry.is_claude_family:
                request["toolConfig"] = {"functionCallingConfig": {"mode": "VALIDATED"}}

        thinking_config = self._get_thinking_config(entry, messages, generation_config)
        if thinking_config:
            generation_config["thinkingConfig"] = thinking_config

        payload = {
            "project": account.project_id or self.default_project_id,
            "model": entry.upstream_model,
            "request": request,
            "userAgent": BRIDGE_USER_AGENT,
            "requestId": _generate_request_id(),
        }

        if options.stream:
            url = f"{entry.endpoint}/v1internal:streamGenerateContent?alt=sse"
        else:
            url = f"{entry.endpoint}/v1internal:generateContent"

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {account.access_token}",
            **ANTIGRAVITY_HEADERS,
        }
        if options.stream:
            headers["Accept"] = "text/event-stream"

        return UpstreamRequest(method="POST", url=url, headers=headers, json=payload)

    # =========================================================================
    # RESPONSE TRANSFORMATION
    # =========================================================================

    def _unwrap_response(self, response: Dict[str, Any]) -> Dict[str, Any]:
        """Extract Gemini response from Antigravity envelope."""
        inner = response.get("response")
        return inner if isinstance(inner, dict) else response

    def _first_candidate(self, response: Dict[str, Any]) -> Dict[str, Any]:
        candidates = response.get("candidates") or []
        return candidates[0] if candidates and isinstance(candidates[0], dict) else {}

    def _extract_tool_call(self, part: Dict[str, Any]) -> ToolCall:
        func_call = part["functionCall"]
        return ToolCall(
            id=func_call.get("id") or generate_call_id(),
            name=func_call.get("name", ""),
            arguments=json.dumps(func_call.get("args") or {}),
        )

    def _iter_parts(self, candidate: Dict[str, Any]):
        """Yield ("text", str) and ("tool", ToolCall) items, thoughts skipped."""
        for part in (candidate.get("content") or {}).get("parts") or []:
            if not isinstance(part, dict):
                continue
            if part.get("thought") is True:
                continue
            if isinstance(part.get("functionCall"), dict):
                yield "tool", self._extract_tool_call(part)
            elif part.get("text"):
                yield "text", part["text"]

    def _build_usage(self, metadata: Dict[str, Any]) -> Optional[Dict[str, int]]:
        if not metadata:
            return None
        return {
            "prompt_tokens": metadata.get("promptTokenCount", 0),
            "completion_tokens": metadata.get("candidatesTokenCount", 0),
            "total_tokens": metadata.get("totalTokenCount", 0),
        }

    def _map_finish_reason(self, gemini_reason: Optional[str], has_tool_calls: bool) -> str:
        if gemini_reason == "STOP":
            return "stop"
        if gemini_reason == "MAX_TOKENS":
            return "length"
        return "tool_calls" if has_tool_calls else "stop"

    def parse_response(self, body_text: str) -> CompletionResult:
        try:
            data = json.loads(body_text)
        except ValueError as e:
            raise MalformedUpstreamEvent(body_text, f"Response is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedUpstreamEvent(body_text, "Response is not a JSON object")

        response = self._unwrap_response(data)
        candidate = self._first_candidate(response)

        text_parts: List[str] = []
        tool_calls: List[ToolCall] = []
        for kind, value in self._iter_parts(candidate):
            if kind == "text":
                text_parts.append(value)
            else:
                tool_calls.append(value)

        return CompletionResult(
            text="".join(text_parts),
            tool_calls=tool_calls,
            finish_reason=self._map_finish_reason(
                candidate.get("finishReason"), bool(tool_calls)
            ),
            usage=self._build_usage(response.get("usageMetadata") or {}),
        )

    def _parse_stream_frame(self, data: str) -> Dict[str, Any]:
        try:
            chunk = json.loads(data)
        except ValueError as e:
            raise MalformedUpstreamEvent(data, str(e)) from e
        if not isinstance(chunk, dict):
            raise MalformedUpstreamEvent(data, "Frame is not a JSON object")
        return self._unwrap_response(chunk)

    async def iter_events(
        self, lines: AsyncIterator[str]
    ) -> AsyncIterator[ParsedUpstreamEvent]:
        finish_reason: Optional[str] = None
        usage: Optional[Dict[str, int]] = None

        async for data in iter_sse_data(lines):
            try:
                chunk = self._parse_stream_frame(data)
            except MalformedUpstreamEvent as e:
                lib_logger.warning(f"Skipping malformed Antigravity stream frame: {e}")
                yield Unrecognized(e.raw)
                continue

            candidate = self._first_candidate(chunk)
            for kind, value in self._iter_parts(candidate):
                if kind == "text":
                    yield TextDelta(value)
                else:
                    yield ToolCallDelta(value)

            if candidate.get("finishReason"):
                finish_reason = FINISH_REASON_MAP.get(candidate["finishReason"], "stop")
            usage = self._build_usage(chunk.get("usageMetadata") or {}) or usage

        yield Done(finish_reason=finish_reason, usage=usage)

    # =========================================================================
    # CREDENTIALS
    # =========================================================================

    async def refresh(self, account: Account, client: httpx.AsyncClient) -> Account:
        return await self.refresh_access_token(account, client)
