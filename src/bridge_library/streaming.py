# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/streaming.py
"""
Streaming normalizer.

Adapters parse their native upstream stream into ParsedUpstreamEvent values
(TextDelta | ToolCallDelta | Done | Unrecognized). This module turns such an
event stream into OpenAI ``chat.completion.chunk`` SSE frames, or collects it
into a single ``chat.completion`` object. Both paths consume the same
pull-based async iterator, so tests and the HTTP writer drive it identically.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from .messages import CompletionResult, ToolCall

lib_logger = logging.getLogger("bridge_library")

DONE_FRAME = "data: [DONE]\n\n"


# =============================================================================
# PARSED UPSTREAM EVENTS
# =============================================================================


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    tool_call: ToolCall


@dataclass(frozen=True)
class Done:
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None


@dataclass(frozen=True)
class Unrecognized:
    raw: str = ""


ParsedUpstreamEvent = Union[TextDelta, ToolCallDelta, Done, Unrecognized]


def generate_request_id() -> str:
    return f"chatcmpl-{uuid.uuid4()}"


def generate_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:8]}"


def format_sse(payload: Any) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """
    Yield the payload of every ``data:`` line until ``[DONE]`` or end of input.

    Blank lines, comments and other SSE fields (``event:``, ``id:``) are
    skipped.
    """
    async for line in lines:
        line = line.rstrip("\r")
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        if not data:
            continue
        if data == "[DONE]":
            return
        yield data


def empty_usage() -> Dict[str, int]:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


# =============================================================================
# NORMALIZER
# =============================================================================


@dataclass
class _StreamState:
    tool_index: int = 0
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None
    sent_role: bool = False
    tool_calls: List[ToolCall] = field(default_factory=list)


class StreamNormalizer:
    """Builds OpenAI-shaped chunks and completions for one client request."""

    def __init__(self, model: str, request_id: Optional[str] = None):
        self.model = model
        self.request_id = request_id or generate_request_id()

    def chunk(
        self,
        delta: Dict[str, Any],
        finish_reason: Optional[str] = None,
        usage: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        chunk = {
            "id": self.request_id,
            "object": "chat.completion.chunk",
            "created": int(time.time()),
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
        if usage:
            chunk["usage"] = usage
        return chunk

    def completion(self, result: CompletionResult) -> Dict[str, Any]:
        message: Dict[str, Any] = {
            "role": "assistant",
            "content": result.text or None,
        }
        if result.tool_calls:
            message["tool_calls"] = [tc.to_openai() for tc in result.tool_calls]

        return {
            "id": self.request_id,
            "object": "chat.completion",
            "created": int(time.time()),
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "message": message,
                    "finish_reason": result.finish_reason,
                }
            ],
            "usage": result.usage or empty_usage(),
        }

    def _delta_for(self, event: ParsedUpstreamEvent, state: _StreamState) -> Optional[Dict[str, Any]]:
        if isinstance(event, TextDelta):
            if not event.text:
                return None
            delta: Dict[str, Any] = {"content": event.text}
        elif isinstance(event, ToolCallDelta):
            delta = {"tool_calls": [event.tool_call.to_openai(index=state.tool_index)]}
            state.tool_index += 1
            state.tool_calls.append(event.tool_call)
        else:
            return None

        if not state.sent_role:
            delta = {"role": "assistant", **delta}
            state.sent_role = True
        return delta

    async def frames(self, events: AsyncIterator[ParsedUpstreamEvent]) -> AsyncIterator[str]:
        """
        Convert an event stream into SSE frames.

        Always ends with one frame carrying ``finish_reason`` followed by
        ``data: [DONE]``, even when the upstream stream ends without a Done.
        """
        state = _StreamState()
        async for event in events:
            if isinstance(event, Done):
                state.finish_reason = event.finish_reason or state.finish_reason
                state.usage = event.usage or state.usage
                break
            if isinstance(event, Unrecognized):
                continue
            delta = self._delta_for(event, state)
            if delta is not None:
                yield format_sse(self.chunk(delta))

        finish_reason = "tool_calls" if state.tool_calls else (state.finish_reason or "stop")
        yield format_sse(self.chunk({}, finish_reason=finish_reason, usage=state.usage))
        yield DONE_FRAME


async def collect(events: AsyncIterator[ParsedUpstreamEvent]) -> CompletionResult:
    """Aggregate an event stream into a single CompletionResult."""
    text_parts: List[str] = []
    tool_calls: List[ToolCall] = []
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None

    async for event in events:
        if isinstance(event, TextDelta):
            text_parts.append(event.text)
        elif isinstance(event, ToolCallDelta):
            tool_calls.append(event.tool_call)
        elif isinstance(event, Done):
            finish_reason = event.finish_reason
            usage = event.usage
            break

    if tool_calls and finish_reason in (None, "stop"):
        finish_reason = "tool_calls"
    return CompletionResult(
        text="".join(text_parts),
        tool_calls=tool_calls,
        finish_reason=finish_reason or "stop",
        usage=usage,
    )
