# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/messages.py
"""
Canonical chat model shared by the public API and both provider adapters.

The shape follows OpenAI chat messages: roles, text/image content parts,
assistant tool calls and tool results. Adapters translate to and from this
model only; raw client JSON never reaches them.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .errors import InvalidClientRequest

lib_logger = logging.getLogger("bridge_library")

ROLES = ("system", "user", "assistant", "tool")

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    mime_type: str
    data: str


ContentPart = Union[TextPart, ImagePart]
Content = Union[str, List[ContentPart]]


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str = "{}"

    def to_openai(self, index: Optional[int] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }
        if index is not None:
            data = {"index": index, **data}
        return data


@dataclass
class CanonicalMessage:
    role: str
    content: Content = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(p.text for p in self.content if isinstance(p, TextPart))

    def parts(self) -> List[ContentPart]:
        if isinstance(self.content, str):
            return [TextPart(self.content)] if self.content else []
        return list(self.content)


@dataclass(frozen=True)
class CanonicalTool:
    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionResult:
    """A full (non-streamed) answer, provider independent."""

    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: Optional[Dict[str, int]] = None


def has_tool_history(messages: List[CanonicalMessage]) -> bool:
    return any(
        m.role == "tool" or (m.role == "assistant" and m.tool_calls) for m in messages
    )


# =============================================================================
# OPENAI → CANONICAL
# =============================================================================


def _parse_image_url(image_url: Any) -> Optional[ImagePart]:
    url = image_url.get("url", "") if isinstance(image_url, dict) else image_url
    if not isinstance(url, str):
        return None
    match = _DATA_URL_RE.match(url)
    if not match:
        lib_logger.debug("Dropping non-inline image part")
        return None
    return ImagePart(mime_type=match.group(1), data=match.group(2))


def _parse_content(content: Any) -> Content:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        raise InvalidClientRequest("Message content must be a string or a list")

    parts: List[ContentPart] = []
    for item in content:
        if not isinstance(item, dict):
            continue
        kind = item.get("type")
        if kind == "text":
            text = item.get("text") or ""
            if text:
                parts.append(TextPart(text))
        elif kind == "image_url":
            image = _parse_image_url(item.get("image_url", {}))
            if image:
                parts.append(image)
        elif kind == "image":
            source = item.get("source") or {}
            if source.get("data"):
                parts.append(
                    ImagePart(
                        mime_type=source.get("media_type") or "image/png",
                        data=source["data"],
                    )
                )
    return parts


def _parse_tool_calls(raw_calls: Any) -> List[ToolCall]:
    calls = []
    for raw in raw_calls or []:
        if not isinstance(raw, dict):
            continue
        function = raw.get("function") or {}
        arguments = function.get("arguments")
        if arguments is None:
            arguments = "{}"
        elif not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        calls.append(
            ToolCall(
                id=str(raw.get("id") or ""),
                name=str(function.get("name") or ""),
                arguments=arguments,
            )
        )
    return calls


def message_from_openai(raw: Dict[str, Any]) -> CanonicalMessage:
    if not isinstance(raw, dict):
        raise InvalidClientRequest("Each message must be an object")
    role = raw.get("role")
    if role not in ROLES:
        raise InvalidClientRequest(f"Unsupported message role: {role!r}")
    if role == "tool" and not raw.get("tool_call_id"):
        raise InvalidClientRequest("Tool messages require a tool_call_id")

    return CanonicalMessage(
        role=role,
        content=_parse_content(raw.get("content")),
        tool_calls=_parse_tool_calls(raw.get("tool_calls")) if role == "assistant" else [],
        tool_call_id=raw.get("tool_call_id") if role == "tool" else None,
        tool_name=raw.get("name") if role == "tool" else None,
    )


def messages_from_openai(raw_messages: List[Dict[str, Any]]) -> List[CanonicalMessage]:
    return [message_from_openai(m) for m in raw_messages]


def tools_from_openai(raw_tools: Optional[List[Dict[str, Any]]]) -> List[CanonicalTool]:
    tools = []
    for raw in raw_tools or []:
        if not isinstance(raw, dict) or raw.get("type", "function") != "function":
            continue
        function = raw.get("function") or {}
        name = function.get("name")
        if not name:
            continue
        parameters = function.get("parameters")
        tools.append(
            CanonicalTool(
                name=name,
                description=function.get("description"),
                parameters=parameters if isinstance(parameters, dict) else {},
            )
        )
    return tools
