# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/model_registry.py
"""
Static model table exposed by the bridge.

Maps each public model id to the provider that serves it, the upstream
model name, the endpoint base, token limits and the thinking configuration.
Entries are immutable and defined at import time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional

PROVIDER_ANTIGRAVITY = "antigravity"
PROVIDER_CODEX = "codex"
PROVIDERS = (PROVIDER_ANTIGRAVITY, PROVIDER_CODEX)

ANTIGRAVITY_ENDPOINT = "https://daily-cloudcode-pa.sandbox.googleapis.com"
CODEX_ENDPOINT = "https://chatgpt.com/backend-api"

# Fixed "created" timestamp advertised in model cards
MODEL_CARD_CREATED = 1700000000

THINKING_LEVELS = ("low", "medium", "high")


@dataclass(frozen=True)
class ThinkingConfig:
    """none | budget(tokens) | level(low|medium|high)"""

    kind: str = "none"
    budget: Optional[int] = None
    level: Optional[str] = None

    def __post_init__(self):
        if self.kind == "budget" and (not self.budget or self.budget <= 0):
            raise ValueError("A thinking budget must be a positive token count")
        if self.kind == "level" and self.level not in THINKING_LEVELS:
            raise ValueError(f"Unknown thinking level: {self.level!r}")
        if self.kind not in ("none", "budget", "level"):
            raise ValueError(f"Unknown thinking kind: {self.kind!r}")

    @classmethod
    def with_budget(cls, tokens: int) -> "ThinkingConfig":
        return cls(kind="budget", budget=tokens)

    @classmethod
    def with_level(cls, level: str) -> "ThinkingConfig":
        return cls(kind="level", level=level)

    @property
    def enabled(self) -> bool:
        return self.kind != "none"


NO_THINKING = ThinkingConfig()


@dataclass(frozen=True)
class ModelEntry:
    public_id: str
    display_name: str
    provider: str
    upstream_model: str
    endpoint: str
    context_limit: int
    output_limit: int
    thinking: ThinkingConfig = field(default=NO_THINKING)

    @property
    def is_claude_family(self) -> bool:
        return "claude" in self.upstream_model


class ModelRegistry:
    """Immutable lookup table keyed by public model id."""

    def __init__(self, entries: Iterable[ModelEntry]):
        self._entries: Dict[str, ModelEntry] = {}
        for entry in entries:
            if entry.provider not in PROVIDERS:
                raise ValueError(
                    f"Model '{entry.public_id}' has unknown provider '{entry.provider}'"
                )
            if entry.public_id in self._entries:
                raise ValueError(f"Duplicate model id: {entry.public_id}")
            self._entries[entry.public_id] = entry

    def lookup(self, public_id: str) -> Optional[ModelEntry]:
        return self._entries.get(public_id)

    def list_all(self) -> Iterator[ModelEntry]:
        return iter(self._entries.values())

    def ids(self) -> list:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, public_id: object) -> bool:
        return public_id in self._entries


def _antigravity(
    public_id: str,
    display_name: str,
    upstream_model: str,
    context_limit: int,
    output_limit: int,
    thinking: ThinkingConfig = NO_THINKING,
) -> ModelEntry:
    return ModelEntry(
        public_id=public_id,
        display_name=display_name,
        provider=PROVIDER_ANTIGRAVITY,
        upstream_model=upstream_model,
        endpoint=ANTIGRAVITY_ENDPOINT,
        context_limit=context_limit,
        output_limit=output_limit,
        thinking=thinking,
    )


def _codex(
    public_id: str,
    display_name: str,
    context_limit: int,
    output_limit: int,
    thinking: ThinkingConfig = NO_THINKING,
) -> ModelEntry:
    return ModelEntry(
        public_id=public_id,
        display_name=display_name,
        provider=PROVIDER_CODEX,
        upstream_model=public_id,
        endpoint=CODEX_ENDPOINT,
        context_limit=context_limit,
        output_limit=output_limit,
        thinking=thinking,
    )


_CLAUDE_BUDGETS = (("Low", 8000), ("Medium", 16000), ("High", 32000))

DEFAULT_MODELS = [
    # Antigravity - Claude
    _antigravity(
        "claude-sonnet-4.5", "Claude Sonnet 4.5", "claude-sonnet-4-5", 200000, 64000
    ),
    *[
        _antigravity(
            f"claude-sonnet-4.5-thinking-{label.lower()}",
            f"Claude Sonnet 4.5 Thinking ({label})",
            "claude-sonnet-4-5-thinking",
            200000,
            64000,
            ThinkingConfig.with_budget(budget),
        )
        for label, budget in _CLAUDE_BUDGETS
    ],
    *[
        _antigravity(
            f"claude-opus-4.5-thinking-{label.lower()}",
            f"Claude Opus 4.5 Thinking ({label})",
            "claude-opus-4-5-thinking",
            200000,
            64000,
            ThinkingConfig.with_budget(budget),
        )
        for label, budget in _CLAUDE_BUDGETS
    ],
    # Antigravity - Gemini 3
    _antigravity("gemini-3-flash", "Gemini 3 Flash", "gemini-3-flash", 1048576, 65536),
    _antigravity(
        "gemini-3-pro-low",
        "Gemini 3 Pro (Low)",
        "gemini-3-pro-low",
        1048576,
        65535,
        ThinkingConfig.with_level("low"),
    ),
    _antigravity(
        "gemini-3-pro-high",
        "Gemini 3 Pro (High)",
        "gemini-3-pro-high",
        1048576,
        65535,
        ThinkingConfig.with_level("high"),
    ),
    # Codex - GPT via ChatGPT subscription
    _codex("gpt-5.2", "GPT-5.2", 128000, 32000),
    _codex(
        "gpt-5.2-thinking",
        "GPT-5.2 Thinking",
        256000,
        64000,
        ThinkingConfig.with_level("high"),
    ),
    _codex("gpt-5.2-codex", "GPT-5.2 Codex", 256000, 64000),
]

DEFAULT_REGISTRY = ModelRegistry(DEFAULT_MODELS)


def lookup(public_id: str) -> Optional[ModelEntry]:
    return DEFAULT_REGISTRY.lookup(public_id)


def list_all() -> Iterator[ModelEntry]:
    return DEFAULT_REGISTRY.list_all()


def to_model_card(entry: ModelEntry) -> Dict[str, Any]:
    return {
        "id": entry.public_id,
        "object": "model",
        "created": MODEL_CARD_CREATED,
        "owned_by": entry.provider,
        "displayName": entry.display_name,
    }
