# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/bridge_library/providers/utilities/gemini_shared_utils.py
"""
Shared helpers for the generative-content (Antigravity) adapter.

Holds the finish reason table and the tool schema sanitizer that strips
JSON Schema keywords the upstream dialect rejects.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet

lib_logger = logging.getLogger("bridge_library")


# =============================================================================
# RESPONSE MAPPING
# =============================================================================

# Gemini finish reason mapping to OpenAI format
FINISH_REASON_MAP: Dict[str, str] = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
    "OTHER": "stop",
}


# =============================================================================
# SCHEMA SANITIZATION
# =============================================================================

# JSON Schema keywords the generative-content tool dialect does not accept
UNSUPPORTED_SCHEMA_FIELDS: FrozenSet[str] = frozenset(
    {
        "definitions",
        "$schema",
        "$id",
        "$ref",
        "$defs",
        "exclusiveMinimum",
        "exclusiveMaximum",
        "minLength",
        "maxLength",
        "pattern",
        "format",
        "minItems",
        "maxItems",
        "uniqueItems",
        "additionalItems",
        "contains",
        "additionalProperties",
        "propertyNames",
        "minProperties",
        "maxProperties",
        "allOf",
        "anyOf",
        "oneOf",
        "not",
        "if",
        "then",
        "else",
        "const",
        "contentMediaType",
        "contentEncoding",
        "examples",
        "default",
        "deprecated",
        "readOnly",
        "writeOnly",
    }
)


def _is_unsupported(key: str) -> bool:
    return key in UNSUPPORTED_SCHEMA_FIELDS or key.startswith("$")


def clean_schema(schema: Any) -> Any:
    """
    Recursively strip unsupported keywords from a tool parameter schema.

    Returns a new structure and never mutates the input. After stripping, an
    object that has ``properties`` but no ``type`` gets ``type: "object"``.
    The result contains no denylisted key and every object with properties
    has a type, so ``clean_schema(clean_schema(s)) == clean_schema(s)``.

    Property names under ``properties`` are user data, not keywords, and are
    kept even when they collide with a denylisted name.
    """
    if isinstance(schema, list):
        return [clean_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema

    cleaned: Dict[str, Any] = {}
    for key, value in schema.items():
        if _is_unsupported(key):
            continue
        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {name: clean_schema(prop) for name, prop in value.items()}
        else:
            cleaned[key] = clean_schema(value)

    if "properties" in cleaned and "type" not in cleaned:
        cleaned["type"] = "object"
    return cleaned
