# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# Shared utilities for Gemini-based providers
from .gemini_shared_utils import (
    clean_schema,
    FINISH_REASON_MAP,
    UNSUPPORTED_SCHEMA_FIELDS,
)

__all__ = [
    "clean_schema",
    "FINISH_REASON_MAP",
    "UNSUPPORTED_SCHEMA_FIELDS",
]
