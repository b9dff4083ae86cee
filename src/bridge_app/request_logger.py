# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

import logging
from typing import Any, Dict, Optional, Tuple


def log_request_to_console(
    url: str,
    client_info: Optional[Tuple[str, int]],
    request_data: Dict[str, Any],
) -> None:
    """Logs one summary line per incoming chat request."""
    model = request_data.get("model", "?")
    mode = "Stream" if request_data.get("stream") else "Request"
    messages = request_data.get("messages")
    message_count = len(messages) if isinstance(messages, list) else 0
    client = f"{client_info[0]}:{client_info[1]}" if client_info else "unknown"
    logging.info(
        f"{mode}: {model} ({message_count} messages) from {client} -> {url}"
    )
