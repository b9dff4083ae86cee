# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

import argparse
import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, List, Optional, Union

# Load .env before the library reads its environment overrides
from dotenv import load_dotenv

# Get the application root directory (EXE dir if frozen, else CWD)
# Inlined here so the library is not imported before .env is loaded
if getattr(sys, "frozen", False):
    _root_dir = Path(sys.executable).parent
else:
    _root_dir = Path.cwd()

load_dotenv(_root_dir / ".env")

import colorlog
import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, ConfigDict, ValidationError
from rich.console import Console
from rich.table import Table
from starlette.exceptions import HTTPException as StarletteHTTPException

from bridge_library import (
    AccountStorage,
    BridgeClient,
    BridgeError,
    ChatRequest,
    CompletionStream,
    CredentialManager,
    DEFAULT_REGISTRY,
    InvalidClientRequest,
    ModelRegistry,
    initialize_pool,
)
from bridge_library.config import DEFAULT_HOST, DEFAULT_PORT
from bridge_library.model_registry import (
    PROVIDER_ANTIGRAVITY,
    PROVIDER_CODEX,
    to_model_card,
)
from bridge_library.utils.paths import get_accounts_file, get_logs_dir
from bridge_app.request_logger import log_request_to_console

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}


# --- Pydantic Models ---
class ChatCompletionRequest(BaseModel):
    """OpenAI chat completion body. Unknown fields are accepted and ignored."""

    model: str
    messages: List[Dict[str, Any]]
    stream: bool = False
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stop: Optional[Union[str, List[str]]] = None
    tools: Optional[List[Dict[str, Any]]] = None

    model_config = ConfigDict(extra="allow")


# --- Logging Configuration ---
class BridgeDebugFilter(logging.Filter):
    """Lets only DEBUG records from the bridge library through."""

    def filter(self, record):
        return record.levelno == logging.DEBUG and record.name.startswith(
            "bridge_library"
        )


def configure_logging(log_dir: Path) -> None:
    file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Configure a console handler with color (INFO and above only, no DEBUG)
    console_handler = colorlog.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    console_handler.setLevel(logging.INFO)

    info_file_handler = logging.FileHandler(log_dir / "proxy.log", encoding="utf-8")
    info_file_handler.setLevel(logging.INFO)
    info_file_handler.setFormatter(file_format)

    debug_file_handler = logging.FileHandler(log_dir / "proxy_debug.log", encoding="utf-8")
    debug_file_handler.setLevel(logging.DEBUG)
    debug_file_handler.setFormatter(file_format)
    debug_file_handler.addFilter(BridgeDebugFilter())

    # Get the root logger and set it to DEBUG to capture all messages
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(info_file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(debug_file_handler)

    # Silence other noisy loggers by setting their level higher than root
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# --- Lifespan Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the account pool and the bridge client for the app's lifetime."""
    storage: AccountStorage = app.state.storage or AccountStorage(get_accounts_file())
    owns_http_client = app.state.http_client is None
    # No timeouts: a hung upstream hangs only its own request
    http_client = app.state.http_client or httpx.AsyncClient(timeout=None)

    logging.info(f"Loading accounts from '{storage.path}'")
    credential_manager = CredentialManager(storage, http_client)
    pool = await initialize_pool(storage, credential_manager)

    app.state.pool = pool
    app.state.bridge_client = BridgeClient(
        pool, credential_manager, http_client, registry=app.state.registry
    )

    yield

    if owns_http_client:
        await http_client.aclose()
    logging.info("Bridge client closed.")


def get_bridge_client(request: Request) -> BridgeClient:
    """Dependency to get the bridge client instance from the app state."""
    return request.app.state.bridge_client


async def streaming_response_wrapper(
    request: Request, response_stream: CompletionStream
) -> AsyncGenerator[str, None]:
    """
    Forwards SSE frames to the client.

    Stops reading upstream when the client goes away. An error after the
    first frame cannot become an HTTP status any more, so it is logged and
    reported as a final error frame.
    """
    try:
        async for chunk_str in response_stream:
            if await request.is_disconnected():
                logging.warning("Client disconnected, stopping stream.")
                break
            yield chunk_str
    except Exception as e:
        logging.error(f"An error occurred during the response stream: {e}")
        if isinstance(e, BridgeError):
            error_payload = e.to_payload()
        else:
            error_payload = BridgeError(f"Internal error: {e}").to_payload()
        yield f"data: {json.dumps(error_payload)}\n\n"
        yield "data: [DONE]\n\n"
    finally:
        await response_stream.aclose()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": "api_error", "code": status_code}},
    )


# --- Route Handlers ---
async def chat_completions(
    request: Request, client: BridgeClient = Depends(get_bridge_client)
):
    """OpenAI-compatible chat completions, streaming or not."""
    try:
        request_data = await request.json()
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError
        raise InvalidClientRequest("Invalid JSON in request body.")
    try:
        body = ChatCompletionRequest.model_validate(request_data)
    except ValidationError as e:
        raise InvalidClientRequest(f"Invalid Request: {e}") from e

    log_request_to_console(
        url=str(request.url),
        client_info=(request.client.host, request.client.port) if request.client else None,
        request_data=request_data,
    )

    try:
        result = await client.acompletion(ChatRequest.from_openai(body.model_dump()))
    except BridgeError:
        raise
    except Exception as e:
        logging.exception(f"Request failed: {e}")
        raise BridgeError(f"Internal error: {e}", 500) from e

    if isinstance(result, CompletionStream):
        return StreamingResponse(
            streaming_response_wrapper(request, result),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )
    return result


async def list_models(request: Request):
    """Returns every registry model in the OpenAI-compatible list format."""
    registry: ModelRegistry = request.app.state.registry
    return {"object": "list", "data": [to_model_card(e) for e in registry.list_all()]}


async def health(request: Request):
    counts = request.app.state.pool.counts()
    return {
        "status": "ok",
        "antigravity_accounts": counts[PROVIDER_ANTIGRAVITY],
        "codex_accounts": counts[PROVIDER_CODEX],
    }


class PreflightMiddleware:
    """Answers every OPTIONS request with 200 and permissive CORS headers."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            response = Response(status_code=200, headers=CORS_HEADERS)
            await response(scope, receive, send)
            return
        await self.app(scope, receive, send)


async def bridge_error_handler(request: Request, exc: BridgeError):
    logging.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message[:200]}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = "Not found" if exc.status_code == 404 else str(exc.detail)
    return _error_response(exc.status_code, message)


# --- FastAPI App Setup ---
def create_app(
    storage: Optional[AccountStorage] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    registry: ModelRegistry = DEFAULT_REGISTRY,
) -> FastAPI:
    """
    Build the gateway application.

    ``storage`` and ``http_client`` default to the configured account file
    and a fresh httpx client created at startup.
    """
    app = FastAPI(lifespan=lifespan)
    app.state.storage = storage
    app.state.http_client = http_client
    app.state.registry = registry

    # Add CORS middleware to allow all origins, methods, and headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allows all origins
        allow_credentials=True,
        allow_methods=["*"],  # Allows all methods
        allow_headers=["*"],  # Allows all headers
    )
    app.add_middleware(PreflightMiddleware)

    for prefix in ("/v1", ""):
        app.add_api_route(f"{prefix}/chat/completions", chat_completions, methods=["POST"])
        app.add_api_route(f"{prefix}/models", list_models, methods=["GET"])
    app.add_api_route("/health", health, methods=["GET"])

    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    return app


app = create_app()


def print_banner(host: str, port: int, registry: ModelRegistry = DEFAULT_REGISTRY) -> None:
    console = Console()
    console.print("━" * 70)
    console.print(f"[bold]Provider bridge[/bold] starting on http://{host}:{port}")
    console.print(f"OpenAI base URL: [cyan]http://{host}:{port}/v1[/cyan]")
    console.print("━" * 70)

    table = Table(box=None, show_header=True, header_style="bold", padding=(0, 1))
    table.add_column("Model", style="cyan", min_width=28)
    table.add_column("Provider", min_width=12)
    table.add_column("Upstream", min_width=24)
    table.add_column("Context", justify="right")
    table.add_column("Output", justify="right")
    for entry in registry.list_all():
        table.add_row(
            entry.public_id,
            entry.provider,
            entry.upstream_model,
            str(entry.context_limit),
            str(entry.output_limit),
        )
    console.print(table)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="OpenAI-compatible provider bridge")
    parser.add_argument(
        "--host",
        type=str,
        default=os.getenv("HOST", DEFAULT_HOST),
        help="Host to bind the server to.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", str(DEFAULT_PORT))),
        help="Port to run the server on.",
    )
    args = parser.parse_args(argv)

    configure_logging(get_logs_dir(_root_dir))
    print_banner(args.host, args.port)

    import uvicorn

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
