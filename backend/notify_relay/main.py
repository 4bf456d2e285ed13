"""
Notify Relay
FastAPI application that turns arbitrary webhook payloads into formatted
Discord or ntfy notifications with the help of an LLM.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from notify_relay.config import get_settings
from notify_relay.errors import ConfigurationError, MethodNotAllowedError, RelayError
from notify_relay.routers import relay

# Configure logging to output to console
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Notify Relay",
    description="AI-formatted notification relay for Discord webhooks and ntfy topics",
    version="0.1.0",
)


@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError) -> PlainTextResponse:
    """Render relay failures as plain text, the way webhook senders expect."""
    if exc.status_code >= 500:
        logger.error("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    return PlainTextResponse(exc.message, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(StarletteHTTPException)
async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Routing rejects every method but POST; answer those in plain text as well."""
    if exc.status_code == 405:
        return await relay_error_handler(request, MethodNotAllowedError())
    return await http_exception_handler(request, exc)


app.include_router(relay.router)


@app.on_event("startup")
async def log_startup_config() -> None:
    """
    Log which sink and models the relay will use. Secrets are never logged;
    only whether they are present.
    """
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        logger.error("Relay configuration invalid: %s", exc.message)
        return

    logger.info(
        "Notify Relay ready:\n"
        "  Sink:    %s\n"
        "  Models:  %s\n"
        "  Retries: %d attempts, %.1fs base delay",
        settings.sink,
        ", ".join(settings.models),
        settings.retry_attempts,
        settings.retry_base_delay,
    )
    missing = settings.missing_config()
    if missing:
        logger.warning("Relay is not fully configured: %s", missing)
