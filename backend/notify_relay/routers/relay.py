"""
Relay router.

A single catch-all endpoint: any path is accepted. Only POST is routed;
other methods are answered with 405 by the handler in notify_relay.main. The
body is turned into a notification by the formatter and pushed to the sink.

Request flow
------------
  shared secret (optional) -> configuration check
  -> body parsing -> verbose trimming (unless ?verbose=true)
  -> format_notification -> deliver -> 200

Every failure before formatting is terminal and returned as a plain-text
4xx/5xx. Formatting never fails (static fallback). Only a delivery failure
after retries produces a 500 once the pipeline has started.
"""

import hmac
import json
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import PlainTextResponse

from notify_relay.config import RelaySettings, get_settings
from notify_relay.errors import ConfigurationError, InputError, UnauthorizedError
from notify_relay.services.dispatcher import deliver
from notify_relay.services.formatter import format_notification
from notify_relay.services.preprocessor import should_trim, trim_verbose_content

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _build_client(settings: RelaySettings) -> httpx.AsyncClient:
    """One client per request, shared by the formatter and the dispatcher."""
    return httpx.AsyncClient(timeout=settings.http_timeout)


def _verify_webhook_secret(settings: RelaySettings, provided: Optional[str]) -> None:
    """
    Check X-Webhook-Secret when RELAY_WEBHOOK_SECRET is configured.

    An unset secret leaves the endpoint open, like a bare webhook URL.
    """
    expected = settings.webhook_secret
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided, expected):
        raise UnauthorizedError("Invalid webhook secret")


async def _read_payload(request: Request) -> str:
    """
    Return the body as text. JSON bodies are re-serialised with indentation
    so the model reads them more easily.

    Raises InputError (400) for malformed JSON or an empty payload.
    """
    content_type = request.headers.get("content-type", "")
    raw = await request.body()

    if "json" in content_type.lower():
        try:
            payload = json.dumps(json.loads(raw), indent=2, ensure_ascii=False)
        except ValueError:
            raise InputError("Bad body")
    else:
        payload = raw.decode("utf-8", errors="replace")

    if not payload:
        raise InputError("No data")
    return payload


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/{path:path}")
async def relay_notification(
    request: Request,
    path: str,
    verbose: Optional[str] = None,
    x_webhook_secret: Optional[str] = Header(None),
    settings: RelaySettings = Depends(get_settings),
) -> PlainTextResponse:
    """
    Receive an arbitrary payload and forward it as a formatted notification.

    Query params:
        verbose=true  Skip verbose-content trimming.
    """
    _verify_webhook_secret(settings, x_webhook_secret)

    missing = settings.missing_config()
    if missing:
        raise ConfigurationError(missing)

    payload = await _read_payload(request)
    text = trim_verbose_content(payload) if should_trim(verbose) else payload

    async with _build_client(settings) as client:
        draft = await format_notification(text, settings, client)
        await deliver(draft, settings, client)

    logger.info("Delivered notification %r via %s (path=/%s)", draft.title, settings.sink, path)
    return PlainTextResponse(f"Sent to {settings.sink_label}!")
