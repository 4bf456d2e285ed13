"""
Delivery of formatted drafts to the configured sink.

Each sink has a request builder registered in _REQUEST_BUILDERS:
  - discord — JSON webhook body with a single rich embed
  - ntfy    — plain-text body, metadata in Title/Priority/Tags headers

Adding a sink:
  1. Write a build_<sink>_request(draft, settings) -> SinkRequest function.
  2. Register it in _REQUEST_BUILDERS.
  3. Add the matching draft model and prompt in the formatter.
"""

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from notify_relay.config import SINK_DISCORD, SINK_NTFY, RelaySettings
from notify_relay.errors import DeliveryError, UpstreamStatusError
from notify_relay.models.notification import (
    BLUE,
    GREEN,
    GREY,
    RED,
    YELLOW,
    DeliveryResult,
    EmbedDraft,
    NotificationDraft,
    PushDraft,
)
from notify_relay.services.backoff import retry_with_backoff

logger = logging.getLogger(__name__)

# Embed colour -> sender avatar
AVATARS = {
    GREEN: "https://cdn-icons-png.flaticon.com/512/190/190411.png",     # success
    BLUE: "https://cdn-icons-png.flaticon.com/512/2965/2965279.png",    # info
    YELLOW: "https://cdn-icons-png.flaticon.com/512/564/564619.png",    # warning
    RED: "https://cdn-icons-png.flaticon.com/512/564/564593.png",       # error
    GREY: "https://cdn-icons-png.flaticon.com/512/4712/4712109.png",    # default
}


def avatar_for(color: Optional[int]) -> str:
    """Avatar URL for an embed colour; unknown colours get the grey bell icon."""
    return AVATARS.get(color, AVATARS[GREY])


@dataclass
class SinkRequest:
    url: str
    json: Optional[dict] = None
    content: Optional[bytes] = None
    headers: dict = field(default_factory=dict)


def _header_value(value: str) -> str:
    """
    HTTP headers are ASCII-only; non-ASCII values (emoji titles) are sent as
    RFC 2047 encoded-words, which ntfy decodes server-side.
    """
    try:
        value.encode("ascii")
        return value
    except UnicodeEncodeError:
        encoded = base64.b64encode(value.encode("utf-8")).decode("ascii")
        return f"=?UTF-8?B?{encoded}?="


def build_discord_request(draft: EmbedDraft, settings: RelaySettings) -> SinkRequest:
    return SinkRequest(
        url=settings.discord_webhook_url,
        json={
            "username": settings.discord_username,
            "avatar_url": avatar_for(draft.color),
            "embeds": [draft.to_payload()],
        },
        headers={"Content-Type": "application/json"},
    )


def build_ntfy_request(draft: PushDraft, settings: RelaySettings) -> SinkRequest:
    priority = draft.priority.value if draft.priority else "default"
    return SinkRequest(
        url=f"{settings.ntfy_base_url}/{settings.ntfy_topic}",
        content=draft.message.encode("utf-8"),
        headers={
            "Title": _header_value(draft.title or "Notification"),
            "Priority": priority,
            "Tags": _header_value(draft.tags or "bell"),
        },
    )


_REQUEST_BUILDERS: dict[str, Callable[..., SinkRequest]] = {
    SINK_DISCORD: build_discord_request,
    SINK_NTFY: build_ntfy_request,
}


def build_sink_request(draft: NotificationDraft, settings: RelaySettings) -> SinkRequest:
    builder = _REQUEST_BUILDERS.get(settings.sink)
    if builder is None:
        raise ValueError(
            f"Unknown sink {settings.sink!r}. Supported sinks: {sorted(_REQUEST_BUILDERS)}"
        )
    return builder(draft, settings)


async def deliver(
    draft: NotificationDraft,
    settings: RelaySettings,
    client: httpx.AsyncClient,
) -> DeliveryResult:
    """
    POST the draft to the sink, retrying non-2xx answers and transport errors.

    Raises:
        DeliveryError: the sink still failed after settings.retry_attempts
                       tries; carries the last status code and body.
    """
    request = build_sink_request(draft, settings)
    label = settings.sink_label

    async def _send() -> httpx.Response:
        response = await client.post(
            request.url,
            json=request.json,
            content=request.content,
            headers=request.headers,
        )
        if not response.is_success:
            logger.info("%s payload: %s", label, json.dumps(draft.model_dump(mode="json"), ensure_ascii=False))
            raise UpstreamStatusError(label, response.status_code, response.text)
        return response

    try:
        response = await retry_with_backoff(
            _send,
            max_attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
        )
    except UpstreamStatusError as exc:
        logger.error("%s delivery failed after retries: %s", label, exc)
        raise DeliveryError(label, exc.status_code, exc.body)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        # InvalidURL is not an HTTPError; a malformed sink URL ends up here too
        logger.error("%s delivery failed after retries: %s", label, exc)
        raise DeliveryError(label, None, str(exc) or exc.__class__.__name__)

    return DeliveryResult(delivered=True, status_code=response.status_code, body=response.text)
