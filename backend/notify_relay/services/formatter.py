"""
Notification formatting service.

Asks a chat-completion model (via OpenRouter) to turn an arbitrary payload
into a structured notification draft. Models from settings.models are tried
strictly in order; the first well-formed reply wins. When every model fails
the static fallback draft is returned, so format_notification never raises.
"""

import json
import logging
from datetime import datetime, timezone

import httpx
from pydantic import ValidationError

from notify_relay.config import SINK_DISCORD, SINK_NTFY, RelaySettings
from notify_relay.errors import UpstreamStatusError
from notify_relay.models.notification import (
    DESCRIPTION_LIMIT,
    GREY,
    MESSAGE_LIMIT,
    EmbedDraft,
    EmbedFooter,
    ModelAttempt,
    NotificationDraft,
    Priority,
    PushDraft,
)
from notify_relay.services.backoff import retry_with_backoff

logger = logging.getLogger(__name__)

DISCORD_SYSTEM_PROMPT = """\
You are a Discord notification formatter. Create concise, readable notifications from any input source.

Rules:
1. **Title**: Short event summary (max 60 chars). Start with emoji: 🚨 error, ✅ success, ⚠️ warning, 📦 info, 🔔 general.
2. **Description**: 1-2 sentences max (200 chars). Answer: What happened? Skip technical jargon.
3. **Fields**: Only 3-4 CRITICAL fields. Choose from:
   - Event/Action type
   - Who/What (user, device, service)
   - When (if time is critical)
   - Where (location, IP, endpoint)
   - Status/Result

   SKIP: Technical IDs, hashes, authentication results, email routing, headers, long URLs, verbose logs.
   Format: { "name": "Key", "value": "Short value", "inline": true }

4. **Color**: 5763719=green(success), 16776960=yellow(warning), 15548997=red(error), 3447003=blue(info)

5. **Be ruthless**: If a field isn't immediately actionable or meaningful to a human, SKIP IT.

Output ONLY this JSON:
{
  "title": "🔔 Event Name",
  "description": "Brief explanation",
  "color": 5763719,
  "fields": [ { "name": "Key", "value": "Value", "inline": true } ],
  "footer": { "text": "Notification" }
}
"""

NTFY_SYSTEM_PROMPT = """\
You are a push notification formatter. Create a short, readable phone notification from any input source.

Rules:
1. **title**: Short event summary (max 60 chars). No emoji, the tag adds one.
2. **message**: 1-3 sentences (max 300 chars). Answer: What happened, and does anyone need to act?
   SKIP: Technical IDs, hashes, authentication results, email routing, headers, long URLs, verbose logs.
3. **priority**: One of "urgent", "high", "default", "low", "min".
   - urgent: outage, security incident, data loss
   - high: errors or warnings that need attention soon
   - default: routine events, successes
   - low / min: purely informational noise
4. **tags**: ONE emoji shortcode keyword, e.g. "rotating_light" (error), "warning", "white_check_mark" (success),
   "package" (deploy/info), "bell" (general).

Output ONLY this JSON:
{
  "title": "Event Name",
  "message": "Brief explanation",
  "priority": "default",
  "tags": "bell"
}
"""

_SYSTEM_PROMPTS = {
    SINK_DISCORD: DISCORD_SYSTEM_PROMPT,
    SINK_NTFY: NTFY_SYSTEM_PROMPT,
}

_DRAFT_MODELS = {
    SINK_DISCORD: EmbedDraft,
    SINK_NTFY: PushDraft,
}

FALLBACK_EMBED_TITLE = "🔔 Notification"
FALLBACK_EMBED_FOOTER = "Processed via Relay (Fallback)"
FALLBACK_PUSH_TITLE = "Notification"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_fallback(text: str, sink: str) -> NotificationDraft:
    """Deterministic draft used when no model produced a usable reply."""
    if sink == SINK_NTFY:
        return PushDraft(
            title=FALLBACK_PUSH_TITLE,
            message=text[:MESSAGE_LIMIT],
            priority=Priority.DEFAULT,
            tags="bell",
        )
    return EmbedDraft(
        title=FALLBACK_EMBED_TITLE,
        description=text[:DESCRIPTION_LIMIT],
        color=GREY,
        footer=EmbedFooter(text=FALLBACK_EMBED_FOOTER),
        timestamp=_now_iso(),
    )


def build_chat_request(model: str, text: str, system_prompt: str) -> dict:
    """OpenAI-compatible chat-completion body requesting a JSON object reply."""
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": text},
        ],
        "response_format": {"type": "json_object"},
    }


def _request_headers(settings: RelaySettings) -> dict:
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.openrouter_api_key}",
        "X-Title": settings.openrouter_title,
    }
    if settings.openrouter_referer:
        headers["HTTP-Referer"] = settings.openrouter_referer
    return headers


def strip_code_fences(raw: str) -> str:
    """
    Remove a markdown code fence the model may wrap its JSON in despite
    being told not to: a leading ```json or ``` and a trailing ```.
    """
    text = raw.strip()
    if text[:7].lower() == "```json":
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def _extract_content(data: dict) -> str:
    """Assistant text at choices[0].message.content, or "" when absent."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    return (content or "").strip() if isinstance(content, str) else ""


def parse_draft(content: str, sink: str) -> NotificationDraft:
    """
    Parse model output into the draft type for sink.

    Raises ValueError (json.JSONDecodeError, pydantic ValidationError) when
    the reply is not a JSON object of the expected shape.
    """
    parsed = json.loads(strip_code_fences(content))
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")

    draft = _DRAFT_MODELS[sink].model_validate(parsed)
    if isinstance(draft, EmbedDraft):
        # Never trust a model-supplied timestamp
        draft.timestamp = _now_iso()
    return draft


async def _attempt_model(
    model: str,
    text: str,
    settings: RelaySettings,
    client: httpx.AsyncClient,
) -> ModelAttempt:
    """Ask a single model for a draft. All failures are returned, not raised."""
    body = build_chat_request(model, text, _SYSTEM_PROMPTS[settings.sink])
    headers = _request_headers(settings)

    async def _call() -> httpx.Response:
        response = await client.post(settings.openrouter_url, json=body, headers=headers)
        if not response.is_success:
            raise UpstreamStatusError("OpenRouter", response.status_code, response.text[:500])
        return response

    try:
        response = await retry_with_backoff(
            _call,
            max_attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
        )
    except Exception as exc:
        # Transport errors, timeouts and non-2xx answers after the last retry
        return ModelAttempt.failure(model, f"request failed: {exc}")

    try:
        data = response.json()
    except ValueError:
        return ModelAttempt.failure(model, "response body is not JSON")

    content = _extract_content(data)
    if not content:
        return ModelAttempt.failure(model, "empty completion")

    try:
        draft = parse_draft(content, settings.sink)
    except ValidationError as exc:
        return ModelAttempt.failure(model, f"reply does not match schema: {exc.error_count()} error(s)")
    except ValueError as exc:
        return ModelAttempt.failure(model, f"unparsable reply: {exc}")

    return ModelAttempt.success(model, draft)


async def format_notification(
    text: str,
    settings: RelaySettings,
    client: httpx.AsyncClient,
) -> NotificationDraft:
    """
    Full formatting pipeline: models in order -> first valid draft, else fallback.

    Args:
        text:     Preprocessed payload text.
        settings: Relay configuration (sink, model list, retry budget).
        client:   Shared httpx client for the current request.

    Returns:
        EmbedDraft for the discord sink, PushDraft for ntfy.
    """
    for model in settings.models:
        attempt = await _attempt_model(model, text, settings, client)
        if attempt.succeeded:
            logger.info("Formatted notification with model %s", model)
            return attempt.draft
        logger.error("Model %s failed: %s", model, attempt.reason)

    logger.warning("All %d model(s) failed, using static fallback", len(settings.models))
    return build_fallback(text, settings.sink)
