"""
Delivery dispatcher tests.

Sinks are faked with httpx.MockTransport. Covers:
  - avatar lookup table
  - Discord and ntfy request building (including header encoding)
  - retry on non-2xx / transport errors and the terminal DeliveryError
"""

import base64
import json

import httpx
import pytest

from notify_relay.config import RelaySettings
from notify_relay.errors import DeliveryError
from notify_relay.models.notification import (
    EmbedDraft,
    EmbedField,
    EmbedFooter,
    Priority,
    PushDraft,
)
from notify_relay.services.dispatcher import (
    AVATARS,
    avatar_for,
    build_discord_request,
    build_ntfy_request,
    deliver,
)

SUCCESS_ICON = "https://cdn-icons-png.flaticon.com/512/190/190411.png"
ERROR_ICON = "https://cdn-icons-png.flaticon.com/512/564/564593.png"
DEFAULT_ICON = "https://cdn-icons-png.flaticon.com/512/4712/4712109.png"

WEBHOOK_URL = "https://discord.test/api/webhooks/1/abc"


def _discord_settings(**overrides) -> RelaySettings:
    values = {
        "sink": "discord",
        "openrouter_api_key": "sk-test-key",
        "discord_webhook_url": WEBHOOK_URL,
        "retry_base_delay": 0,
    }
    values.update(overrides)
    return RelaySettings(**values)


def _ntfy_settings(**overrides) -> RelaySettings:
    values = {
        "sink": "ntfy",
        "openrouter_api_key": "sk-test-key",
        "ntfy_base_url": "https://ntfy.test",
        "ntfy_topic": "server-alerts",
        "retry_base_delay": 0,
    }
    values.update(overrides)
    return RelaySettings(**values)


def _make_embed(**overrides) -> EmbedDraft:
    values = {
        "title": "✅ Backup finished",
        "description": "Nightly backup completed.",
        "color": 5763719,
        "footer": EmbedFooter(text="Backups"),
        "timestamp": "2026-01-01T00:00:00+00:00",
    }
    values.update(overrides)
    return EmbedDraft(**values)


def _fresh(reply: httpx.Response) -> httpx.Response:
    """Copy of a canned response, so one template can answer many requests."""
    return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)


def _recording_transport(responses: list):
    """MockTransport replaying `responses` in order (last one repeats)."""
    seen: list[httpx.Request] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        return _fresh(reply)

    return httpx.MockTransport(handler), seen


# ---------------------------------------------------------------------------
# Avatar table
# ---------------------------------------------------------------------------

class TestAvatarFor:
    def test_success_colour(self):
        assert avatar_for(5763719) == SUCCESS_ICON

    def test_error_colour(self):
        assert avatar_for(15548997) == ERROR_ICON

    @pytest.mark.parametrize("color", [0, 1, 123456, 16777215, None])
    def test_unknown_colour_gets_default(self, color):
        assert avatar_for(color) == DEFAULT_ICON

    def test_every_known_colour_has_distinct_icon(self):
        assert set(AVATARS) == {5763719, 3447003, 16776960, 15548997, 9807270}
        assert len(set(AVATARS.values())) == 5


# ---------------------------------------------------------------------------
# Request builders
# ---------------------------------------------------------------------------

class TestBuildDiscordRequest:
    def test_payload_shape(self):
        request = build_discord_request(_make_embed(), _discord_settings())

        assert request.url == WEBHOOK_URL
        assert request.json["username"] == "System Alerts"
        assert request.json["avatar_url"] == SUCCESS_ICON
        assert len(request.json["embeds"]) == 1
        embed = request.json["embeds"][0]
        assert embed["title"] == "✅ Backup finished"
        assert embed["footer"] == {"text": "Backups"}
        assert embed["timestamp"] == "2026-01-01T00:00:00+00:00"
        # fields omitted when the draft has none
        assert "fields" not in embed

    def test_fields_included(self):
        draft = _make_embed(fields=[EmbedField(name="Host", value="alpha", inline=True)])
        embed = build_discord_request(draft, _discord_settings()).json["embeds"][0]

        assert embed["fields"] == [{"name": "Host", "value": "alpha", "inline": True}]

    def test_custom_username(self):
        request = build_discord_request(_make_embed(), _discord_settings(discord_username="Ops Bot"))
        assert request.json["username"] == "Ops Bot"


class TestBuildNtfyRequest:
    def test_headers_and_body(self):
        draft = PushDraft(title="Disk full", message="Volume at 95%", priority=Priority.HIGH, tags="warning")
        request = build_ntfy_request(draft, _ntfy_settings())

        assert request.url == "https://ntfy.test/server-alerts"
        assert request.content == b"Volume at 95%"
        assert request.headers == {"Title": "Disk full", "Priority": "high", "Tags": "warning"}

    def test_defaults(self):
        request = build_ntfy_request(PushDraft(message="hello"), _ntfy_settings())

        assert request.headers == {"Title": "Notification", "Priority": "default", "Tags": "bell"}

    def test_non_ascii_title_is_rfc2047_encoded(self):
        draft = PushDraft(title="Déploiement réussi 🎉", message="ok")
        title = build_ntfy_request(draft, _ntfy_settings()).headers["Title"]

        assert title.startswith("=?UTF-8?B?") and title.endswith("?=")
        decoded = base64.b64decode(title[len("=?UTF-8?B?"):-2]).decode("utf-8")
        assert decoded == "Déploiement réussi 🎉"


# ---------------------------------------------------------------------------
# deliver()
# ---------------------------------------------------------------------------

class TestDeliver:
    @pytest.mark.asyncio
    async def test_success_first_try(self):
        transport, seen = _recording_transport([httpx.Response(204)])

        async with httpx.AsyncClient(transport=transport) as client:
            result = await deliver(_make_embed(), _discord_settings(), client)

        assert result.delivered is True
        assert result.status_code == 204
        assert len(seen) == 1
        body = json.loads(seen[0].content)
        assert body["embeds"][0]["title"] == "✅ Backup finished"

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        transport, seen = _recording_transport([
            httpx.Response(502, text="bad gateway"),
            httpx.Response(429, text="slow down"),
            httpx.Response(204),
        ])

        async with httpx.AsyncClient(transport=transport) as client:
            result = await deliver(_make_embed(), _discord_settings(), client)

        assert result.delivered is True
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_delivery_error(self):
        """Three failures -> DeliveryError carrying the last status and body."""
        transport, seen = _recording_transport([httpx.Response(503, text="service unavailable")])

        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(DeliveryError) as exc_info:
                await deliver(_make_embed(), _discord_settings(), client)

        assert len(seen) == 3
        assert exc_info.value.sink_status == 503
        assert exc_info.value.sink_body == "service unavailable"
        assert exc_info.value.status_code == 500
        assert "503" in exc_info.value.message
        assert exc_info.value.message.startswith("Discord error:")

    @pytest.mark.asyncio
    async def test_failed_attempt_logs_draft(self, caplog):
        transport, _ = _recording_transport([httpx.Response(400, text="invalid embed"), httpx.Response(204)])

        with caplog.at_level("INFO", logger="notify_relay.services.dispatcher"):
            async with httpx.AsyncClient(transport=transport) as client:
                await deliver(_make_embed(), _discord_settings(), client)

        assert any("Backup finished" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_transport_error_raises_delivery_error(self):
        transport, seen = _recording_transport([httpx.ConnectError("connection refused")])

        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(DeliveryError) as exc_info:
                await deliver(_make_embed(), _discord_settings(), client)

        assert len(seen) == 3
        assert exc_info.value.sink_status is None
        assert "connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_url_raises_delivery_error(self):
        transport, _ = _recording_transport([httpx.InvalidURL("Invalid non-printable ASCII character in URL")])

        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(DeliveryError) as exc_info:
                await deliver(_make_embed(), _discord_settings(), client)

        assert exc_info.value.sink_status is None
        assert exc_info.value.status_code == 500
        assert exc_info.value.message.startswith("Discord error: Invalid non-printable")

    @pytest.mark.asyncio
    async def test_ntfy_delivery(self):
        transport, seen = _recording_transport([httpx.Response(200, json={"id": "abc"})])
        draft = PushDraft(title="Disk full", message="Volume at 95%", priority=Priority.URGENT, tags="rotating_light")

        async with httpx.AsyncClient(transport=transport) as client:
            result = await deliver(draft, _ntfy_settings(), client)

        assert result.delivered is True
        request = seen[0]
        assert str(request.url) == "https://ntfy.test/server-alerts"
        assert request.content == b"Volume at 95%"
        assert request.headers["Title"] == "Disk full"
        assert request.headers["Priority"] == "urgent"
        assert request.headers["Tags"] == "rotating_light"

    @pytest.mark.asyncio
    async def test_ntfy_failure_labelled(self):
        transport, _ = _recording_transport([httpx.Response(500, text="oops")])

        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(DeliveryError) as exc_info:
                await deliver(PushDraft(message="hi"), _ntfy_settings(), client)

        assert exc_info.value.message == "ntfy error: 500 - oops"
