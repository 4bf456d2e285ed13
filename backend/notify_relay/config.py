"""
Runtime configuration for the relay.

Values come from the environment (a local .env is loaded once at import).
get_settings() is used as a FastAPI dependency so tests can swap it out via
app.dependency_overrides.

Environment variables
---------------------
NOTIFY_SINK            "discord" (rich embed webhook) or "ntfy" (push topic).
OPENROUTER_API_KEY     Bearer token for the chat-completion API (required).
OPENROUTER_URL         Chat-completion endpoint.
OPENROUTER_REFERER     Optional HTTP-Referer header for OpenRouter rankings.
OPENROUTER_TITLE       X-Title header sent with every LLM call.
LLM_MODELS             Comma-separated model identifiers, tried in order.
DISCORD_WEBHOOK_URL    Discord webhook (required for the discord sink).
DISCORD_WEBHOOK        Legacy alias, checked when DISCORD_WEBHOOK_URL is unset.
DISCORD_USERNAME       Sender name shown on Discord messages.
NTFY_URL               ntfy server base URL.
NTFY_TOPIC             ntfy topic (required for the ntfy sink).
RETRY_MAX_ATTEMPTS     Attempts per outbound call.
RETRY_BASE_DELAY_MS    First backoff delay; doubles after every failure.
HTTP_TIMEOUT_SECONDS   Timeout for each outbound HTTP call.
RELAY_WEBHOOK_SECRET   When set, inbound requests must send X-Webhook-Secret.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from notify_relay.errors import ConfigurationError

load_dotenv()

SINK_DISCORD = "discord"
SINK_NTFY = "ntfy"
SUPPORTED_SINKS = (SINK_DISCORD, SINK_NTFY)

DEFAULT_MODELS = [
    "z-ai/glm-4.5-air:free",
    "arcee-ai/trinity-mini:free",
]
DEFAULT_OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_NTFY_URL = "https://ntfy.sh"


class RelaySettings(BaseModel):
    """Immutable per-process configuration snapshot."""

    model_config = ConfigDict(frozen=True)

    sink: str = SINK_DISCORD
    openrouter_api_key: str = ""
    openrouter_url: str = DEFAULT_OPENROUTER_URL
    openrouter_referer: str = ""
    openrouter_title: str = "notify-relay"
    models: list[str] = Field(default_factory=lambda: list(DEFAULT_MODELS))
    discord_webhook_url: str = ""
    discord_username: str = "System Alerts"
    ntfy_base_url: str = DEFAULT_NTFY_URL
    ntfy_topic: str = ""
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)  # seconds
    http_timeout: float = Field(default=30.0, gt=0)
    webhook_secret: str = ""

    @property
    def sink_label(self) -> str:
        return "Discord" if self.sink == SINK_DISCORD else "ntfy"

    def missing_config(self) -> Optional[str]:
        """
        Return a message describing the first missing required value,
        or None when the relay can run.

        The API key is checked before the sink target so a half-configured
        deployment reports the LLM credential first.
        """
        if not self.openrouter_api_key:
            return "Missing OPENROUTER_API_KEY env"
        if self.sink == SINK_DISCORD and not self.discord_webhook_url:
            return "Error: Missing DISCORD_WEBHOOK_URL environment variable."
        if self.sink == SINK_NTFY and not self.ntfy_topic:
            return "Error: Missing NTFY_TOPIC environment variable."
        return None


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _parse_models(raw: str) -> list[str]:
    models = [m.strip() for m in raw.split(",") if m.strip()]
    return models or list(DEFAULT_MODELS)


def _parse_number(name: str, raw: str, cast):
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}")


def get_settings() -> RelaySettings:
    """
    Build RelaySettings from the current environment.

    Raises ConfigurationError for an unknown sink or malformed numbers.
    Missing secrets are not an error here: the request handler reports
    them via RelaySettings.missing_config() so the status stays a 500
    with a descriptive body.
    """
    sink = _env("NOTIFY_SINK", SINK_DISCORD).lower()
    if sink not in SUPPORTED_SINKS:
        raise ConfigurationError(
            f"Unknown NOTIFY_SINK {sink!r}. Supported sinks: {list(SUPPORTED_SINKS)}"
        )

    delay_ms = _parse_number("RETRY_BASE_DELAY_MS", _env("RETRY_BASE_DELAY_MS", "1000"), float)

    try:
        return RelaySettings(
            sink=sink,
            openrouter_api_key=_env("OPENROUTER_API_KEY"),
            openrouter_url=_env("OPENROUTER_URL", DEFAULT_OPENROUTER_URL),
            openrouter_referer=_env("OPENROUTER_REFERER"),
            openrouter_title=_env("OPENROUTER_TITLE", "notify-relay"),
            models=_parse_models(_env("LLM_MODELS")),
            # Legacy DISCORD_WEBHOOK is still honoured for older deployments
            discord_webhook_url=_env("DISCORD_WEBHOOK_URL") or _env("DISCORD_WEBHOOK"),
            discord_username=_env("DISCORD_USERNAME", "System Alerts"),
            ntfy_base_url=_env("NTFY_URL", DEFAULT_NTFY_URL).rstrip("/"),
            ntfy_topic=_env("NTFY_TOPIC").strip("/"),
            retry_attempts=_parse_number("RETRY_MAX_ATTEMPTS", _env("RETRY_MAX_ATTEMPTS", "3"), int),
            retry_base_delay=delay_ms / 1000.0,
            http_timeout=_parse_number("HTTP_TIMEOUT_SECONDS", _env("HTTP_TIMEOUT_SECONDS", "30"), float),
            webhook_secret=_env("RELAY_WEBHOOK_SECRET"),
        )
    except ValueError as exc:
        # pydantic.ValidationError subclasses ValueError
        raise ConfigurationError(f"Invalid relay configuration: {exc}")
