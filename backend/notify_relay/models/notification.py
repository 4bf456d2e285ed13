"""
Pydantic models for notification drafts.

Two mutually exclusive shapes exist, one per sink:
  - EmbedDraft  — Discord rich embed (variant used by NOTIFY_SINK=discord)
  - PushDraft   — ntfy push notification (NOTIFY_SINK=ntfy)

Length limits are enforced by clipping rather than rejecting, so a draft is
always deliverable regardless of whether it came from a model or from the
static fallback.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator

# Discord embed limits
TITLE_LIMIT = 256
DESCRIPTION_LIMIT = 2000
FIELD_NAME_LIMIT = 256
FIELD_VALUE_LIMIT = 1024
FOOTER_LIMIT = 2048
MAX_FIELDS = 25

# ntfy message body limit
MESSAGE_LIMIT = 4096

# Embed colours
GREEN = 5763719
BLUE = 3447003
YELLOW = 16776960
RED = 15548997
GREY = 9807270


def _clip(value: str, limit: int) -> str:
    return value[:limit]


class EmbedField(BaseModel):
    name: str
    value: str
    inline: bool = False

    @field_validator("name")
    @classmethod
    def _clip_name(cls, v: str) -> str:
        return _clip(v, FIELD_NAME_LIMIT)

    @field_validator("value", mode="before")
    @classmethod
    def _clip_value(cls, v: Any) -> str:
        # Models occasionally return numbers for field values
        return _clip(str(v), FIELD_VALUE_LIMIT)


class EmbedFooter(BaseModel):
    text: str = "Notification"

    @field_validator("text")
    @classmethod
    def _clip_text(cls, v: str) -> str:
        return _clip(v, FOOTER_LIMIT)


class EmbedDraft(BaseModel):
    """Discord embed. timestamp is always stamped by the relay, never the model."""

    title: str
    description: str = ""
    color: int = GREY
    fields: Optional[list[EmbedField]] = None
    footer: EmbedFooter = Field(default_factory=EmbedFooter)
    timestamp: Optional[str] = None

    @field_validator("title")
    @classmethod
    def _clip_title(cls, v: str) -> str:
        return _clip(v, TITLE_LIMIT)

    @field_validator("description")
    @classmethod
    def _clip_description(cls, v: str) -> str:
        return _clip(v, DESCRIPTION_LIMIT)

    @field_validator("footer", mode="before")
    @classmethod
    def _footer_from_text(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"text": v}
        return v

    @field_validator("fields")
    @classmethod
    def _cap_fields(cls, v: Optional[list[EmbedField]]) -> Optional[list[EmbedField]]:
        if v is None:
            return None
        return v[:MAX_FIELDS]

    def to_payload(self) -> dict:
        """Embed dict as Discord expects it (unset optional keys omitted)."""
        return self.model_dump(exclude_none=True)


class Priority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    DEFAULT = "default"
    LOW = "low"
    MIN = "min"


class PushDraft(BaseModel):
    """ntfy notification: message body plus header-encoded metadata."""

    title: str = "Notification"
    message: str
    priority: Priority = Priority.DEFAULT
    tags: str = "bell"

    @field_validator("message")
    @classmethod
    def _clip_message(cls, v: str) -> str:
        return _clip(v, MESSAGE_LIMIT)

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _single_tag(cls, v: Any) -> Any:
        # Only one tag keyword is sent; a list from the model keeps its first entry
        if isinstance(v, list):
            return str(v[0]) if v else "bell"
        if isinstance(v, str):
            return v.split(",")[0].strip() or "bell"
        return v


NotificationDraft = Union[EmbedDraft, PushDraft]


class ModelAttempt(BaseModel):
    """Outcome of asking one model for a draft: success carries the draft, failure a reason."""

    model: str
    draft: Optional[Union[EmbedDraft, PushDraft]] = None
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.draft is not None

    @classmethod
    def success(cls, model: str, draft: NotificationDraft) -> "ModelAttempt":
        return cls(model=model, draft=draft)

    @classmethod
    def failure(cls, model: str, reason: str) -> "ModelAttempt":
        return cls(model=model, reason=reason)


class DeliveryResult(BaseModel):
    delivered: bool
    status_code: Optional[int] = None
    body: str = ""
