"""Pydantic models for outbound webhook envelopes and failure records."""

from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

from paygate.models.common import CamelModel
from paygate.models.enums import WebhookEvent


def is_valid_webhook_url(url: str) -> bool:
    """Accept only absolute http/https URLs with a host."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class ServerInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    version: str


class WebhookEnvelope(BaseModel):
    """Body POSTed to webhook receivers."""

    model_config = ConfigDict(extra="forbid")

    event: WebhookEvent
    timestamp: datetime
    data: dict[str, Any]
    server: ServerInfo

    @property
    def correlation_id(self) -> str | None:
        return self.data.get("transactionId")


class WebhookFailureRecord(CamelModel):
    """A delivery that exhausted its retry budget, kept for reprocessing."""

    webhook_url: str
    payload: WebhookEnvelope
    secret: str | None = None
    error: str
    failed_at: datetime
    attempts: int = Field(..., ge=1)
