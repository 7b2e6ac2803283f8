"""Webhook test, statistics and reprocessing routes."""

from fastapi import APIRouter
from pydantic import field_validator

from paygate.dependencies import Webhooks
from paygate.models.common import CamelModel
from paygate.models.webhook import is_valid_webhook_url

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


class WebhookTestRequest(CamelModel):
    webhook_url: str
    webhook_secret: str | None = None

    @field_validator("webhook_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        if not is_valid_webhook_url(value):
            raise ValueError("webhookUrl must be an absolute http(s) URL")
        return value


@router.post("/test")
async def send_test_webhook(body: WebhookTestRequest, webhooks: Webhooks):
    """Send a ``webhook.test`` event to the given receiver."""
    delivered = await webhooks.send_test(body.webhook_url, body.webhook_secret)
    return {"success": delivered, "webhookUrl": body.webhook_url}


@router.get("/stats")
async def webhook_stats(webhooks: Webhooks):
    return {"success": True, "stats": webhooks.stats()}


@router.post("/reprocess")
async def reprocess_failed_webhooks(webhooks: Webhooks):
    """Resend every stored failed delivery."""
    summary = await webhooks.reprocess_failed()
    return {"success": True, **summary}
