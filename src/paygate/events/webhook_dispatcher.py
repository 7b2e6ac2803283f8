"""Signed webhook delivery with fixed-delay retry and durable failure capture."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from paygate.errors.exceptions import PaygateError
from paygate.events.failure_store import WebhookFailureStore
from paygate.models.enums import Network, WebhookEvent
from paygate.models.webhook import ServerInfo, WebhookEnvelope, WebhookFailureRecord
from paygate.services.id_generator import generate_id

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_HEADER_256 = "X-Webhook-Signature-256"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"


def sign_payload(body: bytes, secret: str) -> str:
    """Compute HMAC-SHA256 over the exact bytes that go on the wire."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def serialize_envelope(envelope: WebhookEnvelope) -> bytes:
    return json.dumps(envelope.model_dump(mode="json"), separators=(",", ":")).encode("utf-8")


@dataclass
class WebhookConfig:
    """Delivery policy; built from Settings by the application factory."""

    enabled: bool = True
    timeout: float = 10.0
    retry_attempts: int = 3
    retry_delay: float = 5.0
    log_failures: bool = True
    save_failures: bool = True
    default_headers: dict[str, str] = field(default_factory=dict)
    server_name: str = "LND-RPC-Server"
    server_version: str = "2.0.0"

    @property
    def max_attempts(self) -> int:
        return self.retry_attempts + 1


class WebhookDispatcher:
    """Delivers webhook envelopes. :meth:`notify` never raises."""

    def __init__(
        self,
        config: WebhookConfig,
        failure_store: WebhookFailureStore | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger=None,
    ) -> None:
        self.config = config
        self._failures = failure_store
        self._transport = transport
        self._sleep = sleep
        self._log = logger or structlog.get_logger(__name__)

    def build_envelope(self, event: WebhookEvent, data: dict[str, Any]) -> WebhookEnvelope:
        return WebhookEnvelope(
            event=event,
            timestamp=datetime.now(timezone.utc),
            data=data,
            server=ServerInfo(name=self.config.server_name, version=self.config.server_version),
        )

    def build_headers(self, body: bytes, secret: str | None) -> dict[str, str]:
        headers = {**self.config.default_headers, "Content-Type": "application/json"}
        if secret:
            signature = f"sha256={sign_payload(body, secret)}"
            headers[SIGNATURE_HEADER] = signature
            headers[SIGNATURE_HEADER_256] = signature
        headers[TIMESTAMP_HEADER] = str(int(time.time()))
        return headers

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def notify(
        self,
        url: str,
        data: dict[str, Any],
        event: WebhookEvent,
        secret: str | None = None,
    ) -> bool:
        """Deliver one event; persist a failure record if every attempt fails."""
        if not self.config.enabled:
            self._log.info("webhooks_disabled", webhook_event=str(event), url=url)
            return True

        envelope = self.build_envelope(event, data)
        return await self._deliver(url, envelope, secret, persist_failure=True)

    async def _deliver(
        self,
        url: str,
        envelope: WebhookEnvelope,
        secret: str | None,
        *,
        persist_failure: bool,
    ) -> bool:
        body = serialize_envelope(envelope)
        headers = self.build_headers(body, secret)
        max_attempts = self.config.max_attempts
        last_error = ""

        async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
            for attempt in range(1, max_attempts + 1):
                self._log.info(
                    "webhook_attempt",
                    webhook_event=str(envelope.event),
                    url=url,
                    attempt=attempt,
                    max_attempts=max_attempts,
                )
                try:
                    response = await client.post(url, content=body, headers=headers)
                    if 200 <= response.status_code < 300:
                        self._log.info(
                            "webhook_delivered",
                            webhook_event=str(envelope.event),
                            url=url,
                            status=response.status_code,
                            attempt=attempt,
                        )
                        return True
                    last_error = f"HTTP {response.status_code}"
                except (httpx.HTTPError, httpx.InvalidURL) as exc:
                    last_error = str(exc) or exc.__class__.__name__

                self._log.warning(
                    "webhook_attempt_failed",
                    webhook_event=str(envelope.event),
                    url=url,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=last_error,
                )
                if attempt < max_attempts:
                    await self._sleep(self.config.retry_delay)

        self._log.error(
            "webhook_exhausted",
            url=url,
            attempts=max_attempts,
            webhook_event=str(envelope.event),
        )
        if persist_failure:
            await self._record_failure(url, envelope, secret, last_error, max_attempts)
        return False

    async def _record_failure(
        self,
        url: str,
        envelope: WebhookEnvelope,
        secret: str | None,
        error: str,
        attempts: int,
    ) -> None:
        failed_at = datetime.now(timezone.utc)
        if self.config.log_failures:
            self._log.error(
                "webhook_failure",
                url=url,
                webhook_event=str(envelope.event),
                transaction_id=envelope.correlation_id,
                error=error,
                timestamp=failed_at.isoformat(),
            )
        if not self.config.save_failures or self._failures is None:
            return
        record = WebhookFailureRecord(
            webhook_url=url,
            payload=envelope,
            secret=secret,
            error=error,
            failed_at=failed_at,
            attempts=attempts,
        )
        try:
            await self._failures.save(record)
        except (PaygateError, OSError) as exc:
            self._log.error("webhook_failure_save_failed", url=url, error=str(exc))

    # ------------------------------------------------------------------
    # Event helpers
    # ------------------------------------------------------------------

    async def send_payment_pending(self, url: str, data: dict[str, Any], secret: str | None = None) -> bool:
        return await self.notify(url, data, WebhookEvent.PENDING, secret)

    async def send_payment_completed(self, url: str, data: dict[str, Any], secret: str | None = None) -> bool:
        return await self.notify(url, data, WebhookEvent.COMPLETED, secret)

    async def send_payment_failed(self, url: str, data: dict[str, Any], secret: str | None = None) -> bool:
        return await self.notify(url, data, WebhookEvent.FAILED, secret)

    async def send_test(self, url: str, secret: str | None = None) -> bool:
        """Send a synthetic ``webhook.test`` event to check a receiver."""
        data = {
            "id": generate_id("test-webhook-"),
            "transactionId": "test-transaction",
            "username": "test-user",
            "amount": 1000,
            "network": Network.LIGHTNING.value,
            "destinationWallet": "test@example.com",
            "status": "test",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return await self.notify(url, data, WebhookEvent.TEST, secret)

    # ------------------------------------------------------------------
    # Reprocessing
    # ------------------------------------------------------------------

    async def reprocess_failed(self) -> dict[str, int]:
        """Resend every stored failure with a fresh retry budget.

        A record is deleted only when its resend succeeds. Records that fail
        again stay in place as they are; no second record is written. Nothing
        is resent while webhooks are disabled.
        """
        summary = {"processed": 0, "delivered": 0, "failed": 0}
        if not self.config.enabled:
            self._log.info("webhooks_disabled_reprocess_skipped")
            return summary
        if self._failures is None:
            return summary

        files = self._failures.list_files()
        self._log.info("webhook_reprocess_started", count=len(files))
        for path in files:
            summary["processed"] += 1
            try:
                record = await self._failures.load(path)
            except (OSError, ValueError) as exc:
                self._log.error("webhook_failure_unreadable", path=str(path), error=str(exc))
                summary["failed"] += 1
                continue

            envelope = self.build_envelope(record.payload.event, record.payload.data)
            delivered = await self._deliver(
                record.webhook_url,
                envelope,
                record.secret,
                persist_failure=False,
            )
            if delivered:
                await self._failures.delete(path)
                summary["delivered"] += 1
                self._log.info("webhook_reprocessed", path=path.name)
            else:
                summary["failed"] += 1
                self._log.warning("webhook_reprocess_failed", path=path.name)

        return summary

    def stats(self) -> dict[str, Any]:
        return {
            "enabled": self.config.enabled,
            "timeout": self.config.timeout,
            "retryAttempts": self.config.retry_attempts,
            "retryDelay": self.config.retry_delay,
            "failedWebhooks": self._failures.count() if self._failures else 0,
        }
