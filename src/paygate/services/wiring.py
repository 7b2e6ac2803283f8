"""Builds the gateway's components from Settings."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from paygate.config import Settings
from paygate.events.failure_store import WebhookFailureStore
from paygate.events.webhook_dispatcher import WebhookConfig, WebhookDispatcher
from paygate.routing.classifier import AddressClassifier, AddressPatterns
from paygate.services.orchestrator import PaymentOrchestrator
from paygate.settlement.base import SettlementClient
from paygate.settlement.lightning import LightningClient
from paygate.settlement.liquid import LiquidClient
from paygate.storage.payment_store import PaymentRequestStore


@dataclass
class Services:
    settings: Settings
    store: PaymentRequestStore
    failure_store: WebhookFailureStore
    webhooks: WebhookDispatcher
    orchestrator: PaymentOrchestrator
    backends: tuple[SettlementClient, ...]

    async def aclose(self) -> None:
        for backend in self.backends:
            await backend.aclose()


def webhook_config_from_settings(settings: Settings) -> WebhookConfig:
    return WebhookConfig(
        enabled=settings.webhook_enabled,
        timeout=settings.webhook_timeout,
        retry_attempts=settings.webhook_retry_attempts,
        retry_delay=settings.webhook_retry_delay,
        log_failures=settings.webhook_log_failures,
        save_failures=settings.webhook_save_failures,
        default_headers=dict(settings.webhook_default_headers),
        server_name=settings.server_name,
        server_version=settings.server_version,
    )


def build_services(
    settings: Settings,
    *,
    unified: SettlementClient | None = None,
    sidechain: SettlementClient | None = None,
    webhook_transport: httpx.AsyncBaseTransport | None = None,
    webhooks: WebhookDispatcher | None = None,
) -> Services:
    """Wire store, dispatcher, backends and orchestrator.

    Backends and the webhook transport can be injected; anything omitted is
    built from ``settings``.
    """
    classifier = AddressClassifier(
        AddressPatterns.from_strings(liquid=settings.liquid_address_patterns)
    )
    store = PaymentRequestStore(settings.pending_dir, settings.sent_dir)
    failure_store = WebhookFailureStore(settings.webhook_failures_dir)
    if webhooks is None:
        webhooks = WebhookDispatcher(
            webhook_config_from_settings(settings),
            failure_store,
            transport=webhook_transport,
        )
    if unified is None:
        unified = LightningClient.from_settings(settings, classifier=classifier)
    if sidechain is None:
        sidechain = LiquidClient.from_settings(settings)

    orchestrator = PaymentOrchestrator(unified, sidechain, store, webhooks)
    return Services(
        settings=settings,
        store=store,
        failure_store=failure_store,
        webhooks=webhooks,
        orchestrator=orchestrator,
        backends=(unified, sidechain),
    )
