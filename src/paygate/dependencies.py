"""FastAPI dependency injection providers."""

from typing import Annotated

from fastapi import Depends, Request

from paygate.events.webhook_dispatcher import WebhookDispatcher
from paygate.services.orchestrator import PaymentOrchestrator
from paygate.services.wiring import Services
from paygate.storage.payment_store import PaymentRequestStore


def get_services(request: Request) -> Services:
    """Return the component container built during app startup."""
    return request.app.state.services


def get_orchestrator(services: Services = Depends(get_services)) -> PaymentOrchestrator:
    return services.orchestrator


def get_store(services: Services = Depends(get_services)) -> PaymentRequestStore:
    return services.store


def get_webhooks(services: Services = Depends(get_services)) -> WebhookDispatcher:
    return services.webhooks


# Type aliases for dependency injection
Orchestrator = Annotated[PaymentOrchestrator, Depends(get_orchestrator)]
Store = Annotated[PaymentRequestStore, Depends(get_store)]
Webhooks = Annotated[WebhookDispatcher, Depends(get_webhooks)]
