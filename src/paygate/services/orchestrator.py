"""Payment orchestration: routing, state transitions, persistence and webhooks.

For one request the order of effects is fixed::

    pending webhook -> settlement call -> terminal record -> terminal webhook

A settlement failure is terminal for the request. It is recorded, announced
with ``payment.failed`` and then re-raised to the caller unchanged, even when
the error record cannot be written. Webhook delivery problems never surface
here; other persistence problems always do.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from paygate.errors.exceptions import PersistenceError, ValidationError
from paygate.events.webhook_dispatcher import WebhookDispatcher
from paygate.models.enums import Network, WebhookEvent
from paygate.models.payment import AllBalances, BalanceSnapshot, PaymentRequest, SettlementResult
from paygate.settlement.base import BalanceKind, SettlementClient
from paygate.storage.payment_store import PaymentRequestStore


@dataclass(frozen=True)
class Route:
    """Which backend serves a declared network, and which balance it reports."""

    backend: str
    balance_kind: BalanceKind


# bitcoin and lightning share the LND node, which reclassifies destinations itself
ROUTES: dict[Network, Route] = {
    Network.BITCOIN: Route("unified", BalanceKind.ONCHAIN),
    Network.LIGHTNING: Route("unified", BalanceKind.CHANNELS),
    Network.LIQUID: Route("sidechain", BalanceKind.SIDECHAIN),
}


class PaymentOrchestrator:
    def __init__(
        self,
        unified: SettlementClient,
        sidechain: SettlementClient,
        store: PaymentRequestStore,
        webhooks: WebhookDispatcher,
        logger=None,
    ) -> None:
        self._backends: dict[str, SettlementClient] = {
            "unified": unified,
            "sidechain": sidechain,
        }
        self._store = store
        self._webhooks = webhooks
        self._log = logger or structlog.get_logger(__name__)

    def _route(self, network: Network | str) -> tuple[SettlementClient, Route]:
        try:
            route = ROUTES[Network(network)]
        except ValueError as exc:
            raise ValidationError(
                f"Unsupported network: {network}",
                {"supported": [n.value for n in Network]},
            ) from exc
        return self._backends[route.backend], route

    async def _notify(self, request: PaymentRequest, event: WebhookEvent) -> None:
        if not request.webhook_url:
            return
        delivered = await self._webhooks.notify(
            request.webhook_url,
            request.to_wire(),
            event,
            request.webhook_secret,
        )
        if not delivered:
            self._log.warning(
                "payment_webhook_undelivered",
                payment_id=request.id,
                webhook_event=str(event),
            )

    async def process(self, request: PaymentRequest) -> SettlementResult:
        """Settle a pending request and drive it to ``sent`` or ``error``."""
        log = self._log.bind(payment_id=request.id, transaction_id=request.transaction_id)
        request.require_pending()
        backend, _ = self._route(request.network)
        log.info("payment_processing", network=str(request.network), backend=backend.backend)

        await self._notify(request, WebhookEvent.PENDING)

        try:
            result = await backend.send_payment(request.destination_wallet, request.amount)
        except Exception as exc:
            log.error("payment_failed", error=str(exc))
            request.mark_error(getattr(exc, "message", None) or str(exc) or exc.__class__.__name__)
            try:
                await self._store.record_error(request)
            except PersistenceError as write_exc:
                # the settlement error is what the caller must see
                log.error("payment_error_record_failed", error=write_exc.message)
            await self._notify(request, WebhookEvent.FAILED)
            raise

        request.mark_sent(result.transaction_hash, result.fee)
        await self._store.move_to_sent(request)
        log.info("payment_completed", transaction_hash=result.transaction_hash, fee=result.fee)
        await self._notify(request, WebhookEvent.COMPLETED)
        return result

    async def get_balance(self, network: Network | str) -> BalanceSnapshot:
        backend, route = self._route(network)
        return await backend.get_balance(route.balance_kind)

    async def get_all_balances(self) -> AllBalances:
        """Fetch every balance concurrently; one failure fails the whole call."""
        try:
            bitcoin, lightning, liquid = await asyncio.gather(
                self.get_balance(Network.BITCOIN),
                self.get_balance(Network.LIGHTNING),
                self.get_balance(Network.LIQUID),
            )
        except Exception as exc:
            self._log.error("balances_failed", error=str(exc))
            raise
        return AllBalances(bitcoin=bitcoin, lightning=lightning, liquid=liquid)
