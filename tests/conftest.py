"""Shared test fixtures."""

from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from paygate.config import Settings
from paygate.events.failure_store import WebhookFailureStore
from paygate.events.webhook_dispatcher import WebhookConfig, WebhookDispatcher
from paygate.models.payment import (
    ChannelBalance,
    SettlementResult,
    SidechainBalance,
    WalletBalance,
)
from paygate.settlement.base import BalanceKind, SettlementClient
from paygate.storage.payment_store import PaymentRequestStore

TEST_SECRET_KEY = "test-secret-key"


class FakeSettlementClient(SettlementClient):
    """In-memory backend recording calls; set ``fail_with`` to make it raise."""

    def __init__(self, backend: str, balances: dict) -> None:
        self.backend = backend
        self.balance_kinds = frozenset(balances)
        self.balances = balances
        self.sent: list[tuple[str, int]] = []
        self.fail_with: Exception | None = None
        self.balance_error: Exception | None = None

    async def send_payment(self, destination: str, amount: int) -> SettlementResult:
        self.sent.append((destination, amount))
        if self.fail_with is not None:
            raise self.fail_with
        return SettlementResult(transaction_hash=f"{self.backend}-tx-{len(self.sent)}", fee=7)

    async def get_balance(self, kind: BalanceKind):
        if self.balance_error is not None:
            raise self.balance_error
        self._check_kind(kind)
        return self.balances[kind]


class WebhookRecorder:
    """httpx MockTransport handler answering with a scripted list of status codes."""

    def __init__(self, statuses: list[int] | None = None) -> None:
        self.statuses = list(statuses or [])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        secret_key=TEST_SECRET_KEY,
        allowed_ips=["10.0.0.5"],
        json_logs=False,
        webhook_retry_delay=0.0,
    )


@pytest.fixture
def unified_client():
    return FakeSettlementClient(
        "lnd",
        {
            BalanceKind.ONCHAIN: WalletBalance(confirmed=150_000, unconfirmed=5_000, total=155_000),
            BalanceKind.CHANNELS: ChannelBalance(balance=80_000, pending_open_balance=20_000),
        },
    )


@pytest.fixture
def sidechain_client():
    return FakeSettlementClient(
        "liquid",
        {
            BalanceKind.SIDECHAIN: SidechainBalance(
                confirmed=42_000, unconfirmed=0, total=42_000, assets={"L-BTC": 42_000}
            ),
        },
    )


@pytest.fixture
def store(settings):
    return PaymentRequestStore(settings.pending_dir, settings.sent_dir)


@pytest.fixture
def failure_store(settings):
    return WebhookFailureStore(settings.webhook_failures_dir)


@pytest.fixture
def webhook_receiver():
    return WebhookRecorder()


@pytest.fixture
def sleep_mock():
    return AsyncMock()


@pytest.fixture
def dispatcher(failure_store, webhook_receiver, sleep_mock):
    return WebhookDispatcher(
        WebhookConfig(retry_attempts=3, retry_delay=5.0, default_headers={"User-Agent": "test"}),
        failure_store,
        transport=webhook_receiver.transport,
        sleep=sleep_mock,
    )


@pytest.fixture
def services(settings, unified_client, sidechain_client, dispatcher):
    from paygate.services.wiring import build_services

    return build_services(
        settings,
        unified=unified_client,
        sidechain=sidechain_client,
        webhooks=dispatcher,
    )


@pytest.fixture
def app(settings, services):
    """Test application with fake backends and a mocked webhook transport."""
    from paygate.main import create_app

    _app = create_app(settings)
    _app.state.services = services
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client presenting the shared secret from loopback."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Secret-Key": TEST_SECRET_KEY},
    ) as ac:
        yield ac
