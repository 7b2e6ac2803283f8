"""Pydantic models for payment requests, settlement results and balances."""

from datetime import datetime, timezone
from typing import Any

from pydantic import Field, field_validator

from paygate.errors.exceptions import ConflictError
from paygate.models.common import CamelModel
from paygate.models.enums import Network, PaymentStatus
from paygate.models.webhook import is_valid_webhook_url
from paygate.services.id_generator import generate_id

TRANSACTION_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._:-]{0,127}$"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentCreate(CamelModel):
    """Inbound payment instruction as posted by the caller."""

    transaction_id: str = Field(..., pattern=TRANSACTION_ID_PATTERN)
    username: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    network: Network
    destination_wallet: str = Field(..., min_length=1)
    webhook_url: str | None = None
    webhook_secret: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _reject_bool_amount(cls, value: Any) -> Any:
        # bool is an int subclass; True must not become a 1-sat payment
        if isinstance(value, bool):
            raise ValueError("amount must be an integer number of base units")
        if isinstance(value, str):
            value = value.strip()
            if not value.isdigit():
                raise ValueError("amount must be an integer number of base units")
        return value

    @field_validator("network", mode="before")
    @classmethod
    def _normalize_network(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("destination_wallet", "username")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("webhook_url")
    @classmethod
    def _check_webhook_url(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        if not is_valid_webhook_url(value):
            raise ValueError("webhookUrl must be an absolute http(s) URL")
        return value


class PaymentRequest(CamelModel):
    """A payment instruction tracked from ingestion to a terminal state."""

    id: str
    transaction_id: str
    username: str
    amount: int = Field(..., ge=0)
    network: Network
    destination_wallet: str
    webhook_url: str | None = None
    webhook_secret: str | None = Field(default=None, exclude=True)
    status: PaymentStatus = PaymentStatus.PENDING
    timestamp: datetime = Field(default_factory=_utcnow)

    transaction_hash: str | None = None
    completed_at: datetime | None = None
    network_fee: int | None = None

    error: str | None = None
    error_at: datetime | None = None

    @classmethod
    def from_create(cls, create: PaymentCreate) -> "PaymentRequest":
        """Build a fresh pending request with a newly generated id."""
        return cls(
            id=generate_id(),
            transaction_id=create.transaction_id,
            username=create.username,
            amount=create.amount,
            network=create.network,
            destination_wallet=create.destination_wallet,
            webhook_url=create.webhook_url,
            webhook_secret=create.webhook_secret,
        )

    @property
    def storage_key(self) -> str:
        return f"{self.id}_{self.transaction_id}"

    def mark_sent(self, transaction_hash: str, fee: int) -> None:
        self.require_pending()
        self.status = PaymentStatus.SENT
        self.transaction_hash = transaction_hash
        self.network_fee = fee
        self.completed_at = _utcnow()

    def mark_error(self, message: str) -> None:
        self.require_pending()
        self.status = PaymentStatus.ERROR
        self.error = message
        self.error_at = _utcnow()

    def require_pending(self) -> None:
        if self.status is not PaymentStatus.PENDING:
            raise ConflictError(
                f"Payment {self.id} already reached terminal state '{self.status}'"
            )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SettlementResult(CamelModel):
    """Outcome of a successful settlement call."""

    transaction_hash: str
    fee: int = 0
    preimage: str | None = None
    confirmations: int | None = None
    asset_id: str | None = None


class WalletBalance(CamelModel):
    """On-chain wallet balance in satoshis."""

    confirmed: int = 0
    unconfirmed: int = 0
    total: int = 0


class ChannelBalance(CamelModel):
    """Lightning channel balance in satoshis."""

    balance: int = 0
    pending_open_balance: int = 0


class SidechainBalance(WalletBalance):
    """L-BTC balance plus every wallet asset keyed by friendly name."""

    assets: dict[str, int] = Field(default_factory=dict)


BalanceSnapshot = WalletBalance | ChannelBalance | SidechainBalance


class AllBalances(CamelModel):
    bitcoin: WalletBalance
    lightning: ChannelBalance
    liquid: SidechainBalance
    timestamp: datetime = Field(default_factory=_utcnow)
