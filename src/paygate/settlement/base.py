"""Abstract base class for settlement backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum

from paygate.errors.exceptions import SettlementError
from paygate.models.payment import BalanceSnapshot, SettlementResult

SATS_PER_COIN = 100_000_000


class BalanceKind(StrEnum):
    ONCHAIN = "onchain"
    CHANNELS = "channels"
    SIDECHAIN = "sidechain"


class SettlementClient(ABC):
    """A node that can move funds and report balances."""

    backend: str = "unknown"
    balance_kinds: frozenset[BalanceKind] = frozenset()

    @abstractmethod
    async def send_payment(self, destination: str, amount: int) -> SettlementResult:
        """Send ``amount`` base units to ``destination``.

        Raises:
            SettlementError: on any backend rejection or transport failure.
        """
        ...

    @abstractmethod
    async def get_balance(self, kind: BalanceKind) -> BalanceSnapshot:
        """Return a balance snapshot of the requested kind."""
        ...

    async def aclose(self) -> None:
        """Release pooled connections. Override when holding a client."""
        return None

    def _check_kind(self, kind: BalanceKind) -> None:
        if kind not in self.balance_kinds:
            raise SettlementError(self.backend, f"balance kind '{kind}' not supported")
