"""Settlement backends: LND (on-chain + Lightning) and Elements/Liquid."""

from paygate.settlement.base import BalanceKind, SettlementClient
from paygate.settlement.lightning import LightningClient
from paygate.settlement.liquid import LiquidClient

__all__ = [
    "BalanceKind",
    "SettlementClient",
    "LightningClient",
    "LiquidClient",
]
