"""Elements/Liquid sidechain client over JSON-RPC."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import httpx
import structlog

from paygate.config import Settings
from paygate.errors.exceptions import SettlementError
from paygate.models.payment import SettlementResult, SidechainBalance
from paygate.settlement.base import SATS_PER_COIN, BalanceKind, SettlementClient

LBTC_ASSET_ID = "6f0279e9ed041c3d710a9f57d0c02928416460c4b722ae3457a11eec381c526d"
TEST_ASSET_ID = "38fca2d939696061a8f76d4e6b5eecd54e3b4221c846f24a6b279e79952850a5"

ASSET_NAMES: dict[str, str] = {
    "bitcoin": "L-BTC",
    LBTC_ASSET_ID: "L-BTC",
    TEST_ASSET_ID: "TEST",
}

MIN_FEE_RATE = Decimal("0.00001")

# Liquid considers a transaction final after two blocks
_CONFIRMED_DEPTH = 2


def to_sats(amount: Any) -> int:
    """Convert a coin-denominated RPC number to integer base units."""
    coins = Decimal(str(amount or 0))
    return int((coins * SATS_PER_COIN).to_integral_value(rounding=ROUND_HALF_UP))


def to_coins(sats: int) -> str:
    """Render base units as an exact 8-decimal coin string for RPC calls."""
    return f"{Decimal(sats) / SATS_PER_COIN:.8f}"


class LiquidClient(SettlementClient):
    """Sidechain backend talking to an Elements node."""

    backend = "liquid"
    balance_kinds = frozenset({BalanceKind.SIDECHAIN})

    def __init__(
        self,
        rpc_url: str,
        rpc_user: str,
        rpc_password: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger=None,
    ) -> None:
        self._log = logger or structlog.get_logger(__name__)
        self._client = httpx.AsyncClient(
            base_url=rpc_url,
            auth=(rpc_user, rpc_password),
            timeout=timeout,
            transport=transport,
        )
        self._request_id = 0

    @classmethod
    def from_settings(cls, settings: Settings, logger=None) -> LiquidClient:
        return cls(
            settings.liquid_rpc_url,
            settings.liquid_rpc_user,
            settings.liquid_rpc_password,
            timeout=settings.liquid_timeout,
            logger=logger,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def rpc_call(self, method: str, params: list[Any] | None = None) -> Any:
        """Execute one JSON-RPC 1.0 call and return its ``result``."""
        self._request_id += 1
        payload = {
            "jsonrpc": "1.0",
            "id": f"liquid-rpc-{self._request_id}",
            "method": method,
            "params": params or [],
        }
        try:
            response = await self._client.post("/", json=payload)
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._log.error("liquid_rpc_failed", method=method, error=str(exc))
            raise SettlementError(self.backend, f"RPC call {method} failed: {exc}") from exc

        # bitcoind-style nodes answer RPC errors with HTTP 500 and an error object
        error = body.get("error") if isinstance(body, dict) else None
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            self._log.error("liquid_rpc_error", method=method, error=message)
            raise SettlementError(self.backend, f"RPC error in {method}: {message}")
        if response.status_code >= 400:
            raise SettlementError(self.backend, f"RPC call {method} returned HTTP {response.status_code}")
        return body.get("result")

    # ------------------------------------------------------------------
    # SettlementClient
    # ------------------------------------------------------------------

    async def send_payment(
        self,
        destination: str,
        amount: int,
        asset_id: str | None = None,
    ) -> SettlementResult:
        self._log.info("liquid_send", destination=destination, amount=amount, asset=asset_id or "L-BTC")

        validation = await self.rpc_call("validateaddress", [destination])
        if not (validation or {}).get("isvalid"):
            raise SettlementError(self.backend, f"invalid Liquid address: {destination}")

        params: list[Any] = [destination, to_coins(amount)]
        if asset_id:
            # sendtoaddress positional args up to assetlabel (Elements 0.21+)
            params += ["", "", False, False, 1, "UNSET", False, asset_id]
        txid = await self.rpc_call("sendtoaddress", params)

        details = await self.rpc_call("gettransaction", [txid]) or {}
        fee = details.get("fee") or 0
        if isinstance(fee, dict):
            # Elements reports fees per asset
            fee = fee.get("bitcoin", 0)
        return SettlementResult(
            transaction_hash=txid,
            fee=abs(to_sats(fee)),
            confirmations=int(details.get("confirmations") or 0),
            asset_id=asset_id or LBTC_ASSET_ID,
        )

    async def get_balance(self, kind: BalanceKind = BalanceKind.SIDECHAIN) -> SidechainBalance:
        self._check_kind(kind)
        balances = await self.rpc_call("getbalance") or {}
        unconfirmed = await self.rpc_call("getunconfirmedbalance") or {}

        lbtc = self._lbtc(balances)
        lbtc_unconfirmed = self._lbtc(unconfirmed)
        return SidechainBalance(
            confirmed=to_sats(lbtc),
            unconfirmed=to_sats(lbtc_unconfirmed),
            total=to_sats(Decimal(str(lbtc)) + Decimal(str(lbtc_unconfirmed))),
            assets={self.asset_name(asset): to_sats(value) for asset, value in balances.items()},
        )

    # ------------------------------------------------------------------
    # Extras
    # ------------------------------------------------------------------

    @staticmethod
    def asset_name(asset_id: str) -> str:
        return ASSET_NAMES.get(asset_id, asset_id)

    @staticmethod
    def _lbtc(balances: dict[str, Any]) -> Any:
        return balances.get("bitcoin") or balances.get(LBTC_ASSET_ID) or 0

    async def estimate_fee(self, target_blocks: int = 6) -> Decimal:
        """Fee rate in coin/kvB; falls back to the minimum relay rate."""
        try:
            estimate = await self.rpc_call("estimatesmartfee", [target_blocks]) or {}
        except SettlementError as exc:
            self._log.warning("liquid_fee_estimate_failed", error=exc.message)
            return MIN_FEE_RATE
        if estimate.get("feerate"):
            return Decimal(str(estimate["feerate"]))
        return MIN_FEE_RATE

    async def get_transaction_status(self, txid: str) -> dict[str, Any]:
        tx = await self.rpc_call("gettransaction", [txid]) or {}
        confirmations = int(tx.get("confirmations") or 0)
        return {
            "confirmations": confirmations,
            "confirmed": confirmations >= _CONFIRMED_DEPTH,
            "blockHash": tx.get("blockhash"),
            "blockTime": tx.get("blocktime"),
        }

    async def get_new_address(self, confidential: bool = False) -> str:
        address = await self.rpc_call("getnewaddress")
        if not confidential:
            return address
        info = await self.rpc_call("getaddressinfo", [address]) or {}
        return info.get("confidential") or address

    async def list_assets(self) -> list[dict[str, Any]]:
        balances = await self.rpc_call("getbalance") or {}
        return [
            {
                "assetId": asset_id,
                "assetName": self.asset_name(asset_id),
                "balance": to_sats(balance),
                "isLBTC": asset_id in ("bitcoin", LBTC_ASSET_ID),
            }
            for asset_id, balance in balances.items()
            if Decimal(str(balance)) > 0
        ]
