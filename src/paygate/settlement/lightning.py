"""LND client for Bitcoin on-chain and Lightning payments over the REST gateway.

A single node handles both layers, so :meth:`LightningClient.send_payment`
reclassifies each destination and picks the channel or on-chain code path.
Lightning addresses (``user@domain.tld``) are resolved to a BOLT11 invoice via
LNURL-pay before paying.
"""

from __future__ import annotations

import base64
import ssl
from pathlib import Path
from typing import Any

import httpx
import structlog

from paygate.config import Settings
from paygate.errors.exceptions import SettlementError
from paygate.models.enums import AddressKind
from paygate.models.payment import ChannelBalance, SettlementResult, WalletBalance
from paygate.routing.classifier import AddressClassifier, is_lightning_address
from paygate.settlement.base import BalanceKind, SettlementClient

_ADDRESS_TYPES = {
    "p2wkh": "WITNESS_PUBKEY_HASH",
    "bech32": "WITNESS_PUBKEY_HASH",
    "p2sh": "NESTED_PUBKEY_HASH",
    "p2sh-segwit": "NESTED_PUBKEY_HASH",
    "p2tr": "TAPROOT_PUBKEY",
    "taproot": "TAPROOT_PUBKEY",
}

# Confirmation target used when no explicit fee rate is given
_DEFAULT_TARGET_CONF = 6


def _b64_to_hex(value: str | None) -> str:
    if not value:
        return ""
    return base64.b64decode(value).hex()


def _int(value: Any) -> int:
    # LND renders 64-bit integers as JSON strings
    return int(value or 0)


class LightningClient(SettlementClient):
    """Unified on-chain + Lightning backend backed by an LND node."""

    backend = "lnd"
    balance_kinds = frozenset({BalanceKind.ONCHAIN, BalanceKind.CHANNELS})

    def __init__(
        self,
        rest_url: str,
        macaroon_hex: str | None,
        *,
        verify: ssl.SSLContext | bool = True,
        timeout: float = 60.0,
        classifier: AddressClassifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger=None,
    ) -> None:
        self._macaroon = macaroon_hex
        self._classifier = classifier or AddressClassifier()
        self._log = logger or structlog.get_logger(__name__)
        headers = {"Grpc-Metadata-macaroon": macaroon_hex} if macaroon_hex else {}
        self._client = httpx.AsyncClient(
            base_url=rest_url.rstrip("/"),
            headers=headers,
            verify=verify,
            timeout=timeout,
            transport=transport,
        )
        # LNURL endpoints are public HTTPS services, not the node
        self._lnurl_client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        classifier: AddressClassifier | None = None,
        logger=None,
    ) -> LightningClient:
        """Read the macaroon and TLS certificate named in the settings.

        A missing macaroon leaves the client uninitialized; every call then
        fails with :class:`SettlementError` instead of aborting startup.
        """
        log = logger or structlog.get_logger(__name__)
        macaroon_hex: str | None = None
        try:
            macaroon_hex = Path(settings.lnd_macaroon_path).expanduser().read_bytes().hex()
        except OSError as exc:
            log.error("lnd_macaroon_unreadable", path=settings.lnd_macaroon_path, error=str(exc))

        verify: ssl.SSLContext | bool = True
        cert_path = Path(settings.lnd_tls_cert_path).expanduser()
        if cert_path.is_file():
            verify = ssl.create_default_context(cafile=str(cert_path))
        else:
            log.warning("lnd_tls_cert_missing", path=str(cert_path))

        return cls(
            settings.lnd_rest_url,
            macaroon_hex,
            verify=verify,
            timeout=settings.lnd_timeout,
            classifier=classifier,
            logger=log,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
        await self._lnurl_client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if not self._macaroon:
            raise SettlementError(self.backend, "client not initialized (macaroon unavailable)")
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            self._log.error("lnd_request_failed", method=method, path=path, error=str(exc))
            raise SettlementError(self.backend, f"{method} {path} failed: {exc}") from exc

        try:
            data = response.json() if response.content else {}
        except ValueError as exc:
            raise SettlementError(self.backend, f"invalid JSON from {path}") from exc

        if response.status_code >= 400:
            message = None
            if isinstance(data, dict):
                message = data.get("message") or data.get("error")
            message = message or f"HTTP {response.status_code}"
            self._log.error("lnd_request_rejected", path=path, status=response.status_code, error=message)
            raise SettlementError(self.backend, str(message), {"status": response.status_code})
        if not isinstance(data, dict):
            raise SettlementError(self.backend, f"unexpected response from {path}")
        return data

    # ------------------------------------------------------------------
    # Unified payment entry point
    # ------------------------------------------------------------------

    async def send_payment(
        self,
        destination: str,
        amount: int,
        fee_rate: int | None = None,
    ) -> SettlementResult:
        if self._classifier.classify(destination) is AddressKind.LIGHTNING:
            self._log.info("lnd_send_lightning", destination=destination, amount=amount)
            return await self.send_lightning_payment(destination, amount)
        self._log.info("lnd_send_onchain", destination=destination, amount=amount)
        return await self.send_on_chain(destination, amount, fee_rate)

    async def get_balance(self, kind: BalanceKind) -> WalletBalance | ChannelBalance:
        self._check_kind(kind)
        if kind is BalanceKind.ONCHAIN:
            data = await self._request("GET", "/v1/balance/blockchain")
            return WalletBalance(
                confirmed=_int(data.get("confirmed_balance")),
                unconfirmed=_int(data.get("unconfirmed_balance")),
                total=_int(data.get("total_balance")),
            )
        data = await self._request("GET", "/v1/balance/channels")
        return ChannelBalance(
            balance=_int(data.get("balance")),
            pending_open_balance=_int(data.get("pending_open_balance")),
        )

    # ------------------------------------------------------------------
    # Lightning
    # ------------------------------------------------------------------

    async def send_lightning_payment(self, destination: str, amount: int) -> SettlementResult:
        invoice = destination
        if is_lightning_address(destination):
            invoice = await self.resolve_lightning_address(destination, amount)
        return await self.pay_invoice(invoice)

    async def pay_invoice(self, invoice: str) -> SettlementResult:
        data = await self._request(
            "POST",
            "/v1/channels/transactions",
            json={"payment_request": invoice},
        )
        if data.get("payment_error"):
            raise SettlementError(self.backend, f"payment failed: {data['payment_error']}")

        route = data.get("payment_route") or {}
        return SettlementResult(
            transaction_hash=_b64_to_hex(data.get("payment_hash")),
            preimage=_b64_to_hex(data.get("payment_preimage")) or None,
            fee=_int(route.get("total_fees")),
        )

    async def resolve_lightning_address(self, address: str, amount: int) -> str:
        """Resolve ``user@domain`` to a BOLT11 invoice for ``amount`` sats (LNURL-pay)."""
        user, domain = address.split("@")
        try:
            response = await self._lnurl_client.get(f"https://{domain}/.well-known/lnurlp/{user}")
            response.raise_for_status()
            params = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SettlementError(self.backend, f"LNURL lookup for {address} failed: {exc}") from exc

        if params.get("status") == "ERROR":
            raise SettlementError(self.backend, f"LNURL error: {params.get('reason')}")

        amount_msats = amount * 1000
        min_sendable = _int(params.get("minSendable"))
        max_sendable = _int(params.get("maxSendable"))
        if amount_msats < min_sendable or amount_msats > max_sendable:
            raise SettlementError(
                self.backend,
                f"amount outside LNURL limits: {min_sendable // 1000} - {max_sendable // 1000} sats",
            )

        callback = params.get("callback")
        if not callback:
            raise SettlementError(self.backend, "LNURL response has no callback")
        try:
            response = await self._lnurl_client.get(callback, params={"amount": amount_msats})
            response.raise_for_status()
            invoice_data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SettlementError(self.backend, f"LNURL invoice request failed: {exc}") from exc

        if invoice_data.get("status") == "ERROR":
            raise SettlementError(self.backend, f"invoice error: {invoice_data.get('reason')}")
        if not invoice_data.get("pr"):
            raise SettlementError(self.backend, "LNURL callback returned no invoice")
        return invoice_data["pr"]

    async def decode_invoice(self, invoice: str) -> dict[str, Any]:
        data = await self._request("GET", f"/v1/payreq/{invoice}")
        return {
            "destination": data.get("destination"),
            "amount": _int(data.get("num_satoshis")),
            "timestamp": _int(data.get("timestamp")),
            "expiry": _int(data.get("expiry")),
            "description": data.get("description") or "",
            "paymentHash": data.get("payment_hash"),
        }

    async def create_invoice(self, amount: int, description: str = "", expiry: int = 3600) -> dict[str, Any]:
        data = await self._request(
            "POST",
            "/v1/invoices",
            json={"value": str(amount), "memo": description, "expiry": str(expiry)},
        )
        return {
            "paymentRequest": data.get("payment_request"),
            "rHash": _b64_to_hex(data.get("r_hash")),
            "addIndex": _int(data.get("add_index")),
        }

    # ------------------------------------------------------------------
    # On-chain
    # ------------------------------------------------------------------

    async def send_on_chain(self, address: str, amount: int, fee_rate: int | None = None) -> SettlementResult:
        body: dict[str, Any] = {"addr": address, "amount": str(amount)}
        if fee_rate:
            body["sat_per_vbyte"] = str(fee_rate)
        else:
            body["target_conf"] = _DEFAULT_TARGET_CONF

        data = await self._request("POST", "/v1/transactions", json=body)
        txid = data.get("txid")
        if not txid:
            raise SettlementError(self.backend, "sendcoins returned no txid")

        fee = 0
        try:
            fee = (await self.get_transaction(txid))["fee"]
        except SettlementError as exc:
            self._log.warning("lnd_fee_lookup_failed", txid=txid, error=exc.message)
        return SettlementResult(transaction_hash=txid, fee=fee)

    async def get_new_address(self, address_type: str = "p2wkh") -> str:
        lnd_type = _ADDRESS_TYPES.get(address_type.lower(), "WITNESS_PUBKEY_HASH")
        data = await self._request("GET", "/v1/newaddress", params={"type": lnd_type})
        return data["address"]

    async def get_transaction(self, txid: str) -> dict[str, Any]:
        for tx in await self.list_transactions(max_transactions=None):
            if tx["txid"] == txid:
                return tx
        raise SettlementError(self.backend, f"transaction not found: {txid}")

    async def list_transactions(self, max_transactions: int | None = 100) -> list[dict[str, Any]]:
        data = await self._request("GET", "/v1/transactions")
        transactions = data.get("transactions") or []
        if max_transactions is not None:
            transactions = transactions[:max_transactions]
        return [
            {
                "txid": tx.get("tx_hash"),
                "amount": _int(tx.get("amount")),
                "fee": _int(tx.get("total_fees")),
                "confirmations": _int(tx.get("num_confirmations")),
                "blockHeight": _int(tx.get("block_height")),
                "timestamp": _int(tx.get("time_stamp")),
                "destAddresses": tx.get("dest_addresses") or [],
            }
            for tx in transactions
        ]
