"""Tests for the LND and Elements clients against mocked HTTP endpoints."""

import base64
import json
from decimal import Decimal

import httpx
import pytest

from paygate.errors.exceptions import SettlementError
from paygate.settlement.base import BalanceKind
from paygate.settlement.lightning import LightningClient
from paygate.settlement.liquid import LBTC_ASSET_ID, MIN_FEE_RATE, LiquidClient, to_coins, to_sats

MACAROON = "0201036c6e64"
PAYMENT_HASH = bytes.fromhex("ab" * 32)
PREIMAGE = bytes.fromhex("cd" * 32)
BECH32 = "bc1qar0srrr7xfkvy5l643lydnw9re59gtzzwf5mdq"


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode()


class LndStub:
    """Routes mocked requests by (method, path); records every request."""

    def __init__(self, routes: dict) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"message": f"no route {key}"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)


def _lnd(routes: dict, macaroon: str | None = MACAROON) -> tuple[LightningClient, LndStub]:
    stub = LndStub(routes)
    client = LightningClient(
        "https://lnd.local:8080",
        macaroon,
        transport=httpx.MockTransport(stub),
    )
    return client, stub


# ----------------------------------------------------------------------
# LND
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_pay_invoice_decodes_hash_and_fee():
    client, stub = _lnd(
        {
            ("POST", "/v1/channels/transactions"): (
                200,
                {
                    "payment_error": "",
                    "payment_hash": _b64(PAYMENT_HASH),
                    "payment_preimage": _b64(PREIMAGE),
                    "payment_route": {"total_fees": "3"},
                },
            )
        }
    )

    result = await client.send_payment("lnbc1000n1abc", 1000)

    assert result.transaction_hash == "ab" * 32
    assert result.preimage == "cd" * 32
    assert result.fee == 3
    request = stub.requests[0]
    assert request.headers["Grpc-Metadata-macaroon"] == MACAROON
    assert json.loads(request.content) == {"payment_request": "lnbc1000n1abc"}


@pytest.mark.asyncio
async def test_payment_error_field_raises():
    client, _ = _lnd(
        {("POST", "/v1/channels/transactions"): (200, {"payment_error": "no_route"})}
    )
    with pytest.raises(SettlementError, match="no_route"):
        await client.send_payment("lnbc1000n1abc", 1000)


@pytest.mark.asyncio
async def test_lnd_http_error_carries_message():
    client, _ = _lnd(
        {("POST", "/v1/channels/transactions"): (500, {"message": "invoice expired"})}
    )
    with pytest.raises(SettlementError) as exc_info:
        await client.send_payment("lnbc1000n1abc", 1000)
    assert exc_info.value.message == "lnd: invoice expired"
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_on_chain_send_looks_up_fee():
    client, stub = _lnd(
        {
            ("POST", "/v1/transactions"): (200, {"txid": "f00d"}),
            ("GET", "/v1/transactions"): (
                200,
                {"transactions": [{"tx_hash": "f00d", "amount": "-50000", "total_fees": "141"}]},
            ),
        }
    )

    result = await client.send_payment(BECH32, 50_000)

    assert result.transaction_hash == "f00d"
    assert result.fee == 141
    body = json.loads(stub.requests[0].content)
    assert body == {"addr": BECH32, "amount": "50000", "target_conf": 6}


@pytest.mark.asyncio
async def test_on_chain_fee_lookup_failure_defaults_to_zero():
    client, _ = _lnd(
        {
            ("POST", "/v1/transactions"): (200, {"txid": "f00d"}),
            ("GET", "/v1/transactions"): (200, {"transactions": []}),
        }
    )
    result = await client.send_on_chain(BECH32, 50_000, fee_rate=12)
    assert result.transaction_hash == "f00d"
    assert result.fee == 0


@pytest.mark.asyncio
async def test_lightning_address_resolved_through_lnurl():
    client, stub = _lnd(
        {
            ("GET", "/.well-known/lnurlp/alice"): (
                200,
                {
                    "callback": "https://getalby.com/lnurlp/alice/callback",
                    "minSendable": 1000,
                    "maxSendable": 100_000_000,
                    "tag": "payRequest",
                },
            ),
            ("GET", "/lnurlp/alice/callback"): (200, {"pr": "lnbc20u1resolved"}),
            ("POST", "/v1/channels/transactions"): (
                200,
                {"payment_hash": _b64(PAYMENT_HASH), "payment_route": {"total_fees": "0"}},
            ),
        }
    )

    result = await client.send_payment("alice@getalby.com", 2000)

    assert result.transaction_hash == "ab" * 32
    lookup, callback, pay = stub.requests
    assert lookup.url.host == "getalby.com"
    assert callback.url.params["amount"] == "2000000"
    assert json.loads(pay.content) == {"payment_request": "lnbc20u1resolved"}


@pytest.mark.asyncio
async def test_lightning_address_amount_outside_limits():
    client, stub = _lnd(
        {
            ("GET", "/.well-known/lnurlp/bob"): (
                200,
                {"callback": "https://x.example/cb", "minSendable": 10_000_000, "maxSendable": 20_000_000},
            ),
        }
    )
    with pytest.raises(SettlementError, match="outside LNURL limits"):
        await client.send_payment("bob@x.example", 5)
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_missing_macaroon_fails_every_call():
    client, stub = _lnd({}, macaroon=None)
    with pytest.raises(SettlementError, match="not initialized"):
        await client.get_balance(BalanceKind.ONCHAIN)
    assert stub.requests == []


def test_from_settings_without_macaroon(settings):
    settings.lnd_macaroon_path = str(settings.data_dir / "missing.macaroon")
    client = LightningClient.from_settings(settings)
    assert client._macaroon is None


@pytest.mark.asyncio
async def test_lnd_balances():
    client, _ = _lnd(
        {
            ("GET", "/v1/balance/blockchain"): (
                200,
                {"total_balance": "155000", "confirmed_balance": "150000", "unconfirmed_balance": "5000"},
            ),
            ("GET", "/v1/balance/channels"): (200, {"balance": "80000", "pending_open_balance": "0"}),
        }
    )

    onchain = await client.get_balance(BalanceKind.ONCHAIN)
    channels = await client.get_balance(BalanceKind.CHANNELS)

    assert (onchain.confirmed, onchain.unconfirmed, onchain.total) == (150_000, 5_000, 155_000)
    assert channels.balance == 80_000
    with pytest.raises(SettlementError):
        await client.get_balance(BalanceKind.SIDECHAIN)


@pytest.mark.asyncio
async def test_create_invoice():
    client, stub = _lnd(
        {
            ("POST", "/v1/invoices"): (
                200,
                {"payment_request": "lnbc1new", "r_hash": _b64(PAYMENT_HASH), "add_index": "4"},
            )
        }
    )
    invoice = await client.create_invoice(1500, "coffee")
    assert invoice == {"paymentRequest": "lnbc1new", "rHash": "ab" * 32, "addIndex": 4}
    assert json.loads(stub.requests[0].content)["value"] == "1500"


@pytest.mark.asyncio
async def test_connection_error_becomes_settlement_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = LightningClient("https://lnd.local:8080", MACAROON, transport=httpx.MockTransport(handler))
    with pytest.raises(SettlementError, match="refused"):
        await client.get_balance(BalanceKind.CHANNELS)


# ----------------------------------------------------------------------
# Liquid
# ----------------------------------------------------------------------


class RpcStub:
    """Answers JSON-RPC calls from a method -> result (or exception) table."""

    def __init__(self, results: dict) -> None:
        self.results = results
        self.calls: list[dict] = []
        self.auth: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.calls.append(payload)
        self.auth.append(request.headers.get("Authorization", ""))
        result = self.results.get(payload["method"])
        if isinstance(result, Exception):
            return httpx.Response(
                500,
                json={"result": None, "error": {"code": -4, "message": str(result)}, "id": payload["id"]},
            )
        return httpx.Response(200, json={"result": result, "error": None, "id": payload["id"]})


def _liquid(results: dict) -> tuple[LiquidClient, RpcStub]:
    stub = RpcStub(results)
    client = LiquidClient("http://127.0.0.1:7041", "user", "pass", transport=httpx.MockTransport(stub))
    return client, stub


@pytest.mark.parametrize(
    "sats,coins",
    [(1, "0.00000001"), (1000, "0.00001000"), (150_000_000, "1.50000000"), (0, "0.00000000")],
)
def test_to_coins_is_exact(sats, coins):
    assert to_coins(sats) == coins


def test_to_sats_rounds_half_up():
    assert to_sats(0.00001) == 1000
    assert to_sats("1.23456789") == 123_456_789
    assert to_sats(None) == 0
    assert to_sats(-0.0000025) == -250


@pytest.mark.asyncio
async def test_liquid_send_payment():
    client, stub = _liquid(
        {
            "validateaddress": {"isvalid": True},
            "sendtoaddress": "beef",
            "gettransaction": {"fee": {"bitcoin": -0.0000025}, "confirmations": 0},
        }
    )

    result = await client.send_payment("lq1qqexample", 1000)

    assert result.transaction_hash == "beef"
    assert result.fee == 250
    assert result.asset_id == LBTC_ASSET_ID
    assert [c["method"] for c in stub.calls] == ["validateaddress", "sendtoaddress", "gettransaction"]
    assert stub.calls[1]["params"] == ["lq1qqexample", "0.00001000"]
    assert stub.calls[0]["jsonrpc"] == "1.0"
    assert stub.calls[0]["id"] == "liquid-rpc-1"
    assert stub.auth[0].startswith("Basic ")


@pytest.mark.asyncio
async def test_liquid_rejects_invalid_address():
    client, stub = _liquid({"validateaddress": {"isvalid": False}})
    with pytest.raises(SettlementError, match="invalid Liquid address"):
        await client.send_payment("nonsense", 1000)
    assert len(stub.calls) == 1


@pytest.mark.asyncio
async def test_liquid_rpc_error_surfaces():
    client, _ = _liquid(
        {"validateaddress": {"isvalid": True}, "sendtoaddress": RuntimeError("Insufficient funds")}
    )
    with pytest.raises(SettlementError) as exc_info:
        await client.send_payment("lq1qqexample", 1000)
    assert "Insufficient funds" in exc_info.value.message


@pytest.mark.asyncio
async def test_liquid_balance():
    client, _ = _liquid(
        {
            "getbalance": {"bitcoin": 0.00042, "TEST_ASSET": 1.5},
            "getunconfirmedbalance": {"bitcoin": 0.00001},
        }
    )
    balance = await client.get_balance(BalanceKind.SIDECHAIN)
    assert balance.confirmed == 42_000
    assert balance.unconfirmed == 1_000
    assert balance.total == 43_000
    assert balance.assets == {"L-BTC": 42_000, "TEST_ASSET": 150_000_000}


@pytest.mark.asyncio
async def test_list_assets_skips_empty():
    client, _ = _liquid({"getbalance": {"bitcoin": 0.1, "deadbeef": 0}})
    assets = await client.list_assets()
    assert assets == [
        {"assetId": "bitcoin", "assetName": "L-BTC", "balance": 10_000_000, "isLBTC": True}
    ]


@pytest.mark.asyncio
async def test_estimate_fee_falls_back_to_minimum():
    client, _ = _liquid({"estimatesmartfee": {"errors": ["Insufficient data"]}})
    assert await client.estimate_fee() == MIN_FEE_RATE

    client, _ = _liquid({"estimatesmartfee": {"feerate": 0.0002}})
    assert await client.estimate_fee() == Decimal("0.0002")


@pytest.mark.asyncio
async def test_transaction_status():
    client, _ = _liquid({"gettransaction": {"confirmations": 3, "blockhash": "00ff"}})
    status = await client.get_transaction_status("beef")
    assert status["confirmed"] is True
    assert status["blockHash"] == "00ff"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [["unexpected"], "gateway timeout"])
async def test_non_object_error_body_is_a_settlement_error(body):
    def handler(request):
        return httpx.Response(503, json=body)

    client = LightningClient("https://lnd.local:8080", MACAROON, transport=httpx.MockTransport(handler))
    with pytest.raises(SettlementError) as exc_info:
        await client.get_balance(BalanceKind.CHANNELS)
    assert exc_info.value.message == "lnd: HTTP 503"
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_decode_invoice():
    client, stub = _lnd(
        {
            ("GET", "/v1/payreq/lnbc25u1pexample"): (
                200,
                {
                    "destination": "02abc",
                    "payment_hash": "ab" * 32,
                    "num_satoshis": "2500",
                    "timestamp": "1700000000",
                    "expiry": "3600",
                    "description": "coffee",
                },
            )
        }
    )
    decoded = await client.decode_invoice("lnbc25u1pexample")
    assert decoded == {
        "destination": "02abc",
        "amount": 2500,
        "timestamp": 1_700_000_000,
        "expiry": 3600,
        "description": "coffee",
        "paymentHash": "ab" * 32,
    }


@pytest.mark.asyncio
async def test_lnd_new_address_maps_type():
    client, stub = _lnd({("GET", "/v1/newaddress"): (200, {"address": BECH32})})
    assert await client.get_new_address("taproot") == BECH32
    assert stub.requests[0].url.params["type"] == "TAPROOT_PUBKEY"

    await client.get_new_address("unknown-kind")
    assert stub.requests[1].url.params["type"] == "WITNESS_PUBKEY_HASH"


@pytest.mark.asyncio
async def test_liquid_confidential_address():
    client, stub = _liquid(
        {"getnewaddress": "ex1qplain", "getaddressinfo": {"confidential": "lq1qqconfidential"}}
    )
    assert await client.get_new_address() == "ex1qplain"
    assert await client.get_new_address(confidential=True) == "lq1qqconfidential"
    assert [c["method"] for c in stub.calls] == ["getnewaddress", "getnewaddress", "getaddressinfo"]
