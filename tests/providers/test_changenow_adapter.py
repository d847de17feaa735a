"""
Tests for the ChangeNOW adapter against a mocked HTTP transport.
"""

import json

import httpx
import pytest

from app.core.routing.models import Family, PlanStep, QuoteRequest, StepKind, WalletFamily
from app.core.routing.networks import resolve_asset
from app.providers.base import AmountOutOfRangeError, ProviderError, ProviderUnavailableError
from app.providers.changenow import ChangeNowAdapter, erc20_transfer_data, to_base_amount, to_decimal_amount

from conftest import EVM_WALLET

PAYIN = "0x" + "ab" * 20
TON_WALLET = "UQBvW8Z5huBkMJYdnfAEM5JqTNkuWX3diqYENkWsIL0XggGG"


def _adapter(handler, api_key: str = "test-key") -> ChangeNowAdapter:
    return ChangeNowAdapter(
        api_key=api_key,
        base_url="https://changenow.test/v2",
        timeout_s=1,
        transport=httpx.MockTransport(handler),
    )


def _quote_request(amount_base: int = 100_000_000) -> QuoteRequest:
    return QuoteRequest(
        source=resolve_asset("ethereum", "usdt"),
        destination=resolve_asset("ton", "usdt"),
        amount_base=amount_base,
        sender=EVM_WALLET,
        recipient=TON_WALLET,
    )


def _step(network: str = "ethereum", token: str = "usdt", to_network: str = "ton") -> PlanStep:
    source = resolve_asset(network, token)
    destination = resolve_asset(to_network, "usdt")
    return PlanStep(
        step_id="step-1",
        kind=StepKind.BRIDGE,
        family=source.family,
        provider="changenow",
        from_asset=source,
        amount_base=100_000_000,
        to_asset=destination,
        estimated_amount_base=99_000_000,
        requires_wallet=WalletFamily.for_family(source.family),
    )


# =============================================================================
# Helpers
# =============================================================================

class TestAmountHelpers:
    def test_decimal_round_trip(self):
        assert to_decimal_amount(1_500_000, 6) == "1.5"
        assert to_decimal_amount(100_000_000, 6) == "100"
        assert to_base_amount("1.5", 6) == 1_500_000
        assert to_base_amount(None, 6) is None
        assert to_base_amount("n/a", 6) is None

    def test_erc20_transfer_calldata(self):
        data = erc20_transfer_data(PAYIN, 255)
        assert data.startswith("0xa9059cbb")
        assert data[10:74] == "0" * 24 + "ab" * 20
        assert data.endswith("ff")
        assert len(data) == 10 + 128


# =============================================================================
# Support matrix
# =============================================================================

class TestSupports:
    def test_only_non_evm_pairs(self):
        adapter = _adapter(lambda request: httpx.Response(500))
        assert adapter.supports(resolve_asset("ethereum", "usdt"), resolve_asset("ton", "usdt"))
        assert adapter.supports(resolve_asset("tron", "usdt"), resolve_asset("bsc", "usdt"))
        assert not adapter.supports(resolve_asset("ethereum", "usdt"), resolve_asset("bsc", "usdt"))
        assert not adapter.supports(resolve_asset("base", "usdc"), resolve_asset("ton", "usdt"))


# =============================================================================
# Quotes
# =============================================================================

class TestQuote:
    @pytest.mark.asyncio
    async def test_estimate_is_converted_to_base_units(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"toAmount": 99.5, "minAmount": "10", "maxAmount": None})

        quote = await _adapter(handler).get_quote(_quote_request())

        assert seen["path"] == "/v2/exchange/estimated"
        assert seen["params"]["fromCurrency"] == "usdt"
        assert seen["params"]["fromNetwork"] == "eth"
        assert seen["params"]["toNetwork"] == "ton"
        assert seen["params"]["fromAmount"] == "100"
        assert seen["params"]["api_key"] == "test-key"
        assert quote.estimated_amount_base == 99_500_000
        assert quote.min_amount_base == 10_000_000
        assert quote.max_amount_base is None

    @pytest.mark.asyncio
    async def test_below_minimum_is_out_of_range(self):
        def handler(request):
            return httpx.Response(200, json={"toAmount": 4.9, "minAmount": "10"})

        with pytest.raises(AmountOutOfRangeError) as exc_info:
            await _adapter(handler).get_quote(_quote_request(5_000_000))
        assert exc_info.value.min_amount_base == 10_000_000

    @pytest.mark.asyncio
    async def test_amount_error_body_is_out_of_range(self):
        def handler(request):
            return httpx.Response(400, json={"error": "deposit_too_small", "message": "Too small"})

        with pytest.raises(AmountOutOfRangeError):
            await _adapter(handler).get_quote(_quote_request())

    @pytest.mark.asyncio
    async def test_other_rejection_is_provider_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": "pair_is_inactive"})

        with pytest.raises(ProviderError) as exc_info:
            await _adapter(handler).get_quote(_quote_request())
        assert not isinstance(exc_info.value, AmountOutOfRangeError)

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self):
        with pytest.raises(ProviderUnavailableError):
            await _adapter(lambda request: httpx.Response(502, text="bad gateway")).get_quote(_quote_request())

    @pytest.mark.asyncio
    async def test_missing_api_key_is_unavailable(self):
        adapter = _adapter(lambda request: httpx.Response(200, json={}), api_key="")
        assert await adapter.ready() is False
        with pytest.raises(ProviderUnavailableError):
            await adapter.get_quote(_quote_request())


# =============================================================================
# Build / status
# =============================================================================

class TestBuildAndStatus:
    @pytest.mark.asyncio
    async def test_erc20_deposit_transaction(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "cn-1", "payinAddress": PAYIN, "payinExtraId": None})

        built = await _adapter(handler).build_transaction(_step(), {"evm": EVM_WALLET, "ton": TON_WALLET})

        assert built.provider_ref == "cn-1"
        assert seen["body"]["address"] == TON_WALLET
        assert seen["body"]["refundAddress"] == EVM_WALLET
        tx = built.unsigned_tx
        assert tx["type"] == "evm_transaction"
        assert tx["chainId"] == 1
        assert tx["to"] == resolve_asset("ethereum", "usdt").address
        assert tx["data"] == erc20_transfer_data(PAYIN, 100_000_000)
        assert tx["value"] == "0"

    @pytest.mark.asyncio
    async def test_ton_deposit_carries_memo(self):
        def handler(request):
            return httpx.Response(200, json={"id": "cn-2", "payinAddress": "EQpayin", "payinExtraId": "12345"})

        step = _step("ton", "usdt", to_network="tron")
        built = await _adapter(handler).build_transaction(step, {"ton": TON_WALLET, "tron": "TXyz"})

        assert built.unsigned_tx["family"] == Family.TON.value
        assert built.unsigned_tx["type"] == "transfer"
        assert built.unsigned_tx["to"] == "EQpayin"
        assert built.unsigned_tx["memo"] == "12345"

    @pytest.mark.asyncio
    async def test_payout_address_required(self):
        adapter = _adapter(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ProviderError):
            await adapter.build_transaction(_step(), {"evm": EVM_WALLET})

    @pytest.mark.asyncio
    async def test_status_by_exchange_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["id"] = request.url.params.get("id")
            return httpx.Response(200, json={"id": "cn-1", "status": "exchanging"})

        status = await _adapter(handler).get_status("cn-1", _step())

        assert seen == {"path": "/v2/exchange/by-id", "id": "cn-1"}
        assert status.status == "exchanging"
