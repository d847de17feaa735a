"""ChangeNOW exchange adapter.

Covers legs that touch TON or TRON. ChangeNOW is deposit based: the unsigned
transaction we hand back is a plain transfer to the exchange's pay-in address,
and the exchange id is used to track the swap afterwards.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, NamedTuple, Optional

import httpx

from ..config import settings
from ..core.routing.models import AssetRef, Family, PlanStep, ProviderQuote, QuoteRequest, WalletFamily
from .base import (
    AmountOutOfRangeError,
    BuiltTransaction,
    ProviderAdapter,
    ProviderError,
    ProviderStatus,
    ProviderUnavailableError,
    address_for,
)
from .http import JsonHttpClient

logger = logging.getLogger(__name__)

ERC20_TRANSFER_SELECTOR = "0xa9059cbb"

_AMOUNT_ERRORS = {"deposit_too_small", "out_of_range", "amount_too_small", "amount_too_big"}


class ChangeNowAsset(NamedTuple):
    ticker: str
    network: str


# (network id, token id) -> ChangeNOW ticker/network codes
CHANGENOW_ASSETS: Dict[tuple, ChangeNowAsset] = {
    ("ethereum", "eth"): ChangeNowAsset("eth", "eth"),
    ("ethereum", "usdt"): ChangeNowAsset("usdt", "eth"),
    ("ethereum", "usdc"): ChangeNowAsset("usdc", "eth"),
    ("bsc", "bnb"): ChangeNowAsset("bnb", "bsc"),
    ("bsc", "usdt"): ChangeNowAsset("usdt", "bsc"),
    ("ton", "ton"): ChangeNowAsset("ton", "ton"),
    ("ton", "usdt"): ChangeNowAsset("usdt", "ton"),
    ("tron", "trx"): ChangeNowAsset("trx", "trx"),
    ("tron", "usdt"): ChangeNowAsset("usdt", "trx"),
}


def resolve_changenow_asset(asset: AssetRef) -> Optional[ChangeNowAsset]:
    return CHANGENOW_ASSETS.get((asset.network_id, asset.token_id))


def to_decimal_amount(amount_base: int, decimals: int) -> str:
    value = Decimal(amount_base).scaleb(-decimals)
    return format(value.normalize(), "f")


def to_base_amount(amount: Any, decimals: int) -> Optional[int]:
    if amount in (None, ""):
        return None
    try:
        return int(Decimal(str(amount)).scaleb(decimals))
    except (InvalidOperation, ValueError):
        return None


def erc20_transfer_data(recipient: str, amount_base: int) -> str:
    address = recipient.lower().removeprefix("0x").rjust(64, "0")
    amount = format(amount_base, "x").rjust(64, "0")
    return f"{ERC20_TRANSFER_SELECTOR}{address}{amount}"


class ChangeNowAdapter(ProviderAdapter):
    name = "changenow"
    families = frozenset({Family.EVM, Family.TON, Family.TRON})

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.changenow_api_key
        self.timeout_s = timeout_s
        self._http = JsonHttpClient(
            self.name,
            [base_url or settings.changenow_base_url],
            timeout_s=timeout_s,
            headers={"content-type": "application/json"},
            transport=transport,
        )

    async def ready(self) -> bool:
        return bool(self.api_key)

    def supports(self, source: AssetRef, destination: AssetRef) -> bool:
        # Only worth using when a non-EVM family is involved
        if source.family is Family.EVM and destination.family is Family.EVM:
            return False
        return resolve_changenow_asset(source) is not None and resolve_changenow_asset(destination) is not None

    def _assets(self, source: AssetRef, destination: AssetRef):
        if not self.api_key:
            raise ProviderUnavailableError("ChangeNOW API key not configured", provider=self.name)
        from_asset = resolve_changenow_asset(source)
        to_asset = resolve_changenow_asset(destination)
        if from_asset is None or to_asset is None:
            raise ProviderError(
                f"ChangeNOW does not list {source.symbol} on {source.network_id} -> "
                f"{destination.symbol} on {destination.network_id}",
                provider=self.name,
            )
        return from_asset, to_asset

    async def _call(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        params = {**(kwargs.pop("params", None) or {}), "api_key": self.api_key}
        try:
            data = await self._http.request_json(method, path, params=params, **kwargs)
        except ProviderError as exc:
            if str(exc.details.get("error", "")).lower() in _AMOUNT_ERRORS:
                raise AmountOutOfRangeError(exc.message, provider=self.name) from exc
            raise
        if not isinstance(data, dict):
            raise ProviderUnavailableError("ChangeNOW returned a malformed response", provider=self.name)
        return data

    async def get_quote(self, request: QuoteRequest) -> ProviderQuote:
        from_asset, to_asset = self._assets(request.source, request.destination)
        from_amount = to_decimal_amount(request.amount_base, request.source.decimals)

        data = await self._call(
            "GET",
            "/exchange/estimated",
            params={
                "fromCurrency": from_asset.ticker,
                "toCurrency": to_asset.ticker,
                "fromAmount": from_amount,
                "fromNetwork": from_asset.network,
                "toNetwork": to_asset.network,
                "flow": "standard",
            },
        )

        min_base = to_base_amount(data.get("minAmount"), request.source.decimals)
        max_base = to_base_amount(data.get("maxAmount"), request.source.decimals)
        if (min_base is not None and request.amount_base < min_base) or (
            max_base is not None and request.amount_base > max_base
        ):
            raise AmountOutOfRangeError(
                f"Amount {from_amount} {request.source.symbol} is outside ChangeNOW limits",
                provider=self.name,
                min_amount_base=min_base,
                max_amount_base=max_base,
            )

        amount_out = to_base_amount(data.get("toAmount") or data.get("estimatedAmount"), request.destination.decimals)
        if not amount_out:
            raise ProviderError("ChangeNOW estimate has no output amount", provider=self.name)

        return ProviderQuote(
            provider=self.name,
            estimated_amount_base=amount_out,
            raw={"rateId": data.get("rateId") or data.get("id"), "fromAmount": from_amount},
            min_amount_base=min_base,
            max_amount_base=max_base,
            notes="Deposit-based exchange; funds are sent to a ChangeNOW pay-in address",
        )

    async def build_transaction(self, step: PlanStep, wallet_addresses: Mapping[str, str]) -> BuiltTransaction:
        from_asset, to_asset = self._assets(step.from_asset, step.to_asset)
        payout = address_for(wallet_addresses, WalletFamily.for_family(step.to_asset.family))
        if not payout:
            raise ProviderError(
                f"A {step.to_asset.family.value} payout address is required for this step",
                provider=self.name,
            )
        refund = address_for(wallet_addresses, WalletFamily.for_family(step.from_asset.family))

        body: Dict[str, Any] = {
            "fromCurrency": from_asset.ticker,
            "toCurrency": to_asset.ticker,
            "fromAmount": to_decimal_amount(step.amount_base, step.from_asset.decimals),
            "fromNetwork": from_asset.network,
            "toNetwork": to_asset.network,
            "address": payout,
            "flow": "standard",
        }
        if refund:
            body["refundAddress"] = refund

        data = await self._call("POST", "/exchange", json=body)
        exchange_id = data.get("id")
        payin_address = data.get("payinAddress") or data.get("address")
        if not exchange_id or not payin_address:
            raise ProviderUnavailableError("ChangeNOW did not return a pay-in address", provider=self.name)
        logger.info("Created ChangeNOW exchange %s for step %s", exchange_id, step.step_id)

        return BuiltTransaction(
            unsigned_tx=self._deposit_tx(step, payin_address, data.get("payinExtraId")),
            provider_ref=str(exchange_id),
        )

    @staticmethod
    def _deposit_tx(step: PlanStep, payin_address: str, memo: Optional[str]) -> Dict[str, Any]:
        source = step.from_asset
        if source.family is Family.EVM:
            if source.is_native:
                return {
                    "family": Family.EVM.value,
                    "type": "evm_transaction",
                    "chainId": source.chain_id,
                    "to": payin_address,
                    "data": "0x",
                    "value": str(step.amount_base),
                }
            return {
                "family": Family.EVM.value,
                "type": "evm_transaction",
                "chainId": source.chain_id,
                "to": source.address,
                "data": erc20_transfer_data(payin_address, step.amount_base),
                "value": "0",
            }

        tx: Dict[str, Any] = {
            "family": source.family.value,
            "type": "transfer",
            "to": payin_address,
            "tokenAddress": source.address,
            "amountBase": str(step.amount_base),
            "decimals": source.decimals,
        }
        if memo:
            tx["memo"] = memo
        return tx

    async def get_status(self, tracking_id: str, step: PlanStep) -> ProviderStatus:
        data = await self._call("GET", "/exchange/by-id", params={"id": tracking_id})
        status = data.get("status") or data.get("state") or "unknown"
        return ProviderStatus(status=str(status), raw=data)
