"""Relay bridge/swap adapter (EVM and Solana legs)."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..config import settings
from ..core.routing.models import AssetRef, Family, PlanStep, ProviderQuote, QuoteRequest, WalletFamily
from ..core.routing.networks import EVM_NATIVE_ADDRESS, NETWORKS
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

SOLANA_NATIVE_CURRENCY = "11111111111111111111111111111111"

_AMOUNT_ERROR_CODES = {"AMOUNT_TOO_LOW", "AMOUNT_TOO_HIGH", "INSUFFICIENT_LIQUIDITY_FOR_AMOUNT"}


def relay_currency(asset: AssetRef) -> str:
    if asset.address:
        return asset.address
    if asset.family is Family.SOLANA:
        return SOLANA_NATIVE_CURRENCY
    return EVM_NATIVE_ADDRESS


def relay_chain_id(asset: AssetRef) -> int:
    chain_id = NETWORKS[asset.network_id].relay_chain_id
    if chain_id is None:
        raise ProviderError(f"Relay does not serve {asset.network_id}", provider="relay")
    return chain_id


def transactions_from_quote(quote: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Flatten `steps[].items[].data` into (step id, payload) dicts in order."""
    txs: List[Dict[str, Any]] = []
    for step in quote.get("steps") or []:
        if not isinstance(step, dict):
            continue
        for item in step.get("items") or []:
            data = item.get("data") if isinstance(item, dict) else None
            if isinstance(data, dict):
                txs.append({"stepId": step.get("id"), "requestId": step.get("requestId"), "data": data})
    return txs


def request_id_from_quote(quote: Mapping[str, Any]) -> Optional[str]:
    if quote.get("requestId"):
        return str(quote["requestId"])
    for step in quote.get("steps") or []:
        if isinstance(step, dict) and step.get("requestId"):
            return str(step["requestId"])
    return None


class RelayAdapter(ProviderAdapter):
    """Thin wrapper around https://api.relay.link endpoints."""

    name = "relay"
    families = frozenset({Family.EVM, Family.SOLANA})

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: float = 10,
        referrer: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        configured = (
            base_url
            or getattr(settings, "relay_base_url", "")
            or os.environ.get("RELAY_BASE_URL", "")
        )
        base_urls = [configured] if configured else ["https://api.relay.link"]
        self.timeout_s = timeout_s
        self.referrer = referrer or settings.referrer
        self._http = JsonHttpClient(
            self.name,
            base_urls,
            timeout_s=timeout_s,
            headers={"content-type": "application/json"},
            transport=transport,
        )

    def supports(self, source: AssetRef, destination: AssetRef) -> bool:
        if not super().supports(source, destination):
            return False
        return (
            NETWORKS[source.network_id].relay_chain_id is not None
            and NETWORKS[destination.network_id].relay_chain_id is not None
        )

    def _payload(self, source: AssetRef, destination: AssetRef, amount_base: int,
                 user: str, recipient: str, slippage_bps: int) -> Dict[str, Any]:
        return {
            "user": user,
            "recipient": recipient,
            "originChainId": relay_chain_id(source),
            "destinationChainId": relay_chain_id(destination),
            "originCurrency": relay_currency(source),
            "destinationCurrency": relay_currency(destination),
            "tradeType": "EXACT_INPUT",
            "amount": str(amount_base),
            "referrer": self.referrer,
            "slippageTolerance": str(slippage_bps),
        }

    async def _quote(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            data = await self._http.post_json("/quote", payload)
        except ProviderError as exc:
            if exc.details.get("errorCode") in _AMOUNT_ERROR_CODES:
                raise AmountOutOfRangeError(exc.message, provider=self.name) from exc
            raise
        if not isinstance(data, dict):
            raise ProviderUnavailableError("Relay returned a malformed quote", provider=self.name)
        return data

    async def get_quote(self, request: QuoteRequest) -> ProviderQuote:
        payload = self._payload(
            request.source, request.destination, request.amount_base,
            request.sender, request.recipient, request.slippage_bps,
        )
        data = await self._quote(payload)

        currency_out = (data.get("details") or {}).get("currencyOut") or {}
        try:
            amount_out = int(currency_out.get("amount") or 0)
        except (TypeError, ValueError):
            amount_out = 0
        if amount_out <= 0:
            raise ProviderError("Relay quote has no output amount", provider=self.name)

        approvals = tuple(
            {"provider": self.name, "chainId": tx["data"].get("chainId"), "spender": tx["data"].get("to")}
            for tx in transactions_from_quote(data)
            if tx["stepId"] == "approve"
        )
        return ProviderQuote(
            provider=self.name,
            estimated_amount_base=amount_out,
            raw={"requestId": request_id_from_quote(data), "details": data.get("details") or {}},
            approvals=approvals,
        )

    async def build_transaction(self, step: PlanStep, wallet_addresses: Mapping[str, str]) -> BuiltTransaction:
        signer = address_for(wallet_addresses, WalletFamily.for_family(step.from_asset.family))
        if not signer:
            raise ProviderError(
                f"A {step.from_asset.family.value} wallet address is required to build this step",
                provider=self.name,
            )
        recipient = address_for(wallet_addresses, WalletFamily.for_family(step.to_asset.family))
        if not recipient:
            raise ProviderError(
                f"A {step.to_asset.family.value} recipient address is required to build this step",
                provider=self.name,
            )

        # Quotes go stale quickly; build from a fresh quote for the real signer
        payload = self._payload(
            step.from_asset, step.to_asset, step.amount_base, signer, recipient,
            int(step.quote.get("slippageBps", settings.default_slippage_bps)),
        )
        data = await self._quote(payload)
        txs = transactions_from_quote(data)
        if not txs:
            raise ProviderUnavailableError("Relay quote did not include a transaction", provider=self.name)

        approvals = [tx["data"] for tx in txs if tx["stepId"] == "approve"]
        main = next((tx for tx in txs if tx["stepId"] != "approve"), txs[-1])
        unsigned_tx: Dict[str, Any] = {
            "family": step.from_asset.family.value,
            "type": "evm_transaction" if step.from_asset.family is Family.EVM else "solana_instructions",
            **main["data"],
        }
        if approvals:
            unsigned_tx["approvals"] = approvals

        return BuiltTransaction(
            unsigned_tx=unsigned_tx,
            provider_ref=main.get("requestId") or request_id_from_quote(data),
        )

    async def get_status(self, tracking_id: str, step: PlanStep) -> ProviderStatus:
        data = await self._http.get_json("/intents/status/v2", params={"requestId": tracking_id})
        if not isinstance(data, dict):
            raise ProviderUnavailableError("Relay returned a malformed status", provider=self.name)
        return ProviderStatus(status=str(data.get("status") or ""), raw=data, detail=data.get("details"))

    async def submit(self, step: PlanStep, tx_hash: str, provider_ref: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"txHash": tx_hash, "chainId": str(relay_chain_id(step.from_asset))}
        if provider_ref:
            payload["requestId"] = provider_ref
        await self._http.post_json("/transactions/index", payload)
        logger.info("Indexed %s transaction %s with Relay", step.step_id, tx_hash)
