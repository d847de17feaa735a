"""
Jupiter swap adapter for same-network Solana swaps.

Quotes and swap transactions come from the Jupiter v6 API; confirmation is
read straight from a Solana RPC node with ``getSignatureStatuses``.
"""

from typing import Any, Dict, Mapping, Optional

import httpx

from ..config import settings
from ..core.routing.models import AssetRef, Family, PlanStep, ProviderQuote, QuoteRequest, WalletFamily
from .base import (
    BuiltTransaction,
    ProviderAdapter,
    ProviderError,
    ProviderStatus,
    ProviderUnavailableError,
    address_for,
)
from .http import JsonHttpClient
from .rpc import JsonRpcClient

NATIVE_SOL_MINT = "So11111111111111111111111111111111111111112"


def _mint(asset: AssetRef) -> str:
    return asset.address or NATIVE_SOL_MINT


class JupiterAdapter(ProviderAdapter):
    """
    Jupiter swap provider for Solana token swaps.

    Usage:
        adapter = JupiterAdapter()
        quote = await adapter.get_quote(request)
        built = await adapter.build_transaction(step, {"solana": "..."})
        # Client signs built.unsigned_tx["transaction"] and reports the signature
    """

    name = "jupiter"
    families = frozenset({Family.SOLANA})

    def __init__(
        self,
        base_url: Optional[str] = None,
        rpc_url: Optional[str] = None,
        timeout_s: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_s = timeout_s
        self._http = JsonHttpClient(
            self.name,
            [base_url or settings.jupiter_base_url],
            timeout_s=timeout_s,
            transport=transport,
        )
        self._rpc = JsonRpcClient(
            rpc_url or settings.solana_rpc_url,
            name="solana-rpc",
            timeout_s=timeout_s,
            transport=transport,
        )

    def supports(self, source: AssetRef, destination: AssetRef) -> bool:
        return super().supports(source, destination) and source.network_id == destination.network_id

    async def _swap_quote(self, source: AssetRef, destination: AssetRef, amount_base: int,
                          slippage_bps: int) -> Dict[str, Any]:
        params = {
            "inputMint": _mint(source),
            "outputMint": _mint(destination),
            "amount": str(amount_base),
            "slippageBps": slippage_bps,
            "swapMode": "ExactIn",
        }
        data = await self._http.get_json("/quote", params=params)
        if not isinstance(data, dict):
            raise ProviderUnavailableError("Jupiter returned a malformed quote", provider=self.name)
        if "error" in data:
            raise ProviderError(f"Jupiter quote error: {data['error']}", provider=self.name)
        return data

    async def get_quote(self, request: QuoteRequest) -> ProviderQuote:
        data = await self._swap_quote(request.source, request.destination, request.amount_base, request.slippage_bps)
        try:
            amount_out = int(data["outAmount"])
        except (KeyError, TypeError, ValueError):
            raise ProviderError("Jupiter quote has no output amount", provider=self.name)

        return ProviderQuote(
            provider=self.name,
            estimated_amount_base=amount_out,
            raw={
                "otherAmountThreshold": data.get("otherAmountThreshold"),
                "priceImpactPct": data.get("priceImpactPct"),
                "slippageBps": request.slippage_bps,
            },
        )

    async def build_transaction(self, step: PlanStep, wallet_addresses: Mapping[str, str]) -> BuiltTransaction:
        user_public_key = address_for(wallet_addresses, WalletFamily.SOLANA)
        if not user_public_key:
            raise ProviderError("A Solana wallet address is required to build this step", provider=self.name)

        slippage_bps = int(step.quote.get("slippageBps", settings.default_slippage_bps))
        quote = await self._swap_quote(step.from_asset, step.to_asset, step.amount_base, slippage_bps)
        payload = {
            "quoteResponse": quote,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "useSharedAccounts": True,
            "prioritizationFeeLamports": {
                "priorityLevelWithMaxLamports": {
                    "maxLamports": 10_000_000,  # 0.01 SOL max
                    "priorityLevel": "medium",
                }
            },
        }
        data = await self._http.post_json("/swap", payload)
        if not isinstance(data, dict) or "error" in data or not data.get("swapTransaction"):
            error = data.get("error") if isinstance(data, dict) else None
            raise ProviderError(f"Jupiter swap error: {error or 'no transaction returned'}", provider=self.name)

        return BuiltTransaction(
            unsigned_tx={
                "family": Family.SOLANA.value,
                "type": "solana_transaction",
                "transaction": data["swapTransaction"],
                "userPublicKey": user_public_key,
                "lastValidBlockHeight": data.get("lastValidBlockHeight"),
            }
        )

    async def get_status(self, tracking_id: str, step: PlanStep) -> ProviderStatus:
        result = await self._rpc.call(
            "getSignatureStatuses",
            [[tracking_id], {"searchTransactionHistory": True}],
        )
        values = (result or {}).get("value") or [None]
        entry = values[0]
        if not entry:
            return ProviderStatus(status="pending")
        if entry.get("err"):
            return ProviderStatus(status="failed", raw=entry, detail=str(entry["err"]))
        return ProviderStatus(status=str(entry.get("confirmationStatus") or "processed"), raw=entry)
