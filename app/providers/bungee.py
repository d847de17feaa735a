import os
from typing import Any, Dict, List, Mapping, Optional

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

BUNGEE_NATIVE_TOKEN = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

# bungeeStatusCode values returned by /status
BUNGEE_STATUS_CODES = {
    0: "PENDING",
    1: "ASSIGNED",
    2: "EXTRACTED",
    3: "FULFILLED",
    4: "SETTLED",
    5: "EXPIRED",
    6: "CANCELLED",
    7: "REFUNDED",
}


def _token(asset: AssetRef) -> str:
    return asset.address or BUNGEE_NATIVE_TOKEN


class BungeeAdapter(ProviderAdapter):
    """Thin client for the Bungee (Socket) public API surface; EVM legs only."""

    name = "bungee"
    families = frozenset({Family.EVM})

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        # Try explicit args → settings → environment → defaults
        self.api_key = (
            api_key
            or getattr(settings, 'bungee_api_key', '')
            or os.environ.get('BUNGEE_API_KEY', '')
        )

        configured = (
            base_url
            or getattr(settings, 'bungee_base_url', '')
            or os.environ.get('BUNGEE_BASE_URL', '')
        )
        if configured:
            base_urls: List[str] = [configured]
        else:
            base_urls = [
                'https://public-backend.bungee.exchange',
                'https://api.socket.tech',
            ]

        self.timeout_s = timeout_s
        headers = {'API-KEY': self.api_key} if self.api_key else {}
        self._http = JsonHttpClient(self.name, base_urls, timeout_s=timeout_s, headers=headers, transport=transport)

    async def _quote(self, params: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._http.get_json('/api/v1/bungee/quote', params=params)
        result = data.get('result') if isinstance(data, dict) else None
        if not isinstance(result, dict):
            raise ProviderUnavailableError('Bungee returned a malformed quote', provider=self.name)

        routes = result.get('manualRoutes') or []
        if not routes:
            raise ProviderError('Bungee found no route for this pair', provider=self.name)
        return routes[0]

    @staticmethod
    def _params(source: AssetRef, destination: AssetRef, amount_base: int, user: str, receiver: str) -> Dict[str, Any]:
        return {
            'userAddress': user,
            'receiverAddress': receiver,
            'originChainId': source.chain_id,
            'destinationChainId': destination.chain_id,
            'inputToken': _token(source),
            'outputToken': _token(destination),
            'inputAmount': str(amount_base),
        }

    async def get_quote(self, request: QuoteRequest) -> ProviderQuote:
        route = await self._quote(
            self._params(request.source, request.destination, request.amount_base, request.sender, request.recipient)
        )
        output = route.get('output') or {}
        try:
            amount_out = int(output.get('amount') or 0)
        except (TypeError, ValueError):
            amount_out = 0
        if amount_out <= 0:
            raise ProviderError('Bungee route has no output amount', provider=self.name)

        approvals = ()
        approval = route.get('approvalData')
        if approval:
            approvals = ({'provider': self.name, 'chainId': request.source.chain_id,
                          'spender': approval.get('spenderAddress')},)
        return ProviderQuote(
            provider=self.name,
            estimated_amount_base=amount_out,
            raw={'quoteId': route.get('quoteId'), 'routeTag': route.get('routeDetails', {}).get('name')},
            approvals=approvals,
        )

    async def build_transaction(self, step: PlanStep, wallet_addresses: Mapping[str, str]) -> BuiltTransaction:
        signer = address_for(wallet_addresses, WalletFamily.EVM)
        if not signer:
            raise ProviderError('An EVM wallet address is required to build this step', provider=self.name)

        # Manual route quote ids are short-lived; fetch a fresh one for the signer
        route = await self._quote(self._params(step.from_asset, step.to_asset, step.amount_base, signer, signer))
        data = await self._http.get_json('/api/v1/bungee/build-tx', params={'quoteId': route.get('quoteId')})
        result = data.get('result') if isinstance(data, dict) else None
        tx = (result or {}).get('txData')
        if not isinstance(tx, dict):
            raise ProviderUnavailableError('Bungee build-tx returned no transaction', provider=self.name)

        unsigned_tx: Dict[str, Any] = {
            'family': Family.EVM.value,
            'type': 'evm_transaction',
            'to': tx.get('to'),
            'data': tx.get('data'),
            'value': tx.get('value', '0'),
            'chainId': tx.get('chainId', step.from_asset.chain_id),
        }
        approval = (result or {}).get('approvalData')
        if approval:
            unsigned_tx['approvals'] = [approval]
        return BuiltTransaction(unsigned_tx=unsigned_tx)

    async def get_status(self, tracking_id: str, step: PlanStep) -> ProviderStatus:
        data = await self._http.get_json('/api/v1/bungee/status', params={'txHash': tracking_id})
        result = data.get('result') if isinstance(data, dict) else None
        if isinstance(result, list):
            result = result[0] if result else None
        if not isinstance(result, dict):
            # Not indexed yet
            return ProviderStatus(status='PENDING', raw=data if isinstance(data, dict) else {})

        code = result.get('bungeeStatusCode')
        status = BUNGEE_STATUS_CODES.get(code, str(code)) if isinstance(code, int) else str(code or 'PENDING')
        return ProviderStatus(status=status, raw=result)
