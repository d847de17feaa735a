from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.errors import ErrorCode
from .responses import error_response

router = APIRouter()


class UserWallets(BaseModel):
    evmAddress: Optional[str] = Field(default=None, description="Connected EVM wallet")
    solanaAddress: Optional[str] = Field(default=None, description="Connected Solana wallet")
    tonAddress: Optional[str] = Field(default=None, description="Connected TON wallet")
    tronAddress: Optional[str] = Field(default=None, description="Connected TRON wallet")

    def to_wallets(self) -> Dict[str, str]:
        wallets = {
            "evm": self.evmAddress,
            "solana": self.solanaAddress,
            "ton": self.tonAddress,
            "tron": self.tronAddress,
        }
        return {family: address for family, address in wallets.items() if address}


class RoutePlanRequest(BaseModel):
    amount: str = Field(..., description="Human-readable amount of the source token, e.g. '1.5'")
    fromTokenId: str = Field(..., description="Source token id or symbol")
    toTokenId: str = Field(..., description="Destination token id or symbol")
    fromNetworkId: str = Field(..., description="Source network id")
    toNetworkId: str = Field(..., description="Destination network id")
    user: UserWallets = Field(default_factory=UserWallets)


@router.post("/route-plan")
async def route_plan(body: RoutePlanRequest, request: Request) -> JSONResponse:
    planner = request.app.state.planner
    result = await planner.compute_route_plan(
        body.amount,
        body.fromTokenId,
        body.toTokenId,
        body.fromNetworkId,
        body.toNetworkId,
        body.user.to_wallets(),
    )
    if not result.ok:
        extra: Dict[str, Any] = {"debug": result.debug} if result.debug else {}
        return error_response(result.error_code or ErrorCode.INTERNAL_ERROR, result.message, extra=extra)

    await request.app.state.plans.register(result.plan)
    return JSONResponse(content=result.to_dict())
