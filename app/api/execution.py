from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.errors import ErrorCode
from ..core.execution.state_machine import StepState
from .responses import error_response, result_response
from .route_plan import UserWallets

router = APIRouter(prefix="/execution")


class CreateExecutionRequest(BaseModel):
    planId: str = Field(..., description="requestId of a plan returned by /route-plan")
    user: Optional[UserWallets] = Field(default=None, description="Wallets to sign with (overrides plan wallets)")


class StepReportRequest(BaseModel):
    executionId: str
    stepId: str
    state: StepState = Field(..., description="Reported step state (SUBMITTED, CONFIRMING, CONFIRMED, FAILED)")
    txHash: Optional[str] = Field(default=None, description="Broadcast transaction hash / signature")


@router.post("")
async def create_execution(body: CreateExecutionRequest, request: Request) -> JSONResponse:
    plans = request.app.state.plans
    plan = await plans.take(body.planId)
    if plan is None:
        return error_response(
            ErrorCode.PLAN_NOT_FOUND,
            f"Route plan {body.planId} not found, expired or already used",
        )

    wallets = body.user.to_wallets() if body.user else None
    result = await request.app.state.orchestrator.create_execution(plan, wallets)
    if not result.ok:
        # Nothing was stored; let the client retry with the same plan
        await plans.register(plan)
    return result_response(result, success_status=201)


@router.get("/status")
async def execution_status(
    request: Request,
    executionId: Optional[str] = None,
    stepId: Optional[str] = None,
    txHash: Optional[str] = None,
) -> JSONResponse:
    """Report a freshly broadcast transaction (optional) and poll the execution."""
    if not executionId:
        return error_response(ErrorCode.MISSING_EXECUTION_ID, "executionId is required")
    if bool(stepId) != bool(txHash):
        return error_response(ErrorCode.VALIDATION, "stepId and txHash must be provided together")

    orchestrator = request.app.state.orchestrator
    if stepId and txHash:
        reported = await orchestrator.update_step_state(executionId, stepId, StepState.SUBMITTED, txHash)
        if not reported.ok:
            return result_response(reported)

    return result_response(await orchestrator.poll_execution_status(executionId))


@router.post("/report")
async def report_step(body: StepReportRequest, request: Request) -> JSONResponse:
    result = await request.app.state.orchestrator.update_step_state(
        body.executionId, body.stepId, body.state, body.txHash
    )
    return result_response(result)


@router.get("/{execution_id}")
async def get_execution(execution_id: str, request: Request) -> JSONResponse:
    return result_response(await request.app.state.orchestrator.get_execution(execution_id))
