from fastapi import APIRouter, Request
from typing import Dict, Any

router = APIRouter()


@router.get("/healthz")
async def health_check(request: Request) -> Dict[str, Any]:
    """Health check endpoint that reports adapter readiness and store size"""

    adapters = request.app.state.adapters
    provider_status = {}
    for name in adapters.names():
        ready = await adapters.get(name).ready()
        provider_status[name] = {"status": "ready" if ready else "unconfigured"}

    # Count ready providers
    available_providers = sum(
        1 for status in provider_status.values()
        if status["status"] == "ready"
    )

    sweeper = request.app.state.sweeper
    return {
        "status": "healthy" if available_providers > 0 else "degraded",
        "providers": provider_status,
        "available_providers": available_providers,
        "total_providers": len(provider_status),
        "executions": len(request.app.state.store),
        "sweeper_running": bool(sweeper and sweeper.is_running),
    }
