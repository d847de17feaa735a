from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .api import execution, health, route_plan
from .api.responses import error_response
from .config import Settings, settings
from .core.errors import ErrorCode
from .core.execution import ExecutionOrchestrator, ExecutionStore, ExecutionSweeper, StatusPoller
from .core.routing.planner import RoutePlanner
from .core.routing.registry import PlanRegistry
from .logging_config import setup_logging
from .middleware.logging_middleware import RequestLoggingMiddleware
from .providers.registry import AdapterRegistry, build_default_registry


def create_app(
    config: Optional[Settings] = None,
    adapters: Optional[AdapterRegistry] = None,
    store: Optional[ExecutionStore] = None,
) -> FastAPI:
    """Build the API with its own store, adapters and orchestrator."""
    config = config or settings
    adapters = adapters or build_default_registry(config)
    store = store or ExecutionStore(
        inactivity_ttl_s=config.execution_inactivity_ttl_seconds,
        retention_s=config.execution_retention_seconds,
    )
    poller = StatusPoller(adapters, timeout_s=config.status_poll_timeout_seconds)
    plans = PlanRegistry(ttl_s=config.route_plan_ttl_seconds, max_size=config.max_cached_plans)
    sweeper = (
        ExecutionSweeper(store, interval_s=config.execution_sweep_interval_seconds, plans=plans)
        if config.enable_execution_sweeper
        else None
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if sweeper is not None:
            await sweeper.start()
        try:
            yield
        finally:
            if sweeper is not None:
                await sweeper.stop()

    app = FastAPI(
        title="Waypoint Router API",
        description="Multi-leg cross-chain route planning and execution orchestration",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.adapters = adapters
    app.state.store = store
    app.state.poller = poller
    app.state.sweeper = sweeper
    app.state.orchestrator = ExecutionOrchestrator(
        store, adapters, poller, build_timeout_s=config.build_timeout_seconds
    )
    app.state.planner = RoutePlanner(
        adapters,
        slippage_bps=config.default_slippage_bps,
        quote_timeout_s=config.provider_quote_timeout_seconds,
        placeholder_addresses={"evm": config.placeholder_evm_address},
    )
    app.state.plans = plans

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
        return error_response(ErrorCode.VALIDATION, message)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(route_plan.router, tags=["Routing"])
    app.include_router(execution.router, tags=["Execution"])

    @app.get("/")
    async def root():
        """Root endpoint with basic info"""
        return {
            "name": "Waypoint Router API",
            "version": "0.1.0",
            "description": "Multi-leg cross-chain route planning and execution orchestration",
            "docs": "/docs",
            "health": "/healthz"
        }

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
