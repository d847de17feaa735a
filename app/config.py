from pathlib import Path
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Execution lifecycle
    execution_inactivity_ttl_seconds: int = Field(
        default=1800,
        description="Seconds without a successful transition before a non-terminal execution expires",
    )
    execution_retention_seconds: int = Field(
        default=3600,
        description="Seconds a finished or expired execution is kept before it is purged",
    )
    execution_sweep_interval_seconds: int = Field(
        default=60,
        description="Interval between background TTL sweeps of the execution store",
    )
    enable_execution_sweeper: bool = Field(
        default=True,
        description="Run the periodic execution sweeper inside the API process",
    )

    # Route plans
    route_plan_ttl_seconds: int = Field(
        default=600,
        description="How long a computed route plan can be turned into an execution",
    )
    max_cached_plans: int = Field(default=1000, description="Maximum number of route plans held in memory")
    default_slippage_bps: int = Field(default=50, description="Slippage tolerance used for quotes (basis points)")
    placeholder_evm_address: str = Field(
        default="0x1111111111111111111111111111111111111111",
        description="Address used for quoting when the user has not connected an EVM wallet",
    )
    referrer: str = Field(default="waypoint.router", description="Attribution referrer sent to aggregators")

    # Provider timeouts
    provider_quote_timeout_seconds: float = Field(default=10.0, description="Timeout for upstream quote calls")
    build_timeout_seconds: float = Field(default=10.0, description="Timeout for building one unsigned transaction")
    status_poll_timeout_seconds: float = Field(default=8.0, description="Timeout for one provider status poll")

    # Relay
    relay_base_url: str = Field(default="", description="Override Relay API base URL")

    # Bungee
    bungee_api_key: str = Field(default="", description="Bungee API key (public API works without one)")
    bungee_base_url: str = Field(default="", description="Override Bungee API base URL")

    # ChangeNOW (TON / TRON legs)
    changenow_api_key: str = Field(default="", description="ChangeNOW API key")
    changenow_base_url: str = Field(default="https://api.changenow.io/v2", description="ChangeNOW API base URL")

    # Solana
    jupiter_base_url: str = Field(default="https://quote-api.jup.ag/v6", description="Jupiter swap API base URL")
    solana_rpc_url: str = Field(default="https://api.mainnet-beta.solana.com", description="Solana JSON-RPC endpoint")

    # EVM RPC endpoints keyed by chain id
    evm_rpc_urls: Dict[int, str] = Field(
        default_factory=lambda: {
            1: "https://eth.llamarpc.com",
            10: "https://mainnet.optimism.io",
            56: "https://bsc-dataseed.binance.org",
            137: "https://polygon-rpc.com",
            8453: "https://mainnet.base.org",
            42161: "https://arb1.arbitrum.io/rpc",
        },
        description="JSON-RPC URLs used to read EVM transaction receipts",
    )


settings = Settings()
