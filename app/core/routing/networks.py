"""Network and token registry used by the planner and the provider adapters."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..errors import ValidationError
from .models import AssetRef, Family, StepKind

EVM_NATIVE_ADDRESS = "0x0000000000000000000000000000000000000000"

# Hub used when no provider covers the requested pair directly
HUB_NETWORK_ID = "ethereum"
HUB_TOKEN_ID = "usdt"


@dataclass(frozen=True)
class NetworkInfo:
    network_id: str
    name: str
    family: Family
    native_token: str
    chain_id: Optional[int] = None
    relay_chain_id: Optional[int] = None
    wrapped_native: Optional[str] = None
    aliases: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    decimals: int
    address: Optional[str] = None


NETWORKS: Dict[str, NetworkInfo] = {
    "ethereum": NetworkInfo(
        "ethereum", "Ethereum", Family.EVM, "eth",
        chain_id=1, relay_chain_id=1, wrapped_native="weth",
        aliases=("eth", "mainnet", "ethereum mainnet"),
    ),
    "base": NetworkInfo(
        "base", "Base", Family.EVM, "eth",
        chain_id=8453, relay_chain_id=8453, wrapped_native="weth",
    ),
    "arbitrum": NetworkInfo(
        "arbitrum", "Arbitrum", Family.EVM, "eth",
        chain_id=42161, relay_chain_id=42161, wrapped_native="weth", aliases=("arb",),
    ),
    "optimism": NetworkInfo(
        "optimism", "Optimism", Family.EVM, "eth",
        chain_id=10, relay_chain_id=10, wrapped_native="weth", aliases=("op",),
    ),
    "polygon": NetworkInfo(
        "polygon", "Polygon", Family.EVM, "pol",
        chain_id=137, relay_chain_id=137, wrapped_native="wpol", aliases=("matic",),
    ),
    "bsc": NetworkInfo(
        "bsc", "BNB Chain", Family.EVM, "bnb",
        chain_id=56, relay_chain_id=56, wrapped_native="wbnb", aliases=("bnb", "binance"),
    ),
    "solana": NetworkInfo(
        "solana", "Solana", Family.SOLANA, "sol",
        relay_chain_id=792703809, aliases=("sol",),
    ),
    "ton": NetworkInfo("ton", "TON", Family.TON, "ton"),
    "tron": NetworkInfo("tron", "TRON", Family.TRON, "trx", aliases=("trx",)),
}

TOKENS: Dict[str, Dict[str, TokenInfo]] = {
    "ethereum": {
        "eth": TokenInfo("ETH", 18),
        "weth": TokenInfo("WETH", 18, "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"),
        "usdc": TokenInfo("USDC", 6, "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"),
        "usdt": TokenInfo("USDT", 6, "0xdAC17F958D2ee523a2206206994597C13D831ec7"),
    },
    "base": {
        "eth": TokenInfo("ETH", 18),
        "weth": TokenInfo("WETH", 18, "0x4200000000000000000000000000000000000006"),
        "usdc": TokenInfo("USDC", 6, "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"),
    },
    "arbitrum": {
        "eth": TokenInfo("ETH", 18),
        "weth": TokenInfo("WETH", 18, "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"),
        "usdc": TokenInfo("USDC", 6, "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"),
        "usdt": TokenInfo("USDT", 6, "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9"),
    },
    "optimism": {
        "eth": TokenInfo("ETH", 18),
        "weth": TokenInfo("WETH", 18, "0x4200000000000000000000000000000000000006"),
        "usdc": TokenInfo("USDC", 6, "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85"),
        "usdt": TokenInfo("USDT", 6, "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58"),
    },
    "polygon": {
        "pol": TokenInfo("POL", 18),
        "wpol": TokenInfo("WPOL", 18, "0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270"),
        "usdc": TokenInfo("USDC", 6, "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"),
        "usdt": TokenInfo("USDT", 6, "0xc2132D05D31c914a87C6611C10748AEb04B58e8F"),
    },
    "bsc": {
        "bnb": TokenInfo("BNB", 18),
        "wbnb": TokenInfo("WBNB", 18, "0xbb4CdB9CBd36B01bD1cBaEBF2De08d9173bc095c"),
        # BNB Chain pegged stables use 18 decimals
        "usdc": TokenInfo("USDC", 18, "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d"),
        "usdt": TokenInfo("USDT", 18, "0x55d398326f99059fF775485246999027B3197955"),
    },
    "solana": {
        "sol": TokenInfo("SOL", 9),
        "usdc": TokenInfo("USDC", 6, "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"),
        "usdt": TokenInfo("USDT", 6, "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"),
    },
    "ton": {
        "ton": TokenInfo("TON", 9),
        "usdt": TokenInfo("USDT", 6, "EQCxE6mUtQJKFnGfaROTKOt1lZbDiiX1kCixRv7Nw2Id_sDs"),
    },
    "tron": {
        "trx": TokenInfo("TRX", 6),
        "usdt": TokenInfo("USDT", 6, "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"),
    },
}

_NETWORK_ALIASES: Dict[str, str] = {
    alias: network.network_id
    for network in NETWORKS.values()
    for alias in (network.network_id, network.name.lower(), *network.aliases)
}


def resolve_network(network_id: str) -> NetworkInfo:
    key = (network_id or "").strip().lower()
    resolved = _NETWORK_ALIASES.get(key)
    if resolved is None:
        raise ValidationError(f"Unsupported network '{network_id}'")
    return NETWORKS[resolved]


def resolve_asset(network_id: str, token_id: str) -> AssetRef:
    """Resolve a (network, token) pair into an AssetRef.

    Tokens are matched by id or symbol, case-insensitively.
    """
    network = resolve_network(network_id)
    tokens = TOKENS[network.network_id]
    key = (token_id or "").strip().lower()
    info = tokens.get(key)
    if info is None:
        for candidate_id, candidate in tokens.items():
            if candidate.symbol.lower() == key:
                key, info = candidate_id, candidate
                break
    if info is None:
        raise ValidationError(f"Token '{token_id}' is not supported on {network.name}")

    return AssetRef(
        network_id=network.network_id,
        family=network.family,
        token_id=key,
        symbol=info.symbol,
        decimals=info.decimals,
        address=info.address,
        chain_id=network.chain_id,
    )


def wrap_kind(source: AssetRef, destination: AssetRef) -> Optional[StepKind]:
    """Return WRAP/UNWRAP when the pair is a native token and its wrapped form."""
    if source.network_id != destination.network_id or source.family is not Family.EVM:
        return None
    network = NETWORKS[source.network_id]
    if network.wrapped_native is None:
        return None
    if source.token_id == network.native_token and destination.token_id == network.wrapped_native:
        return StepKind.WRAP
    if source.token_id == network.wrapped_native and destination.token_id == network.native_token:
        return StepKind.UNWRAP
    return None


def hub_asset() -> AssetRef:
    return resolve_asset(HUB_NETWORK_ID, HUB_TOKEN_ID)
