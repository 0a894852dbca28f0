"""Solana cluster definitions and per-network parameters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from urllib.parse import quote

from .config import ExecutionSettings, SolanaRPCSettings
from .exceptions import UnsupportedNetworkError

HELIUS_MAINNET_URL = "https://mainnet.helius-rpc.com/?api-key={api_key}"
SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"
SOLANA_EXPLORER_TX_URL = "https://explorer.solana.com/tx/{signature}"


class NetworkId(str, Enum):
    """A Solana cluster the agent can submit to."""
    MAINNET = "mainnet"
    DEVNET = "devnet"
    TESTNET = "testnet"
    LOCALNET = "localnet"


NETWORK_ALIASES: dict[str, NetworkId] = {
    "mainnet": NetworkId.MAINNET,
    "mainnet-beta": NetworkId.MAINNET,
    "devnet": NetworkId.DEVNET,
    "testnet": NetworkId.TESTNET,
    "localnet": NetworkId.LOCALNET,
    "local": NetworkId.LOCALNET,
    "localhost": NetworkId.LOCALNET,
}


@dataclass(frozen=True)
class NetworkConfig:
    """Resolved parameters for one cluster."""

    network: NetworkId
    rpc_url: str
    default_priority_fee: int

    def explorer_url(self, signature: str) -> str:
        if self.network is NetworkId.MAINNET:
            return SOLSCAN_TX_URL.format(signature=signature)
        if self.network is NetworkId.LOCALNET:
            base = SOLANA_EXPLORER_TX_URL.format(signature=signature)
            return f"{base}?cluster=custom&customUrl={quote(self.rpc_url, safe='')}"
        return SOLSCAN_TX_URL.format(signature=signature) + f"?cluster={self.network.value}"


def parse_network(value: Any) -> NetworkId:
    """Map a client-supplied network name to a ``NetworkId``.

    Raises ``UnsupportedNetworkError`` for anything outside the known set.
    """
    if isinstance(value, NetworkId):
        return value
    if isinstance(value, str):
        network = NETWORK_ALIASES.get(value.strip().lower())
        if network is not None:
            return network
    raise UnsupportedNetworkError(
        f"Unsupported network {str(value)[:40]!r}. Available: {', '.join(list_network_names())}",
        context={"network": str(value)[:40]},
    )


def rpc_url_for(network: NetworkId, settings: SolanaRPCSettings) -> str:
    if network is NetworkId.MAINNET:
        if settings.helius_api_key is not None:
            return HELIUS_MAINNET_URL.format(api_key=settings.helius_api_key.get_secret_value())
        return settings.mainnet_rpc
    if network is NetworkId.DEVNET:
        return settings.devnet_rpc
    if network is NetworkId.TESTNET:
        return settings.testnet_rpc
    return settings.localnet_rpc


def resolve_network(
    value: Optional[Any],
    rpc_settings: SolanaRPCSettings,
    execution_settings: ExecutionSettings,
) -> NetworkConfig:
    """Resolve a network name (or the configured default) without any I/O."""
    network = parse_network(rpc_settings.default_network if value is None else value)
    fee = execution_settings.mainnet_priority_fee if network is NetworkId.MAINNET else 0
    return NetworkConfig(
        network=network,
        rpc_url=rpc_url_for(network, rpc_settings),
        default_priority_fee=fee,
    )


def list_network_names() -> list[str]:
    return [network.value for network in NetworkId]
