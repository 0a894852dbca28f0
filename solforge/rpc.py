"""
RPC collaborator for the agent executor.

``LedgerClient`` is the interface the executor and simulator depend on;
``SolanaRPCClient`` implements it on top of solana-py's ``AsyncClient``
with one pooled client per RPC endpoint, bounded concurrency and a timeout
on every call. Failures surface as ``RPCError`` subclasses.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from .config import SolanaRPCSettings
from .exceptions import (
    RPCConnectionError,
    RPCResponseError,
    RPCTimeoutError,
)
from .networks import NetworkConfig

logger = logging.getLogger(__name__)


@dataclass
class RawSimulation:
    """Untranslated simulation outcome as returned by the node."""
    err: Any
    logs: List[str] = field(default_factory=list)
    units_consumed: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.err is None


class LedgerClient(ABC):
    """Network operations the execution pipeline needs from a Solana node."""

    @abstractmethod
    async def get_latest_blockhash(self, network: NetworkConfig) -> Hash:
        """Fetch a recent blockhash for building a transaction."""

    @abstractmethod
    async def simulate(
        self,
        network: NetworkConfig,
        tx: VersionedTransaction,
        timeout: Optional[float] = None,
    ) -> RawSimulation:
        """Dry-run a transaction without signature verification."""

    @abstractmethod
    async def send(
        self,
        network: NetworkConfig,
        tx: VersionedTransaction,
        skip_preflight: bool = False,
        timeout: Optional[float] = None,
    ) -> str:
        """Submit a signed transaction and return its base58 signature."""

    @abstractmethod
    async def confirm(self, network: NetworkConfig, signature: str) -> Optional[bool]:
        """
        Check a submitted signature.

        Returns True once confirmed, False if it failed on chain and None
        while it is still unknown or pending.
        """

    async def close(self) -> None:
        """Release pooled connections."""


def _describe_rpc_exception(exc: RPCException) -> tuple[str, List[str]]:
    detail = exc.args[0] if exc.args else exc
    message = getattr(detail, "message", None) or str(detail)
    data = getattr(detail, "data", None)
    logs = list(getattr(data, "logs", None) or [])
    return message, logs


class SolanaRPCClient(LedgerClient):
    """
    Pooled solana-py client keyed by RPC URL.

    Clients are created lazily and shared by all concurrent requests for the
    same endpoint. A semaphore per endpoint caps in-flight calls.
    """

    def __init__(self, settings: Optional[SolanaRPCSettings] = None):
        self.settings = settings or SolanaRPCSettings()
        self._clients: Dict[str, AsyncClient] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._lock = asyncio.Lock()

    @property
    def commitment(self) -> Commitment:
        return Commitment(self.settings.commitment.value)

    async def _client_for(self, url: str) -> AsyncClient:
        async with self._lock:
            client = self._clients.get(url)
            if client is None:
                client = AsyncClient(
                    url,
                    commitment=self.commitment,
                    timeout=self.settings.request_timeout,
                )
                self._clients[url] = client
                self._semaphores[url] = asyncio.Semaphore(self.settings.max_connections)
                logger.debug("Created RPC client for %s", _redact_url(url))
            return client

    async def _call(
        self,
        network: NetworkConfig,
        operation: str,
        coro_factory,
        timeout: Optional[float] = None,
    ) -> Any:
        timeout = timeout or self.settings.request_timeout
        client = await self._client_for(network.rpc_url)
        endpoint = _redact_url(network.rpc_url)

        async with self._semaphores[network.rpc_url]:
            try:
                return await asyncio.wait_for(coro_factory(client), timeout=timeout)
            except asyncio.TimeoutError as e:
                logger.warning("%s timed out after %.1fs on %s", operation, timeout, endpoint)
                raise RPCTimeoutError(
                    f"{operation} timed out after {timeout:g}s",
                    rpc_endpoint=endpoint,
                    timeout_seconds=timeout,
                ) from e
            except RPCException as e:
                message, logs = _describe_rpc_exception(e)
                logger.warning("%s rejected by %s: %s", operation, endpoint, message)
                raise RPCResponseError(
                    message,
                    rpc_endpoint=endpoint,
                    logs=logs,
                ) from e
            except (SolanaRpcException, OSError) as e:
                logger.warning("%s failed on %s: %s", operation, endpoint, type(e).__name__)
                raise RPCConnectionError(
                    f"Could not reach RPC endpoint for {network.network.value}",
                    rpc_endpoint=endpoint,
                    context={"original_error": type(e).__name__},
                ) from e

    async def get_latest_blockhash(self, network: NetworkConfig) -> Hash:
        response = await self._call(
            network,
            "getLatestBlockhash",
            lambda client: client.get_latest_blockhash(self.commitment),
        )
        return response.value.blockhash

    async def simulate(
        self,
        network: NetworkConfig,
        tx: VersionedTransaction,
        timeout: Optional[float] = None,
    ) -> RawSimulation:
        response = await self._call(
            network,
            "simulateTransaction",
            lambda client: client.simulate_transaction(
                tx, sig_verify=False, commitment=self.commitment
            ),
            timeout,
        )
        result = response.value
        return RawSimulation(
            err=result.err,
            logs=list(result.logs or []),
            units_consumed=result.units_consumed,
        )

    async def send(
        self,
        network: NetworkConfig,
        tx: VersionedTransaction,
        skip_preflight: bool = False,
        timeout: Optional[float] = None,
    ) -> str:
        opts = TxOpts(
            skip_preflight=skip_preflight,
            preflight_commitment=self.commitment,
        )
        response = await self._call(
            network,
            "sendTransaction",
            lambda client: client.send_raw_transaction(bytes(tx), opts=opts),
            timeout,
        )
        return str(response.value)

    async def confirm(self, network: NetworkConfig, signature: str) -> Optional[bool]:
        response = await self._call(
            network,
            "getSignatureStatuses",
            lambda client: client.get_signature_statuses([Signature.from_string(signature)]),
        )
        if not response.value or response.value[0] is None:
            return None

        status = response.value[0]
        if status.err is not None:
            return False

        confirmation = str(status.confirmation_status or "").lower()
        if "confirmed" in confirmation or "finalized" in confirmation:
            return True
        return None

    async def close(self) -> None:
        async with self._lock:
            clients = list(self._clients.items())
            self._clients.clear()
            self._semaphores.clear()

        for url, client in clients:
            try:
                await client.close()
            except (SolanaRpcException, OSError) as e:
                logger.warning("Error closing client for %s: %s", _redact_url(url), e)
        logger.info("RPC client pool closed")


def _redact_url(url: str) -> str:
    """Hide API keys carried in RPC URL query strings."""
    if "api-key=" in url:
        return url.split("api-key=", 1)[0] + "api-key=***"
    return url


__all__ = [
    "RawSimulation",
    "LedgerClient",
    "SolanaRPCClient",
]
