"""
Shared fixtures for the SolForge agent tests.

No test talks to a real Solana node: ``FakeLedgerClient`` stands in for the
RPC collaborator and records what the pipeline asked of it.
"""

import json
from typing import List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from solforge.config import (
    AGENT_WALLET_ENV_VAR,
    ExecutionSettings,
    ServerSettings,
    Settings,
    SolanaRPCSettings,
    StaticSecretSource,
)
from solforge.executor import AgentExecutor
from solforge.networks import NetworkConfig
from solforge.rpc import LedgerClient, RawSimulation
from solforge.wallet import AgentWallet


class FakeLedgerClient(LedgerClient):
    """In-memory ledger: fixed blockhash, scripted simulation, echo signatures."""

    def __init__(
        self,
        simulation: Optional[RawSimulation] = None,
        blockhash: Optional[Hash] = None,
        confirmation: Optional[bool] = True,
    ):
        self.simulation = simulation or RawSimulation(err=None, logs=[], units_consumed=450)
        self.blockhash = blockhash or Hash.default()
        self.confirmation = confirmation
        self.simulate_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.blockhash_error: Optional[Exception] = None
        self.simulated: List[VersionedTransaction] = []
        self.sent: List[tuple] = []
        self.closed = False

    async def get_latest_blockhash(self, network: NetworkConfig) -> Hash:
        if self.blockhash_error is not None:
            raise self.blockhash_error
        return self.blockhash

    async def simulate(self, network, tx, timeout=None) -> RawSimulation:
        if self.simulate_error is not None:
            raise self.simulate_error
        self.simulated.append(tx)
        return self.simulation

    async def send(self, network, tx, skip_preflight=False, timeout=None) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((network, tx, skip_preflight))
        return str(tx.signatures[0])

    async def confirm(self, network, signature) -> Optional[bool]:
        return self.confirmation

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def keypair():
    """Fresh agent keypair."""
    return Keypair()


@pytest.fixture
def secret_json(keypair):
    """The keypair encoded the way AGENT_WALLET_SECRET_KEY carries it."""
    return json.dumps(list(bytes(keypair)))


@pytest.fixture
def secret_source(secret_json):
    """Secret source holding a valid agent wallet secret."""
    return StaticSecretSource({AGENT_WALLET_ENV_VAR: secret_json})


@pytest.fixture
def empty_source():
    """Secret source with no agent wallet configured."""
    return StaticSecretSource()


@pytest.fixture
def wallet(secret_source):
    return AgentWallet(secret_source)


@pytest.fixture
def unconfigured_wallet(empty_source):
    return AgentWallet(empty_source)


@pytest.fixture
def settings():
    """Settings built explicitly so the host environment cannot leak in."""
    return Settings(
        solana=SolanaRPCSettings(
            default_network="devnet",
            helius_api_key=None,
            mainnet_rpc="https://api.mainnet-beta.solana.com",
            devnet_rpc="https://api.devnet.solana.com",
        ),
        execution=ExecutionSettings(confirm_transactions=False),
        server=ServerSettings(rate_limit_max_requests=30, rate_limit_window_seconds=60),
    )


@pytest.fixture
def ledger():
    return FakeLedgerClient()


@pytest.fixture
def executor(wallet, ledger, settings):
    return AgentExecutor(wallet, ledger, settings=settings)


@pytest.fixture
def make_ledger():
    """Factory for ledgers with a scripted simulation outcome."""
    return FakeLedgerClient
