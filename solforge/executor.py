"""
Agent execution pipeline.

``AgentExecutor.execute`` drives one request through the stages

    received -> validated -> parsed -> built -> simulated (optional)
             -> signed -> submitted -> confirmed | rejected

and always returns an ``ExecutionResult``. Every ``SolForgeError`` raised by
a stage is converted into an ``ExecutionFailure`` carrying the HTTP status
for its category; anything else is logged and reported as an internal error.

The agent wallet is checked before the prompt is looked at: with no wallet
configured the request cannot be served whatever it contains, so the 503
takes precedence over prompt validation errors.

A prompt may chain several actions; they are built into one transaction.
``AgentExecutor.build_unsigned`` runs the same stages up to simulation for a
caller-supplied fee payer and returns the unsigned transaction instead of
signing it.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Sequence, Tuple, Union

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .config import Settings, get_settings
from .exceptions import (
    AgentWalletNotConfiguredError,
    BlockhashUnavailableError,
    BuildError,
    InsufficientFundsError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidIntentParametersError,
    InvalidMemoError,
    NetworkUnreachableError,
    ParseError,
    ProgramError,
    RPCConnectionError,
    RPCError,
    RPCResponseError,
    RPCTimeoutError,
    SimulationError,
    SimulationFailedError,
    SolForgeError,
    SubmissionError,
    SubmissionTimeoutError,
    TransactionRejectedError,
    TransactionSendError,
    UnsupportedNetworkError,
    ValidationError,
)
from .intent_parser import IntentParser
from .intents import ParseFailure, TransactionIntent
from .networks import NetworkConfig, NetworkId, list_network_names
from .rpc import LedgerClient
from .simulator import SimulationReport, Simulator
from .transaction import TransactionBuilder, UnsignedTransaction, sign_transaction
from .validators import IntentValidator, MAX_MEMO_BYTES, validate_solana_address
from .wallet import AgentWallet

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error during agent execution"
MULTI_ACTION = "multi"

GENERIC_SUGGESTIONS = (
    "Check that all addresses are valid",
    "Try with a different wallet or smaller amount",
)


class ExecutionStage(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    PARSED = "parsed"
    BUILT = "built"
    SIMULATED = "simulated"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ExecutionRequest:
    """
    One execution request as received from the client.

    ``prompt`` is kept untyped on purpose: its validity (present, a string,
    non-blank, at most 500 characters) is checked by the executor.
    """
    prompt: Any
    network: Optional[Any] = None
    skip_simulation: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "ExecutionRequest":
        if not isinstance(payload, dict):
            payload = {}
        return cls(
            prompt=payload.get("prompt"),
            network=payload.get("network"),
            skip_simulation=payload.get("skipSimulation") is True,
        )


def _intent_details(intents: Sequence[TransactionIntent]) -> Dict[str, Any]:
    if len(intents) == 1:
        intent = intents[0]
        return {
            "protocol": intent.protocol,
            "action": intent.kind.value,
            "intent": intent.to_dict(),
        }
    return {
        "protocol": MULTI_ACTION,
        "action": MULTI_ACTION,
        "intents": [intent.to_dict() for intent in intents],
    }


@dataclass(frozen=True)
class ExecutionSuccess:
    signature: str
    agent_wallet: str
    explorer: str
    network: NetworkId
    intents: Tuple[TransactionIntent, ...]
    simulation: Optional[SimulationReport] = None
    confirmed: Optional[bool] = None

    success: ClassVar[bool] = True
    status_code: ClassVar[int] = 200

    def to_response(self) -> Dict[str, Any]:
        details = _intent_details(self.intents)
        details.update({
            "network": self.network.value,
            "agentWallet": self.agent_wallet,
            "simulation": self.simulation.to_dict() if self.simulation else None,
            "confirmed": self.confirmed,
        })
        return {
            "success": True,
            "signature": self.signature,
            "explorer": self.explorer,
            "details": details,
        }


@dataclass(frozen=True)
class ExecutionFailure:
    error: str
    status_code: int = 400
    stage: ExecutionStage = ExecutionStage.RECEIVED
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    suggestions: Optional[Tuple[str, ...]] = None
    agent_wallet: Optional[str] = None

    success: ClassVar[bool] = False

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.error}
        if self.details is not None:
            body["details"] = dict(self.details)
        if self.agent_wallet is not None:
            body["agentWallet"] = self.agent_wallet
        if self.suggestions:
            body["suggestions"] = list(self.suggestions)
        return body


ExecutionResult = Union[ExecutionSuccess, ExecutionFailure]


@dataclass(frozen=True)
class BuildRequest:
    """
    Request for an unsigned transaction paid for by a caller-supplied wallet.

    ``prompt`` and ``payer`` are validated by the executor.
    """
    prompt: Any
    payer: Any = None
    network: Optional[Any] = None
    skip_simulation: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "BuildRequest":
        if not isinstance(payload, dict):
            payload = {}
        return cls(
            prompt=payload.get("prompt"),
            payer=payload.get("payer"),
            network=payload.get("network"),
            skip_simulation=payload.get("skipSimulation") is True,
        )


@dataclass(frozen=True)
class BuildSuccess:
    transaction: str
    payer: str
    network: NetworkId
    intents: Tuple[TransactionIntent, ...]
    recent_blockhash: str
    compute_unit_limit: int
    compute_unit_price: int
    simulation: Optional[SimulationReport] = None

    success: ClassVar[bool] = True
    status_code: ClassVar[int] = 200

    def to_response(self) -> Dict[str, Any]:
        details = _intent_details(self.intents)
        details.update({
            "network": self.network.value,
            "payer": self.payer,
            "recentBlockhash": self.recent_blockhash,
            "computeUnitLimit": self.compute_unit_limit,
            "computeUnitPrice": self.compute_unit_price,
            "simulation": self.simulation.to_dict() if self.simulation else None,
        })
        return {
            "success": True,
            "transaction": self.transaction,
            "details": details,
        }


BuildResult = Union[BuildSuccess, ExecutionFailure]


_SUGGESTIONS: Sequence[Tuple[type, Tuple[str, ...]]] = (
    (InsufficientFundsError, (
        "Try a smaller amount",
        "Make sure the agent wallet has enough SOL",
    )),
    (ProgramError, (
        "Check that all addresses are valid",
        "Try with skipSimulation: true for testing",
    )),
    (NetworkUnreachableError, (
        "Check the network name and RPC endpoint",
        "Try again in a moment",
    )),
    (BlockhashUnavailableError, (
        "Check the network name and RPC endpoint",
        "Try again in a moment",
    )),
    (UnsupportedNetworkError, (
        f"Use one of: {', '.join(list_network_names())}",
    )),
    (SubmissionTimeoutError, (
        "The transaction may still land, check the agent wallet history before retrying",
    )),
    (InvalidAmountError, (
        "Use a positive amount within the allowed limits",
        "Try a smaller amount",
    )),
    (InvalidMemoError, (
        f"Keep memos under {MAX_MEMO_BYTES} bytes",
    )),
    (InvalidAddressError, (
        "Check that all addresses are valid",
        "Use the full base58 address",
    )),
    (InvalidIntentParametersError, (
        "Check that all addresses are valid",
        "Use the full base58 address",
    )),
)


def suggestions_for(error: SolForgeError) -> Tuple[str, ...]:
    """Actionable hints for a failed execution."""
    if isinstance(error, SimulationFailedError) and "expired" in error.message:
        return ("The transaction expired, try again",)
    for error_type, suggestions in _SUGGESTIONS:
        if isinstance(error, error_type):
            return suggestions
    return GENERIC_SUGGESTIONS


class AgentExecutor:
    """
    Runs natural-language execution requests against the agent wallet.

    Args:
        wallet: Agent wallet provider, consulted once per request.
        ledger: RPC collaborator used for blockhash, simulation and submission.
        settings: Application settings; defaults to ``get_settings()``.
        parser, validator, builder, simulator: Optional overrides.
    """

    def __init__(
        self,
        wallet: AgentWallet,
        ledger: LedgerClient,
        settings: Optional[Settings] = None,
        parser: Optional[IntentParser] = None,
        validator: Optional[IntentValidator] = None,
        builder: Optional[TransactionBuilder] = None,
        simulator: Optional[Simulator] = None,
    ):
        settings = settings or get_settings()
        self.wallet = wallet
        self.ledger = ledger
        self.execution = settings.execution
        self.parser = parser or IntentParser()
        self.validator = validator or IntentValidator(
            Decimal(str(settings.execution.max_transfer_sol))
        )
        self.builder = builder or TransactionBuilder(settings.execution, settings.solana)
        self.simulator = simulator or Simulator(
            ledger, timeout=settings.execution.simulation_timeout
        )

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        try:
            return await self._execute(request)
        except Exception:
            logger.exception("Unexpected error during agent execution")
            return ExecutionFailure(
                error=INTERNAL_ERROR_MESSAGE,
                status_code=500,
                error_code="GENERAL_001",
            )

    async def build_unsigned(self, request: BuildRequest) -> BuildResult:
        """
        Build, and optionally simulate, a transaction for the caller's wallet.

        Nothing is signed or submitted and the agent wallet is not consulted.
        """
        try:
            return await self._build_unsigned(request)
        except Exception:
            logger.exception("Unexpected error while building transaction")
            return ExecutionFailure(
                error=INTERNAL_ERROR_MESSAGE,
                status_code=500,
                error_code="GENERAL_001",
            )

    def _parse_intents(self, prompt: str) -> Tuple[TransactionIntent, ...]:
        parsed = self.parser.parse_multiple(prompt)
        if isinstance(parsed, ParseFailure):
            logger.info("Prompt not understood: %s", parsed.reason)
            raise ParseError(parsed.reason, suggestions=list(parsed.suggestions))
        return tuple(self.validator.validate(intent) for intent in parsed)

    async def _execute(self, request: ExecutionRequest) -> ExecutionResult:
        stage = ExecutionStage.RECEIVED

        try:
            keypair = self.wallet.require_keypair()
        except AgentWalletNotConfiguredError as e:
            logger.warning("Execution refused: agent wallet not configured")
            return self._failure(e, stage)
        agent_wallet = str(keypair.pubkey())

        try:
            prompt = self.validator.validate_prompt(request.prompt)
        except ValidationError as e:
            return self._failure(e, stage)
        stage = ExecutionStage.VALIDATED

        try:
            intents = self._parse_intents(prompt)
        except ParseError as e:
            return self._failure(e, stage, suggestions=tuple(e.suggestions))
        except ValidationError as e:
            return self._failure(e, stage, suggestions=suggestions_for(e))
        stage = ExecutionStage.PARSED
        kinds = "+".join(intent.kind.value for intent in intents)
        logger.info(
            "Parsed %s intent (priority=%s)",
            kinds, ",".join(intent.priority.value for intent in intents),
        )

        try:
            network = self.builder.resolve_network(request.network)
            blockhash = await self._latest_blockhash(network)
            tx = self.builder.build(intents, network, keypair.pubkey(), blockhash)
        except BuildError as e:
            return self._failure(e, stage, agent_wallet, intents)
        stage = ExecutionStage.BUILT

        simulation = None
        if request.skip_simulation:
            logger.warning(
                "Simulation skipped by caller for %s on %s",
                kinds, network.network.value,
            )
        else:
            try:
                simulation = await self.simulator.simulate(tx, network)
            except SimulationError as e:
                return self._failure(e, stage, agent_wallet, intents)
            stage = ExecutionStage.SIMULATED

        try:
            signed = self._sign(tx, keypair)
            stage = ExecutionStage.SIGNED
            signature = await self._submit(network, signed, skip_preflight=request.skip_simulation)
            stage = ExecutionStage.SUBMITTED
            confirmed = None
            if self.execution.confirm_transactions:
                confirmed = await self._await_confirmation(network, signature)
        except SubmissionError as e:
            return self._failure(e, stage, agent_wallet, intents)

        logger.info("Executed %s on %s: %s", kinds, network.network.value, signature)
        return ExecutionSuccess(
            signature=signature,
            agent_wallet=agent_wallet,
            explorer=network.explorer_url(signature),
            network=network.network,
            intents=intents,
            simulation=simulation,
            confirmed=confirmed,
        )

    async def _build_unsigned(self, request: BuildRequest) -> BuildResult:
        stage = ExecutionStage.RECEIVED

        try:
            prompt = self.validator.validate_prompt(request.prompt)
        except ValidationError as e:
            return self._failure(e, stage)

        try:
            payer = validate_solana_address(request.payer, "payer")
        except ValidationError as e:
            return self._failure(e, stage, suggestions=suggestions_for(e))
        stage = ExecutionStage.VALIDATED

        try:
            intents = self._parse_intents(prompt)
        except ParseError as e:
            return self._failure(e, stage, suggestions=tuple(e.suggestions))
        except ValidationError as e:
            return self._failure(e, stage, suggestions=suggestions_for(e))
        stage = ExecutionStage.PARSED

        try:
            network = self.builder.resolve_network(request.network)
            blockhash = await self._latest_blockhash(network)
            tx = self.builder.build(intents, network, Pubkey.from_string(payer), blockhash)
        except BuildError as e:
            return self._failure(e, stage, intents=intents, payer=payer)
        stage = ExecutionStage.BUILT

        simulation = None
        if not request.skip_simulation:
            try:
                simulation = await self.simulator.simulate(tx, network)
            except SimulationError as e:
                return self._failure(e, stage, intents=intents, payer=payer)

        logger.info(
            "Built unsigned %s transaction for %s on %s",
            "+".join(intent.kind.value for intent in intents), payer, network.network.value,
        )
        return BuildSuccess(
            transaction=tx.serialize(),
            payer=payer,
            network=network.network,
            intents=intents,
            recent_blockhash=str(blockhash),
            compute_unit_limit=tx.compute_unit_limit,
            compute_unit_price=tx.compute_unit_price,
            simulation=simulation,
        )

    async def _latest_blockhash(self, network: NetworkConfig):
        try:
            return await self.ledger.get_latest_blockhash(network)
        except RPCError as e:
            raise BlockhashUnavailableError(
                f"Could not fetch a recent blockhash from {network.network.value}: {e.message}",
            ) from e

    def _sign(self, tx: UnsignedTransaction, keypair: Keypair) -> VersionedTransaction:
        return sign_transaction(tx, keypair)

    async def _submit(
        self,
        network: NetworkConfig,
        signed: VersionedTransaction,
        skip_preflight: bool,
    ) -> str:
        try:
            return await self.ledger.send(
                network,
                signed,
                skip_preflight=skip_preflight,
                timeout=self.execution.submit_timeout,
            )
        except RPCTimeoutError as e:
            raise SubmissionTimeoutError(
                "Transaction submission timed out; it may still land on chain",
                signature=str(signed.signatures[0]),
            ) from e
        except (RPCResponseError, RPCConnectionError) as e:
            raise TransactionSendError(
                f"Failed to sign or send transaction: {e.message}",
            ) from e

    async def _await_confirmation(self, network: NetworkConfig, signature: str) -> bool:
        async def poll() -> bool:
            while True:
                try:
                    status = await self.ledger.confirm(network, signature)
                except RPCError as e:
                    logger.warning("Error checking transaction status: %s", e.message)
                    status = None
                if status is not None:
                    return status
                await asyncio.sleep(self.execution.confirm_poll_interval)

        try:
            confirmed = await asyncio.wait_for(poll(), timeout=self.execution.confirm_timeout)
        except asyncio.TimeoutError as e:
            raise SubmissionTimeoutError(
                f"Transaction not confirmed within {self.execution.confirm_timeout:g}s",
                signature=signature,
            ) from e

        if not confirmed:
            raise TransactionRejectedError(
                "Transaction failed on chain",
                signature=signature,
            )
        return True

    def _failure(
        self,
        error: SolForgeError,
        stage: ExecutionStage,
        agent_wallet: Optional[str] = None,
        intents: Sequence[TransactionIntent] = (),
        suggestions: Optional[Tuple[str, ...]] = None,
        payer: Optional[str] = None,
    ) -> ExecutionFailure:
        details = None
        if agent_wallet is not None or payer is not None:
            details = {"agentWallet": agent_wallet} if agent_wallet is not None else {"payer": payer}
            if intents:
                details.update(_intent_details(intents))
            if isinstance(error, SimulationError):
                details["category"] = error.category
                if error.logs:
                    details["logs"] = error.logs[-10:]
            if isinstance(error, ProgramError) and error.code is not None:
                details["programErrorCode"] = error.code
            if isinstance(error, SubmissionError) and error.signature:
                details["signature"] = error.signature
            if suggestions is None:
                suggestions = suggestions_for(error)

        log = logger.warning if error.status_code >= 500 else logger.info
        log("Execution failed at %s: %s", stage.value, error)

        return ExecutionFailure(
            error=error.message,
            status_code=error.status_code,
            stage=stage,
            error_code=error.error_code,
            details=details,
            suggestions=suggestions,
            agent_wallet=agent_wallet,
        )


__all__ = [
    "ExecutionStage",
    "ExecutionRequest",
    "ExecutionSuccess",
    "ExecutionFailure",
    "ExecutionResult",
    "BuildRequest",
    "BuildSuccess",
    "BuildResult",
    "AgentExecutor",
    "suggestions_for",
    "INTERNAL_ERROR_MESSAGE",
    "MULTI_ACTION",
]
