"""
Exception Hierarchy for the SolForge agent executor.

Every failure the execution pipeline can produce is one of the classes
below. The executor recovers all of them at its boundary and turns them into
a structured ``ExecutionFailure``; none is meant to escape to the HTTP layer.

Each exception includes:
- Unique error code for logging and debugging
- Descriptive, user-facing message
- Optional context dictionary for additional debugging info
- HTTP status the executor reports for it
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional
from datetime import datetime, timezone


# User-facing messages that clients match on.
WALLET_NOT_CONFIGURED_MESSAGE = (
    "Agent wallet not configured. Please set AGENT_WALLET_SECRET_KEY environment variable."
)
PROMPT_REQUIRED_MESSAGE = "Prompt is required and must be a non-empty string"
PROMPT_TOO_LONG_MESSAGE = "Prompt too long. Maximum 500 characters allowed."

SENSITIVE_CONTEXT_KEYS = frozenset({
    "secret", "secret_key", "secretkey", "private_key", "privatekey",
    "keypair", "seed", "mnemonic",
})


# =============================================================================
# BASE EXCEPTIONS
# =============================================================================

@dataclass
class SolForgeError(Exception):
    """
    Base exception for all SolForge errors.

    Attributes:
        message: Human-readable error description, safe to return to clients
        error_code: Unique identifier for the error type (e.g., "SIM_001")
        context: Optional dictionary with debugging information
        is_recoverable: Whether resubmitting the same request may succeed
        status_code: HTTP status reported for this error
        timestamp: When the error occurred
    """
    message: str
    error_code: str = "GENERAL_001"
    context: dict[str, Any] = field(default_factory=dict)
    is_recoverable: bool = False
    status_code: int = 400
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message with code and context."""
        base = f"[{self.error_code}] {self.message}"
        context = sanitize_context(self.context)
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            base += f" | Context: {context_str}"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": sanitize_context(self.context),
            "is_recoverable": self.is_recoverable,
            "status_code": self.status_code,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        return self.format_message()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"status_code={self.status_code})"
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

@dataclass
class ConfigurationError(SolForgeError):
    """Service is misconfigured for the requested feature."""
    error_code: str = "CONFIG_001"
    status_code: int = 503


@dataclass
class AgentWalletNotConfiguredError(ConfigurationError):
    """No usable agent wallet secret is configured."""
    message: str = WALLET_NOT_CONFIGURED_MESSAGE
    error_code: str = "CONFIG_002"


@dataclass
class InvalidPrivateKeyError(ConfigurationError):
    """The configured secret is not a usable 64-byte keypair."""
    error_code: str = "CONFIG_003"


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================

@dataclass
class ValidationError(SolForgeError):
    """Base exception for bad request input."""
    error_code: str = "VAL_000"
    is_recoverable: bool = True


@dataclass
class PromptRequiredError(ValidationError):
    """Prompt missing, not a string, or blank."""
    message: str = PROMPT_REQUIRED_MESSAGE
    error_code: str = "VAL_001"


@dataclass
class PromptTooLongError(ValidationError):
    """Prompt exceeds the maximum length."""
    message: str = PROMPT_TOO_LONG_MESSAGE
    error_code: str = "VAL_002"


@dataclass
class InvalidAddressError(ValidationError):
    """Invalid Solana address format."""
    error_code: str = "VAL_003"


@dataclass
class InvalidAmountError(ValidationError):
    """Invalid amount value."""
    error_code: str = "VAL_004"


@dataclass
class InvalidMemoError(ValidationError):
    """Memo text empty or too large for the memo program."""
    error_code: str = "VAL_005"


# =============================================================================
# PARSE EXCEPTIONS
# =============================================================================

@dataclass
class ParseError(SolForgeError):
    """Prompt did not match any supported intent."""
    error_code: str = "PARSE_001"
    is_recoverable: bool = True
    suggestions: list[str] = field(default_factory=list)


# =============================================================================
# BUILD EXCEPTIONS
# =============================================================================

@dataclass
class BuildError(SolForgeError):
    """Intent cannot become a transaction for the chosen network."""
    error_code: str = "BUILD_000"


@dataclass
class UnsupportedNetworkError(BuildError):
    """Network name is not one of the known clusters."""
    error_code: str = "BUILD_001"
    is_recoverable: bool = True


@dataclass
class InvalidIntentParametersError(BuildError):
    """Intent parameters failed chain-level validation."""
    error_code: str = "BUILD_002"


@dataclass
class BlockhashUnavailableError(BuildError):
    """Could not obtain a recent blockhash for the transaction."""
    error_code: str = "BUILD_003"
    is_recoverable: bool = True


@dataclass
class TransactionTooLargeError(BuildError):
    """Serialized transaction exceeds the packet size limit."""
    error_code: str = "BUILD_004"


# =============================================================================
# SIMULATION EXCEPTIONS
# =============================================================================

@dataclass
class SimulationError(SolForgeError):
    """Base exception for preflight rejections."""
    error_code: str = "SIM_000"
    category: str = "other"
    logs: list[str] = field(default_factory=list)


@dataclass
class InsufficientFundsError(SimulationError):
    """Payer cannot cover the transfer amount, fees or rent."""
    error_code: str = "SIM_001"
    category: str = "insufficient_funds"
    is_recoverable: bool = True


@dataclass
class ProgramError(SimulationError):
    """An instruction failed inside its program."""
    error_code: str = "SIM_002"
    category: str = "program_error"
    code: Optional[int] = None
    instruction_index: Optional[int] = None


@dataclass
class NetworkUnreachableError(SimulationError):
    """RPC node could not be reached to simulate."""
    error_code: str = "SIM_003"
    category: str = "network_unreachable"
    is_recoverable: bool = True


@dataclass
class SimulationTimeoutError(NetworkUnreachableError):
    """Simulation did not finish in time."""
    error_code: str = "SIM_004"


@dataclass
class SimulationFailedError(SimulationError):
    """Simulation failed for a reason outside the known categories."""
    error_code: str = "SIM_005"


# =============================================================================
# SUBMISSION EXCEPTIONS
# =============================================================================

@dataclass
class SubmissionError(SolForgeError):
    """Base exception for signing and submission failures."""
    error_code: str = "SUBMIT_000"
    signature: Optional[str] = None


@dataclass
class TransactionSignError(SubmissionError):
    """Failed to sign the transaction with the agent wallet."""
    error_code: str = "SUBMIT_001"


@dataclass
class TransactionSendError(SubmissionError):
    """RPC node refused or failed to accept the transaction."""
    error_code: str = "SUBMIT_002"
    is_recoverable: bool = True


@dataclass
class SubmissionTimeoutError(SubmissionError):
    """Submission or confirmation did not finish in time."""
    error_code: str = "SUBMIT_003"
    is_recoverable: bool = True


@dataclass
class TransactionRejectedError(SubmissionError):
    """Transaction landed but failed on chain."""
    error_code: str = "SUBMIT_004"


# =============================================================================
# RPC EXCEPTIONS
# =============================================================================

@dataclass
class RPCError(SolForgeError):
    """Base exception for RPC collaborator failures."""
    error_code: str = "RPC_000"
    rpc_endpoint: Optional[str] = None
    is_recoverable: bool = True


@dataclass
class RPCConnectionError(RPCError):
    """Failed to reach the RPC endpoint."""
    error_code: str = "RPC_001"


@dataclass
class RPCTimeoutError(RPCError):
    """RPC call exceeded its timeout."""
    error_code: str = "RPC_002"
    timeout_seconds: Optional[float] = None


@dataclass
class RPCResponseError(RPCError):
    """RPC endpoint answered with an error."""
    error_code: str = "RPC_003"
    rpc_error_code: Optional[int] = None
    logs: list[str] = field(default_factory=list)


# =============================================================================
# HELPERS
# =============================================================================

def sanitize_context(context: dict[str, Any]) -> dict[str, Any]:
    """Drop values stored under secret-looking keys."""
    return {
        k: ("[REDACTED]" if k.lower().replace("-", "_") in SENSITIVE_CONTEXT_KEYS else v)
        for k, v in context.items()
    }


__all__ = [
    "WALLET_NOT_CONFIGURED_MESSAGE",
    "PROMPT_REQUIRED_MESSAGE",
    "PROMPT_TOO_LONG_MESSAGE",
    "SolForgeError",
    "ConfigurationError",
    "AgentWalletNotConfiguredError",
    "InvalidPrivateKeyError",
    "ValidationError",
    "PromptRequiredError",
    "PromptTooLongError",
    "InvalidAddressError",
    "InvalidAmountError",
    "InvalidMemoError",
    "ParseError",
    "BuildError",
    "UnsupportedNetworkError",
    "InvalidIntentParametersError",
    "BlockhashUnavailableError",
    "TransactionTooLargeError",
    "SimulationError",
    "InsufficientFundsError",
    "ProgramError",
    "NetworkUnreachableError",
    "SimulationTimeoutError",
    "SimulationFailedError",
    "SubmissionError",
    "TransactionSignError",
    "TransactionSendError",
    "SubmissionTimeoutError",
    "TransactionRejectedError",
    "RPCError",
    "RPCConnectionError",
    "RPCTimeoutError",
    "RPCResponseError",
    "sanitize_context",
]
