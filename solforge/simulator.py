"""
Transaction simulation and failure classification.

The simulator dry-runs a built transaction through the ledger client and
turns raw node failures into typed ``SimulationError`` categories:
insufficient funds, a program error with its custom code, an unreachable
network, or anything else.

Simulation runs for every execution unless the caller sets
``skipSimulation``. Skipping is a trust boundary: the caller takes on the
risk that the transaction fails on chain and still pays fees, and submission
then also skips the node's preflight check.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from .exceptions import (
    InsufficientFundsError,
    NetworkUnreachableError,
    ProgramError,
    RPCConnectionError,
    RPCResponseError,
    RPCTimeoutError,
    SimulationError,
    SimulationFailedError,
    SimulationTimeoutError,
)
from .networks import NetworkConfig
from .rpc import LedgerClient
from .transaction import UnsignedTransaction

logger = logging.getLogger(__name__)

INSUFFICIENT_FUNDS_ERRORS = (
    "InsufficientFundsForFee",
    "InsufficientFundsForRent",
    "AccountNotFound",
)
INSUFFICIENT_FUNDS_LOG_MARKERS = (
    "insufficient lamports",
    "insufficient funds",
)

_CUSTOM_CODE_RE = re.compile(r"Custom\W*(\d+)")
_INSTRUCTION_INDEX_RE = re.compile(r"InstructionError\W+(\d+)")


@dataclass
class SimulationReport:
    units_consumed: Optional[int] = None
    logs: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"unitsConsumed": self.units_consumed}


def parse_solana_error(error_data: Any) -> Tuple[str, Optional[int], Optional[int]]:
    """
    Extract a readable message, custom program code and instruction index.

    Accepts the JSON form returned by the RPC (``{"InstructionError": [0,
    {"Custom": 1}]}``), solders error objects and plain strings.
    """
    if isinstance(error_data, dict):
        if "InstructionError" in error_data:
            idx, inner_err = error_data["InstructionError"]
            if isinstance(inner_err, dict):
                if "Custom" in inner_err:
                    code = int(inner_err["Custom"])
                    return f"Instruction {idx} failed with custom error {code}", code, idx
                error_type = next(iter(inner_err), "Unknown")
                return f"Instruction {idx} failed: {error_type}", None, idx
            return f"Instruction {idx} failed: {inner_err}", None, idx
        return str(next(iter(error_data), error_data)), None, None

    if isinstance(error_data, str):
        text = error_data
    else:
        inner = getattr(error_data, "err", None)
        index = getattr(error_data, "index", None)
        code = getattr(inner, "code", None)
        if isinstance(index, int) and isinstance(code, int):
            return f"Instruction {index} failed with custom error {code}", code, index
        text = str(error_data)

    code_match = _CUSTOM_CODE_RE.search(text)
    index_match = _INSTRUCTION_INDEX_RE.search(text)
    code = int(code_match.group(1)) if code_match else None
    index = int(index_match.group(1)) if index_match else None
    if code is not None:
        where = f"Instruction {index}" if index is not None else "Instruction"
        return f"{where} failed with custom error {code}", code, index
    return text, None, index


def _is_insufficient_funds(err: Any, logs: List[str]) -> bool:
    text = str(err)
    if isinstance(err, dict):
        text = " ".join(str(k) for k in err) + " " + text
    if any(name in text for name in INSUFFICIENT_FUNDS_ERRORS):
        return True
    lowered = [line.lower() for line in logs]
    return any(marker in line for line in lowered for marker in INSUFFICIENT_FUNDS_LOG_MARKERS)


def classify_simulation_error(err: Any, logs: Optional[List[str]] = None) -> SimulationError:
    """Map a raw simulation failure to its typed category."""
    logs = list(logs or [])

    if _is_insufficient_funds(err, logs):
        return InsufficientFundsError(
            "Insufficient funds in the fee payer wallet for this transaction",
            logs=logs,
        )

    message, code, index = parse_solana_error(err)
    if code is not None:
        return ProgramError(
            f"Program error: custom program error: 0x{code:x} ({message})",
            code=code,
            instruction_index=index,
            logs=logs,
        )

    if "BlockhashNotFound" in message:
        return SimulationFailedError(
            "Blockhash not found, the transaction expired",
            logs=logs,
            is_recoverable=True,
        )

    return SimulationFailedError(f"Transaction simulation failed: {message}", logs=logs)


class Simulator:
    """Dry-runs transactions before they are signed and submitted."""

    def __init__(self, ledger: LedgerClient, timeout: Optional[float] = None):
        self.ledger = ledger
        self.timeout = timeout

    async def simulate(
        self,
        tx: UnsignedTransaction,
        network: Optional[NetworkConfig] = None,
    ) -> SimulationReport:
        network = network or tx.network
        try:
            raw = await self.ledger.simulate(network, tx.for_simulation(), timeout=self.timeout)
        except RPCTimeoutError as e:
            raise SimulationTimeoutError(
                f"Simulation timed out on {network.network.value}",
                context={"timeout": e.timeout_seconds},
            ) from e
        except RPCConnectionError as e:
            raise NetworkUnreachableError(
                f"Network {network.network.value} is unreachable: {e.message}",
            ) from e
        except RPCResponseError as e:
            raise SimulationFailedError(
                f"Transaction simulation failed: {e.message}",
                logs=e.logs,
            ) from e

        if raw.err is not None:
            error = classify_simulation_error(raw.err, raw.logs)
            logger.info(
                "Simulation rejected on %s: %s (%s)",
                network.network.value, error.category, error.message,
            )
            raise error

        logger.debug("Simulation passed, %s compute units", raw.units_consumed)
        return SimulationReport(units_consumed=raw.units_consumed, logs=raw.logs)


__all__ = [
    "SimulationReport",
    "Simulator",
    "classify_simulation_error",
    "parse_solana_error",
]
