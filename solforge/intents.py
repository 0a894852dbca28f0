"""
Typed transaction intents produced by the intent parser.

Intents are immutable values. The parser creates them; the transaction
builder consumes them. A prompt that cannot be understood yields a
``ParseFailure`` value instead of an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class IntentKind(str, Enum):
    TRANSFER = "transfer"
    MEMO = "memo"
    TIP = "tip"


def _lamports_to_sol_str(lamports: int) -> str:
    return format(Decimal(lamports).scaleb(-9).normalize(), "f")


@dataclass(frozen=True)
class TransferIntent:
    """Native SOL transfer from the agent wallet."""
    destination: str
    amount_lamports: int
    priority: Priority = Priority.NORMAL

    kind: ClassVar[IntentKind] = IntentKind.TRANSFER
    protocol: ClassVar[str] = "system"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "destination": self.destination,
            "amountLamports": self.amount_lamports,
            "amountSol": _lamports_to_sol_str(self.amount_lamports),
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class MemoIntent:
    """On-chain memo signed by the agent wallet."""
    text: str
    priority: Priority = Priority.NORMAL

    kind: ClassVar[IntentKind] = IntentKind.MEMO
    protocol: ClassVar[str] = "memo"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "text": self.text,
            "priority": self.priority.value,
        }


@dataclass(frozen=True)
class TipIntent:
    """Jito tip paid from the agent wallet to one of the tip accounts."""
    amount_lamports: int
    priority: Priority = Priority.NORMAL

    kind: ClassVar[IntentKind] = IntentKind.TIP
    protocol: ClassVar[str] = "jito"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind.value,
            "amountLamports": self.amount_lamports,
            "amountSol": _lamports_to_sol_str(self.amount_lamports),
            "priority": self.priority.value,
        }


TransactionIntent = Union[TransferIntent, MemoIntent, TipIntent]


@dataclass(frozen=True)
class ParseFailure:
    """Prompt not understood. ``suggestions`` is never empty."""
    reason: str
    suggestions: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.suggestions:
            raise ValueError("ParseFailure requires at least one suggestion")

    def to_dict(self) -> dict[str, Any]:
        return {"reason": self.reason, "suggestions": list(self.suggestions)}


__all__ = [
    "Priority",
    "IntentKind",
    "TransferIntent",
    "MemoIntent",
    "TipIntent",
    "TransactionIntent",
    "ParseFailure",
]
