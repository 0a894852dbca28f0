import base58
from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Any, Optional

from solders.pubkey import Pubkey

from .exceptions import (
    InvalidAddressError,
    InvalidAmountError,
    InvalidMemoError,
    InvalidPrivateKeyError,
    PromptRequiredError,
    PromptTooLongError,
)
from .intents import MemoIntent, TipIntent, TransactionIntent, TransferIntent

SOLANA_ADDRESS_LENGTH = 32
SECRET_KEY_LENGTH = 64

LAMPORTS_PER_SOL = 1_000_000_000
MAX_LAMPORTS = 2**64 - 1
LAMPORT_QUANTUM = Decimal("0.000000001")
MAX_SOL = Decimal(MAX_LAMPORTS) / LAMPORTS_PER_SOL

MAX_PROMPT_LENGTH = 500
MAX_MEMO_BYTES = 566
MIN_TIP_LAMPORTS = 1_000
MAX_TIP_LAMPORTS = 10 * LAMPORTS_PER_SOL


def validate_solana_address(address: Any, field_name: str = "address") -> str:
    if not isinstance(address, str):
        raise InvalidAddressError(
            f"Address must be a string, got {type(address).__name__}",
            context={"field": field_name},
        )

    address = address.strip()

    if not address:
        raise InvalidAddressError("Address cannot be empty", context={"field": field_name})

    if len(address) < 32 or len(address) > 44:
        raise InvalidAddressError(
            f"Invalid address length: {len(address)} characters",
            context={"field": field_name, "address": address},
        )

    try:
        decoded = base58.b58decode(address)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid base58 encoding: {e}",
            context={"field": field_name, "address": address},
        ) from e

    if len(decoded) != SOLANA_ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"Decoded address has wrong length: {len(decoded)} bytes (expected {SOLANA_ADDRESS_LENGTH})",
            context={"field": field_name, "address": address},
        )

    try:
        Pubkey.from_string(address)
    except ValueError as e:
        raise InvalidAddressError(
            f"Invalid public key: {e}",
            context={"field": field_name, "address": address},
        ) from e

    return address


def validate_sol_amount(
    amount: Any,
    field_name: str = "amount",
    max_amount: Optional[Decimal] = None,
) -> Decimal:
    try:
        if isinstance(amount, Decimal):
            decimal_amount = amount
        elif isinstance(amount, str):
            cleaned = amount.strip().replace(",", "")
            if not cleaned:
                raise InvalidAmountError("Amount cannot be empty", context={"field": field_name})
            decimal_amount = Decimal(cleaned)
        elif isinstance(amount, (int, float)) and not isinstance(amount, bool):
            decimal_amount = Decimal(str(amount))
        else:
            raise InvalidAmountError(
                f"Amount must be a number, got {type(amount).__name__}",
                context={"field": field_name},
            )
    except InvalidOperation as e:
        raise InvalidAmountError(
            f"Invalid number format: {amount!r}", context={"field": field_name}
        ) from e

    if decimal_amount.is_nan():
        raise InvalidAmountError("Amount cannot be NaN", context={"field": field_name})

    if decimal_amount.is_infinite():
        raise InvalidAmountError("Amount cannot be infinite", context={"field": field_name})

    if decimal_amount < 0:
        raise InvalidAmountError("Amount cannot be negative", context={"field": field_name})

    if decimal_amount == 0:
        raise InvalidAmountError("Amount must be greater than zero", context={"field": field_name})

    if max_amount is not None and decimal_amount > max_amount:
        raise InvalidAmountError(
            f"Amount {decimal_amount} SOL exceeds maximum {max_amount} SOL",
            context={"field": field_name, "max_value": str(max_amount)},
        )

    if decimal_amount > MAX_SOL:
        raise InvalidAmountError(
            f"Amount exceeds maximum {MAX_SOL} SOL",
            context={"field": field_name, "max_value": str(MAX_SOL)},
        )

    return decimal_amount.quantize(LAMPORT_QUANTUM, rounding=ROUND_DOWN)


def sol_to_lamports(amount: Any, field_name: str = "amount") -> int:
    sol = validate_sol_amount(amount, field_name)
    lamports = int(sol * LAMPORTS_PER_SOL)
    if lamports == 0:
        raise InvalidAmountError(
            "Amount must be at least one lamport (0.000000001 SOL)",
            context={"field": field_name},
        )
    return validate_lamports(lamports, field_name)


def validate_lamports(
    lamports: Any,
    field_name: str = "lamports",
    min_lamports: int = 1,
    max_lamports: int = MAX_LAMPORTS,
) -> int:
    if isinstance(lamports, bool) or not isinstance(lamports, int):
        raise InvalidAmountError(
            f"Lamports must be an integer, got {type(lamports).__name__}",
            context={"field": field_name},
        )

    if lamports < min_lamports:
        raise InvalidAmountError(
            f"Amount {lamports} lamports is below minimum {min_lamports} lamports",
            context={"field": field_name, "min_value": min_lamports},
        )

    if lamports > max_lamports:
        raise InvalidAmountError(
            f"Amount {lamports} lamports exceeds maximum {max_lamports} lamports",
            context={"field": field_name, "max_value": max_lamports},
        )

    return lamports


def validate_prompt(prompt: Any) -> str:
    if not isinstance(prompt, str):
        raise PromptRequiredError()

    prompt = prompt.strip()
    if not prompt:
        raise PromptRequiredError()

    if len(prompt) > MAX_PROMPT_LENGTH:
        raise PromptTooLongError(context={"length": len(prompt)})

    return prompt


def validate_memo_text(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise InvalidMemoError("Memo text cannot be empty")

    size = len(text.encode("utf-8"))
    if size > MAX_MEMO_BYTES:
        raise InvalidMemoError(
            f"Memo too long: {size} bytes (maximum {MAX_MEMO_BYTES})",
            context={"bytes": size},
        )
    return text


def validate_secret_key_array(values: Any) -> bytearray:
    """
    Check that ``values`` is a list of exactly 64 integers in [0, 255].

    Integral floats are accepted, booleans are not. The returned buffer is
    mutable so callers can zero it once the keypair is built.
    """
    if not isinstance(values, list) or len(values) != SECRET_KEY_LENGTH:
        raise InvalidPrivateKeyError("Secret key must be an array of 64 numbers")

    buffer = bytearray(SECRET_KEY_LENGTH)
    for index, value in enumerate(values):
        if isinstance(value, bool):
            raise InvalidPrivateKeyError("Secret key must be an array of 64 numbers")
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if not isinstance(value, int) or not 0 <= value <= 255:
            raise InvalidPrivateKeyError("Secret key must be an array of 64 numbers")
        buffer[index] = value
    return buffer


def sanitize_text(text: str, max_length: int = 200) -> str:
    cleaned = "".join(ch for ch in text if ch.isprintable())
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + "..."
    return cleaned


class IntentValidator:
    """
    Intent-level checks that do not depend on chain state.

    ``validate_prompt`` guards the request text before parsing and
    ``validate`` enforces amount, address and memo bounds on a parsed intent.
    Both raise ``ValidationError`` subclasses.
    """

    def __init__(self, max_transfer_sol: Decimal = Decimal("10")):
        self.max_transfer_lamports = int(Decimal(str(max_transfer_sol)) * LAMPORTS_PER_SOL)

    def validate_prompt(self, prompt: Any) -> str:
        return validate_prompt(prompt)

    def validate(self, intent: TransactionIntent) -> TransactionIntent:
        if isinstance(intent, TransferIntent):
            validate_solana_address(intent.destination, "destination")
            validate_lamports(
                intent.amount_lamports,
                "amount",
                max_lamports=self.max_transfer_lamports,
            )
        elif isinstance(intent, TipIntent):
            validate_lamports(
                intent.amount_lamports,
                "tip",
                min_lamports=MIN_TIP_LAMPORTS,
                max_lamports=MAX_TIP_LAMPORTS,
            )
        elif isinstance(intent, MemoIntent):
            validate_memo_text(intent.text)
        else:
            raise TypeError(f"Unknown intent type: {type(intent).__name__}")
        return intent


__all__ = [
    "SOLANA_ADDRESS_LENGTH",
    "SECRET_KEY_LENGTH",
    "LAMPORTS_PER_SOL",
    "MAX_LAMPORTS",
    "MAX_SOL",
    "MAX_PROMPT_LENGTH",
    "MAX_MEMO_BYTES",
    "MIN_TIP_LAMPORTS",
    "MAX_TIP_LAMPORTS",
    "validate_solana_address",
    "validate_sol_amount",
    "sol_to_lamports",
    "validate_lamports",
    "validate_prompt",
    "validate_memo_text",
    "validate_secret_key_array",
    "sanitize_text",
    "IntentValidator",
]
