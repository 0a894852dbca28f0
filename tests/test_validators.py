"""
Validator Tests

Address, amount, prompt and memo validation plus intent-level bounds.
"""

from decimal import Decimal

import pytest

from solforge.exceptions import (
    InvalidAddressError,
    InvalidAmountError,
    InvalidMemoError,
    InvalidPrivateKeyError,
    PROMPT_REQUIRED_MESSAGE,
    PROMPT_TOO_LONG_MESSAGE,
    PromptRequiredError,
    PromptTooLongError,
)
from solforge.intents import MemoIntent, TipIntent, TransferIntent
from solforge.validators import (
    IntentValidator,
    LAMPORTS_PER_SOL,
    MAX_LAMPORTS,
    MAX_MEMO_BYTES,
    MAX_SOL,
    MIN_TIP_LAMPORTS,
    sanitize_text,
    sol_to_lamports,
    validate_lamports,
    validate_memo_text,
    validate_prompt,
    validate_secret_key_array,
    validate_sol_amount,
    validate_solana_address,
)

DESTINATION = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


# =============================================================================
# Addresses
# =============================================================================


class TestAddressValidation:

    def test_valid_address(self):
        assert validate_solana_address(f"  {DESTINATION} ") == DESTINATION

    @pytest.mark.parametrize("address", [
        "",
        "short",
        "0OIl" * 10,
        DESTINATION + "extra",
        123,
        None,
    ])
    def test_invalid_address(self, address):
        with pytest.raises(InvalidAddressError):
            validate_solana_address(address)


# =============================================================================
# Amounts
# =============================================================================


class TestAmountValidation:

    def test_sol_to_lamports(self):
        assert sol_to_lamports("1") == LAMPORTS_PER_SOL
        assert sol_to_lamports("0.000000001") == 1
        assert sol_to_lamports(Decimal("2.5")) == 2_500_000_000

    def test_rounds_down_to_lamport(self):
        assert sol_to_lamports("0.1234567899") == 123_456_789

    def test_below_one_lamport_rejected(self):
        with pytest.raises(InvalidAmountError, match="at least one lamport"):
            sol_to_lamports("0.0000000001")

    @pytest.mark.parametrize("amount", ["", "abc", "-1", "0", "NaN", "Infinity", True, None])
    def test_invalid_amounts(self, amount):
        with pytest.raises(InvalidAmountError):
            validate_sol_amount(amount)

    def test_max_amount(self):
        with pytest.raises(InvalidAmountError, match="exceeds maximum"):
            validate_sol_amount("11", max_amount=Decimal("10"))

    def test_lamports_bounds(self):
        assert validate_lamports(5) == 5
        with pytest.raises(InvalidAmountError):
            validate_lamports(0)
        with pytest.raises(InvalidAmountError):
            validate_lamports(1.0)
        with pytest.raises(InvalidAmountError):
            validate_lamports(100, max_lamports=99)

    @pytest.mark.parametrize("amount", ["99999999999999999999", "18446744073.709551616", "1" + "0" * 40])
    def test_amount_beyond_u64_lamports_rejected(self, amount):
        with pytest.raises(InvalidAmountError, match="exceeds maximum"):
            validate_sol_amount(amount)

    def test_largest_representable_amount(self):
        assert sol_to_lamports(str(MAX_SOL)) == MAX_LAMPORTS


# =============================================================================
# Prompts, memos and secrets
# =============================================================================


class TestPromptValidation:

    @pytest.mark.parametrize("prompt", [None, "", "   ", 42, ["send"], {"p": 1}])
    def test_prompt_required(self, prompt):
        with pytest.raises(PromptRequiredError) as exc_info:
            validate_prompt(prompt)
        assert exc_info.value.message == PROMPT_REQUIRED_MESSAGE

    def test_prompt_too_long(self):
        with pytest.raises(PromptTooLongError) as exc_info:
            validate_prompt("a" * 501)
        assert exc_info.value.message == PROMPT_TOO_LONG_MESSAGE

    def test_length_measured_after_trim(self):
        assert validate_prompt("  " + "a" * 500 + "  ") == "a" * 500


class TestMemoValidation:

    def test_valid_memo(self):
        assert validate_memo_text("gm") == "gm"

    def test_memo_byte_limit(self):
        validate_memo_text("a" * MAX_MEMO_BYTES)
        with pytest.raises(InvalidMemoError):
            validate_memo_text("a" * (MAX_MEMO_BYTES + 1))

    def test_multibyte_memo_counts_bytes(self):
        with pytest.raises(InvalidMemoError):
            validate_memo_text("é" * (MAX_MEMO_BYTES // 2 + 1))

    def test_blank_memo(self):
        with pytest.raises(InvalidMemoError):
            validate_memo_text("  ")


class TestSecretKeyArray:

    def test_valid_array(self):
        buffer = validate_secret_key_array(list(range(64)))
        assert bytes(buffer) == bytes(range(64))

    @pytest.mark.parametrize("values", [
        list(range(63)),
        [0] * 65,
        [300] + [0] * 63,
        [False] * 64,
        "0" * 64,
    ])
    def test_invalid_array(self, values):
        with pytest.raises(InvalidPrivateKeyError):
            validate_secret_key_array(values)


def test_sanitize_text_strips_control_characters():
    assert sanitize_text("hi\x00there\n") == "hithere"
    assert sanitize_text("x" * 10, max_length=4) == "xxxx..."


# =============================================================================
# IntentValidator
# =============================================================================


class TestIntentValidator:

    @pytest.fixture
    def validator(self):
        return IntentValidator(max_transfer_sol=Decimal("10"))

    def test_transfer_within_limit(self, validator):
        intent = TransferIntent(destination=DESTINATION, amount_lamports=LAMPORTS_PER_SOL)
        assert validator.validate(intent) is intent

    def test_transfer_over_limit(self, validator):
        intent = TransferIntent(destination=DESTINATION, amount_lamports=11 * LAMPORTS_PER_SOL)
        with pytest.raises(InvalidAmountError):
            validator.validate(intent)

    def test_tip_below_minimum(self, validator):
        with pytest.raises(InvalidAmountError):
            validator.validate(TipIntent(amount_lamports=MIN_TIP_LAMPORTS - 1))

    def test_tip_at_minimum(self, validator):
        intent = TipIntent(amount_lamports=MIN_TIP_LAMPORTS)
        assert validator.validate(intent) is intent

    def test_memo_too_large(self, validator):
        with pytest.raises(InvalidMemoError):
            validator.validate(MemoIntent(text="m" * (MAX_MEMO_BYTES + 1)))
