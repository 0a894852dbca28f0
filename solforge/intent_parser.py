"""
Natural-language prompt parser.

The grammar is an ordered table of ``IntentRule`` entries. Each rule owns a
compiled, case-insensitive pattern that must match the whole prompt and a
constructor that turns the match into a typed intent. Rules are tried in
table order and the first full match wins, so the same prompt always yields
the same intent.

Memo rules see the prompt exactly as given so the memo text is preserved.
Every other rule sees a normalized prompt: emoji removed, whitespace
collapsed, and a trailing priority modifier ("with priority", "with high
priority", "urgently") stripped off and turned into ``Priority.HIGH``.

A prompt may chain several actions ("send 0.1 SOL to X and tip 0.001 SOL").
``split_prompt`` cuts it before each action verb that follows a connective
("and", "then", "also", "+" or a comma). A memo segment keeps everything
after its prefix, so memo text is never split.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Sequence, Tuple, Union

from .exceptions import ValidationError
from .intents import (
    MemoIntent,
    ParseFailure,
    Priority,
    TipIntent,
    TransactionIntent,
    TransferIntent,
)
from .validators import (
    sanitize_text,
    sol_to_lamports,
    validate_lamports,
    validate_solana_address,
)

logger = logging.getLogger(__name__)

EXAMPLE_PROMPTS: Tuple[str, ...] = (
    'Write memo: "Hello Solana!"',
    "send 0.1 SOL to 7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU",
    "transfer 0.5 SOL to 7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU with high priority",
    "tip 0.0001 SOL",
    "send 0.1 SOL to 7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU and write memo: thanks",
)

MAX_INTENTS = 5

AMOUNT = r"(?P<amount>\d+(?:\.\d+)?|\.\d+)"
ADDRESS = r"(?P<address>[1-9A-HJ-NP-Za-km-z]{32,44})"
MEMO_PREFIX = r"(?:write\s+(?:on-?chain\s+)?memo|memo)(?:\s*:\s*|\s+)"
_MEMO_START_RE = re.compile(MEMO_PREFIX, re.IGNORECASE)
_SEPARATOR_RE = re.compile(
    r"(?:\s*,\s*(?:(?:and|then|also)\s+)?|\s+(?:and\s+then|and|then|also|\+)\s+)"
    r"(?=(?:send|transfer|tip|jito|write|memo)\b)",
    re.IGNORECASE,
)

_EMOJI_RE = re.compile(
    "["
    "\U0001F300-\U0001FAFF"
    "\U00002600-\U000027BF"
    "\U0001F000-\U0001F2FF"
    "\uFE0F\u200D"
    "]+"
)
_PRIORITY_RE = re.compile(
    r"(?P<body>.+?)\s+(?:with\s+(?:high\s+)?priority|urgently)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class IntentRule:
    name: str
    pattern: re.Pattern
    build: Callable[[re.Match, Priority], TransactionIntent]
    raw: bool = False


def _rule(name: str, pattern: str, build, raw: bool = False) -> IntentRule:
    return IntentRule(name, re.compile(pattern, re.IGNORECASE | re.DOTALL), build, raw)


def _build_memo(match: re.Match, priority: Priority) -> MemoIntent:
    return MemoIntent(text=match.group("text"), priority=priority)


def _build_transfer(match: re.Match, priority: Priority) -> TransferIntent:
    destination = validate_solana_address(match.group("address"), "destination")
    lamports = sol_to_lamports(match.group("amount"))
    return TransferIntent(destination=destination, amount_lamports=lamports, priority=priority)


def _build_tip(match: re.Match, priority: Priority) -> TipIntent:
    amount = match.group("amount")
    unit = (match.group("unit") or "sol").lower()
    if unit.startswith("lamport"):
        try:
            value = Decimal(amount)
        except InvalidOperation:
            value = Decimal("NaN")
        if not value.is_finite() or value != value.to_integral_value():
            raise ValidationError("Lamport amounts must be whole numbers")
        lamports = validate_lamports(int(value), "tip")
    else:
        lamports = sol_to_lamports(amount, "tip")
    return TipIntent(amount_lamports=lamports, priority=priority)


DEFAULT_RULES: Tuple[IntentRule, ...] = (
    _rule(
        "memo_quoted",
        MEMO_PREFIX + r"(?P<q>[\"'])(?P<text>(?:(?!(?P=q)).)+)(?P=q)",
        _build_memo,
        raw=True,
    ),
    _rule("memo", MEMO_PREFIX + r"(?P<text>.+)", _build_memo, raw=True),
    _rule(
        "tip",
        r"(?:jito\s+)?tip\s+" + AMOUNT + r"\s*(?P<unit>sol|lamports?)?(?:\s+to\s+jito)?",
        _build_tip,
    ),
    _rule("transfer", r"(?:send|transfer)\s+" + AMOUNT + r"\s*sol\s+to\s+" + ADDRESS, _build_transfer),
)


def normalize_prompt(prompt: str) -> Tuple[str, Priority]:
    text = _EMOJI_RE.sub("", prompt)
    text = " ".join(text.split()).rstrip(".!")
    match = _PRIORITY_RE.fullmatch(text)
    if match:
        return match.group("body").strip(), Priority.HIGH
    return text, Priority.NORMAL


def split_prompt(prompt: str) -> Tuple[str, ...]:
    segments = []
    rest = prompt.strip()
    while rest:
        match = None if _MEMO_START_RE.match(rest) else _SEPARATOR_RE.search(rest)
        if match is None:
            segments.append(rest)
            break
        segments.append(rest[:match.start()].strip())
        rest = rest[match.end():].strip()
    return tuple(segment for segment in segments if segment)


class IntentParser:
    """Turns a trimmed prompt into a ``TransactionIntent`` or ``ParseFailure``."""

    def __init__(
        self,
        rules: Sequence[IntentRule] = DEFAULT_RULES,
        examples: Sequence[str] = EXAMPLE_PROMPTS,
    ):
        if not examples:
            raise ValueError("IntentParser needs at least one example prompt")
        self.rules = tuple(rules)
        self._examples = tuple(examples)

    def examples(self) -> Tuple[str, ...]:
        return self._examples

    def supported_actions(self) -> Tuple[str, ...]:
        seen = []
        for rule in self.rules:
            action = rule.name.split("_", 1)[0]
            if action not in seen:
                seen.append(action)
        return tuple(seen)

    def parse(self, prompt: str) -> Union[TransactionIntent, ParseFailure]:
        normalized, priority = normalize_prompt(prompt)

        for rule in self.rules:
            text = prompt if rule.raw else normalized
            match = rule.pattern.fullmatch(text)
            if match is None:
                continue

            try:
                intent = rule.build(match, Priority.NORMAL if rule.raw else priority)
            except ValidationError as e:
                logger.info("Prompt matched %s but was invalid: %s", rule.name, e.message)
                return ParseFailure(reason=e.message, suggestions=self._examples)

            logger.debug("Prompt matched rule %s", rule.name)
            return intent

        return ParseFailure(
            reason=f'Could not understand prompt: "{sanitize_text(prompt, 80)}"',
            suggestions=self._examples,
        )

    def parse_multiple(self, prompt: str) -> Union[Tuple[TransactionIntent, ...], ParseFailure]:
        """
        Parse a prompt that may chain several actions.

        Every step must be understood; the first step that is not turns the
        whole prompt into a ``ParseFailure`` naming that step.
        """
        segments = split_prompt(prompt)
        if len(segments) <= 1:
            parsed = self.parse(prompt)
            return parsed if isinstance(parsed, ParseFailure) else (parsed,)

        if len(segments) > MAX_INTENTS:
            return ParseFailure(
                reason=f"Too many actions in one prompt: {len(segments)} (maximum {MAX_INTENTS})",
                suggestions=self._examples,
            )

        intents = []
        for index, segment in enumerate(segments, start=1):
            parsed = self.parse(segment)
            if isinstance(parsed, ParseFailure):
                return ParseFailure(
                    reason=f"Step {index} of {len(segments)}: {parsed.reason}",
                    suggestions=parsed.suggestions,
                )
            intents.append(parsed)

        logger.debug("Prompt split into %d intents", len(intents))
        return tuple(intents)


__all__ = [
    "EXAMPLE_PROMPTS",
    "IntentRule",
    "DEFAULT_RULES",
    "MAX_INTENTS",
    "normalize_prompt",
    "split_prompt",
    "IntentParser",
]
