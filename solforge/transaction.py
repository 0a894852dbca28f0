import base64
import struct
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from .config import ExecutionSettings, SolanaRPCSettings
from .exceptions import (
    InvalidIntentParametersError,
    TransactionSignError,
    TransactionTooLargeError,
)
from .intents import MemoIntent, Priority, TipIntent, TransactionIntent, TransferIntent
from .networks import NetworkConfig, resolve_network

logger = logging.getLogger(__name__)

COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string("ComputeBudget111111111111111111111111111111")
MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")
MAX_TRANSACTION_SIZE = 1232

JITO_TIP_ACCOUNTS = [
    "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
    "HFqU5x63VTqvQss8hp11i4bVmkdzGHb67ETqsnjhJZeK",
    "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
    "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
    "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
    "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
    "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
    "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
]

def create_set_compute_unit_limit_instruction(units: int) -> Instruction:
    data = bytes([0x02]) + struct.pack("<I", units)
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        accounts=[],
        data=data
    )

def create_set_compute_unit_price_instruction(micro_lamports: int) -> Instruction:
    data = bytes([0x03]) + struct.pack("<Q", micro_lamports)
    return Instruction(
        program_id=COMPUTE_BUDGET_PROGRAM_ID,
        accounts=[],
        data=data
    )

def create_memo_instruction(text: str, signer: Pubkey) -> Instruction:
    return Instruction(
        program_id=MEMO_PROGRAM_ID,
        accounts=[AccountMeta(pubkey=signer, is_signer=True, is_writable=False)],
        data=text.encode("utf-8")
    )

def select_tip_account(payer: Pubkey) -> Pubkey:
    # Stable per payer so rebuilding the same intent yields the same accounts.
    index = int.from_bytes(bytes(payer)[:4], "little") % len(JITO_TIP_ACCOUNTS)
    return Pubkey.from_string(JITO_TIP_ACCOUNTS[index])

def create_tip_instruction(payer: Pubkey, lamports: int) -> Instruction:
    return transfer(
        TransferParams(
            from_pubkey=payer,
            to_pubkey=select_tip_account(payer),
            lamports=lamports
        )
    )

def create_transfer_instruction(payer: Pubkey, destination: str, lamports: int) -> Instruction:
    try:
        to_pubkey = Pubkey.from_string(destination)
    except ValueError as e:
        raise InvalidIntentParametersError(
            f"Invalid destination address: {destination}",
            context={"destination": destination},
        ) from e
    if to_pubkey == payer:
        raise InvalidIntentParametersError(
            "Destination is the fee payer itself",
            context={"destination": destination},
        )
    return transfer(
        TransferParams(
            from_pubkey=payer,
            to_pubkey=to_pubkey,
            lamports=lamports
        )
    )


@dataclass(frozen=True)
class UnsignedTransaction:
    network: NetworkConfig
    payer: Pubkey
    instructions: Tuple[Instruction, ...]
    message: MessageV0
    recent_blockhash: Hash
    compute_unit_limit: int
    compute_unit_price: int
    intents: Tuple[TransactionIntent, ...] = ()

    def shape(self) -> Tuple[Any, ...]:
        return (
            self.network.network.value,
            str(self.payer),
            tuple(
                (
                    str(ix.program_id),
                    tuple((str(m.pubkey), m.is_signer, m.is_writable) for m in ix.accounts),
                    bytes(ix.data),
                )
                for ix in self.instructions
            ),
        )

    def for_simulation(self) -> VersionedTransaction:
        required = self.message.header.num_required_signatures
        return VersionedTransaction.populate(self.message, [Signature.default()] * required)

    def serialize(self) -> str:
        """Base64 wire form with empty signature slots, ready for a wallet to sign."""
        return base64.b64encode(bytes(self.for_simulation())).decode()


class TransactionBuilder:

    def __init__(
        self,
        execution: Optional[ExecutionSettings] = None,
        rpc: Optional[SolanaRPCSettings] = None,
    ):
        self.execution = execution or ExecutionSettings()
        self.rpc = rpc or SolanaRPCSettings()

    def resolve_network(self, value: Optional[Any]) -> NetworkConfig:
        return resolve_network(value, self.rpc, self.execution)

    def compute_unit_price(
        self,
        intents: Sequence[TransactionIntent],
        network: NetworkConfig,
    ) -> int:
        if any(intent.priority is Priority.HIGH for intent in intents):
            return self.execution.high_priority_fee
        return network.default_priority_fee

    def _intent_instructions(self, intent: TransactionIntent, payer: Pubkey) -> List[Instruction]:
        if isinstance(intent, TransferIntent):
            return [create_transfer_instruction(payer, intent.destination, intent.amount_lamports)]
        if isinstance(intent, MemoIntent):
            return [create_memo_instruction(intent.text, payer)]
        if isinstance(intent, TipIntent):
            return [create_tip_instruction(payer, intent.amount_lamports)]
        raise InvalidIntentParametersError(f"Unsupported intent type: {type(intent).__name__}")

    def _build_instructions(
        self,
        intents: Sequence[TransactionIntent],
        payer: Pubkey,
        unit_price: int,
    ) -> List[Instruction]:
        instructions = [
            create_set_compute_unit_limit_instruction(self.execution.compute_unit_limit)
        ]
        if unit_price > 0:
            instructions.append(create_set_compute_unit_price_instruction(unit_price))
        for intent in intents:
            instructions.extend(self._intent_instructions(intent, payer))
        return instructions

    def build(
        self,
        intents: Union[TransactionIntent, Sequence[TransactionIntent]],
        network: NetworkConfig,
        payer: Pubkey,
        recent_blockhash: Hash,
    ) -> UnsignedTransaction:
        """
        Compile one or more intents into a single unsigned v0 transaction.

        Instructions follow the intent order after the compute-budget ones.
        The unit price is the high-priority fee when any intent asks for it.
        """
        if not isinstance(intents, (list, tuple)):
            intents = (intents,)
        if not intents:
            raise InvalidIntentParametersError("Nothing to build: no intents given")
        kinds = "+".join(intent.kind.value for intent in intents)

        unit_price = self.compute_unit_price(intents, network)
        instructions = self._build_instructions(intents, payer, unit_price)

        try:
            message = MessageV0.try_compile(
                payer=payer,
                instructions=instructions,
                address_lookup_table_accounts=[],
                recent_blockhash=recent_blockhash
            )
        except Exception as e:
            raise InvalidIntentParametersError(
                f"Failed to compile transaction: {e}",
                context={"intent": kinds},
            ) from e

        unsigned = UnsignedTransaction(
            network=network,
            payer=payer,
            instructions=tuple(instructions),
            message=message,
            recent_blockhash=recent_blockhash,
            compute_unit_limit=self.execution.compute_unit_limit,
            compute_unit_price=unit_price,
            intents=tuple(intents),
        )

        size = len(bytes(unsigned.for_simulation()))
        if size > MAX_TRANSACTION_SIZE:
            raise TransactionTooLargeError(
                f"Transaction too large: {size} bytes (maximum {MAX_TRANSACTION_SIZE})",
                context={"intent": kinds, "bytes": size},
            )

        logger.debug(
            "Built %s transaction for %s with %d instructions (%d bytes)",
            kinds, network.network.value, len(instructions), size,
        )
        return unsigned

def sign_transaction(tx: UnsignedTransaction, keypair: Keypair) -> VersionedTransaction:
    if keypair.pubkey() != tx.payer:
        raise TransactionSignError(
            "Signing keypair does not match the transaction fee payer",
            context={"payer": str(tx.payer)},
        )
    try:
        return VersionedTransaction(tx.message, [keypair])
    except Exception as e:
        raise TransactionSignError(f"Failed to sign transaction: {type(e).__name__}") from e


__all__ = [
    "COMPUTE_BUDGET_PROGRAM_ID",
    "MEMO_PROGRAM_ID",
    "MAX_TRANSACTION_SIZE",
    "JITO_TIP_ACCOUNTS",
    "create_set_compute_unit_limit_instruction",
    "create_set_compute_unit_price_instruction",
    "create_memo_instruction",
    "create_tip_instruction",
    "create_transfer_instruction",
    "select_tip_account",
    "UnsignedTransaction",
    "TransactionBuilder",
    "sign_transaction",
]
