from __future__ import annotations

import random
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

from loguru import logger
from solana.rpc.api import Client
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from swap_engine.errors import TransactionCompositionError
from swap_engine.execution.instructions import InstructionSet, resolve_lookup_tables
from swap_engine.relay.jito import JitoClient


def fee_amount(parsed_amount: int, fee_percentage: float) -> int:
    """Protocol fee in the swap's native unit, truncated toward zero."""
    fee = Decimal(parsed_amount) * Decimal(str(fee_percentage))
    return int(fee.to_integral_value(rounding=ROUND_DOWN))


@dataclass
class ComposedTransaction:
    transaction: VersionedTransaction
    blockhash: Hash
    last_valid_block_height: int
    fee_lamports: int
    tip_account: Pubkey | None = None

    def serialize(self) -> bytes:
        return bytes(self.transaction)

    @property
    def signature(self) -> str:
        return str(self.transaction.signatures[0])


@dataclass
class TransactionComposer:
    client: Client
    keypair: Keypair
    relay: JitoClient | None = None
    rng: random.Random | None = None

    def pick_tip_account(self) -> Pubkey:
        if self.relay is None:
            raise TransactionCompositionError("Tip requested but no relay is configured")
        try:
            accounts = self.relay.get_tip_accounts()
            selected = (self.rng or random).choice(accounts)
            return Pubkey.from_string(selected)
        except Exception as e:
            raise TransactionCompositionError(f"Failed to get tip account: {e}") from e

    def compose(
        self,
        instruction_set: InstructionSet,
        parsed_amount: int,
        fee_percentage: float,
        fee_recipient: Pubkey,
        tip_enabled: bool,
        tip_amount: int,
    ) -> ComposedTransaction:
        payer = self.keypair.pubkey()
        instructions = instruction_set.ordered()

        fee = fee_amount(parsed_amount, fee_percentage)
        instructions.append(
            transfer(TransferParams(from_pubkey=payer, to_pubkey=fee_recipient, lamports=fee))
        )

        tip_account = None
        if tip_enabled:
            tip_account = self.pick_tip_account()
            instructions.append(
                transfer(
                    TransferParams(from_pubkey=payer, to_pubkey=tip_account, lamports=tip_amount)
                )
            )

        tables = resolve_lookup_tables(self.client, instruction_set.address_lookup_table_addresses)

        try:
            latest = self.client.get_latest_blockhash().value
            message = MessageV0.try_compile(
                payer=payer,
                instructions=instructions,
                address_lookup_table_accounts=tables,
                recent_blockhash=latest.blockhash,
            )
            tx = VersionedTransaction(message, [self.keypair])
        except Exception as e:
            raise TransactionCompositionError(f"Failed to create combined transaction: {e}") from e

        logger.info(
            "Composed transaction: {} instructions, fee={} tip={} blockhash={}",
            len(instructions),
            fee,
            tip_amount if tip_enabled else 0,
            latest.blockhash,
        )
        return ComposedTransaction(
            transaction=tx,
            blockhash=latest.blockhash,
            last_valid_block_height=latest.last_valid_block_height,
            fee_lamports=fee,
            tip_account=tip_account,
        )
