from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any

from loguru import logger
from solana.rpc.api import Client
from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from swap_engine.errors import InstructionDecodeError, TransactionCompositionError


@dataclass
class InstructionSet:
    swap_instruction: Instruction
    compute_budget_instructions: list[Instruction] = field(default_factory=list)
    setup_instructions: list[Instruction] = field(default_factory=list)
    cleanup_instruction: Instruction | None = None
    address_lookup_table_addresses: list[str] = field(default_factory=list)

    def ordered(self) -> list[Instruction]:
        """Compute budget first, then setup, the swap itself and cleanup."""
        out = [*self.compute_budget_instructions, *self.setup_instructions, self.swap_instruction]
        if self.cleanup_instruction is not None:
            out.append(self.cleanup_instruction)
        return out


def _decode_pubkey(value: Any, field_name: str) -> Pubkey:
    if not isinstance(value, str) or not value:
        raise InstructionDecodeError(field_name, f"expected base58 address, got {value!r}")
    try:
        return Pubkey.from_string(value)
    except Exception as e:
        raise InstructionDecodeError(field_name, f"invalid address {value!r}: {e}") from e


def _decode_account(raw: Any, idx: int) -> AccountMeta:
    where = f"accounts[{idx}]"
    if not isinstance(raw, dict):
        raise InstructionDecodeError(where, "expected an object")
    pubkey = _decode_pubkey(raw.get("pubkey"), f"{where}.pubkey")
    flags = []
    for name in ("isSigner", "isWritable"):
        v = raw.get(name)
        if not isinstance(v, bool):
            raise InstructionDecodeError(f"{where}.{name}", f"expected boolean, got {v!r}")
        flags.append(v)
    return AccountMeta(pubkey=pubkey, is_signer=flags[0], is_writable=flags[1])


def decode_instruction(raw: Any) -> Instruction:
    """Decode one Jupiter-encoded instruction into a native instruction."""
    if not isinstance(raw, dict):
        raise InstructionDecodeError("instruction", "expected an object")
    program_id = _decode_pubkey(raw.get("programId"), "programId")

    accounts = raw.get("accounts")
    if not isinstance(accounts, list):
        raise InstructionDecodeError("accounts", f"expected a list, got {accounts!r}")
    metas = [_decode_account(a, i) for i, a in enumerate(accounts)]

    data = raw.get("data")
    if not isinstance(data, str):
        raise InstructionDecodeError("data", f"expected base64 string, got {data!r}")
    try:
        payload = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InstructionDecodeError("data", f"undecodable payload: {e}") from e

    return Instruction(program_id=program_id, data=payload, accounts=metas)


def build_instruction_set(payload: dict) -> InstructionSet:
    if not isinstance(payload, dict):
        raise InstructionDecodeError("response", "expected an object")
    swap_raw = payload.get("swapInstruction")
    if not swap_raw:
        raise InstructionDecodeError("swapInstruction", "missing swap instruction")

    def decode_group(key: str) -> list[Instruction]:
        group = payload.get(key) or []
        if not isinstance(group, list):
            raise InstructionDecodeError(key, "expected a list")
        return [decode_instruction(ix) for ix in group]

    cleanup_raw = payload.get("cleanupInstruction")
    tables = payload.get("addressLookupTableAddresses") or []
    if not isinstance(tables, list) or not all(isinstance(t, str) for t in tables):
        raise InstructionDecodeError("addressLookupTableAddresses", "expected a list of addresses")

    return InstructionSet(
        compute_budget_instructions=decode_group("computeBudgetInstructions"),
        setup_instructions=decode_group("setupInstructions"),
        swap_instruction=decode_instruction(swap_raw),
        cleanup_instruction=decode_instruction(cleanup_raw) if cleanup_raw else None,
        address_lookup_table_addresses=list(tables),
    )


def resolve_lookup_tables(client: Client, addresses: list[str]) -> list[AddressLookupTableAccount]:
    """Fetch the live state of every referenced lookup table.

    Tables can be extended or deactivated between requests, so nothing is cached.
    """
    if not addresses:
        return []
    try:
        keys = [Pubkey.from_string(a) for a in addresses]
        resp = client.get_multiple_accounts(keys)
    except Exception as e:
        raise TransactionCompositionError(f"Failed to fetch lookup tables: {e}") from e

    infos = list(resp.value or [])
    if len(infos) != len(keys):
        raise TransactionCompositionError(
            f"Expected {len(keys)} lookup tables, RPC returned {len(infos)}"
        )
    out: list[AddressLookupTableAccount] = []
    for key, info in zip(keys, infos):
        if info is None:
            raise TransactionCompositionError(f"Lookup table {key} not found")
        try:
            table = AddressLookupTable.deserialize(bytes(info.data))
        except Exception as e:
            raise TransactionCompositionError(f"Lookup table {key} is undecodable: {e}") from e
        out.append(AddressLookupTableAccount(key=key, addresses=list(table.addresses)))
    logger.debug("Resolved {} lookup tables", len(out))
    return out
