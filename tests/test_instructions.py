from __future__ import annotations

import base64
from types import SimpleNamespace

import pytest
from conftest import JUPITER_PROGRAM, raw_ix, swap_instructions_payload
from solders.pubkey import Pubkey

from swap_engine.errors import InstructionDecodeError, TransactionCompositionError
from swap_engine.execution.instructions import (
    build_instruction_set,
    decode_instruction,
    resolve_lookup_tables,
)


def test_decode_instruction_roundtrips_roles_and_payload():
    user = Pubkey.new_unique()
    other = Pubkey.new_unique()
    ix = decode_instruction(
        raw_ix(JUPITER_PROGRAM, [(str(user), True, True), (str(other), False, False)], b"\xde\xad")
    )
    assert str(ix.program_id) == JUPITER_PROGRAM
    assert ix.data == b"\xde\xad"
    assert [(a.pubkey, a.is_signer, a.is_writable) for a in ix.accounts] == [
        (user, True, True),
        (other, False, False),
    ]


@pytest.mark.parametrize(
    "mutate, field",
    [
        (lambda r: r.update(programId="not-a-key"), "programId"),
        (lambda r: r.pop("programId"), "programId"),
        (lambda r: r.update(accounts="nope"), "accounts"),
        (lambda r: r["accounts"][0].update(pubkey="xyz"), "accounts[0].pubkey"),
        (lambda r: r["accounts"][0].update(isSigner="yes"), "accounts[0].isSigner"),
        (lambda r: r["accounts"][0].pop("isWritable"), "accounts[0].isWritable"),
        (lambda r: r.update(data="%%%not base64%%%"), "data"),
        (lambda r: r.pop("data"), "data"),
    ],
)
def test_decode_instruction_names_the_malformed_field(mutate, field):
    raw = raw_ix(JUPITER_PROGRAM, [(str(Pubkey.new_unique()), True, True)])
    mutate(raw)
    with pytest.raises(InstructionDecodeError) as exc:
        decode_instruction(raw)
    assert exc.value.field == field


def test_build_instruction_set_orders_groups():
    user = str(Pubkey.new_unique())
    ixs = build_instruction_set(swap_instructions_payload(user))
    ordered = ixs.ordered()
    assert len(ordered) == 4
    assert str(ordered[0].program_id) == "ComputeBudget111111111111111111111111111111"
    assert ordered[2] == ixs.swap_instruction
    assert ordered[3] == ixs.cleanup_instruction


def test_build_instruction_set_without_cleanup():
    ixs = build_instruction_set(swap_instructions_payload(str(Pubkey.new_unique()), with_cleanup=False))
    assert ixs.cleanup_instruction is None
    assert len(ixs.ordered()) == 3


def test_build_instruction_set_requires_swap_instruction():
    payload = swap_instructions_payload(str(Pubkey.new_unique()))
    payload["swapInstruction"] = None
    with pytest.raises(InstructionDecodeError) as exc:
        build_instruction_set(payload)
    assert exc.value.field == "swapInstruction"


def test_build_instruction_set_rejects_malformed_setup_group():
    payload = swap_instructions_payload(str(Pubkey.new_unique()))
    payload["setupInstructions"][0]["data"] = base64.b64encode(b"ok").decode()[:-1] + "!"
    with pytest.raises(InstructionDecodeError):
        build_instruction_set(payload)


def test_resolve_lookup_tables_empty_skips_rpc():
    class NoCalls:
        def get_multiple_accounts(self, keys):  # pragma: no cover
            raise AssertionError("should not be called")

    assert resolve_lookup_tables(NoCalls(), []) == []


def test_resolve_lookup_tables_missing_account_fails():
    class Rpc:
        def get_multiple_accounts(self, keys):
            return SimpleNamespace(value=[None for _ in keys])

    with pytest.raises(TransactionCompositionError, match="not found"):
        resolve_lookup_tables(Rpc(), [str(Pubkey.new_unique())])


def test_resolve_lookup_tables_rpc_error_fails():
    class Rpc:
        def get_multiple_accounts(self, keys):
            raise ConnectionError("timeout")

    with pytest.raises(TransactionCompositionError, match="Failed to fetch lookup tables"):
        resolve_lookup_tables(Rpc(), [str(Pubkey.new_unique())])


def test_resolve_lookup_tables_undecodable_data_fails():
    class Rpc:
        def get_multiple_accounts(self, keys):
            return SimpleNamespace(value=[SimpleNamespace(data=b"\x00\x01") for _ in keys])

    with pytest.raises(TransactionCompositionError, match="undecodable"):
        resolve_lookup_tables(Rpc(), [str(Pubkey.new_unique())])
