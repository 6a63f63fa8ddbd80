from __future__ import annotations

import base64
import random
from types import SimpleNamespace

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import VersionedTransaction

COMPUTE_BUDGET_PROGRAM = "ComputeBudget111111111111111111111111111111"
JUPITER_PROGRAM = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def raw_ix(program: str, accounts: list[tuple[str, bool, bool]], data: bytes = b"\x01") -> dict:
    return {
        "programId": program,
        "accounts": [
            {"pubkey": pk, "isSigner": signer, "isWritable": writable}
            for pk, signer, writable in accounts
        ],
        "data": base64.b64encode(data).decode(),
    }


def swap_instructions_payload(user: str, with_cleanup: bool = True, tables=None) -> dict:
    payload = {
        "computeBudgetInstructions": [
            raw_ix(COMPUTE_BUDGET_PROGRAM, [], b"\x02\x40\x0d\x03\x00"),
        ],
        "setupInstructions": [
            raw_ix(str(Pubkey.new_unique()), [(user, True, True)], b"\x03"),
        ],
        "swapInstruction": raw_ix(
            JUPITER_PROGRAM,
            [(user, True, True), (str(Pubkey.new_unique()), False, True)],
            b"\xe5\x17\xcb\x97",
        ),
        "cleanupInstruction": None,
        "addressLookupTableAddresses": tables or [],
    }
    if with_cleanup:
        payload["cleanupInstruction"] = raw_ix(str(Pubkey.new_unique()), [(user, True, True)], b"\x04")
    return payload


def fake_quote(amount: int = 1_000_000) -> dict:
    return {
        "inputMint": "So11111111111111111111111111111111111111112",
        "outputMint": USDC_MINT,
        "inAmount": str(amount),
        "outAmount": "150000",
        "routePlan": [{"swapInfo": {"label": "Whirlpool"}, "percent": 100}],
    }


def program_ids(tx: VersionedTransaction) -> list[str]:
    keys = tx.message.account_keys
    return [str(keys[ci.program_id_index]) for ci in tx.message.instructions]


def system_transfers(tx: VersionedTransaction) -> list[tuple[str, int]]:
    """(destination, lamports) of every system transfer in a compiled transaction."""
    keys = tx.message.account_keys
    out = []
    for ci in tx.message.instructions:
        if keys[ci.program_id_index] != SYSTEM_PROGRAM_ID:
            continue
        data = bytes(ci.data)
        assert int.from_bytes(data[:4], "little") == 2
        dest = keys[bytes(ci.accounts)[1]]
        out.append((str(dest), int.from_bytes(data[4:12], "little")))
    return out


class FakeRpc:
    def __init__(self, decimals: int = 6, confirm_err=None, tables: dict | None = None):
        self.decimals = decimals
        self.confirm_err = confirm_err
        self.tables = tables or {}
        self.blockhashes: list[Hash] = []
        self.sent: list[tuple[bytes, object]] = []
        self.supply_calls: list[Pubkey] = []

    def get_latest_blockhash(self):
        h = Hash.new_unique()
        self.blockhashes.append(h)
        return SimpleNamespace(
            value=SimpleNamespace(blockhash=h, last_valid_block_height=1_000 + len(self.blockhashes))
        )

    def get_token_supply(self, mint):
        self.supply_calls.append(mint)
        return SimpleNamespace(value=SimpleNamespace(decimals=self.decimals))

    def get_multiple_accounts(self, keys):
        return SimpleNamespace(value=[self.tables.get(str(k)) for k in keys])

    def send_raw_transaction(self, raw, opts=None):
        self.sent.append((raw, opts))
        return SimpleNamespace(value=VersionedTransaction.from_bytes(raw).signatures[0])

    def confirm_transaction(self, sig, commitment=None, last_valid_block_height=None):
        return SimpleNamespace(value=[SimpleNamespace(err=self.confirm_err, slot=4242)])


class FakeRelay:
    def __init__(self, statuses=None, tip_accounts=None):
        self.statuses = list(statuses or [])
        self.tip_accounts = tip_accounts or [str(Pubkey.new_unique()) for _ in range(8)]
        self.polls = 0
        self.sent: list[list[str]] = []
        self.simulated: list[list[str]] = []

    def get_tip_accounts(self):
        return self.tip_accounts

    def simulate_bundle(self, transactions):
        self.simulated.append(transactions)

    def send_bundle(self, transactions):
        self.sent.append(transactions)
        return f"bundle-{len(self.sent)}"

    def get_inflight_bundle_statuses(self, bundle_ids):
        self.polls += 1
        item = self.statuses.pop(0) if self.statuses else [{"status": "Pending"}]
        if isinstance(item, Exception):
            raise item
        return item


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(7)
