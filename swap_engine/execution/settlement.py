from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

import base58
from loguru import logger
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.core import TransactionExpiredBlockheightExceededError
from solana.rpc.types import TxOpts

from swap_engine.errors import (
    BundleFailed,
    BundlePollTimeout,
    SettlementFailed,
    SettlementIndeterminate,
)
from swap_engine.execution.composer import ComposedTransaction
from swap_engine.relay.jito import JitoClient

# Relay states that mean "keep waiting"
NON_TERMINAL_STATUSES = ("Pending", "Processed")


@dataclass
class DirectSettlement:
    client: Client
    max_retries: int = 3

    def broadcast_and_confirm(self, composed: ComposedTransaction) -> tuple[str, int | None]:
        """Send the signed transaction and block until it is confirmed.

        Returns the signature and the slot it was confirmed in.
        """
        try:
            resp = self.client.send_raw_transaction(
                composed.serialize(),
                opts=TxOpts(
                    skip_confirmation=True,
                    skip_preflight=True,
                    max_retries=self.max_retries,
                ),
            )
            sig = resp.value
        except Exception as e:
            raise SettlementFailed(f"Transaction broadcast failed: {e}") from e
        logger.info("Transaction sent: {}", sig)

        try:
            conf = self.client.confirm_transaction(
                sig,
                commitment=Confirmed,
                last_valid_block_height=composed.last_valid_block_height,
            )
        except TransactionExpiredBlockheightExceededError as e:
            raise SettlementFailed(
                f"Transaction {sig} was not confirmed: {e}", signature=str(sig)
            ) from e
        except Exception as e:
            # Already broadcast; it may still land
            raise SettlementIndeterminate(
                f"Transaction {sig} outcome is indeterminate: {e}; verify the signature "
                "on-chain before retrying",
                signature=str(sig),
            ) from e

        statuses = list(conf.value or [])
        status = statuses[0] if statuses else None
        if status is None:
            raise SettlementFailed(f"Transaction {sig} was not confirmed", signature=str(sig))
        if status.err is not None:
            raise SettlementFailed(f"Transaction failed: {status.err}", signature=str(sig))
        logger.info("Transaction confirmed: {} (slot {})", sig, status.slot)
        return str(sig), status.slot


@dataclass
class BundleSettlement:
    relay: JitoClient
    poll_interval_sec: float = 0.5
    poll_timeout_sec: float = 50.0
    simulate: bool = False
    clock: Callable[[], float] = field(default=time.monotonic)
    sleep: Callable[[float], None] = field(default=time.sleep)

    def submit_bundle_and_await(self, composed: ComposedTransaction) -> tuple[str, int | None]:
        encoded = [base58.b58encode(composed.serialize()).decode()]
        if self.simulate:
            self.relay.simulate_bundle(encoded)
        submitted_at = self.clock()
        bundle_id = self.relay.send_bundle(encoded)
        logger.info("Bundle sent with ID: {}", bundle_id)
        return bundle_id, self.poll_bundle_status(bundle_id, submitted_at=submitted_at)

    def poll_bundle_status(self, bundle_id: str, submitted_at: float | None = None) -> int | None:
        """Poll until the bundle lands, fails, or the timeout elapses.

        The timeout counts from `submitted_at` when given, else from the first
        poll. Returns the landed slot. Unknown statuses and transient errors
        never end the loop early.
        """
        start = self.clock() if submitted_at is None else submitted_at
        last_status = None

        while self.clock() - start < self.poll_timeout_sec:
            try:
                statuses = self.relay.get_inflight_bundle_statuses([bundle_id])
            except Exception as e:
                if self.clock() - start >= self.poll_timeout_sec:
                    raise BundlePollTimeout(bundle_id, self.poll_timeout_sec) from e
                logger.warning("Error polling bundle {}: {}", bundle_id, e)
                self.sleep(self.poll_interval_sec)
                continue

            if not statuses:
                logger.debug("No status returned for bundle {}, waiting...", bundle_id)
                self.sleep(self.poll_interval_sec)
                continue

            entry = statuses[0] or {}
            status = entry.get("status")
            if status != last_status:
                last_status = status
                logger.info("Bundle {} status: {}", bundle_id, status)

            if status == "Landed":
                slot = entry.get("landed_slot")
                logger.info("Bundle {} landed at slot {}", bundle_id, slot)
                return slot
            if status == "Failed":
                raise BundleFailed(
                    f"Bundle failed: {entry.get('error') or 'Unknown error'}", bundle_id=bundle_id
                )
            if status not in NON_TERMINAL_STATUSES:
                logger.warning("Unknown bundle status for {}: {}", bundle_id, status)
            self.sleep(self.poll_interval_sec)

        raise BundlePollTimeout(bundle_id, self.poll_timeout_sec)
