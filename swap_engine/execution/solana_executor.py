from __future__ import annotations

import random
import threading
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any

import base58
from loguru import logger
from solana.rpc.api import Client
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from swap_engine.aggregators import jupiter
from swap_engine.config import LAMPORTS_PER_SOL, SOL_MINT, AppSettings
from swap_engine.errors import (
    AmountConversionError,
    InsufficientFunds,
    InvalidQuote,
    SwapError,
    SwapFailed,
)
from swap_engine.execution.composer import TransactionComposer
from swap_engine.execution.instructions import build_instruction_set
from swap_engine.execution.settlement import BundleSettlement, DirectSettlement
from swap_engine.relay.jito import JitoClient


@dataclass(frozen=True)
class SwapRequest:
    input_mint: str
    output_mint: str
    amount: Decimal | float | int | str
    max_slippage_bps: int | None = None


@dataclass
class SettlementResult:
    quote: dict
    wallet_address: str
    signature: str | None = None
    bundle_id: str | None = None
    slot: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "wallet_address": self.wallet_address,
            "slot": self.slot,
            "quote": self.quote,
        }
        if self.bundle_id is not None:
            out["bundle_id"] = self.bundle_id
        else:
            out["signature"] = self.signature
        return out


@dataclass
class SwapContext:
    """Process-wide collaborators for the swap pipeline.

    Built once by the entry point and shared read-only across requests.
    """

    settings: AppSettings
    client: Client
    keypair: Keypair
    fee_recipient: Pubkey
    relay: JitoClient | None = None
    rng: random.Random = field(default_factory=random.Random)
    swap_lock: threading.Lock = field(default_factory=threading.Lock)

    @classmethod
    def create(cls, settings: AppSettings, rng: random.Random | None = None) -> SwapContext:
        if not settings.sol_executor_private_key:
            raise ValueError("Private key is required (SWAP_SOL_EXECUTOR_PRIVATE_KEY)")
        if not settings.fee_address:
            raise ValueError("Fee address is required (SWAP_FEE_ADDRESS)")
        secret = base58.b58decode(settings.sol_executor_private_key)
        kp = Keypair.from_bytes(secret)
        client = Client(settings.sol_rpc_url, timeout=settings.rpc_timeout_sec)
        relay = None
        if settings.jito_enabled:
            relay = JitoClient(settings.jito_block_engine_url, timeout=settings.http_timeout_sec)
        logger.info(
            "Swap context ready: wallet={} rpc={} jito={}",
            kp.pubkey(),
            settings.sol_rpc_url,
            settings.jito_enabled,
        )
        return cls(
            settings=settings,
            client=client,
            keypair=kp,
            fee_recipient=Pubkey.from_string(settings.fee_address),
            relay=relay,
            rng=rng or random.Random(),
        )

    @property
    def wallet_address(self) -> str:
        return str(self.keypair.pubkey())


def normalize_error(e: Exception) -> SwapError:
    if isinstance(e, SwapError) and e.indeterminate:
        return e
    msg = str(e)
    low = msg.lower()
    specialized: SwapError | None = None
    if "insufficient funds" in low or "insufficient lamports" in low:
        specialized = InsufficientFunds(f"Insufficient funds for transaction: {msg}")
    elif "invalid quote" in low:
        specialized = InvalidQuote(f"Invalid swap quote received: {msg}")
    if specialized is not None:
        # Keep whatever on-chain handle the original failure carried
        specialized.signature = getattr(e, "signature", None)
        specialized.bundle_id = getattr(e, "bundle_id", None)
        return specialized
    if isinstance(e, SwapError):
        return e
    return SwapFailed(f"Swap failed: {msg}")


class SolanaSwapExecutor:
    def __init__(self, context: SwapContext):
        self.context = context
        settings = context.settings
        self.composer = TransactionComposer(
            client=context.client, keypair=context.keypair, relay=context.relay, rng=context.rng
        )
        self.direct = DirectSettlement(client=context.client, max_retries=settings.send_max_retries)
        self.bundles = None
        if settings.jito_enabled:
            if context.relay is None:
                raise ValueError("Jito is enabled but no relay client was provided")
            self.bundles = BundleSettlement(
                relay=context.relay,
                poll_interval_sec=settings.bundle_poll_interval_sec,
                poll_timeout_sec=settings.bundle_poll_timeout_sec,
                simulate=settings.jito_simulate_bundles,
            )

    def to_native_amount(self, mint: str, amount: Decimal | float | int | str) -> int:
        try:
            value = Decimal(str(amount))
        except InvalidOperation as e:
            raise AmountConversionError(f"Invalid amount {amount!r}") from e
        if not value.is_finite() or value <= 0:
            raise AmountConversionError(f"Amount must be positive, got {amount!r}")

        if mint == SOL_MINT:
            scale = LAMPORTS_PER_SOL
        else:
            try:
                resp = self.context.client.get_token_supply(Pubkey.from_string(mint))
                decimals = resp.value.decimals
            except Exception as e:
                raise AmountConversionError(f"Failed to read decimals for {mint}: {e}") from e
            scale = 10 ** int(decimals)
        return int((value * scale).to_integral_value(rounding=ROUND_DOWN))

    def swap(
        self,
        input_mint: str,
        output_mint: str,
        amount: Decimal | float | int | str,
        max_slippage_bps: int | None = None,
    ) -> SettlementResult:
        req = SwapRequest(input_mint, output_mint, amount, max_slippage_bps)
        try:
            return self._execute(req)
        except Exception as e:
            normalized = normalize_error(e)
            logger.error("Swap error ({}): {}", normalized.kind, normalized)
            if normalized is e:
                raise
            raise normalized from e

    def _execute(self, req: SwapRequest) -> SettlementResult:
        ctx = self.context
        settings = ctx.settings
        start = time.monotonic()
        logger.info(
            "Starting swap {} -> {} using wallet {}",
            req.input_mint,
            req.output_mint,
            ctx.wallet_address,
        )

        parsed_amount = self.to_native_amount(req.input_mint, req.amount)

        quote = jupiter.get_quote(
            settings.jupiter_quote_url,
            input_mint=req.input_mint,
            output_mint=req.output_mint,
            amount=parsed_amount,
            max_slippage_bps=req.max_slippage_bps,
            timeout=settings.http_timeout_sec,
        )
        logger.info("Quote received: in={} out={}", quote.get("inAmount"), quote.get("outAmount"))

        payload = jupiter.get_swap_instructions(
            settings.jupiter_swap_instructions_url,
            quote,
            ctx.wallet_address,
            priority_fee_lamports=settings.priority_fee_lamports,
            timeout=settings.http_timeout_sec,
        )
        instruction_set = build_instruction_set(payload)

        # Compose and settle under the identity lock so blockhashes never race
        with ctx.swap_lock if settings.serialize_swaps else nullcontext():
            composed = self.composer.compose(
                instruction_set,
                parsed_amount=parsed_amount,
                fee_percentage=settings.fee_percentage,
                fee_recipient=ctx.fee_recipient,
                tip_enabled=settings.jito_enabled,
                tip_amount=settings.tip_lamports,
            )
            if self.bundles is not None:
                bundle_id, slot = self.bundles.submit_bundle_and_await(composed)
                result = SettlementResult(
                    quote=quote, wallet_address=ctx.wallet_address, bundle_id=bundle_id, slot=slot
                )
            else:
                signature, slot = self.direct.broadcast_and_confirm(composed)
                result = SettlementResult(
                    quote=quote, wallet_address=ctx.wallet_address, signature=signature, slot=slot
                )

        logger.info(
            "Swap settled in {:.0f}ms: {}",
            (time.monotonic() - start) * 1000,
            result.bundle_id or result.signature,
        )
        return result
