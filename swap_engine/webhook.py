from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from swap_engine.aggregators.dexscreener import resolve_mint_by_symbol


class WebhookSwap(BaseModel):
    input_mint: str | None = None
    input_symbol: str | None = None
    output_mint: str | None = None
    output_symbol: str | None = None
    amount: Decimal = Field(gt=0)
    max_slippage_bps: int | None = Field(default=None, ge=0, le=10_000)

    @model_validator(mode="after")
    def _needs_asset_ids(self):
        if not (self.input_mint or self.input_symbol):
            raise ValueError("input_mint or input_symbol is required")
        if not (self.output_mint or self.output_symbol):
            raise ValueError("output_mint or output_symbol is required")
        return self

    def resolved_mints(self, search_url: str, timeout: float = 15) -> tuple[str, str]:
        input_mint = self.input_mint or resolve_mint_by_symbol(
            search_url, self.input_symbol, timeout=timeout
        )
        output_mint = self.output_mint or resolve_mint_by_symbol(
            search_url, self.output_symbol, timeout=timeout
        )
        return input_mint, output_mint


def sign_payload(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(signature, sign_payload(payload, secret))


def is_authorized(
    payload: bytes,
    signature: str | None,
    api_key: str | None,
    secret: str | None,
    expected_api_key: str | None,
) -> bool:
    if secret and verify_signature(payload, signature, secret):
        return True
    if expected_api_key and api_key:
        return hmac.compare_digest(api_key, expected_api_key)
    return False
