from __future__ import annotations

import requests

from swap_engine.errors import InstructionAssemblyError, QuoteUnavailable


def get_quote(
    quote_url: str,
    input_mint: str,
    output_mint: str,
    amount: int,
    max_slippage_bps: int | None = None,
    timeout: float = 15,
) -> dict:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise QuoteUnavailable(f"Quote amount must be a non-negative integer, got {amount!r}")
    params = {
        "inputMint": input_mint,
        "outputMint": output_mint,
        "amount": str(amount),
        "autoSlippage": "true",
    }
    # Upper bound for auto slippage; Jupiter applies its own default when omitted
    if max_slippage_bps is not None:
        params["maxAutoSlippageBps"] = str(max_slippage_bps)
    try:
        r = requests.get(quote_url, params=params, timeout=timeout)
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        raise QuoteUnavailable(f"Failed to get quote: {e}") from e
    if not isinstance(data, dict) or not data:
        raise QuoteUnavailable("Failed to get quote: empty response")
    if data.get("error"):
        raise QuoteUnavailable(f"Failed to get quote: {data['error']}")
    # A usable route carries both its plan and the expected output
    if not data.get("routePlan") or data.get("outAmount") is None:
        raise QuoteUnavailable("Failed to get quote: no route available")
    return data


def get_swap_instructions(
    swap_url: str,
    quote: dict,
    user_public_key: str,
    priority_fee_lamports: int,
    timeout: float = 20,
) -> dict:
    payload = {
        "quoteResponse": quote,
        "userPublicKey": user_public_key,
        "dynamicComputeUnitLimit": True,
        "prioritizationFeeLamports": priority_fee_lamports,
    }
    try:
        r = requests.post(swap_url, json=payload, timeout=timeout)
        body = r.json() if r.content else {}
        if isinstance(body, dict) and body.get("error"):
            raise InstructionAssemblyError(
                f"Failed to create swap transaction: {body['error']}"
            )
        r.raise_for_status()
    except (requests.RequestException, ValueError) as e:
        raise InstructionAssemblyError(f"Failed to create swap transaction: {e}") from e
    if not isinstance(body, dict) or not body:
        raise InstructionAssemblyError("Failed to create swap transaction: empty response")
    return body
