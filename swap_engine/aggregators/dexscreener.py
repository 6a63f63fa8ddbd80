from __future__ import annotations

import requests
from loguru import logger

from swap_engine.errors import TokenResolutionError


def resolve_mint_by_symbol(
    search_url: str, symbol: str, chain: str = "solana", timeout: float = 15
) -> str:
    """Look up a token's mint address by its symbol or name.

    Takes the base token of the first DexScreener pair listed on `chain`.
    """
    try:
        r = requests.get(search_url, params={"q": symbol}, timeout=timeout)
        r.raise_for_status()
        data = r.json() or {}
    except (requests.RequestException, ValueError) as e:
        raise TokenResolutionError(f"Token lookup for {symbol} failed: {e}") from e
    for pair in data.get("pairs") or []:
        if (pair.get("chainId") or "").lower() != chain.lower():
            continue
        address = (pair.get("baseToken") or {}).get("address")
        if address:
            logger.info("Resolved {} to {} on {}", symbol, address, chain)
            return address
    raise TokenResolutionError(f"No pairs found for {symbol} on chain: {chain}")
