import argparse
import json
import sys

from loguru import logger

from swap_engine.config import SOL_MINT, AppSettings
from swap_engine.errors import SwapError
from swap_engine.execution.solana_executor import SolanaSwapExecutor, SwapContext


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Execute a single swap with the configured wallet")
    p.add_argument("--input-mint", default=SOL_MINT, help="Mint to sell (default: wrapped SOL)")
    p.add_argument("--output-mint", required=True, help="Mint to buy")
    p.add_argument("--amount", required=True, help="Human-denominated amount of the input mint")
    p.add_argument("--max-slippage-bps", type=int, default=None)
    args = p.parse_args(argv)

    settings = AppSettings()
    logger.remove()
    logger.add(lambda m: print(m, end="", file=sys.stderr), level=settings.log_level)

    executor = SolanaSwapExecutor(SwapContext.create(settings))
    try:
        result = executor.swap(
            args.input_mint, args.output_mint, args.amount, args.max_slippage_bps
        )
    except SwapError as e:
        out = {"status": "error", "error": e.kind, "message": str(e)}
        if e.signature is not None:
            out["signature"] = e.signature
        if e.bundle_id is not None:
            out["bundle_id"] = e.bundle_id
        print(json.dumps(out))
        return 2 if e.indeterminate else 1
    print(json.dumps({"status": "success", **result.to_dict()}))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
