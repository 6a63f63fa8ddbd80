from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from swap_engine.webhook import sign_payload


def build_payload(
    output: str,
    amount: str,
    input_mint: str | None = None,
    max_slippage_bps: int | None = None,
) -> dict:
    # Base58 mints are 32-44 chars; anything shorter is treated as a symbol
    key = "output_mint" if len(output) >= 32 else "output_symbol"
    data: dict = {key: output, "amount": amount}
    data["input_mint"] = input_mint or "So11111111111111111111111111111111111111112"
    if max_slippage_bps is not None:
        data["max_slippage_bps"] = max_slippage_bps
    return data


def main() -> int:
    p = argparse.ArgumentParser(description="Build and sign a webhook swap payload")
    p.add_argument("--output", required=True, help="Output mint address or token symbol")
    p.add_argument("--amount", required=True)
    p.add_argument("--input-mint", default=None)
    p.add_argument("--max-slippage-bps", type=int, default=None)
    p.add_argument("--secret", help="Webhook secret. If omitted, reads from --secret-file.")
    p.add_argument("--secret-file", help="File holding the webhook secret")
    args = p.parse_args()

    if args.secret:
        secret = args.secret
    elif args.secret_file:
        secret = Path(args.secret_file).read_text().strip()
    else:
        print("A webhook secret is required", file=sys.stderr)
        return 1

    body = json.dumps(
        build_payload(args.output, args.amount, args.input_mint, args.max_slippage_bps),
        separators=(",", ":"),
    )
    print(body)
    print(f"X-Signature: {sign_payload(body.encode(), secret)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
