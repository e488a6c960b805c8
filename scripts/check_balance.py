#!/usr/bin/env python3
"""
One-shot token balance check.

Usage:
    python scripts/check_balance.py <holder_address> <token_contract_address>
    python scripts/check_balance.py 0xHolder... 0xToken... --rpc-url https://rpc.zklink.io/

Prints the holder's whole-token balance and the token symbol.
Exit code 1 on invalid input or any query failure.
"""

import os
import sys
import asyncio
import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

load_dotenv(ROOT / ".env")

from core.abi import is_valid_address
from core.config import DEFAULT_RPC_URL
from core.errors import TierBotError
from core.oracle import BalanceOracle
from core.rpc import RpcClient

logger = logging.getLogger("tiers.scripts.check_balance")


async def check(holder: str, token: str, rpc_url: str, timeout: float) -> int:
    async with RpcClient(rpc_url, timeout_seconds=timeout) as rpc:
        oracle = BalanceOracle(rpc, token)
        try:
            snap = await oracle.get_balance(holder)
        except TierBotError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    print(f"Token balance of address {holder}: {snap.balance} {snap.symbol}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Check an ERC-20 token balance")
    parser.add_argument("holder", help="Holder wallet address (0x + 40 hex)")
    parser.add_argument("token", help="Token contract address (0x + 40 hex)")
    parser.add_argument("--rpc-url", default=None,
                        help=f"JSON-RPC endpoint (default: $RPC_URL or {DEFAULT_RPC_URL})")
    parser.add_argument("--timeout", type=float, default=20.0,
                        help="HTTP timeout per RPC call in seconds (default: 20)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if not is_valid_address(args.holder):
        print("Invalid holder address.", file=sys.stderr)
        return 1
    if not is_valid_address(args.token):
        print("Invalid token contract address.", file=sys.stderr)
        return 1

    rpc_url = args.rpc_url or os.getenv("RPC_URL", "") or DEFAULT_RPC_URL
    return asyncio.run(check(args.holder, args.token, rpc_url, args.timeout))


if __name__ == "__main__":
    sys.exit(main())
