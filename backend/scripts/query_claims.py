"""
Query claimable LP for a list of addresses

Usage:
    python scripts/query_claims.py 0xabc... 0xdef...
    python scripts/query_claims.py --file addresses.txt --asset 0x..::m::T --json

Reads REPAY_PACKAGE_ID / REPAY_REGISTRY_ID / REPAY_ASSET_TYPES from .env
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List

sys.path.insert(0, str(Path(__file__).parent.parent))

from infrastructure.config import get_config
from infrastructure.errors import RepayError
from services.claim_aggregator import QueryResult, create_claim_aggregator


def read_addresses(args: argparse.Namespace) -> List[str]:
    addresses = list(args.addresses)
    if args.file:
        addresses.extend(Path(args.file).read_text().splitlines())
    return [a.strip() for a in addresses if a.strip()]


def print_results(results: QueryResult, addresses: List[str]):
    for address in addresses:
        print("=" * 60)
        print(f"Address: {address}")
        rows = results.get(address) or []
        if not rows:
            print("  No claimable assets found.")
            continue
        print(f"  {'Asset':<32} {'Claimable LP':>14} {'Underlying':>14}")
        for row in rows:
            data = row.to_dict()
            print(f"  {data['name']:<32} {data['amount']:>14} {data['underlying']:>14}")
    print("=" * 60)


async def main(args: argparse.Namespace) -> int:
    cfg = get_config()
    addresses = read_addresses(args)
    assets = args.asset or cfg.repay.asset_types

    try:
        aggregator = create_claim_aggregator(cfg)
    except RepayError as e:
        print(f"❌ {e.message}")
        return 2

    try:
        await aggregator.registry.refresh(assets)
        results = await aggregator.query(addresses, assets)
    except RepayError as e:
        print(f"❌ {e.message}")
        return 1
    finally:
        await aggregator.close()

    if args.json:
        print(json.dumps(
            {address: [row.to_dict() for row in rows] for address, rows in results.items()},
            indent=2
        ))
    else:
        print_results(results, list(dict.fromkeys(addresses)))
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Query claimable LP per address")
    parser.add_argument("addresses", nargs="*", help="Sui addresses")
    parser.add_argument("--file", help="File with one address per line")
    parser.add_argument("--asset", action="append", help="Asset type to query (repeatable)")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    sys.exit(asyncio.run(main(parser.parse_args())))
