#!/usr/bin/env python3
"""Admin token operations.

Usage:
    python scripts/grant_tokens.py grant TENANT_ID 100 --description "Support credit"
    python scripts/grant_tokens.py allocate TENANT_ID
    python scripts/grant_tokens.py balance TENANT_ID
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tokengate.core.logging import get_logger, setup_logging
from tokengate.core.types import TokenReason
from tokengate.ledger import format_tokens
from tokengate.services import GovernanceServices

log = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="TokenGate admin token operations")
    sub = parser.add_subparsers(dest="command", required=True)

    grant = sub.add_parser("grant", help="Credit tokens as an admin grant")
    grant.add_argument("tenant_id")
    grant.add_argument("amount", type=int)
    grant.add_argument("--description", default="Admin grant")
    grant.add_argument("--user-id", default=None)

    allocate = sub.add_parser("allocate", help="Credit the plan's monthly allocation")
    allocate.add_argument("tenant_id")

    balance = sub.add_parser("balance", help="Show balance and monthly usage")
    balance.add_argument("tenant_id")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging()
    services = await GovernanceServices.from_settings()
    ledger = services.ledger

    try:
        if args.command == "grant":
            result = await ledger.credit(
                args.tenant_id,
                args.amount,
                TokenReason.ADMIN_GRANT,
                user_id=args.user_id,
                description=args.description,
            )
            print(f"Granted {format_tokens(args.amount)}; balance {result.new_balance}")
        elif args.command == "allocate":
            allocated = await ledger.allocate_plan_tokens(args.tenant_id)
            if allocated is None:
                print("Plan has no monthly allocation")
            else:
                print(f"Allocated; balance {allocated.new_balance}")
        else:
            balance = await ledger.get_balance(args.tenant_id)
            used = await ledger.get_monthly_usage(args.tenant_id)
            print(f"Balance: {format_tokens(balance)} (used this month: {format_tokens(used)})")
    finally:
        await services.stop()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
