#!/usr/bin/env python3
"""Create the ledger schema and optionally seed a tenant account.

Usage:
    python scripts/setup_db.py
    python scripts/setup_db.py --tenant acme --name "Acme Ltd" --plan STARTER --budget 400

Seeding credits the plan's monthly allocation, so the tenant's first ledger
entry explains its opening balance. Re-running with an existing tenant is a
no-op for that tenant.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tokengate.core.exceptions import DuplicateTenantError
from tokengate.core.logging import get_logger, setup_logging
from tokengate.core.types import TenantPlan
from tokengate.data.db import init_schema
from tokengate.ledger import format_tokens
from tokengate.services import GovernanceServices

log = get_logger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the TokenGate database")
    parser.add_argument("--tenant", help="Tenant id to seed after creating the schema")
    parser.add_argument("--name", help="Display name for the seeded tenant")
    parser.add_argument(
        "--plan",
        choices=[p.value for p in TenantPlan],
        default=TenantPlan.FREE.value,
    )
    parser.add_argument("--budget", type=int, default=None, help="Monthly token budget")
    parser.add_argument(
        "--no-allocate",
        action="store_true",
        help="Open the account at zero instead of crediting the plan allocation",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging()
    services = await GovernanceServices.from_settings()

    try:
        await init_schema(services.engine)
        log.info("schema_initialization_complete")

        if args.tenant:
            try:
                account = await services.ledger.create_account(
                    args.tenant,
                    args.name or args.tenant,
                    TenantPlan(args.plan),
                    monthly_budget=args.budget,
                    allocate=not args.no_allocate,
                )
            except DuplicateTenantError:
                log.warning("tenant_already_seeded", tenant_id=args.tenant)
            else:
                print(
                    f"Seeded {account.tenant_id} on {account.plan.value} "
                    f"with {format_tokens(account.token_balance)}"
                )
    except Exception as exc:
        log.error("schema_initialization_failed", error=str(exc))
        raise
    finally:
        await services.stop()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
