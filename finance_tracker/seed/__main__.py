"""
Reset the demo account's ledger.

Usage:
    python -m finance_tracker.seed [--days 90] [--random-seed 42]
"""

import argparse
import asyncio
import random
import sys

from finance_tracker.seed.generator import SyntheticLedgerGenerator, seed_transactions
from finance_tracker.services.storage import (
    DatabaseClient,
    SQLAlchemyAuditStorage,
    SQLAlchemyLedgerStorage,
    StorageError,
)
from finance_tracker.audit.logger import AuditLogger


async def _run(days, random_seed) -> int:
    client = DatabaseClient()
    try:
        await client.init_models()
        result = await seed_transactions(
            SQLAlchemyLedgerStorage(client),
            days=days,
            generator=SyntheticLedgerGenerator(
                random.Random(random_seed) if random_seed is not None else None
            ),
            audit_logger=AuditLogger(SQLAlchemyAuditStorage(client)),
        )
    except StorageError as e:
        print(f"Seeding failed: {e}", file=sys.stderr)
        return 1
    finally:
        await client.dispose()

    print(f"{result.message}; balance {result.balance}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Replace the demo ledger with generated history.")
    parser.add_argument("--days", type=int, default=None, help="Days of history (default: SEED_DAYS)")
    parser.add_argument("--random-seed", type=int, default=None, help="Seed for repeatable output")
    args = parser.parse_args()
    sys.exit(asyncio.run(_run(args.days, args.random_seed)))


if __name__ == "__main__":
    main()
