"""Demo data package."""

from finance_tracker.seed.generator import (
    CATEGORY_RANGES,
    SeedResult,
    SyntheticLedgerGenerator,
    seed_transactions,
)

__all__ = [
    "CATEGORY_RANGES",
    "SeedResult",
    "SyntheticLedgerGenerator",
    "seed_transactions",
]
