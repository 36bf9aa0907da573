"""Seed script for reference tax rules.

Run with:
    python scripts/seed_tax_rules.py

This creates the Surinamese wage tax, overtime, AOV and AWW rules and the
tax-free sum allowances. Rules and allowance periods that already exist are
skipped.
"""

from __future__ import annotations

import asyncio
import logging

from tax_engine.config import get_settings
from tax_engine.database import create_schema, get_session
from tax_engine.seeds import seed_allowances, seed_rules

logger = logging.getLogger("seed_tax_rules")


async def main() -> None:
    """Run seed script."""
    logging.basicConfig(level=get_settings().log_level)
    logger.info("Seeding tax rules...")

    await create_schema()
    async with get_session() as session:
        created = await seed_rules(session)
        allowances = await seed_allowances(session)

    logger.info("Done! %d tax rules and %d allowances seeded.", created, allowances)


if __name__ == "__main__":
    asyncio.run(main())
