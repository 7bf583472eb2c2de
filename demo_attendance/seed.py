"""
Reset the scoring rule table to the default conditions.

    python -m demo_attendance.seed
"""
import asyncio
import logging

from demo_attendance.database import AsyncSessionLocal, engine, Base
from demo_attendance.middleware.logging import setup_logging
from demo_attendance.services.scoring import seed_scoring_conditions

logger = logging.getLogger(__name__)


async def main():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        conditions = await seed_scoring_conditions(db)

    for condition in conditions:
        label = condition.type
        if condition.with_degree is not None:
            label += " (with degree)" if condition.with_degree else " (without degree)"
        logger.info(f"  {label}: {len(condition.rules)} rules, {len(condition.bonus_rules)} bonus rules")

    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
