"""Recompute every property's average rating from its reviews.

Safe to run at any time (cron or by hand); properties without reviews
are reset to 0.

Run from ``backend/``:
    python -m scripts.recalculate_ratings
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from rentals.config import settings
from rentals.database import Database
from rentals.services.rating_service import recalculate_all_ratings

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("scripts.recalculate_ratings")


async def main() -> int:
    database = Database(settings.async_database_url)
    try:
        async with database.session() as session:
            result = await recalculate_all_ratings(session)
            await session.commit()
    finally:
        await database.dispose()

    logger.info(
        "Checked %d properties, updated %d ratings",
        result["total_properties"],
        result["updated_properties"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
