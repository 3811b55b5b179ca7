import sys
import os
sys.path.append(os.getcwd())

import asyncio
import logging
from sqlmodel import Session
from database import engine
from apps.core.services import TitleService
from apps.core.tmdb import TMDBService

logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")

async def backfill(limit: int):
    async with TMDBService() as tmdb:
        with Session(engine) as session:
            results = await TitleService(session, tmdb).backfill_pending(limit)

    print(f"Backfilled {sum(results.values())} episodes across {len(results)} series")

if __name__ == "__main__":
    limit = int(sys.argv[1]) if len(sys.argv) > 1 else 25
    asyncio.run(backfill(limit))
