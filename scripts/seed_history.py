import sys
import os
sys.path.append(os.getcwd())

import argparse
import asyncio
import json
import logging
from sqlmodel import Session
from database import engine, create_db_and_tables
from apps.auth.models import User
from apps.core.tmdb import TMDBService
from apps.hive.seed import HistorySeeder

logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")

async def seed(user_id: int, path: str, update_existing: bool):
    with open(path) as f:
        rows = json.load(f)

    create_db_and_tables()
    async with TMDBService() as tmdb:
        with Session(engine) as session:
            user = session.get(User, user_id)
            if not user:
                sys.exit(f"User with id {user_id} not found")

            report = await HistorySeeder(session, tmdb).seed(user, rows, update_existing)

    print(report.model_dump_json(indent=2))

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import a watch history export into a user's hive")
    parser.add_argument("user_id", type=int)
    parser.add_argument("path", help="JSON file with one object per history row")
    parser.add_argument("--update-existing", action="store_true", help="Overwrite entries already in the hive")
    args = parser.parse_args()

    asyncio.run(seed(args.user_id, args.path, args.update_existing))
