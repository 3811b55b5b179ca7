"""
Bulk import of a watch history export into one user's hive.

Each row names a TMDB title plus the user's status and timestamps. Titles
are created from TMDB (falling back to the row's own metadata when TMDB is
unavailable) or refreshed when already cached. Bad rows are reported and
skipped.
"""
import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlmodel import SQLModel, Field

from apps.auth.models import User
from apps.core.base_service import BaseService
from apps.core.exceptions import HivioError, ProviderError
from apps.core.models import HiveStatus, MediaType, Title
from apps.core.services import TitleService
from apps.hive.services import HiveService

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
BATCH_PAUSE = 1.0

_IMAGE_PATH = re.compile(r"/t/p/[^/]+(/.+)$")


class SeedReport(SQLModel):
    titles_created: int = 0
    titles_updated: int = 0
    history_created: int = 0
    history_updated: int = 0
    errors: List[str] = Field(default_factory=list)


def tmdb_image_path(url: Optional[str]) -> Optional[str]:
    """'https://image.tmdb.org/t/p/w500/abc.jpg' -> '/abc.jpg'"""
    if not url:
        return None
    match = _IMAGE_PATH.search(url)
    return match.group(1) if match else None


def _timestamp(value: Any) -> Optional[datetime]:
    # Exports carry epoch milliseconds
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.utcfromtimestamp(value / 1000)


class HistorySeeder(BaseService):

    def __init__(self, session, tmdb=None, pause: float = BATCH_PAUSE):
        super().__init__(session, tmdb)
        self.pause = pause
        self.titles = TitleService(session, self.tmdb)
        self.hive = HiveService(session, self.tmdb)

    async def _title_for(self, row: Dict[str, Any], tmdb_id: int, media_type: MediaType, report: SeedReport) -> Title:
        existing = self.titles.get_title(tmdb_id, media_type)
        if existing:
            title = await self.titles.refresh(existing)
            report.titles_updated += 1
            return title

        try:
            title = await self.titles.resolve(tmdb_id, media_type)
        except ProviderError:
            logger.warning("TMDB unavailable for %s/%s, using exported metadata", media_type.value, tmdb_id)
            title = Title(
                tmdb_id=tmdb_id,
                media_type=media_type,
                name=row.get("titleName") or "",
                poster_url=tmdb_image_path(row.get("poster_url")),
                backdrop_url=tmdb_image_path(row.get("backdrop_url")),
                description=row.get("description") or None,
                imdb_id=row.get("imdb_id") or None,
                release_date=row.get("release_date") or "",
                genres=[g for g in row.get("genres") or [] if isinstance(g, int)],
            )
            self.session.add(title)
            self.session.commit()
            self.session.refresh(title)

        report.titles_created += 1
        return title

    async def seed_row(self, user: User, row: Dict[str, Any], update_existing: bool, report: SeedReport) -> Optional[str]:
        """Import one row. Returns an error message for rows that were skipped."""
        tmdb_id = row.get("tmdb_id")
        if isinstance(tmdb_id, bool) or not isinstance(tmdb_id, int):
            return f"Invalid tmdb_id: {tmdb_id}"

        try:
            media_type = MediaType(row.get("media_type"))
        except ValueError:
            return f"Invalid media_type: {row.get('media_type')}"

        title = await self._title_for(row, tmdb_id, media_type, report)

        created_at = _timestamp(row.get("created_at"))
        updated_at = _timestamp(row.get("updated_at"))
        if created_at is None or updated_at is None:
            return f"Invalid timestamps (created_at: {row.get('created_at')}, updated_at: {row.get('updated_at')})"

        try:
            status = HiveStatus.from_legacy(str(row.get("status")))
        except ValueError:
            return f"Invalid status: {row.get('status')}"

        existing = self.hive.get_entry(user.id, title.id)
        if existing and not update_existing:
            return None

        entry = self.hive.upsert_entry(user, title.id, {
            "status": status,
            "is_favourite": row.get("is_favourite") in (1, True),
        })
        # Keep the exported timestamps rather than the import time
        entry.created_at = created_at
        entry.updated_at = updated_at
        self.session.add(entry)
        self.session.commit()

        if existing:
            report.history_updated += 1
        else:
            report.history_created += 1
        return None

    async def seed(self, user: User, rows: List[Dict[str, Any]], update_existing: bool = False) -> SeedReport:
        report = SeedReport()
        logger.info("Seeding %d rows for user %s", len(rows), user.id)

        for i, row in enumerate(rows):
            try:
                error = await self.seed_row(user, row, update_existing, report)
            except HivioError as e:
                self.session.rollback()
                error = e.message
            if error:
                message = f"Row {i + 1}: {error}"
                report.errors.append(message)
                logger.warning(message)

            # TMDB rate limit
            if i > 0 and i % BATCH_SIZE == 0 and self.pause:
                await asyncio.sleep(self.pause)

        logger.info(
            "Seed finished: %d titles created, %d updated, %d history created, %d updated, %d errors",
            report.titles_created, report.titles_updated,
            report.history_created, report.history_updated, len(report.errors),
        )
        return report
