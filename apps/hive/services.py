import logging
from typing import Optional, Dict, Any, List
from datetime import datetime
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from apps.auth.models import User
from apps.core.base_service import BaseService
from apps.core.exceptions import NotFoundError, PermissionDeniedError
from apps.core.models import HiveStatus, MediaType, Title
from apps.core.schemas import TitleRead, TrendingTitle
from apps.core.services import TitleService, DiscoverService
from apps.hive.models import (
    HiveEntry, HiveEntryFields, HiveEntryRead, AddToHive, HiveItem, HivePage,
    Dashboard, DashboardStats,
)
from apps.hive.query import HiveRow, HiveQuery, apply_filters, apply_sorting, paginate

logger = logging.getLogger(__name__)


def to_item(entry: HiveEntry, title: Title) -> HiveItem:
    data = {name: getattr(entry, name) for name in HiveEntryRead.model_fields}
    return HiveItem(**data, title=TitleRead.from_title(title))


class HiveService(BaseService):

    def get_entry(self, user_id: int, title_id: int) -> Optional[HiveEntry]:
        return self.session.exec(
            select(HiveEntry).where(HiveEntry.user_id == user_id, HiveEntry.title_id == title_id)
        ).first()

    def get_owned_entry(self, user_id: int, entry_id: int) -> HiveEntry:
        entry = self.session.get(HiveEntry, entry_id)
        if not entry:
            raise NotFoundError("History item not found")
        if entry.user_id != user_id:
            raise PermissionDeniedError()
        return entry

    async def add_to_hive(self, user: User, request: AddToHive) -> HiveItem:
        """
        Resolve the title (creating it from TMDB if needed) and create or
        update the user's entry for it. Re-adding a tracked title updates it.
        """
        title = await TitleService(self.session, self.tmdb).resolve(request.tmdb_id, request.media_type)
        fields = request.model_dump(exclude_unset=True, exclude={"tmdb_id", "media_type"})
        entry = self.upsert_entry(user, title.id, fields)
        return to_item(entry, title)

    def upsert_entry(self, user: User, title_id: int, fields: Dict[str, Any]) -> HiveEntry:
        """
        Patch the (user, title) entry with only the given fields, or insert
        it with defaults when it does not exist yet.
        """
        entry = self.get_entry(user.id, title_id)
        if entry:
            return self._patch(entry, fields)

        values = {k: v for k, v in fields.items() if v is not None}
        values.setdefault("status", user.default_status or HiveStatus.PLANNED)
        values.setdefault("is_favourite", False)
        entry = HiveEntry(user_id=user.id, title_id=title_id, **values)

        try:
            self.session.add(entry)
            self.session.commit()
        except IntegrityError:
            # Lost an insert race for the same (user, title); patch the winner
            self.session.rollback()
            existing = self.get_entry(user.id, title_id)
            if existing is None:
                raise
            return self._patch(existing, fields)

        self.session.refresh(entry)
        logger.info("User %s added title %s to their hive", user.id, title_id)
        return entry

    def _patch(self, entry: HiveEntry, fields: Dict[str, Any]) -> HiveEntry:
        for key, value in fields.items():
            if key in ("status", "is_favourite") and value is None:
                continue
            setattr(entry, key, value)
        entry.updated_at = datetime.utcnow()

        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    def update_entry(self, user_id: int, entry_id: int, update: HiveEntryFields) -> HiveItem:
        entry = self.get_owned_entry(user_id, entry_id)
        entry = self._patch(entry, update.model_dump(exclude_unset=True))
        return to_item(entry, self.session.get(Title, entry.title_id))

    def remove_entry(self, user_id: int, entry_id: int) -> None:
        entry = self.get_owned_entry(user_id, entry_id)
        self.session.delete(entry)
        self.session.commit()
        logger.info("User %s removed hive entry %s", user_id, entry_id)

    def _rows(self, user_id: int) -> List[HiveRow]:
        query = select(HiveEntry, Title).join(Title).where(HiveEntry.user_id == user_id)
        return [HiveRow(entry, title) for entry, title in self.session.exec(query).all()]

    def list_entries(self, user_id: int, query: HiveQuery) -> HivePage:
        rows = apply_sorting(apply_filters(self._rows(user_id), query), query.sort)
        page = paginate(rows, query.page, query.per_page)
        return HivePage(data=[to_item(r.entry, r.title) for r in page], total=len(rows))

    def dashboard(self, user_id: int) -> Dashboard:
        rows = self._rows(user_id)
        total = len(rows)
        counts = {status: 0 for status in HiveStatus}
        for row in rows:
            counts[row.entry.status] += 1

        finished = counts[HiveStatus.FINISHED]
        stats = DashboardStats(
            total=total,
            watching=counts[HiveStatus.WATCHING],
            finished=finished,
            planned=counts[HiveStatus.PLANNED],
            favourites=sum(1 for r in rows if r.entry.is_favourite),
            progress_value=round(finished / total * 100) if total else 0,
        )
        watching = sorted(
            (r for r in rows if r.entry.status == HiveStatus.WATCHING),
            key=lambda r: r.entry.updated_at,
            reverse=True,
        )
        return Dashboard(stats=stats, watching_items=[to_item(r.entry, r.title) for r in watching])

    def tracked_tmdb_ids(self, user_id: int) -> set:
        return {(r.title.tmdb_id, MediaType(r.title.media_type).value) for r in self._rows(user_id)}

    async def trending_for_user(self, user_id: int, pages: int = 1) -> List[TrendingTitle]:
        """Trending titles the user has not added yet."""
        tracked = self.tracked_tmdb_ids(user_id)
        trending = await DiscoverService(self.session, self.tmdb).trending(pages)
        return [t for t in trending if (t.result.id, t.result.media_type) not in tracked]
