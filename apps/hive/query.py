"""
Filtering, sorting and paging of a user's hive.

Rows are fetched with one joined query and narrowed in memory; hives are
small enough per user that this stays cheap.
"""
from typing import Iterable, List, Literal, NamedTuple, Optional, Union
from sqlmodel import SQLModel, Field

from apps.core.models import HiveStatus, MediaType, Title, STATUS_ORDER
from apps.hive.models import HiveEntry

SortField = Literal["title", "type", "status", "release_date"]


class HiveRow(NamedTuple):
    entry: HiveEntry
    title: Title


class SortKey(SQLModel):
    field: SortField
    desc: bool = False

    @classmethod
    def parse(cls, value: str) -> "SortKey":
        """'title' sorts ascending, '-title' descending."""
        if value.startswith("-"):
            return cls(field=value[1:], desc=True)
        return cls(field=value)


class HiveQuery(SQLModel):
    title: Optional[str] = None
    status: List[HiveStatus] = Field(default_factory=list)
    type: List[MediaType] = Field(default_factory=list)
    favourite: Optional[bool] = None
    genres: List[int] = Field(default_factory=list)
    sort: List[SortKey] = Field(default_factory=list)
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=10, ge=1, le=100)


def apply_filters(rows: Iterable[HiveRow], query: HiveQuery) -> List[HiveRow]:
    rows = list(rows)
    if query.title:
        needle = query.title.casefold()
        rows = [r for r in rows if needle in (r.title.name or "").casefold()]
    if query.status:
        statuses = set(query.status)
        rows = [r for r in rows if r.entry.status in statuses]
    if query.type:
        types = set(query.type)
        rows = [r for r in rows if r.title.media_type in types]
    if query.favourite is not None:
        rows = [r for r in rows if r.entry.is_favourite == query.favourite]
    if query.genres:
        wanted = set(query.genres)
        rows = [r for r in rows if wanted.intersection(r.title.genre_ids())]
    return rows


def sort_value(row: HiveRow, field: str) -> Union[str, int]:
    if field == "title":
        return (row.title.name or "").casefold()
    if field == "type":
        return MediaType(row.title.media_type).value
    if field == "status":
        return STATUS_ORDER.get(row.entry.status, 999)
    if field == "release_date":
        return row.title.release_date or ""
    return 0


def apply_sorting(rows: Iterable[HiveRow], sort: List[SortKey]) -> List[HiveRow]:
    rows = list(rows)
    if not sort:
        # Default: status order, newest release first within a status
        rows.sort(key=lambda r: sort_value(r, "release_date"), reverse=True)
        rows.sort(key=lambda r: sort_value(r, "status"))
        return rows

    # Stable sorts applied from the least to the most significant key
    for key in reversed(sort):
        rows.sort(key=lambda r: sort_value(r, key.field), reverse=key.desc)
    return rows


def paginate(rows: List[HiveRow], page: int, per_page: int) -> List[HiveRow]:
    start = (page - 1) * per_page
    return rows[start:start + per_page]
