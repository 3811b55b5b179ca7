import hmac
from typing import List, Optional, get_args
from fastapi import APIRouter, Depends, Header, Query
from sqlmodel import Session
from database import get_session
from apps.auth.deps import require_user
from apps.auth.models import User
from apps.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from apps.core.models import HiveStatus, MediaType, Title
from apps.core.schemas import (
    EpisodeRead, NextEpisodeInfo, SearchResult, TitleDetails, TitleRead, TrendingTitle, Video, WatchProvider,
)
from apps.core.services import TitleService, DiscoverService
from apps.core.tmdb import TMDBService, get_tmdb
from apps.hive.models import AddToHive, HiveEntryUpdate, HiveItem, HivePage, Dashboard
from apps.hive.query import HiveQuery, SortField, SortKey
from apps.hive.services import HiveService
from config import settings

router = APIRouter(prefix="/hive", tags=["hive"])

def get_service(session: Session = Depends(get_session), tmdb: TMDBService = Depends(get_tmdb)) -> HiveService:
    return HiveService(session, tmdb)

# DB-only routes; no TMDB client is opened for them
def get_store(session: Session = Depends(get_session)) -> HiveService:
    return HiveService(session)

def get_discover(session: Session = Depends(get_session), tmdb: TMDBService = Depends(get_tmdb)) -> DiscoverService:
    return DiscoverService(session, tmdb)

def get_titles(session: Session = Depends(get_session), tmdb: TMDBService = Depends(get_tmdb)) -> TitleService:
    return TitleService(session, tmdb)

def parse_query(
    title: Optional[str] = None,
    status: List[str] = Query([]),
    type: List[MediaType] = Query([]),
    favourite: Optional[bool] = None,
    genre: List[int] = Query([]),
    sort: List[str] = Query([]),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
) -> HiveQuery:
    try:
        statuses = [HiveStatus.from_legacy(s) for s in status]
    except ValueError as e:
        raise ValidationError(str(e))

    sort_keys = []
    for value in sort:
        key = SortKey.parse(value) if value.lstrip("-") in get_args(SortField) else None
        if key is None:
            raise ValidationError(f"Unknown sort field: {value}")
        sort_keys.append(key)

    return HiveQuery(
        title=title,
        status=statuses,
        type=type,
        favourite=favourite,
        genres=genre,
        sort=sort_keys,
        page=page,
        per_page=per_page,
    )

# --- HIVE ---

@router.get("/", response_model=HivePage)
def list_hive(
    query: HiveQuery = Depends(parse_query),
    user: User = Depends(require_user),
    service: HiveService = Depends(get_store)
):
    return service.list_entries(user.id, query)

@router.get("/dashboard", response_model=Dashboard)
def dashboard(user: User = Depends(require_user), service: HiveService = Depends(get_store)):
    return service.dashboard(user.id)

@router.post("/add", response_model=HiveItem)
async def add_to_hive(
    request: AddToHive,
    user: User = Depends(require_user),
    service: HiveService = Depends(get_service)
):
    return await service.add_to_hive(user, request)

@router.patch("/{entry_id}", response_model=HiveItem)
def update_entry(
    entry_id: int,
    update: HiveEntryUpdate,
    user: User = Depends(require_user),
    service: HiveService = Depends(get_store)
):
    return service.update_entry(user.id, entry_id, update)

@router.delete("/{entry_id}")
def remove_entry(
    entry_id: int,
    user: User = Depends(require_user),
    service: HiveService = Depends(get_store)
):
    service.remove_entry(user.id, entry_id)
    return {"deleted": True}

# --- DISCOVER ---

@router.get("/search", response_model=List[SearchResult])
async def search(
    q: str = Query(..., min_length=1),
    media_type: Optional[MediaType] = None,
    service: DiscoverService = Depends(get_discover)
):
    return await service.search(q, media_type)

@router.get("/trending", response_model=List[TrendingTitle])
async def trending(
    pages: int = Query(1, ge=1, le=5),
    user: User = Depends(require_user),
    service: HiveService = Depends(get_service)
):
    return await service.trending_for_user(user.id, pages)

@router.get("/titles/{media_type}/{tmdb_id}/providers", response_model=List[WatchProvider])
async def watch_providers(
    media_type: MediaType,
    tmdb_id: int,
    region: str = "US",
    service: DiscoverService = Depends(get_discover)
):
    return await service.watch_providers(media_type, tmdb_id, region.upper())

@router.get("/titles/{media_type}/{tmdb_id}/videos", response_model=List[Video])
async def videos(media_type: MediaType, tmdb_id: int, service: DiscoverService = Depends(get_discover)):
    return await service.videos(media_type, tmdb_id)

@router.get("/titles/{tmdb_id}/next-episode", response_model=NextEpisodeInfo)
async def next_episode(
    tmdb_id: int,
    season: int = Query(..., ge=1),
    episode: int = Query(..., ge=1),
    service: DiscoverService = Depends(get_discover)
):
    return await service.next_episode(tmdb_id, season, episode)

def get_cached_title(title_id: int, session: Session = Depends(get_session)) -> Title:
    title = session.get(Title, title_id)
    if not title:
        raise NotFoundError("Title not found")
    return title

@router.get("/titles/{title_id}", response_model=TitleDetails)
def title_details(title: Title = Depends(get_cached_title), session: Session = Depends(get_session)):
    return TitleService(session).details(title)

@router.get("/titles/{title_id}/seasons/{season_number}", response_model=List[EpisodeRead])
async def season_episodes(
    season_number: int,
    title: Title = Depends(get_cached_title),
    service: TitleService = Depends(get_titles)
):
    return await service.season_episodes(title, season_number)

@router.post("/titles/{title_id}/refresh", response_model=TitleRead)
async def refresh_title(
    title: Title = Depends(get_cached_title),
    user: User = Depends(require_user),
    service: TitleService = Depends(get_titles)
):
    title = await service.refresh(title)
    return TitleRead.from_title(title)

@router.post("/backfill")
async def backfill(
    limit: int = Query(25, ge=1, le=200),
    x_cron_secret: Optional[str] = Header(None),
    service: TitleService = Depends(get_titles)
):
    """Fill in episodes for series that were added before their seasons were synced."""
    if not settings.CRON_SECRET or not hmac.compare_digest(x_cron_secret or "", settings.CRON_SECRET):
        raise PermissionDeniedError()

    results = await service.backfill_pending(limit)
    return {"titles": len(results), "episodes": sum(results.values())}
