import asyncio
import logging
from datetime import date, datetime
from typing import Optional, Dict, Any, List, Union
from sqlalchemy.exc import IntegrityError
from sqlmodel import select, func, col

from apps.core.base_service import BaseService
from apps.core.exceptions import BackfillError, HivioError, NotFoundError, ProviderError
from apps.core.models import MediaType, Title, Season, Episode
from apps.core.schemas import (
    MovieResult, SeriesResult, TrendingTitle, WatchProvider, Video,
    NextEpisode, NextEpisodeInfo, SeasonProgress,
    TitleRead, TitleDetails, SeasonRead, EpisodeRead,
    movie_from_tmdb, series_from_tmdb, result_from_tmdb,
)

logger = logging.getLogger(__name__)

MULTI_SEARCH_LIMIT = 25


def title_fields(payload: Dict[str, Any], media_type: MediaType) -> Dict[str, Any]:
    """Map a TMDB details payload onto Title columns."""
    if media_type == MediaType.MOVIE:
        crew = (payload.get("credits") or {}).get("crew") or []
        directors = [c["name"] for c in crew if c.get("job") == "Director"]
        name = payload.get("title") or payload.get("original_title")
        release_date = payload.get("release_date")
    else:
        directors = [c["name"] for c in payload.get("created_by") or []]
        name = payload.get("name") or payload.get("original_name")
        release_date = payload.get("first_air_date")

    external_ids = payload.get("external_ids") or {}
    return {
        "name": name or "",
        "poster_url": payload.get("poster_path") or None,
        "backdrop_url": payload.get("backdrop_path") or None,
        "description": payload.get("overview") or None,
        "directors": directors,
        "imdb_id": external_ids.get("imdb_id") or None,
        "release_date": release_date or "",
        "genres": [g["id"] for g in payload.get("genres") or []],
    }


def seasons_from_payload(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Seasons worth storing for a show. Specials (season 0) and seasons
    without an air date are dropped.
    """
    seasons = []
    for season in payload.get("seasons") or []:
        number = season.get("season_number")
        if not number or not season.get("air_date"):
            continue
        seasons.append({
            "season_number": number,
            "total_episodes": season.get("episode_count") or 0,
            "air_date": season["air_date"],
        })
    return seasons


def _parse_air_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def find_next_episode(episodes: List[Dict[str, Any]], current_episode: int, today: date) -> Optional[NextEpisode]:
    """
    First episode after the current one airing today or later. If none is
    upcoming, fall back to the most recently aired episode of the season.
    """
    numbers = [ep.get("episode_number") for ep in episodes]
    if current_episode not in numbers:
        return None

    def to_next(ep: Dict[str, Any]) -> NextEpisode:
        number = ep["episode_number"]
        return NextEpisode(episode_number=number, name=ep.get("name") or f"Episode {number}", air_date=ep["air_date"])

    for ep in episodes[numbers.index(current_episode) + 1:]:
        aired = _parse_air_date(ep.get("air_date"))
        if aired and aired >= today:
            return to_next(ep)

    for ep in reversed(episodes):
        aired = _parse_air_date(ep.get("air_date"))
        if aired and aired < today:
            return to_next(ep)

    return None


class TitleService(BaseService):

    def get_title(self, tmdb_id: int, media_type: MediaType) -> Optional[Title]:
        return self.session.exec(
            select(Title).where(Title.tmdb_id == tmdb_id, Title.media_type == media_type)
        ).first()

    async def fetch_payload(self, tmdb_id: int, media_type: MediaType) -> Dict[str, Any]:
        if media_type == MediaType.MOVIE:
            details, credits = await asyncio.gather(
                self.tmdb.get_details(MediaType.MOVIE, tmdb_id),
                self.tmdb.get_movie_credits(tmdb_id),
            )
            details["credits"] = credits
            return details
        return await self.tmdb.get_details(MediaType.SERIES, tmdb_id)

    async def resolve(self, tmdb_id: int, media_type: MediaType) -> Title:
        """
        Return the cached Title for (tmdb_id, media_type), creating it from
        TMDB on first use. Existing rows are returned as they are.
        """
        title = self.get_title(tmdb_id, media_type)
        if title:
            return title

        payload = await self.fetch_payload(tmdb_id, media_type)
        title = Title(tmdb_id=tmdb_id, media_type=media_type, **title_fields(payload, media_type))

        try:
            self.session.add(title)
            self.session.flush()
            if media_type == MediaType.SERIES:
                self.session.add_all(
                    Season(title_id=title.id, **season) for season in seasons_from_payload(payload)
                )
            self.session.commit()
        except IntegrityError:
            # Another request inserted the same title first
            self.session.rollback()
            existing = self.get_title(tmdb_id, media_type)
            if existing is None:
                raise
            logger.info("Title %s/%s created concurrently, reusing row %s", media_type.value, tmdb_id, existing.id)
            return existing

        self.session.refresh(title)
        logger.info("Cached new title %s (%s/%s)", title.id, media_type.value, tmdb_id)
        return title

    def count_episodes(self, title_id: int) -> int:
        return self.session.exec(
            select(func.count(Episode.id)).join(Season).where(Season.title_id == title_id)
        ).one()

    async def backfill_episodes(self, title: Title) -> int:
        """
        Insert every episode of a series in one batch. Only runs while the
        title has no episodes at all. Returns the number of rows inserted.
        """
        if title.media_type != MediaType.SERIES:
            return 0
        if self.count_episodes(title.id) > 0:
            return 0

        seasons = self.session.exec(select(Season).where(Season.title_id == title.id)).all()
        season_ids = {season.season_number: season.id for season in seasons}
        if not season_ids:
            return 0

        data = await self.tmdb.get_series_with_seasons(title.tmdb_id, sorted(season_ids))

        episodes = []
        for number in sorted(season_ids):
            for ep in (data.get(f"season/{number}") or {}).get("episodes") or []:
                season_id = season_ids.get(ep.get("season_number"))
                if season_id is None:
                    raise BackfillError(f"Season {ep.get('season_number')} not found for {title.name}")
                episode_number = ep["episode_number"]
                episodes.append(Episode(
                    season_id=season_id,
                    episode_number=episode_number,
                    name=ep.get("name") or f"Episode {episode_number}",
                    air_date=ep.get("air_date") or None,
                    overview=ep.get("overview") or None,
                    runtime=ep.get("runtime"),
                ))

        try:
            self.session.add_all(episodes)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info("Episodes for title %s were backfilled concurrently", title.id)
            return 0

        logger.info("Backfilled %d episodes for title %s", len(episodes), title.id)
        return len(episodes)

    async def backfill_pending(self, limit: int = 25) -> Dict[int, int]:
        """Backfill series that have no episodes yet. Failures skip to the next title."""
        with_episodes = select(Season.title_id).join(Episode)
        titles = self.session.exec(
            select(Title)
            .where(Title.media_type == MediaType.SERIES, col(Title.id).not_in(with_episodes))
            .limit(limit)
        ).all()

        results = {}
        for title in titles:
            try:
                results[title.id] = await self.backfill_episodes(title)
            except HivioError as e:
                logger.warning("Backfill failed for title %s: %s", title.id, e.message)
        return results

    def missing_seasons(self, title: Title, payload: Dict[str, Any]) -> List[Season]:
        known = set(self.session.exec(
            select(Season.season_number).where(Season.title_id == title.id)
        ).all())
        return [
            Season(title_id=title.id, **season)
            for season in seasons_from_payload(payload)
            if season["season_number"] not in known
        ]

    async def refresh(self, title: Title) -> Title:
        """Re-fetch metadata, add missing seasons and backfill episodes."""
        payload = await self.fetch_payload(title.tmdb_id, title.media_type)

        for key, value in title_fields(payload, title.media_type).items():
            setattr(title, key, value)
        title.updated_at = datetime.utcnow()
        self.session.add(title)
        self.session.commit()

        if title.media_type == MediaType.SERIES:
            seasons = self.missing_seasons(title, payload)
            try:
                self.session.add_all(seasons)
                self.session.commit()
            except IntegrityError:
                # A concurrent refresh stored the same seasons first
                self.session.rollback()
                logger.info("Seasons for title %s were added concurrently", title.id)

        self.session.refresh(title)
        await self.backfill_episodes(title)
        return title

    def details(self, title: Title) -> TitleDetails:
        """The cached title with its seasons and how many episodes each has stored."""
        rows = self.session.exec(
            select(Season, func.count(Episode.id))
            .outerjoin(Episode, Episode.season_id == Season.id)
            .where(Season.title_id == title.id)
            .group_by(Season.id)
            .order_by(Season.season_number)
        ).all()
        seasons = [
            SeasonRead(
                season_number=season.season_number,
                total_episodes=season.total_episodes,
                episodes_stored=stored,
                air_date=season.air_date,
            )
            for season, stored in rows
        ]
        return TitleDetails(**TitleRead.from_title(title).model_dump(), seasons=seasons)

    async def season_episodes(self, title: Title, season_number: int) -> List[EpisodeRead]:
        """
        Episodes of one season from the local rows. Seasons that were not
        backfilled yet are read from TMDB without being stored.
        """
        if title.media_type != MediaType.SERIES:
            raise NotFoundError("Movies have no seasons")

        episodes = self.session.exec(
            select(Episode)
            .join(Season)
            .where(Season.title_id == title.id, Season.season_number == season_number)
            .order_by(Episode.episode_number)
        ).all()
        if episodes:
            return [EpisodeRead(**{name: getattr(ep, name) for name in EpisodeRead.model_fields}) for ep in episodes]

        data = await self.tmdb.get_season_details(title.tmdb_id, season_number)
        if not data:
            raise NotFoundError("Season not found")
        return [
            EpisodeRead(
                episode_number=ep["episode_number"],
                name=ep.get("name") or f"Episode {ep['episode_number']}",
                air_date=ep.get("air_date") or None,
                overview=ep.get("overview") or None,
                runtime=ep.get("runtime"),
            )
            for ep in data.get("episodes") or []
        ]


class DiscoverService(BaseService):

    async def search(self, query: str, media_type: Optional[MediaType] = None) -> List[Union[MovieResult, SeriesResult]]:
        if media_type == MediaType.MOVIE:
            data = await self.tmdb.search_movies(query)
            return [movie_from_tmdb(item) for item in data.get("results", [])]
        if media_type == MediaType.SERIES:
            data = await self.tmdb.search_tv(query)
            return [series_from_tmdb(item) for item in data.get("results", [])]

        data = await self.tmdb.search_multi(query)
        results = [result_from_tmdb(item) for item in data.get("results", [])]
        return [r for r in results if r is not None][:MULTI_SEARCH_LIMIT]

    async def watch_providers(self, media_type: MediaType, tmdb_id: int, region: str = "US") -> List[WatchProvider]:
        try:
            data = await self.tmdb.get_watch_providers(media_type, tmdb_id)
        except ProviderError:
            return []
        flatrate = ((data.get("results") or {}).get(region) or {}).get("flatrate") or []
        return [WatchProvider(logo_path=p["logo_path"], provider_name=p["provider_name"]) for p in flatrate if p.get("logo_path")]

    async def videos(self, media_type: MediaType, tmdb_id: int) -> List[Video]:
        try:
            data = await self.tmdb.get_videos(media_type, tmdb_id)
        except ProviderError:
            return []
        return [
            Video(key=v["key"], name=v["name"], site=v["site"], type=v["type"])
            for v in data.get("results") or []
            if v.get("site") == "YouTube" and v.get("type") in ("Trailer", "Teaser")
        ]

    async def trending(self, pages: int = 1) -> List[TrendingTitle]:
        """Weekly trending titles with up to three streaming provider logos each."""
        try:
            responses = await asyncio.gather(*(self.tmdb.get_trending(page=page) for page in range(1, pages + 1)))
        except ProviderError:
            return []

        seen = set()
        results = []
        for data in responses:
            for item in data.get("results") or []:
                result = result_from_tmdb(item)
                if result is None or (result.id, result.media_type) in seen:
                    continue
                seen.add((result.id, result.media_type))
                results.append(result)

        providers = await asyncio.gather(
            *(self.watch_providers(MediaType(r.media_type), r.id) for r in results)
        )
        return [
            TrendingTitle(result=result, providers=[p.logo_path for p in found[:3]])
            for result, found in zip(results, providers)
        ]

    async def next_episode(self, tmdb_id: int, current_season: int, current_episode: int,
                           today: Optional[date] = None) -> NextEpisodeInfo:
        today = today or date.today()
        try:
            season = await self.tmdb.get_season_details(tmdb_id, current_season)
        except ProviderError:
            return NextEpisodeInfo(season_progress=SeasonProgress(current=current_episode, total=0))

        episodes = season.get("episodes") or []
        return NextEpisodeInfo(
            next_episode=find_next_episode(episodes, current_episode, today),
            season_progress=SeasonProgress(current=current_episode, total=len(episodes)),
        )
