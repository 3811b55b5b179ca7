import logging
import httpx
from typing import Optional, Dict, Any, Iterable, List
from config import settings
from apps.core.exceptions import ProviderError
from apps.core.models import MediaType

logger = logging.getLogger(__name__)

# TMDB rejects append_to_response lists longer than this
APPEND_LIMIT = 20

class TMDBService:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.TMDB_API_KEY
        self.base_url = settings.TMDB_BASE_URL
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"},
            params={"language": "en-US"},
            timeout=settings.TMDB_TIMEOUT,
            transport=transport,
        )

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self) -> "TMDBService":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, allow_missing: bool = False) -> Dict[str, Any]:
        try:
            response = await self.client.get(path, params=params)
            if allow_missing and response.status_code == 404:
                return {}
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.warning("TMDB request %s failed: %s", path, e)
            raise ProviderError() from e

    async def search_multi(self, query: str, page: int = 1) -> Dict[str, Any]:
        """Search for movies, TV shows and people."""
        return await self._get("/search/multi", {"query": query, "page": page, "include_adult": "false"})

    async def search_movies(self, query: str, page: int = 1) -> Dict[str, Any]:
        return await self._get("/search/movie", {"query": query, "page": page, "include_adult": "false"})

    async def search_tv(self, query: str, page: int = 1) -> Dict[str, Any]:
        return await self._get("/search/tv", {"query": query, "page": page, "include_adult": "false"})

    async def get_trending(self, media_type: str = "all", time_window: str = "week", page: int = 1) -> Dict[str, Any]:
        """Get trending movies/tv shows."""
        return await self._get(f"/trending/{media_type}/{time_window}", {"page": page})

    async def get_details(self, media_type: MediaType, tmdb_id: int, append: Iterable[str] = ("external_ids",)) -> Dict[str, Any]:
        """Get full details for a movie or TV show."""
        params = {}
        append_to = ",".join(append)
        if append_to:
            params["append_to_response"] = append_to
        return await self._get(f"/{media_type.tmdb_path}/{tmdb_id}", params)

    async def get_movie_credits(self, tmdb_id: int) -> Dict[str, Any]:
        return await self._get(f"/movie/{tmdb_id}/credits")

    async def get_season_details(self, tv_id: int, season_number: int) -> Dict[str, Any]:
        """Get details for a specific season. Unknown seasons come back empty."""
        return await self._get(f"/tv/{tv_id}/season/{season_number}", allow_missing=True)

    async def get_series_with_seasons(self, tv_id: int, season_numbers: List[int]) -> Dict[str, Any]:
        """
        Fetch a show with every requested season appended as ``season/<n>`` keys.
        One request per 20 seasons.
        """
        keys = [f"season/{n}" for n in season_numbers]
        merged: Dict[str, Any] = {}
        for start in range(0, max(len(keys), 1), APPEND_LIMIT):
            chunk = keys[start:start + APPEND_LIMIT]
            data = await self.get_details(MediaType.SERIES, tv_id, append=chunk)
            merged.update(data)
        return merged

    async def get_watch_providers(self, media_type: MediaType, tmdb_id: int) -> Dict[str, Any]:
        return await self._get(f"/{media_type.tmdb_path}/{tmdb_id}/watch/providers")

    async def get_videos(self, media_type: MediaType, tmdb_id: int) -> Dict[str, Any]:
        return await self._get(f"/{media_type.tmdb_path}/{tmdb_id}/videos")

def image_url(path: Optional[str], size: str = "w500") -> Optional[str]:
    if not path:
        return None
    return f"{settings.TMDB_IMAGE_URL}/{size}{path}"

async def get_tmdb():
    """FastAPI dependency yielding a client that is closed after the request."""
    tmdb = TMDBService()
    try:
        yield tmdb
    finally:
        await tmdb.close()
