from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field

from apps.core.models import MediaType, Title


class _TitleResult(BaseModel):
    id: int
    name: str
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    description: Optional[str] = None
    release_date: str = ""
    genres: List[int] = Field(default_factory=list)


class MovieResult(_TitleResult):
    media_type: Literal["MOVIE"] = "MOVIE"


class SeriesResult(_TitleResult):
    media_type: Literal["SERIES"] = "SERIES"


SearchResult = Annotated[Union[MovieResult, SeriesResult], Field(discriminator="media_type")]


class TrendingTitle(BaseModel):
    result: SearchResult
    providers: List[str] = Field(default_factory=list)


class WatchProvider(BaseModel):
    logo_path: str
    provider_name: str


class Video(BaseModel):
    key: str
    name: str
    site: str
    type: str


class NextEpisode(BaseModel):
    episode_number: int
    name: str
    air_date: str


class SeasonProgress(BaseModel):
    current: int
    total: int


class NextEpisodeInfo(BaseModel):
    next_episode: Optional[NextEpisode] = None
    season_progress: SeasonProgress


def movie_from_tmdb(item: Dict[str, Any]) -> MovieResult:
    return MovieResult(
        id=item["id"],
        name=item.get("title") or item.get("original_title") or "",
        poster_url=item.get("poster_path") or None,
        backdrop_url=item.get("backdrop_path") or None,
        description=item.get("overview") or None,
        release_date=item.get("release_date") or "",
        genres=item.get("genre_ids") or [g["id"] for g in item.get("genres", [])],
    )


def series_from_tmdb(item: Dict[str, Any]) -> SeriesResult:
    return SeriesResult(
        id=item["id"],
        name=item.get("name") or item.get("original_name") or "",
        poster_url=item.get("poster_path") or None,
        backdrop_url=item.get("backdrop_path") or None,
        description=item.get("overview") or None,
        release_date=item.get("first_air_date") or "",
        genres=item.get("genre_ids") or [g["id"] for g in item.get("genres", [])],
    )


def result_from_tmdb(item: Dict[str, Any]) -> Optional[Union[MovieResult, SeriesResult]]:
    """Map a raw multi-search / trending item; people and unknown kinds map to None."""
    kind = item.get("media_type")
    if kind == "movie":
        return movie_from_tmdb(item)
    if kind == "tv":
        return series_from_tmdb(item)
    return None


class TitleRead(BaseModel):
    id: int
    tmdb_id: int
    media_type: MediaType
    name: str
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    description: Optional[str] = None
    directors: List[str] = Field(default_factory=list)
    imdb_id: Optional[str] = None
    release_date: str = ""
    genres: List[int] = Field(default_factory=list)

    @classmethod
    def from_title(cls, title: Title) -> "TitleRead":
        # Attribute access reloads rows expired by an earlier commit
        data = {name: getattr(title, name) for name in TitleRead.model_fields if name != "genres"}
        return cls(**data, genres=title.genre_ids())


class SeasonRead(BaseModel):
    season_number: int
    total_episodes: int = 0
    episodes_stored: int = 0
    air_date: Optional[str] = None


class TitleDetails(TitleRead):
    seasons: List[SeasonRead] = Field(default_factory=list)


class EpisodeRead(BaseModel):
    episode_number: int
    name: str
    air_date: Optional[str] = None
    overview: Optional[str] = None
    runtime: Optional[int] = None
