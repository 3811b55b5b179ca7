import json
from typing import Optional, List
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field, Relationship, UniqueConstraint


class MediaType(str, Enum):
    MOVIE = "MOVIE"
    SERIES = "SERIES"

    @property
    def tmdb_path(self) -> str:
        """Path segment TMDB uses for this kind ('movie' or 'tv')."""
        return "movie" if self is MediaType.MOVIE else "tv"

    @classmethod
    def from_tmdb(cls, value: str) -> "MediaType":
        if value == "movie":
            return cls.MOVIE
        if value == "tv":
            return cls.SERIES
        raise ValueError(f"Unsupported TMDB media type: {value}")


# Statuses from the first schema generation and where they land now
LEGACY_STATUS_MAP = {
    "UPCOMING": "PLANNED",
    "PENDING": "PLANNED",
    "WATCHING": "WATCHING",
    "UNFINISHED": "ON_HOLD",
    "FINISHED": "FINISHED",
}


class HiveStatus(str, Enum):
    FINISHED = "FINISHED"
    WATCHING = "WATCHING"
    PLANNED = "PLANNED"
    ON_HOLD = "ON_HOLD"
    DROPPED = "DROPPED"
    REWATCHING = "REWATCHING"

    @classmethod
    def from_legacy(cls, value: str) -> "HiveStatus":
        """Accept both vocabularies; legacy values are translated, never stored."""
        value = value.strip().upper()
        if value in cls.__members__:
            return cls(value)
        if value in LEGACY_STATUS_MAP:
            return cls(LEGACY_STATUS_MAP[value])
        raise ValueError(f"Unknown status: {value}")


# Display order for status sorting and dashboards
STATUS_ORDER = {
    HiveStatus.WATCHING: 0,
    HiveStatus.REWATCHING: 1,
    HiveStatus.PLANNED: 2,
    HiveStatus.ON_HOLD: 3,
    HiveStatus.FINISHED: 4,
    HiveStatus.DROPPED: 5,
}


class Title(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("tmdb_id", "media_type", name="unique_title_tmdb_media_type"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    tmdb_id: int = Field(index=True)
    media_type: MediaType = Field(index=True)
    name: str
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    description: Optional[str] = None
    directors: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    imdb_id: Optional[str] = Field(default=None, index=True)
    release_date: str = ""
    genres: List[int] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    seasons: List["Season"] = Relationship(back_populates="title")

    def genre_ids(self) -> List[int]:
        # Older rows stored genres as a JSON-encoded string
        if isinstance(self.genres, str):
            try:
                return [int(g) for g in json.loads(self.genres)]
            except (ValueError, TypeError):
                return []
        return list(self.genres or [])


class Season(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("title_id", "season_number", name="unique_title_season"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    title_id: int = Field(foreign_key="title.id", index=True)
    season_number: int
    total_episodes: int = 0
    air_date: Optional[str] = None

    title: Optional[Title] = Relationship(back_populates="seasons")
    episodes: List["Episode"] = Relationship(back_populates="season")


class Episode(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("season_id", "episode_number", name="unique_season_episode"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    season_id: int = Field(foreign_key="season.id", index=True)
    episode_number: int
    name: str
    air_date: Optional[str] = None
    overview: Optional[str] = None
    runtime: Optional[int] = None

    season: Optional[Season] = Relationship(back_populates="episodes")
