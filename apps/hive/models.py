from typing import Optional, List
from datetime import datetime
from pydantic import field_validator
from sqlmodel import SQLModel, Field, Relationship, UniqueConstraint

from apps.auth.models import User
from apps.core.models import HiveStatus, MediaType, Title
from apps.core.schemas import TitleRead


class HiveEntryFields(SQLModel):
    """Fields a user may set on their own entry; all optional for partial updates."""
    status: Optional[HiveStatus] = None
    current_season: Optional[int] = Field(default=None, ge=0)
    current_episode: Optional[int] = Field(default=None, ge=0)
    current_runtime: Optional[int] = Field(default=None, ge=0) # Minutes into a movie
    is_favourite: Optional[bool] = None
    rating: Optional[float] = Field(default=None, ge=0, le=10)

    @field_validator("status", mode="before")
    @classmethod
    def translate_legacy_status(cls, value):
        if isinstance(value, str):
            return HiveStatus.from_legacy(value)
        return value


class HiveEntryUpdate(HiveEntryFields):
    pass


class AddToHive(HiveEntryFields):
    tmdb_id: int = Field(gt=0)
    media_type: MediaType


class HiveEntry(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("user_id", "title_id", name="unique_user_title"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title_id: int = Field(foreign_key="title.id", index=True)

    status: HiveStatus = Field(default=HiveStatus.PLANNED, index=True)
    current_season: Optional[int] = None
    current_episode: Optional[int] = None
    current_runtime: Optional[int] = None
    is_favourite: bool = Field(default=False)
    rating: Optional[float] = None # 0-10

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    user: Optional[User] = Relationship()
    title: Optional[Title] = Relationship()


class HiveEntryRead(SQLModel):
    id: int
    title_id: int
    status: HiveStatus
    current_season: Optional[int] = None
    current_episode: Optional[int] = None
    current_runtime: Optional[int] = None
    is_favourite: bool
    rating: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class HiveItem(HiveEntryRead):
    title: TitleRead


class HivePage(SQLModel):
    data: List[HiveItem]
    total: int


class DashboardStats(SQLModel):
    total: int = 0
    watching: int = 0
    finished: int = 0
    planned: int = 0
    favourites: int = 0
    progress_value: int = 0


class Dashboard(SQLModel):
    stats: DashboardStats
    watching_items: List[HiveItem]
