from typing import Optional, List
from datetime import datetime
from sqlmodel import SQLModel

from apps.hive.models import HiveItem


class PublicUser(SQLModel):
    username: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    created_at: Optional[datetime] = None


class ProfileStats(SQLModel):
    total: int = 0
    movies: int = 0
    series: int = 0
    finished: int = 0
    watching: int = 0
    favourites: int = 0


class Profile(SQLModel):
    user: PublicUser
    hive: List[HiveItem]
    stats: ProfileStats
    total_followers: int = 0
    total_following: int = 0
    followers: List[PublicUser] = []
    following: List[PublicUser] = []


class ProfileCard(PublicUser):
    total_followers: int = 0


class FollowState(SQLModel):
    following: bool
    total_followers: int
