from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint
from datetime import datetime

from apps.core.models import HiveStatus

class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    external_id: Optional[str] = Field(default=None, index=True) # Auth0 Sub ID
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    # Profile Fields
    username: Optional[str] = Field(default=None, unique=True, index=True) # Set once
    name: Optional[str] = None
    avatar: Optional[str] = None # URL or uploaded file path
    default_status: Optional[HiveStatus] = None

class Follow(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("follower_id", "followed_id", name="unique_follow"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    follower_id: int = Field(foreign_key="user.id", index=True)
    followed_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

class UserRead(SQLModel):
    id: int
    email: str
    username: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    default_status: Optional[HiveStatus] = None
    created_at: datetime
