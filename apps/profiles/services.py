import logging
from typing import List
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_
from sqlmodel import select, func, col

from apps.auth.models import User, Follow
from apps.core.base_service import BaseService
from apps.core.exceptions import NotFoundError
from apps.core.models import HiveStatus, MediaType, Title
from apps.hive.models import HiveEntry
from apps.hive.services import to_item
from apps.profiles.models import Profile, ProfileStats, PublicUser, ProfileCard, FollowState

logger = logging.getLogger(__name__)


def public(user: User) -> PublicUser:
    return PublicUser(username=user.username, name=user.name, avatar=user.avatar, created_at=user.created_at)


class ProfileService(BaseService):

    def get_user_by_username(self, username: str) -> User:
        user = self.session.exec(select(User).where(User.username == username.strip().lower())).first()
        if not user:
            raise NotFoundError("Username not found")
        return user

    def count_followers(self, user_id: int) -> int:
        return self.session.exec(select(func.count(Follow.id)).where(Follow.followed_id == user_id)).one()

    def is_following(self, follower_id: int, followed_id: int) -> bool:
        return self.session.exec(
            select(Follow.id).where(Follow.follower_id == follower_id, Follow.followed_id == followed_id)
        ).first() is not None

    def followers(self, user_id: int) -> List[User]:
        return self.session.exec(
            select(User).join(Follow, Follow.follower_id == User.id).where(Follow.followed_id == user_id)
        ).all()

    def following(self, user_id: int) -> List[User]:
        return self.session.exec(
            select(User).join(Follow, Follow.followed_id == User.id).where(Follow.follower_id == user_id)
        ).all()

    def get_profile(self, username: str) -> Profile:
        """Public view of a user's hive, newest activity first."""
        user = self.get_user_by_username(username)

        rows = self.session.exec(
            select(HiveEntry, Title)
            .join(Title)
            .where(HiveEntry.user_id == user.id)
            .order_by(col(HiveEntry.updated_at).desc(), col(HiveEntry.created_at).desc())
        ).all()

        stats = ProfileStats(
            total=len(rows),
            movies=sum(1 for _, title in rows if title.media_type == MediaType.MOVIE),
            series=sum(1 for _, title in rows if title.media_type == MediaType.SERIES),
            finished=sum(1 for entry, _ in rows if entry.status == HiveStatus.FINISHED),
            watching=sum(1 for entry, _ in rows if entry.status == HiveStatus.WATCHING),
            favourites=sum(1 for entry, _ in rows if entry.is_favourite),
        )
        followers = self.followers(user.id)
        following = self.following(user.id)

        return Profile(
            user=public(user),
            hive=[to_item(entry, title) for entry, title in rows],
            stats=stats,
            total_followers=len(followers),
            total_following=len(following),
            followers=[public(u) for u in followers],
            following=[public(u) for u in following],
        )

    def toggle_follow(self, follower: User, username: str) -> FollowState:
        """Follow the user, or unfollow if already following. Following yourself does nothing."""
        followed = self.get_user_by_username(username)
        if followed.id == follower.id:
            return FollowState(following=False, total_followers=self.count_followers(followed.id))

        existing = self.session.exec(
            select(Follow).where(Follow.follower_id == follower.id, Follow.followed_id == followed.id)
        ).first()

        if existing:
            self.session.delete(existing)
            self.session.commit()
            following = False
        else:
            try:
                self.session.add(Follow(follower_id=follower.id, followed_id=followed.id))
                self.session.commit()
            except IntegrityError:
                # Double submit; the follow already exists
                self.session.rollback()
            following = True

        logger.info("User %s %s %s", follower.id, "followed" if following else "unfollowed", followed.id)
        return FollowState(following=following, total_followers=self.count_followers(followed.id))

    def search_users(self, search: str, limit: int = 10) -> List[PublicUser]:
        pattern = f"%{search.strip()}%"
        users = self.session.exec(
            select(User)
            .where(col(User.username).is_not(None))
            .where(or_(col(User.username).ilike(pattern), col(User.name).ilike(pattern)))
            .limit(limit)
        ).all()
        return [public(u) for u in users]

    def discover(self, limit: int = 20) -> List[ProfileCard]:
        """Profiles with a username, oldest members first."""
        follower_counts = (
            select(Follow.followed_id, func.count(Follow.id).label("total"))
            .group_by(Follow.followed_id)
            .subquery()
        )
        rows = self.session.exec(
            select(User, func.coalesce(follower_counts.c.total, 0))
            .outerjoin(follower_counts, follower_counts.c.followed_id == User.id)
            .where(col(User.username).is_not(None))
            .order_by(col(User.created_at).asc())
            .limit(limit)
        ).all()
        return [ProfileCard(**public(user).model_dump(), total_followers=total) for user, total in rows]
