import logging
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any
from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_
from sqlmodel import select

from apps.auth.models import User, Follow
from apps.core.base_service import BaseService
from apps.core.exceptions import ConflictError, ValidationError
from apps.core.models import HiveStatus
from apps.hive.models import HiveEntry
from config import settings

logger = logging.getLogger(__name__)

NAME_MIN_LENGTH = 4
NAME_MAX_LENGTH = 50

# Raster images only
AVATAR_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif"}
AVATAR_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


def _check_length(value: str, label: str) -> str:
    if not NAME_MIN_LENGTH <= len(value) <= NAME_MAX_LENGTH:
        raise ValidationError(f"{label} must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters")
    return value


class AuthService(BaseService):

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.email == email)).first()

    def get_or_create_user(self, user_info: Dict[str, Any]) -> User:
        """Match the Auth0 profile to a local user by email, creating it on first login."""
        user = self.get_user_by_email(user_info["email"])
        if not user:
            user = User(
                email=user_info["email"],
                external_id=user_info.get("sub"),
                name=user_info.get("name"),
                avatar=user_info.get("picture"),
            )
            logger.info("Creating user for %s", user.email)
        else:
            # Fill in anything the provider knows that we don't
            if not user.external_id:
                user.external_id = user_info.get("sub")
            if not user.avatar:
                user.avatar = user_info.get("picture")

        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    # --- SETTINGS ---

    def _save(self, user: User) -> User:
        user.updated_at = datetime.utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def set_username(self, user: User, username: str) -> User:
        if user.username:
            raise ConflictError("Username can only be set once")

        username = _check_length(username.strip().lower(), "Username")
        taken = self.session.exec(select(User).where(User.username == username)).first()
        if taken:
            raise ConflictError("Username already taken, please try another one!")

        user.username = username
        try:
            return self._save(user)
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Username already taken, please try another one!")

    def set_display_name(self, user: User, name: str) -> User:
        user.name = _check_length(name.strip(), "Display name")
        return self._save(user)

    def set_default_status(self, user: User, status: HiveStatus) -> User:
        user.default_status = status
        return self._save(user)

    def update_avatar(self, user: User, avatar: UploadFile) -> User:
        if not avatar.filename:
            raise ValidationError("No file uploaded")

        extension = avatar.filename.rsplit(".", 1)[-1].lower() if "." in avatar.filename else ""
        if extension not in AVATAR_EXTENSIONS or avatar.content_type not in AVATAR_CONTENT_TYPES:
            raise ValidationError("Avatar must be a JPG, PNG, WEBP or GIF image")

        file_name = f"user_{user.id}_{uuid.uuid4()}.{extension}"
        destination = Path(settings.UPLOAD_DIR) / file_name
        destination.parent.mkdir(parents=True, exist_ok=True)

        with open(destination, "wb") as buffer:
            shutil.copyfileobj(avatar.file, buffer)

        user.avatar = f"/{destination.as_posix()}"
        return self._save(user)

    def delete_account(self, user: User) -> None:
        """Remove the user together with their hive and follow relations."""
        user_id = user.id
        entries = self.session.exec(select(HiveEntry).where(HiveEntry.user_id == user_id)).all()
        follows = self.session.exec(
            select(Follow).where(or_(Follow.follower_id == user_id, Follow.followed_id == user_id))
        ).all()
        for row in [*entries, *follows]:
            self.session.delete(row)
        self.session.delete(user)
        self.session.commit()
        logger.info("Deleted account %s", user_id)
