from typing import Optional
from sqlmodel import Session
from apps.core.tmdb import TMDBService


class BaseService:
    def __init__(self, session: Session, tmdb: Optional[TMDBService] = None):
        self.session = session
        self._tmdb = tmdb

    @property
    def tmdb(self) -> TMDBService:
        # Created lazily so DB-only services never open an HTTP client
        if self._tmdb is None:
            self._tmdb = TMDBService()
        return self._tmdb
