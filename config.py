import os
from dotenv import load_dotenv
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

class Settings(BaseSettings):
    PROJECT_NAME: str = "Hivio"
    SECRET_KEY: str = os.getenv("SECRET_KEY", "hivio_secret_key_123")
    SITE_URL: str = os.getenv("SITE_URL", "http://localhost:8000")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///data/hivio.db")

    # TMDB
    TMDB_API_KEY: str = os.getenv("TMDB_API_KEY", "")
    TMDB_BASE_URL: str = "https://api.themoviedb.org/3"
    TMDB_IMAGE_URL: str = "https://image.tmdb.org/t/p"
    TMDB_TIMEOUT: float = 10.0

    # Auth0
    AUTH0_DOMAIN: Optional[str] = os.getenv("AUTH0_DOMAIN")
    AUTH0_CLIENT_ID: Optional[str] = os.getenv("AUTH0_CLIENT_ID")
    AUTH0_CLIENT_SECRET: Optional[str] = os.getenv("AUTH0_CLIENT_SECRET")
    AUTH0_CALLBACK_URL: Optional[str] = os.getenv("AUTH0_CALLBACK_URL") # Defaults to the callback route on this host

    # Shared secret for the scheduled episode backfill
    CRON_SECRET: Optional[str] = os.getenv("CRON_SECRET")

    UPLOAD_DIR: str = "static/uploads/avatars"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
