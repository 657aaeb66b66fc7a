"""
Configuration settings for DawaCare
"""
import os
from pathlib import Path
from typing import List

import dotenv
from pydantic_settings import BaseSettings

# Resolve .env paths relative to the project so settings load regardless of cwd.
_PACKAGE_DIR = Path(__file__).resolve().parent  # dawacare/
_PROJECT_ROOT = _PACKAGE_DIR.parent
_ENV_CANDIDATES = [
    _PROJECT_ROOT / ".env",
    Path.cwd() / ".env",
]
_ENV_FILE = [str(p) for p in _ENV_CANDIDATES if p.is_file()]

# Load .env into os.environ so the os.getenv defaults below see it too.
for p in _ENV_CANDIDATES:
    if p.is_file():
        dotenv.load_dotenv(p, override=False)
        break


class Settings(BaseSettings):
    """Application settings"""

    # App
    APP_NAME: str = "DawaCare"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database (cloud store is PostgreSQL; desktop copy and tests use SQLite)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
    DB_NAME: str = os.getenv("DB_NAME", "dawacare")
    DB_USER: str = os.getenv("DB_USER", "postgres")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "")
    # Statement timeout applied to PostgreSQL connections (milliseconds)
    DB_STATEMENT_TIMEOUT_MS: int = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "120000"))
    # Create missing tables at startup
    DB_AUTO_CREATE: bool = os.getenv("DB_AUTO_CREATE", "True").lower() == "true"

    @property
    def database_connection_string(self) -> str:
        """Build database connection string"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # Branch code used in document numbers when a branch has none
    DEFAULT_BRANCH_CODE: str = os.getenv("DEFAULT_BRANCH_CODE", "MAIN")

    # CORS - comma-separated
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        origins = [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]
        return list(dict.fromkeys(origins))

    # Security (tokens are issued by the auth collaborator; we only verify them)
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
    # Browser sessions carry the same token in this cookie
    SESSION_COOKIE_NAME: str = os.getenv("SESSION_COOKIE_NAME", "dawacare_session")

    # Desktop client (offline copy + sync)
    LOCAL_DATABASE_URL: str = os.getenv("LOCAL_DATABASE_URL", "sqlite:///./dawacare-local.db")
    SYNC_SERVER_URL: str = os.getenv("SYNC_SERVER_URL", "")
    SYNC_TOKEN: str = os.getenv("SYNC_TOKEN", "")
    SYNC_TIMEOUT_SECONDS: int = int(os.getenv("SYNC_TIMEOUT_SECONDS", "30"))
    # Download cursors are stepped back by this much; re-sent rows merge idempotently
    SYNC_CURSOR_OVERLAP_SECONDS: int = int(os.getenv("SYNC_CURSOR_OVERLAP_SECONDS", "5"))

    class Config:
        env_file = _ENV_FILE if _ENV_FILE else [".env"]
        case_sensitive = True
        extra = "ignore"


settings = Settings()
