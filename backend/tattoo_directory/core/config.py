"""Application configuration loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed settings exposed via dependency injection throughout the app."""

    # Read .env with BOM tolerance; case-sensitive keys
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8-sig",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Tattoo Directory API"
    ENV: str = "dev"  # dev | staging | prod
    DEBUG: bool = False

    # CORS (the directory is a public read API)
    CORS_ALLOWED_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])

    # Datastore
    # Full SQLAlchemy URL; when unset the MySQL parts below are used.
    DATABASE_URL: str | None = None
    DB_HOST: str = "127.0.0.1"
    DB_PORT: int = 3306
    DB_USER: str = "directory"
    DB_PASSWORD: str = ""  # set via env/.env
    DB_NAME: str = "tattoo_directory"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 10
    DB_POOL_RECYCLE: int = 3600
    DB_ISOLATION_LEVEL: str = "READ COMMITTED"
    DB_CONNECT_TIMEOUT_SEC: int = 5
    # Upper bound for the datastore work of a single request.
    DB_OP_TIMEOUT_SEC: float = 15.0
    DB_RETRY_ATTEMPTS: int = 4
    DB_RETRY_BASE_DELAY: float = 0.05
    DB_RETRY_JITTER: float = 0.025

    # Redis cache (optional - the API works without it, every read is a miss)
    CACHE_ENABLED: bool = True
    REDIS_URL: str | None = None
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    CACHE_CONNECT_TIMEOUT_SEC: float = 0.5
    CACHE_OP_TIMEOUT_SEC: float = 0.25
    CACHE_SCAN_BATCH: int = 500

    # Cache TTLs in seconds
    CACHE_TTL_SEARCH: int = 900
    CACHE_TTL_ARTIST: int = 3600
    CACHE_TTL_CITIES: int = 1800
    CACHE_TTL_SHOPS: int = 1800
    CACHE_TTL_SHOP: int = 1800

    # Request limits
    MAX_BODY_BYTES: int = 64 * 1024
    ARTIST_SUBMIT_RATE: str = "30/minute"
    SEARCH_RESULT_LIMIT: int = 50
    MAX_PAGE_SIZE: int = 200

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"mysql+aiomysql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}?charset=utf8mb4"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_URL:
            return self.REDIS_URL
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


settings = Settings()
