from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_env: str = "dev"
    database_url: str = "sqlite+pysqlite:///./trafficsnap.db"
    redis_url: str = "redis://localhost:6379/0"
    youtube_api_key: str | None = None
    youtube_api_url: str = "https://www.googleapis.com/youtube/v3"
    youtube_timeout_s: float = 10.0
    telegram_bot_token: str | None = None
    tz: str = "Europe/Moscow"
    log_level: str = "INFO"
    storage_root: str = "./storage"
    # videos.list accepts at most 50 ids per call
    catalog_batch_size: int = 50
    catalog_quota_cost: int = 7
    snapshot_period_buffer_ms: int = 5000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def get_settings() -> "Settings":
    return Settings()


settings = get_settings()
