from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    DATABASE_URL: str = "sqlite:///seawatch.db"
    LOG_LEVEL: str = "INFO"
    # Connection pool (ignored for SQLite)
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    # CORS origins (comma-separated string for env var support)
    CORS_ORIGINS: str = "http://localhost:5173"
    # aisstream.io real-time AIS WebSocket
    AISSTREAM_API_KEY: str | None = None
    AISSTREAM_WS_URL: str = "wss://stream.aisstream.io/v0/stream"
    AISSTREAM_DEFAULT_DURATION: int = 300
    # Seconds without a frame before the session is treated as idle and closed
    AISSTREAM_IDLE_TIMEOUT: float = 60.0
    # Named bounding boxes for the feed subscription (global when the file is missing)
    REGIONS_CONFIG: str = "config/regions.yaml"
    # Value stored in vessel_positions.source_feed
    SOURCE_FEED: str = "aisstream"
    # Live view: bulk-load window, reconciliation interval, freshness threshold
    LIVE_WINDOW_HOURS: float = 6.0
    LIVE_RELOAD_INTERVAL: float = 30.0
    # Pending events per realtime subscriber; overflow is dropped and reconciled by reload
    NOTIFIER_QUEUE_SIZE: int = 1000
    FRESHNESS_MINUTES: float = 30.0
    # Speed buckets (knots): > FAST is fast, >= MEDIUM is medium, otherwise slow
    FAST_SPEED_KNOTS: float = 15.0
    MEDIUM_SPEED_KNOTS: float = 5.0


settings = Settings()
