from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Content API
    CONTENT_API_URL: str = "http://localhost:8000/api/v1"
    CONTENT_API_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT_SECONDS: int = 30

    # Sync Logic
    SAVE_INTERVAL_MS: int = 10000  # 10s debounce window
    MIN_PROGRESS_CHANGE_SECONDS: float = 5
    COMPLETION_THRESHOLD_PERCENT: float = 90
    AUTO_SAVE: bool = True
    IDLE_TIMEOUT_SECONDS: int = 900  # dispose sessions without ticks for 15 min
    HOUSEKEEPING_INTERVAL_SECONDS: int = 60

    # Persistence
    STATE_PATH: str = "/data/watch_state.json"
    PERSIST_ENABLED: bool = True
    CONTINUE_WATCHING_MAX_SIZE: int = 50

    # System
    LOG_LEVEL: str = "INFO"
    DRY_RUN: bool = False
    HTTP_SERVER_ENABLED: bool = True
    HTTP_SERVER_HOST: str = "0.0.0.0"
    HTTP_SERVER_PORT: int = 8080
    HTTP_SERVER_TOKEN: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
