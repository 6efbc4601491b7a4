"""Client settings via environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Client settings via environment variables (prefix ``COPILOT_``)."""

    # Backend
    base_url: str = "http://localhost:8000"
    events_path: str = "/ws/chat/events"
    chat_path: str = "/ws/chat"
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0

    # Reconnect policy
    reconnect_delay_seconds: float = 3.0
    max_reconnect_attempts: int = 5

    # Delay before reporting "disconnected" to observers
    grace_period_seconds: float = 0.5
    initial_grace_period_seconds: float = 2.0  # before the first successful open

    # Block extraction
    extraction_max_iterations: int = 100
    min_emit_length: int = 20

    # Conversation
    max_history_messages: int = 50
    selected_tickers: list[str] = []
    timezone: str = "UTC"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {
        "env_prefix": "COPILOT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
