from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".companion" / "data"
    sqlite_filename: str = "companion.db"
    queue_filename: str = "offline_queue.db"

    server_url: str = "http://127.0.0.1:8000"
    request_timeout: float = 10.0
    health_timeout: float = 1.5

    translation_cache_size: int = 100
    translation_provider: str = "deepl"  # deepl | libretranslate
    deepl_api_key: str = ""
    libretranslate_url: str = "https://libretranslate.com/translate"
    libretranslate_api_key: str = ""
    target_language: str = "el"

    reminder_interval_minutes: float = 60
    connectivity_poll_seconds: float = 30.0
    retry_backoff_base_seconds: float = 0.0  # 0 = retry on every drain
    retry_backoff_max_seconds: float = 3600.0
    offline_card_limit: int = 200            # due cards kept for offline review

    stats_default_days: int = 30

    model_config = {"env_prefix": "COMPANION_"}


settings = Settings()
