from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./oraclesync.db"
    scryfall_base_url: str = "https://api.scryfall.com"
    scryfall_bulk_type: str = "oracle-cards"
    scryfall_user_agent: str = "OracleSync/0.1"
    http_timeout_seconds: float = 60.0
    sync_batch_size: int = 1000
    sync_checkpoint_interval: int = 5000
    sync_hour: int = 3  # UTC
    error_message_max_length: int = 2000
    stale_run_hours: int = 6

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
