# backend/medbook/config.py

import logging
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repository root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/medbook.db"
    redis_url: str | None = None

    log_level: str = "INFO"
    default_timezone: str = "UTC"
    events_queue: str = "events:p2p"

    default_slot_duration_minutes: int = 30
    default_slot_buffer_minutes: int = 0
    default_advance_booking_days: int = 30

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative sqlite paths are anchored at the repository root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Apply the process-wide logging format. Call once from entrypoints."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
