"""Application configuration using Pydantic settings."""

from datetime import time
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---------------- DATABASE ----------------
    database_url: str = "sqlite+aiosqlite:///./appointments.db"

    # ---------------- AUTH ----------------
    # Tokens are issued by the identity service; we only verify them.
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"

    # ---------------- APP ----------------
    app_name: str = "Appointment Lifecycle Engine"
    app_version: str = "1.0.0"
    debug: bool = False
    cors_origins: List[str] = []
    timezone: str = "America/Los_Angeles"

    # ---------------- EXTERNAL LOOKUPS ----------------
    lookup_timeout_seconds: float = 5.0

    # ---------------- SCHEDULING ----------------
    slot_granularity_minutes: int = 15
    open_shift_day_start: time = time(7, 0)
    open_shift_day_end: time = time(20, 0)
    default_availability_duration_minutes: int = 60

    # ---------------- FIELD RULES ----------------
    start_early_window_minutes: int = 45
    self_assign_window_minutes: int = 15
    enforce_field_rules: bool = False

    # ---------------- EVV ----------------
    location_verification_radius_meters: float = 500.0

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
