"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings

log = logging.getLogger("sessionbook.config")


class Settings(BaseSettings):
    # Clock
    calendar_timezone: str = "Europe/London"

    # Slot search
    booking_horizon_days: int = 28

    # Commit
    commit_max_attempts: int = 3

    # Seed data (JSONL, optional)
    seed_data_path: str = ""

    # Booking access keys
    admin_api_key: str = ""
    provider_feed_keys: dict[str, str] = {}  # JSON: {"provider_id": "key"}

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        try:
            ZoneInfo(self.calendar_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(
                f"CALENDAR_TIMEZONE {self.calendar_timezone!r} is not a known zone."
            )

        if self.commit_max_attempts < 1:
            raise ValueError("COMMIT_MAX_ATTEMPTS must be at least 1.")

        if self.booking_horizon_days < 7:
            warnings.append(
                "BOOKING_HORIZON_DAYS is under a week; week navigation will be cramped."
            )

        # Access keys: warn if none set
        if not self.admin_api_key and not self.provider_feed_keys:
            if self.debug:
                warnings.append(
                    "No access keys set. Booking views are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "No access keys set. Booking views are locked in production. "
                    "Set ADMIN_API_KEY or PROVIDER_FEED_KEYS in .env to enable access."
                )
        elif not self.admin_api_key:
            warnings.append("ADMIN_API_KEY not set. Only provider-scoped keys can read bookings.")

        blank = sorted(pid for pid, key in self.provider_feed_keys.items() if not key)
        if blank:
            warnings.append(f"PROVIDER_FEED_KEYS has empty keys for {', '.join(blank)}; ignored.")

        if not self.seed_data_path:
            warnings.append("SEED_DATA_PATH not set. Starting with no providers.")

        return warnings


settings = Settings()
