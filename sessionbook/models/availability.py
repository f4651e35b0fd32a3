"""Pydantic model for a provider's bookable window on one date."""

from __future__ import annotations

from datetime import date as Date, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from sessionbook.timeutil import to_minutes


class AvailabilityWindow(BaseModel):
    """A contiguous span of bookable time on a given date.

    ``max_occupancy_minutes`` caps the booked minutes inside the window;
    bookings past the cap are accepted only as requests.
    """

    model_config = ConfigDict(frozen=True)

    date: Date
    start_time: time
    end_time: time
    enabled_rate_ids: frozenset[str] = frozenset()
    max_occupancy_minutes: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "AvailabilityWindow":
        if self.start_time >= self.end_time:
            raise ValueError(
                f"Window on {self.date} starts at {self.start_time} "
                f"but ends at {self.end_time}"
            )
        return self

    @property
    def start_minutes(self) -> int:
        return to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return to_minutes(self.end_time)

    def enables(self, rate_id: str) -> bool:
        return rate_id in self.enabled_rate_ids

    def contains(self, start_minutes: int) -> bool:
        return self.start_minutes <= start_minutes < self.end_minutes
