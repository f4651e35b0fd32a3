"""In-memory stores behind the booking core.

``ProviderDirectory`` is read-only to the core. ``BookingStore`` is written
only by the committer and versions each provider-day so the committer can
detect concurrent writers.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import date

from sessionbook.errors import UnknownBooking, UnknownProvider
from sessionbook.models.booking import Booking
from sessionbook.provider import ProviderProfile

log = logging.getLogger("sessionbook.repository")

DayKey = tuple[str, date]


class VersionConflict(Exception):
    """A provider-day changed between read and write."""

    def __init__(self, key: DayKey, expected: int, actual: int) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(f"{key[0]}@{key[1]}: expected v{expected}, found v{actual}")


class ProviderDirectory:
    """Provider id -> rate catalog and availability."""

    def __init__(self, profiles: Iterable[ProviderProfile] = ()) -> None:
        self._profiles: dict[str, ProviderProfile] = {}
        for profile in profiles:
            self.add(profile)

    def add(self, profile: ProviderProfile) -> None:
        self._profiles[profile.provider_id] = profile

    def get(self, provider_id: str) -> ProviderProfile:
        try:
            return self._profiles[provider_id]
        except KeyError:
            raise UnknownProvider(
                f"Provider {provider_id!r} not found",
                details={"provider_id": provider_id},
            ) from None

    def get_or_create(self, provider_id: str) -> ProviderProfile:
        if provider_id not in self._profiles:
            self._profiles[provider_id] = ProviderProfile(provider_id)
        return self._profiles[provider_id]

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._profiles

    def provider_ids(self) -> list[str]:
        return sorted(self._profiles)


class BookingStore:
    """Committed booking records, indexed by id and by provider-day."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_id: dict[str, Booking] = {}
        self._by_day: dict[DayKey, list[str]] = {}
        self._versions: dict[DayKey, int] = {}

    def version(self, provider_id: str, day: date) -> int:
        with self._lock:
            return self._versions.get((provider_id, day), 0)

    def get(self, booking_id: str) -> Booking:
        with self._lock:
            try:
                return self._by_id[booking_id]
            except KeyError:
                raise UnknownBooking(
                    f"Booking {booking_id!r} not found",
                    details={"booking_id": booking_id},
                ) from None

    def on_day(self, provider_id: str, day: date) -> list[Booking]:
        with self._lock:
            return [self._by_id[i] for i in self._by_day.get((provider_id, day), ())]

    def all(
        self, provider_id: str | None = None, counterparty_id: str | None = None,
    ) -> list[Booking]:
        with self._lock:
            found = [
                b for b in self._by_id.values()
                if (provider_id is None or b.provider_id == provider_id)
                and (counterparty_id is None or b.counterparty_id == counterparty_id)
            ]
        return sorted(found, key=lambda b: (b.date, b.start_minutes, b.id))

    def check_insert(self, booking: Booking, expected_version: int) -> None:
        """Raise whatever ``insert`` would raise for this record, without writing."""
        key = (booking.provider_id, booking.date)
        with self._lock:
            actual = self._versions.get(key, 0)
            if actual != expected_version:
                raise VersionConflict(key, expected_version, actual)
            if booking.id in self._by_id:
                raise ValueError(f"Booking {booking.id} already exists")

    def insert(self, booking: Booking, expected_version: int) -> int:
        """Add a new record if the provider-day is still at ``expected_version``.

        Returns the new version. Raises ``VersionConflict`` otherwise.
        """
        key = (booking.provider_id, booking.date)
        with self._lock:
            self.check_insert(booking, expected_version)
            actual = self._versions.get(key, 0)
            self._by_id[booking.id] = booking
            self._by_day.setdefault(key, []).append(booking.id)
            self._versions[key] = actual + 1
            return actual + 1

    def replace(self, booking: Booking) -> int:
        """Swap in a new state for an existing record (e.g. cancellation)."""
        key = (booking.provider_id, booking.date)
        with self._lock:
            current = self.get(booking.id)
            if (current.provider_id, current.date) != key:
                raise ValueError("A booking cannot move to another provider-day")
            self._by_id[booking.id] = booking
            self._versions[key] = self._versions.get(key, 0) + 1
            return self._versions[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)
