"""A provider's rate catalog and availability windows.

Both are authored out-of-band and read-only to the booking core.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date

from sessionbook.errors import UnknownRate
from sessionbook.models.availability import AvailabilityWindow
from sessionbook.models.credits import CoursePackage
from sessionbook.models.rates import SessionRate

log = logging.getLogger("sessionbook.provider")

RatePredicate = Callable[[SessionRate], bool]


def STANDARD_RATES(rate: SessionRate) -> bool:
    return not rate.is_supervision_only


def SUPERVISION_RATES(rate: SessionRate) -> bool:
    return rate.is_supervision_only


def ALL_RATES(rate: SessionRate) -> bool:
    return True


class RateCatalog:
    """Immutable, ordered set of a provider's published rates."""

    def __init__(self, rates: Iterable[SessionRate] = ()) -> None:
        self._rates: tuple[SessionRate, ...] = tuple(rates)
        self._by_id = {r.id: r for r in self._rates}
        if len(self._by_id) != len(self._rates):
            raise ValueError("Duplicate rate id in catalog")

    def __iter__(self):
        return iter(self._rates)

    def __len__(self) -> int:
        return len(self._rates)

    def __contains__(self, rate_id: object) -> bool:
        return rate_id in self._by_id

    def get(self, rate_id: str) -> SessionRate:
        try:
            return self._by_id[rate_id]
        except KeyError:
            raise UnknownRate(
                f"Rate {rate_id!r} is not published",
                details={"rate_id": rate_id},
            ) from None

    def eligible(self, predicate: RatePredicate = ALL_RATES) -> list[SessionRate]:
        return [r for r in self._rates if predicate(r)]


class AvailabilityStore:
    """The provider's open windows, indexed by date."""

    def __init__(
        self, catalog: RateCatalog, windows: Iterable[AvailabilityWindow] = (),
    ) -> None:
        self._catalog = catalog
        self._by_date: dict[date, list[AvailabilityWindow]] = {}
        for window in windows:
            self.add(window)

    def add(self, window: AvailabilityWindow) -> None:
        unknown = sorted(r for r in window.enabled_rate_ids if r not in self._catalog)
        if unknown:
            raise UnknownRate(
                f"Window on {window.date} enables unpublished rates: {', '.join(unknown)}",
                details={"rate_ids": unknown, "date": window.date.isoformat()},
            )
        day = self._by_date.setdefault(window.date, [])
        day.append(window)
        day.sort(key=lambda w: w.start_minutes)

    def __iter__(self):
        for day in sorted(self._by_date):
            yield from self._by_date[day]

    def __len__(self) -> int:
        return sum(len(ws) for ws in self._by_date.values())

    def windows_on(self, day: date) -> list[AvailabilityWindow]:
        return list(self._by_date.get(day, ()))

    def windows_for_rate(
        self, rate_id: str, start: date | None = None, end: date | None = None,
    ) -> list[AvailabilityWindow]:
        """Windows enabling ``rate_id``, optionally bounded to ``[start, end]``."""
        return [
            w for w in self
            if w.enables(rate_id)
            and (start is None or w.date >= start)
            and (end is None or w.date <= end)
        ]

    def window_containing(self, day: date, start_minutes: int) -> AvailabilityWindow | None:
        for window in self._by_date.get(day, ()):
            if window.contains(start_minutes):
                return window
        return None

    def latest_date(self) -> date | None:
        return max(self._by_date) if self._by_date else None


@dataclass
class ProviderProfile:
    """Everything the core reads about one provider."""

    provider_id: str
    catalog: RateCatalog = field(default_factory=RateCatalog)
    availability: AvailabilityStore | None = None
    courses: list[CoursePackage] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.availability is None:
            self.availability = AvailabilityStore(self.catalog)
