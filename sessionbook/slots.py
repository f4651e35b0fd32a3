"""Slot generation: availability windows in, bookable start times out.

``compute_start_times`` is the pure core. ``SlotFinder`` layers the
caller-side concerns on top of it: rate/window eligibility, the "today"
cutoff, collisions with committed bookings, and the occupancy cap that
turns a slot into a request.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from sessionbook.config import settings
from sessionbook.errors import InvalidWindow, RateNotEnabledInWindow, SlotTaken
from sessionbook.models.availability import AvailabilityWindow
from sessionbook.models.booking import Booking
from sessionbook.models.rates import SessionRate
from sessionbook.timeutil import fmt_minutes, minute_of_day, monday_of, week_dates

log = logging.getLogger("sessionbook.slots")

HOUR = 60

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Current wall-clock time in the configured calendar zone."""
    return datetime.now(tz=ZoneInfo(settings.calendar_timezone))


def compute_start_times(
    window_start: int,
    window_end: int,
    duration_minutes: int,
    cooldown_minutes: int = 0,
) -> list[int]:
    """Return every valid session start (minutes from midnight) in a window.

    Sessions shorter than an hour start on the hour, one per hour, and the
    cooldown does not affect them. Sessions of an hour or more pack back to
    back from the window start with ``duration + cooldown`` between starts.
    No emitted session runs past ``window_end``.
    """
    if window_start < 0 or cooldown_minutes < 0:
        raise InvalidWindow(
            "Window start and cooldown must be non-negative",
            details={"window_start": window_start, "cooldown_minutes": cooldown_minutes},
        )
    if window_start >= window_end:
        raise InvalidWindow(
            f"Window {window_start}-{window_end} is empty or inverted",
            details={"window_start": window_start, "window_end": window_end},
        )
    if duration_minutes <= 0:
        raise InvalidWindow(
            f"Session duration must be positive, got {duration_minutes}",
            details={"duration_minutes": duration_minutes},
        )

    if duration_minutes < HOUR:
        step = HOUR
        first = -(-window_start // HOUR) * HOUR  # round up to the hour
    else:
        step = duration_minutes + cooldown_minutes
        first = window_start

    starts: list[int] = []
    t = first
    while t + duration_minutes <= window_end:
        starts.append(t)
        t += step
    return starts


@dataclass(frozen=True)
class Slot:
    """One concrete bookable start within a window."""

    date: date
    start_minutes: int
    duration_minutes: int
    request_only: bool = False

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    def label(self) -> str:
        return f"{self.date.isoformat()} {fmt_minutes(self.start_minutes)}-{fmt_minutes(self.end_minutes)}"


def booked_minutes(window: AvailabilityWindow, day_bookings: Sequence[Booking]) -> int:
    """Minutes of scheduled sessions that start inside ``window``."""
    return sum(
        b.duration_minutes for b in day_bookings
        if b.counts_toward_occupancy and b.date == window.date and window.contains(b.start_minutes)
    )


def is_request_only(
    window: AvailabilityWindow, rate: SessionRate, day_bookings: Sequence[Booking],
) -> bool:
    """True when booking ``rate`` would push the window past its occupancy cap."""
    if window.max_occupancy_minutes is None:
        return False
    return booked_minutes(window, day_bookings) + rate.duration_minutes > window.max_occupancy_minutes


def is_occupied(
    day: date, start_minutes: int, duration_minutes: int, day_bookings: Sequence[Booking],
) -> bool:
    return any(
        b.blocks_calendar and b.overlaps(day, start_minutes, duration_minutes)
        for b in day_bookings
    )


def first_week(slots: Sequence[Slot]) -> date | None:
    """Monday of the week holding the earliest of ``slots`` (sorted by date)."""
    if not slots:
        return None
    return monday_of(slots[0].date)


def week_grid(slots: Iterable[Slot], week_start: date) -> dict[date, list[Slot]]:
    """Group ``slots`` into the seven days from ``week_start``; other days are dropped."""
    grid: dict[date, list[Slot]] = {day: [] for day in week_dates(week_start)}
    for slot in slots:
        if slot.date in grid:
            grid[slot.date].append(slot)
    return grid


class SlotFinder:
    """Read-only slot queries over a provider directory and booking store.

    ``directory`` needs ``get(provider_id) -> ProviderProfile``; ``bookings``
    needs ``on_day(provider_id, date) -> list[Booking]``.
    """

    def __init__(
        self,
        directory,
        bookings,
        clock: Clock = system_clock,
        horizon_days: int | None = None,
    ) -> None:
        self._directory = directory
        self._bookings = bookings
        self._clock = clock
        self._horizon_days = (
            horizon_days if horizon_days is not None else settings.booking_horizon_days
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    def today(self) -> date:
        return self._clock().date()

    def booking_horizon(self, provider_id: str) -> date:
        """Last date slot search and week navigation should reach."""
        minimum = self.today() + timedelta(days=self._horizon_days)
        latest = self._directory.get(provider_id).availability.latest_date()
        if latest is None or latest < minimum:
            return minimum
        return latest

    def slots_for_window(
        self,
        window: AvailabilityWindow,
        rate: SessionRate,
        day_bookings: Sequence[Booking] = (),
        now: datetime | None = None,
    ) -> list[Slot]:
        """Available slots for one rate in one window."""
        if not window.enables(rate.id):
            return []
        now = now or self._clock()
        if window.date < now.date():
            return []
        cutoff = minute_of_day(now) if window.date == now.date() else -1

        starts = compute_start_times(
            window.start_minutes, window.end_minutes,
            rate.duration_minutes, rate.cooldown_minutes,
        )
        request_only = is_request_only(window, rate, day_bookings)
        return [
            Slot(window.date, s, rate.duration_minutes, request_only)
            for s in starts
            if s > cutoff and not is_occupied(window.date, s, rate.duration_minutes, day_bookings)
        ]

    def list_available_slots(
        self,
        provider_id: str,
        rate_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Slot]:
        """All open slots for a rate between ``start`` and ``end`` inclusive.

        Defaults to today through the booking horizon. An empty list is a
        normal answer.
        """
        provider = self._directory.get(provider_id)
        rate = provider.catalog.get(rate_id)
        now = self._clock()
        start = max(start or now.date(), now.date())
        end = end or self.booking_horizon(provider_id)

        slots: list[Slot] = []
        day_cache: dict[date, list[Booking]] = {}
        for window in provider.availability.windows_for_rate(rate_id, start, end):
            if window.date not in day_cache:
                day_cache[window.date] = self._bookings.on_day(provider_id, window.date)
            slots.extend(self.slots_for_window(window, rate, day_cache[window.date], now))
        slots.sort(key=lambda s: (s.date, s.start_minutes))
        log.debug(
            "Slots for %s/%s %s..%s: %d", provider_id, rate_id, start, end, len(slots),
        )
        return slots

    def first_available_week(self, provider_id: str, rate_id: str) -> date | None:
        """Monday of the first week holding any open slot for the rate."""
        return first_week(self.list_available_slots(provider_id, rate_id))

    def week_slots(
        self, provider_id: str, rate_id: str, week_start: date,
    ) -> dict[date, list[Slot]]:
        """Open slots for the seven days from ``week_start``, keyed by date."""
        week_end = week_start + timedelta(days=6)
        return week_grid(
            self.list_available_slots(provider_id, rate_id, week_start, week_end), week_start,
        )

    def check_slot(
        self, provider_id: str, rate_id: str, day: date, start_minutes: int,
    ) -> tuple[AvailabilityWindow, bool]:
        """Re-verify a selection against current state.

        Returns the hosting window and whether the slot is request-only.
        Raises ``RateNotEnabledInWindow`` when no window offers this start
        for the rate, and ``SlotTaken`` when the time is no longer free.
        """
        provider = self._directory.get(provider_id)
        rate = provider.catalog.get(rate_id)
        details = {
            "provider_id": provider_id,
            "rate_id": rate_id,
            "date": day.isoformat(),
            "start": fmt_minutes(start_minutes),
        }

        host = None
        for window in provider.availability.windows_on(day):
            if not window.enables(rate_id):
                continue
            starts = compute_start_times(
                window.start_minutes, window.end_minutes,
                rate.duration_minutes, rate.cooldown_minutes,
            )
            if start_minutes in starts:
                host = window
                break
        if host is None:
            raise RateNotEnabledInWindow(
                f"No window on {day} offers {rate.title or rate_id} at {fmt_minutes(start_minutes)}",
                details=details,
            )

        now = self._clock()
        if day < now.date() or (day == now.date() and start_minutes <= minute_of_day(now)):
            raise SlotTaken("That time has already passed", details={**details, "reason": "past"})

        day_bookings = self._bookings.on_day(provider_id, day)
        if is_occupied(day, start_minutes, rate.duration_minutes, day_bookings):
            raise SlotTaken(
                f"{fmt_minutes(start_minutes)} on {day} has just been booked",
                details={**details, "reason": "occupied"},
            )
        return host, is_request_only(host, rate, day_bookings)
