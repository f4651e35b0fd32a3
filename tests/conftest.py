"""Shared fixtures: one provider with three rates, a fixed clock, some credit."""

from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from sessionbook.events import remove_feed
from sessionbook.ledger import CreditLedger
from sessionbook.models import (
    AvailabilityWindow,
    ClientCourseBooking,
    Modality,
    ProBonoToken,
    SessionRate,
)
from sessionbook.provider import AvailabilityStore, ProviderProfile, RateCatalog
from sessionbook.repository import ProviderDirectory
from sessionbook.service import BookingCore
from sessionbook.wizard import get_active_wizards

# Monday 2 March 2026, 08:30
NOW = datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)
TODAY = NOW.date()
TOMORROW = TODAY + timedelta(days=1)
NEXT_MONDAY = TODAY + timedelta(days=7)

PROVIDER = "t1"
CLIENT = "c1"


class FixedClock:
    """Callable clock the tests can move."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0, day=None) -> None:
        day = day or self.now.date()
        self.now = datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


def make_rates() -> list[SessionRate]:
    return [
        SessionRate(id="r50", title="50-min Video Session", modality=Modality.VIDEO,
                    duration_minutes=50, price=Decimal("60"), cooldown_minutes=10),
        SessionRate(id="r90", title="90-min EMDR Session", modality=Modality.IN_PERSON,
                    duration_minutes=90, price=Decimal("95"), cooldown_minutes=15),
        SessionRate(id="sup60", title="Clinical Supervision", duration_minutes=60,
                    price=Decimal("70"), is_supervision_only=True),
    ]


def window(day, start: str, end: str, rates, cap=None) -> AvailabilityWindow:
    return AvailabilityWindow(
        date=day,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        enabled_rate_ids=frozenset(rates),
        max_occupancy_minutes=cap,
    )


@pytest.fixture(autouse=True)
def _clean_registries():
    yield
    remove_feed(PROVIDER)
    get_active_wizards().clear()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def provider():
    catalog = RateCatalog(make_rates())
    availability = AvailabilityStore(catalog, [
        window(TODAY, "09:00", "12:00", ["r50", "r90"]),
        window(TOMORROW, "09:00", "12:00", ["r50", "r90", "sup60"]),
        window(TOMORROW, "14:00", "17:00", ["r50"], cap=60),
        window(NEXT_MONDAY, "09:05", "11:00", ["r50"]),
    ])
    return ProviderProfile(PROVIDER, catalog, availability)


@pytest.fixture
def ledger(clock):
    return CreditLedger(
        courses=[
            ClientCourseBooking(
                id="cb1", counterparty_id=CLIENT, provider_id=PROVIDER,
                course_id="course-a", course_title="Video Course", rate_id="r50",
                total_sessions=8, sessions_used=2,
            ),
        ],
        tokens=[
            ProBonoToken(id="pbt1", provider_id=PROVIDER, counterparty_id=CLIENT,
                         rate_id="r50", created_at=NOW - timedelta(days=3)),
            ProBonoToken(id="pbt90", provider_id=PROVIDER, counterparty_id=CLIENT,
                         rate_id="r90", created_at=NOW - timedelta(days=1)),
        ],
        clock=clock,
    )


@pytest.fixture
def core(provider, ledger, clock):
    return BookingCore(
        directory=ProviderDirectory([provider]),
        ledger=ledger,
        clock=clock,
        horizon_days=28,
        max_attempts=3,
    )
