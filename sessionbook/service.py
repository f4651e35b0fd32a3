"""The booking core wired together, and the three operations it exposes.

``list_available_slots`` and ``list_credit_sources`` are read-only;
``commit_booking`` is the single mutating entry point.
"""

from __future__ import annotations

import logging
from datetime import date

from sessionbook.committer import BookingCommitter
from sessionbook.config import Settings, settings as default_settings
from sessionbook.ledger import CreditLedger, CreditSources
from sessionbook.loader import load_seed_jsonl
from sessionbook.models.booking import Booking, PaymentSource
from sessionbook.provider import STANDARD_RATES, SUPERVISION_RATES, RatePredicate
from sessionbook.repository import BookingStore, ProviderDirectory
from sessionbook.slots import Clock, Slot, SlotFinder, system_clock
from sessionbook.wizard import BookingWizard

log = logging.getLogger("sessionbook.service")

RATE_FILTERS: dict[str, RatePredicate] = {
    "standard": STANDARD_RATES,
    "supervision": SUPERVISION_RATES,
}


class BookingCore:
    def __init__(
        self,
        directory: ProviderDirectory | None = None,
        ledger: CreditLedger | None = None,
        bookings: BookingStore | None = None,
        clock: Clock = system_clock,
        horizon_days: int | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.directory = directory if directory is not None else ProviderDirectory()
        self.ledger = ledger if ledger is not None else CreditLedger(clock=clock)
        self.bookings = bookings if bookings is not None else BookingStore()
        self.finder = SlotFinder(self.directory, self.bookings, clock, horizon_days)
        self.committer = BookingCommitter(
            self.directory, self.bookings, self.ledger, self.finder,
            max_attempts=max_attempts,
        )

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "BookingCore":
        """Build a core from configuration, loading seed data if configured."""
        config = config or default_settings
        core = cls(
            horizon_days=config.booking_horizon_days,
            max_attempts=config.commit_max_attempts,
        )
        if config.seed_data_path:
            load_seed_jsonl(config.seed_data_path, core.directory, core.ledger)
            log.info("Seed data loaded from %s", config.seed_data_path)
        return core

    def list_available_slots(
        self, provider_id: str, rate_id: str, start: date | None = None, end: date | None = None,
    ) -> list[Slot]:
        return self.finder.list_available_slots(provider_id, rate_id, start, end)

    def list_credit_sources(
        self, counterparty_id: str, provider_id: str, rate_id: str | None = None,
    ) -> CreditSources:
        self.directory.get(provider_id)
        return self.ledger.list_credit_sources(counterparty_id, provider_id, rate_id)

    def commit_booking(
        self,
        provider_id: str,
        counterparty_id: str,
        rate_id: str,
        day: date,
        start_minutes: int,
        source: PaymentSource | None = None,
    ) -> Booking:
        return self.committer.commit(
            provider_id, counterparty_id, rate_id, day, start_minutes, source,
        )

    def cancel_booking(self, booking_id: str) -> Booking:
        return self.committer.cancel(booking_id)

    def new_wizard(
        self, provider_id: str, counterparty_id: str, kind: str = "standard",
    ) -> BookingWizard:
        try:
            rate_filter = RATE_FILTERS[kind]
        except KeyError:
            raise ValueError(f"Unknown wizard kind: {kind!r}") from None
        return BookingWizard(
            provider_id, counterparty_id, self.directory, self.finder,
            self.ledger, self.committer, rate_filter=rate_filter,
        )
