"""Turns a confirmed selection into a permanent booking record.

The committer is the only writer of bookings and the only caller of
``CreditLedger.commit``. A commit is optimistic: the slot and credit are
validated against a snapshot of the provider-day version, then the day
lock and the credit-source lock are taken together and the write goes
through only if the day is still at that version. A changed version
means another writer got in first, and the whole check is rerun.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import date

from sessionbook.config import settings
from sessionbook.errors import BookingError, CommitConflict
from sessionbook.events import BookingFeed, get_feed
from sessionbook.ledger import CreditLedger, redact_id
from sessionbook.locks import KeyedLocks, credit_lock_key, slot_lock_key
from sessionbook.models.booking import Booking, BookingRequest, BookingStatus, PaymentSource
from sessionbook.repository import BookingStore, ProviderDirectory
from sessionbook.slots import SlotFinder
from sessionbook.timeutil import fmt_minutes

log = logging.getLogger("sessionbook.committer")


def new_booking_id() -> str:
    return f"bk-{secrets.token_hex(6)}"


class BookingCommitter:
    def __init__(
        self,
        directory: ProviderDirectory,
        bookings: BookingStore,
        ledger: CreditLedger,
        finder: SlotFinder,
        locks: KeyedLocks | None = None,
        max_attempts: int | None = None,
        id_factory: Callable[[], str] = new_booking_id,
        feed_for: Callable[[str], BookingFeed] = get_feed,
    ) -> None:
        self._directory = directory
        self._bookings = bookings
        self._ledger = ledger
        self._finder = finder
        self._locks = locks or KeyedLocks()
        self._max_attempts = max_attempts or settings.commit_max_attempts
        self._new_id = id_factory
        self._feed_for = feed_for

    def commit(
        self,
        provider_id: str,
        counterparty_id: str,
        rate_id: str,
        day: date,
        start_minutes: int,
        source: PaymentSource | None = None,
    ) -> Booking:
        """Reserve the slot, spend at most one credit, record the booking.

        Raises ``SlotTaken``, ``RateNotEnabledInWindow``, ``CreditExhausted``
        or ``UnknownCreditSource`` when the selection is no longer valid, and
        ``CommitConflict`` when concurrent writers win every attempt.
        """
        source = source or PaymentSource.cash()
        rate = self._directory.get(provider_id).catalog.get(rate_id)
        where = f"{provider_id} {day} {fmt_minutes(start_minutes)}"

        for attempt in range(1, self._max_attempts + 1):
            version = self._bookings.version(provider_id, day)
            try:
                _, request_only = self._finder.check_slot(provider_id, rate_id, day, start_minutes)
                # Requests past the occupancy cap wait for the provider; nothing is spent yet.
                spend = PaymentSource.cash() if request_only else source
                handle = self._ledger.reserve(spend, counterparty_id, provider_id, rate_id)
            except BookingError as exc:
                self._rejected(exc, provider_id, rate_id, day, start_minutes)
                raise

            keys = [slot_lock_key(provider_id, day)]
            if spend.is_credit:
                keys.append(credit_lock_key(str(spend)))

            try:
                with self._locks.hold(*keys):
                    current = self._bookings.version(provider_id, day)
                    if current != version:
                        log.info(
                            "Commit conflict on %s (v%d -> v%d), attempt %d/%d",
                            where, version, current, attempt, self._max_attempts,
                        )
                        continue
                    try:
                        self._ledger.verify(handle)
                    except BookingError as exc:
                        self._rejected(exc, provider_id, rate_id, day, start_minutes)
                        raise

                    booking = Booking(
                        id=self._new_id(),
                        provider_id=provider_id,
                        counterparty_id=counterparty_id,
                        rate_id=rate_id,
                        date=day,
                        start_minutes=start_minutes,
                        duration_minutes=rate.duration_minutes,
                        payment_source=spend,
                        status=BookingStatus.REQUESTED if request_only else BookingStatus.SCHEDULED,
                        requires_approval=request_only,
                        price=rate.price,
                        modality=rate.modality,
                        created_at=self._finder.clock(),
                    )
                    self._bookings.check_insert(booking, version)
                    self._ledger.commit(handle)
                    try:
                        self._bookings.insert(booking, version)
                    except Exception:
                        self._ledger.rollback(handle)
                        raise
            finally:
                self._ledger.release(handle)

            log.info(
                "Booking %s committed: %s rate=%s payment=%s for %s%s",
                booking.id, where, rate_id, booking.payment_source,
                redact_id(counterparty_id), " (request)" if request_only else "",
            )
            self._feed_for(provider_id).emit(
                "booking_committed", booking.model_dump(mode="json"),
            )
            return booking

        raise CommitConflict(
            f"Could not commit {where} after {self._max_attempts} attempts",
            details={"provider_id": provider_id, "date": day.isoformat(),
                     "start_minutes": start_minutes},
        )

    def _rejected(
        self, exc: BookingError, provider_id: str, rate_id: str, day: date, start_minutes: int,
    ) -> None:
        log.warning(
            "Commit rejected for %s %s %s: %s (%s)",
            provider_id, day, fmt_minutes(start_minutes), exc.code, exc.message,
        )
        self._feed_for(provider_id).emit("commit_failed", {
            "code": exc.code, "rate_id": rate_id,
            "date": day.isoformat(), "start_minutes": start_minutes,
        })

    def commit_request(self, request: BookingRequest) -> Booking:
        return self.commit(
            request.provider_id,
            request.counterparty_id,
            request.rate_id,
            request.date,
            request.start_minutes,
            request.payment_source,
        )

    def cancel(self, booking_id: str) -> Booking:
        """Move a booking to ``cancelled`` and free its time. Credit is not refunded."""
        booking = self._bookings.get(booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return booking

        with self._locks.hold(slot_lock_key(booking.provider_id, booking.date)):
            booking = self._bookings.get(booking_id)
            if booking.status == BookingStatus.CANCELLED:
                return booking
            cancelled = booking.model_copy(update={"status": BookingStatus.CANCELLED})
            self._bookings.replace(cancelled)

        log.info("Booking %s cancelled", booking_id)
        self._feed_for(booking.provider_id).emit(
            "booking_cancelled", cancelled.model_dump(mode="json"),
        )
        return cancelled
