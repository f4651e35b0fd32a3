"""Prepaid-course and gifted-token balances per counterparty.

The ledger answers "which credit could pay for this rate?" and applies
debits. It never picks between a course and a token; the counterparty
does. It never credits either: purchases and gifts arrive from outside
through ``add_course_booking`` / ``add_token``.

Debits go through reserve -> commit. ``reserve`` checks without changing
anything; ``commit`` re-checks under the ledger lock, because another
booking may have spent the same credit in between.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field

from sessionbook.errors import CreditExhausted, UnknownCreditSource
from sessionbook.models.booking import PaymentKind, PaymentSource
from sessionbook.models.credits import (
    ClientCourseBooking,
    CourseStatus,
    ProBonoToken,
    TokenStatus,
)
from sessionbook.slots import Clock, system_clock

log = logging.getLogger("sessionbook.ledger")


def redact_id(value: str) -> str:
    """Mask an identifier for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


@dataclass(frozen=True)
class CreditSources:
    """Credit a counterparty could spend, for presentation."""

    courses: tuple[ClientCourseBooking, ...] = ()
    tokens: tuple[ProBonoToken, ...] = ()

    @property
    def prepaid_remaining(self) -> int:
        return sum(c.remaining for c in self.courses)

    @property
    def total_remaining(self) -> int:
        """Badge count: prepaid sessions left plus gifted tokens."""
        return self.prepaid_remaining + len(self.tokens)

    @property
    def is_empty(self) -> bool:
        return not self.courses and not self.tokens

    def payment_sources(self) -> list[PaymentSource]:
        return (
            [PaymentSource.course(c.id) for c in self.courses]
            + [PaymentSource.token(t.id) for t in self.tokens]
        )


@dataclass(frozen=True)
class ReservationHandle:
    """A checked-but-unspent claim on one payment source."""

    source: PaymentSource
    counterparty_id: str
    provider_id: str
    rate_id: str
    version: int = 0
    handle_id: str = field(default_factory=lambda: secrets.token_hex(8))


class CreditLedger:
    def __init__(
        self,
        courses: Iterable[ClientCourseBooking] = (),
        tokens: Iterable[ProBonoToken] = (),
        clock: Clock = system_clock,
    ) -> None:
        self._lock = threading.RLock()
        self._clock = clock
        self._courses: dict[str, ClientCourseBooking] = {}
        self._tokens: dict[str, ProBonoToken] = {}
        self._versions: dict[str, int] = {}
        self._open: set[str] = set()
        for course in courses:
            self.add_course_booking(course)
        for token in tokens:
            self.add_token(token)

    # ── Top-ups from purchase / gifting flows ─────────────────

    def add_course_booking(self, course: ClientCourseBooking) -> None:
        with self._lock:
            self._courses[course.id] = course
            self._versions.setdefault(str(PaymentSource.course(course.id)), 0)

    def add_token(self, token: ProBonoToken) -> None:
        with self._lock:
            self._tokens[token.id] = token
            self._versions.setdefault(str(PaymentSource.token(token.id)), 0)

    # ── Queries ───────────────────────────────────────────────

    def get_course_booking(self, course_booking_id: str) -> ClientCourseBooking:
        with self._lock:
            try:
                return self._courses[course_booking_id]
            except KeyError:
                raise UnknownCreditSource(
                    f"Course booking {course_booking_id!r} not found",
                    details={"source": f"course:{course_booking_id}"},
                ) from None

    def get_token(self, token_id: str) -> ProBonoToken:
        with self._lock:
            try:
                return self._tokens[token_id]
            except KeyError:
                raise UnknownCreditSource(
                    f"Token {token_id!r} not found",
                    details={"source": f"token:{token_id}"},
                ) from None

    def list_credit_sources(
        self, counterparty_id: str, provider_id: str, rate_id: str | None = None,
    ) -> CreditSources:
        """Usable courses and tokens, optionally narrowed to one rate.

        Courses come first, ordered by most sessions left; tokens by
        creation time. An empty result is normal.
        """
        with self._lock:
            courses = [
                c for c in self._courses.values()
                if c.counterparty_id == counterparty_id
                and c.provider_id == provider_id
                and (rate_id is None or c.rate_id == rate_id)
                and c.is_usable
            ]
            tokens = [
                t for t in self._tokens.values()
                if t.counterparty_id == counterparty_id
                and t.provider_id == provider_id
                and (rate_id is None or t.rate_id == rate_id)
                and t.is_usable
            ]
        courses.sort(key=lambda c: (-c.remaining, c.id))
        tokens.sort(key=lambda t: (t.created_at is None, t.created_at or 0, t.id))
        return CreditSources(tuple(courses), tuple(tokens))

    def summary(self, counterparty_id: str, provider_id: str) -> CreditSources:
        return self.list_credit_sources(counterparty_id, provider_id)

    # ── Reserve / commit / release ────────────────────────────

    def _check(
        self, source: PaymentSource, counterparty_id: str, provider_id: str, rate_id: str,
    ) -> None:
        if source.kind == PaymentKind.COURSE:
            record = self.get_course_booking(source.source_id)
            usable = record.is_usable
        else:
            record = self.get_token(source.source_id)
            usable = record.is_usable

        if (record.counterparty_id, record.provider_id) != (counterparty_id, provider_id):
            raise UnknownCreditSource(
                f"{source} does not belong to this counterparty and provider",
                details={"source": str(source)},
            )
        if record.rate_id != rate_id:
            raise UnknownCreditSource(
                f"{source} pays for rate {record.rate_id!r}, not {rate_id!r}",
                details={"source": str(source), "rate_id": rate_id},
            )
        if not usable:
            raise CreditExhausted(
                f"{source} has no sessions left",
                details={"source": str(source), "status": record.status.value},
            )

    def reserve(
        self, source: PaymentSource, counterparty_id: str, provider_id: str, rate_id: str,
    ) -> ReservationHandle:
        """Validate ``source`` for this booking without spending it."""
        with self._lock:
            if source.is_credit:
                self._check(source, counterparty_id, provider_id, rate_id)
            handle = ReservationHandle(
                source=source,
                counterparty_id=counterparty_id,
                provider_id=provider_id,
                rate_id=rate_id,
                version=self._versions.get(str(source), 0),
            )
            self._open.add(handle.handle_id)
        return handle

    def verify(self, handle: ReservationHandle) -> None:
        """Re-check a reservation against current balances."""
        if handle.source.is_credit:
            with self._lock:
                self._check(handle.source, handle.counterparty_id, handle.provider_id, handle.rate_id)

    def commit(self, handle: ReservationHandle) -> ClientCourseBooking | ProBonoToken | None:
        """Spend the reserved source. Returns the updated record (None for cash)."""
        source = handle.source
        with self._lock:
            self._open.discard(handle.handle_id)
            if not source.is_credit:
                return None

            key = str(source)
            if self._versions.get(key, 0) != handle.version:
                log.info("Credit %s changed since reservation, re-checking", key)
            self._check(source, handle.counterparty_id, handle.provider_id, handle.rate_id)

            if source.kind == PaymentKind.COURSE:
                course = self._courses[source.source_id]
                used = course.sessions_used + 1
                updated = course.model_copy(update={
                    "sessions_used": used,
                    "status": CourseStatus.COMPLETED if used == course.total_sessions else course.status,
                })
                self._courses[course.id] = updated
                log.info(
                    "Course %s debited for %s: %d/%d used",
                    course.id, redact_id(handle.counterparty_id), used, course.total_sessions,
                )
            else:
                token = self._tokens[source.source_id]
                updated = token.model_copy(update={
                    "status": TokenStatus.USED,
                    "used_at": self._clock(),
                })
                self._tokens[token.id] = updated
                log.info("Token %s used by %s", token.id, redact_id(handle.counterparty_id))

            self._versions[key] = self._versions.get(key, 0) + 1
            return updated

    def rollback(self, handle: ReservationHandle) -> None:
        """Undo a ``commit`` whose booking could not be recorded.

        Only valid while the caller still holds the source's credit lock, so
        nothing else can have touched the record since the debit.
        """
        source = handle.source
        if not source.is_credit:
            return
        with self._lock:
            if source.kind == PaymentKind.COURSE:
                course = self._courses[source.source_id]
                self._courses[course.id] = course.model_copy(update={
                    "sessions_used": course.sessions_used - 1,
                    "status": CourseStatus.ACTIVE,
                })
            else:
                token = self._tokens[source.source_id]
                self._tokens[token.id] = token.model_copy(update={
                    "status": TokenStatus.AVAILABLE,
                    "used_at": None,
                })
            key = str(source)
            self._versions[key] = self._versions.get(key, 0) + 1
        log.warning("Debit on %s rolled back for %s", source, redact_id(handle.counterparty_id))

    def release(self, handle: ReservationHandle) -> None:
        """Drop an uncommitted reservation. Nothing was spent, so nothing to undo."""
        with self._lock:
            self._open.discard(handle.handle_id)

    @property
    def open_reservations(self) -> int:
        with self._lock:
            return len(self._open)
