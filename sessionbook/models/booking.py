"""Pydantic models for booking commands and committed booking records."""

from __future__ import annotations

from datetime import date as Date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sessionbook.models.rates import Modality
from sessionbook.timeutil import MINUTES_PER_DAY


class PaymentKind(str, Enum):
    CASH = "cash"
    COURSE = "course"
    TOKEN = "token"


class PaymentSource(BaseModel):
    """Exactly one way a booking is paid for.

    String form is ``cash``, ``course:<course booking id>`` or
    ``token:<token id>``.
    """

    model_config = ConfigDict(frozen=True)

    kind: PaymentKind = PaymentKind.CASH
    source_id: Optional[str] = None

    @classmethod
    def cash(cls) -> "PaymentSource":
        return cls()

    @classmethod
    def course(cls, course_booking_id: str) -> "PaymentSource":
        return cls(kind=PaymentKind.COURSE, source_id=course_booking_id)

    @classmethod
    def token(cls, token_id: str) -> "PaymentSource":
        return cls(kind=PaymentKind.TOKEN, source_id=token_id)

    @classmethod
    def parse(cls, value: str) -> "PaymentSource":
        kind, _, source_id = value.partition(":")
        try:
            parsed = PaymentKind(kind)
        except ValueError:
            raise ValueError(f"Unknown payment source: {value!r}")
        if parsed == PaymentKind.CASH:
            if source_id:
                raise ValueError("Cash payment takes no source id")
            return cls.cash()
        if not source_id:
            raise ValueError(f"Payment source {kind!r} needs an id")
        return cls(kind=parsed, source_id=source_id)

    @property
    def is_credit(self) -> bool:
        return self.kind != PaymentKind.CASH

    def __str__(self) -> str:
        if self.kind == PaymentKind.CASH:
            return "cash"
        return f"{self.kind.value}:{self.source_id}"


class BookingStatus(str, Enum):
    SCHEDULED = "scheduled"
    REQUESTED = "requested"  # past the window's occupancy cap, awaiting the provider
    CANCELLED = "cancelled"


class BookingRequest(BaseModel):
    """Everything the committer needs to turn a selection into a booking."""

    provider_id: str
    counterparty_id: str
    rate_id: str
    date: Date
    start_minutes: int = Field(ge=0, lt=MINUTES_PER_DAY)
    payment: str = "cash"

    @field_validator("payment")
    @classmethod
    def _check_payment(cls, value: str) -> str:
        PaymentSource.parse(value)
        return value

    @property
    def payment_source(self) -> PaymentSource:
        return PaymentSource.parse(self.payment)


class Booking(BaseModel):
    """A committed booking. Never edited in place."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider_id: str
    counterparty_id: str
    rate_id: str
    date: Date
    start_minutes: int
    duration_minutes: int
    payment_source: PaymentSource = PaymentSource()
    status: BookingStatus = BookingStatus.SCHEDULED
    requires_approval: bool = False
    price: Decimal = Decimal("0")
    modality: Modality = Modality.VIDEO
    created_at: Optional[datetime] = None

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    @property
    def blocks_calendar(self) -> bool:
        """Only cancellation frees the time; pending requests hold it."""
        return self.status != BookingStatus.CANCELLED

    @property
    def counts_toward_occupancy(self) -> bool:
        """Requests awaiting approval do not use up a window's capacity."""
        return self.status == BookingStatus.SCHEDULED

    def overlaps(self, date: Date, start_minutes: int, duration_minutes: int) -> bool:
        if date != self.date:
            return False
        return start_minutes < self.end_minutes and start_minutes + duration_minutes > self.start_minutes
