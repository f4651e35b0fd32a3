"""Wizard states and events as tagged unions.

States are frozen; every transition builds a new one. Nothing in a state
holds a reservation or a debit, so any state can be dropped on the floor.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import ClassVar, Optional, Union

from sessionbook.models.booking import Booking, PaymentSource
from sessionbook.slots import Slot


class Step(str, Enum):
    SELECTING_RATE = "selecting_rate"
    SELECTING_SLOT = "selecting_slot"
    CONFIRMING = "confirming"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


# ── States ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SelectingRate:
    step: ClassVar[Step] = Step.SELECTING_RATE

    rate_id: Optional[str] = None
    payment: PaymentSource = PaymentSource()


@dataclass(frozen=True)
class SelectingSlot:
    step: ClassVar[Step] = Step.SELECTING_SLOT

    rate_id: str
    payment: PaymentSource
    slots: tuple[Slot, ...]
    week_start: date
    selected: Optional[Slot] = None


@dataclass(frozen=True)
class Confirming:
    step: ClassVar[Step] = Step.CONFIRMING

    rate_id: str
    payment: PaymentSource
    slot: Slot
    slots: tuple[Slot, ...]  # kept so Back restores the slot view unchanged
    week_start: date


@dataclass(frozen=True)
class Committed:
    step: ClassVar[Step] = Step.COMMITTED

    booking: Booking


@dataclass(frozen=True)
class Cancelled:
    step: ClassVar[Step] = Step.CANCELLED

    from_step: Step


WizardState = Union[SelectingRate, SelectingSlot, Confirming, Committed, Cancelled]

TERMINAL_STEPS = frozenset({Step.COMMITTED, Step.CANCELLED})


# ── Events ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ChooseRate:
    rate_id: Optional[str]
    payment: PaymentSource = PaymentSource()


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class ChooseSlot:
    date: date
    start_minutes: int


@dataclass(frozen=True)
class ChoosePayment:
    payment: PaymentSource


@dataclass(frozen=True)
class ShowWeek:
    week_start: date


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Confirm:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


WizardEvent = Union[
    ChooseRate, Continue, ChooseSlot, ChoosePayment, ShowWeek, Back, Confirm, Cancel,
]
