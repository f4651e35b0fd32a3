"""The wizard's transition function.

``transition(state, event, ctx)`` is total: every (state, event) pair
either yields a new state or raises a ``BookingError``. Only ``Confirm``
reaches outside, through ``ctx.commit``.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol

from sessionbook.errors import (
    BookingError,
    InvalidTransition,
    NoRateSelected,
    NoSlotSelected,
    RateNotEnabledInWindow,
    SlotTaken,
    UnknownRate,
)
from sessionbook.models.booking import Booking, PaymentSource
from sessionbook.slots import Slot, first_week
from sessionbook.timeutil import fmt_minutes, monday_of

from .states import (
    TERMINAL_STEPS,
    Back,
    Cancel,
    Cancelled,
    ChoosePayment,
    ChooseRate,
    ChooseSlot,
    Committed,
    Confirm,
    Confirming,
    Continue,
    SelectingRate,
    SelectingSlot,
    ShowWeek,
    WizardEvent,
    WizardState,
)


class WizardContext(Protocol):
    def eligible_rate_ids(self) -> set[str]: ...

    def slots_for(self, rate_id: str) -> list[Slot]: ...

    def current_week(self) -> date: ...

    def check_payment(self, rate_id: str, payment: PaymentSource) -> None: ...

    def commit(self, rate_id: str, slot: Slot, payment: PaymentSource) -> Booking: ...


def _invalid(state: WizardState, event: WizardEvent) -> InvalidTransition:
    return InvalidTransition(
        f"{type(event).__name__} is not allowed while {state.step.value}",
        details={"step": state.step.value, "event": type(event).__name__},
    )


def _require_rate(rate_id: str | None, ctx: WizardContext) -> str:
    if not rate_id:
        raise NoRateSelected("Please select a session type")
    if rate_id not in ctx.eligible_rate_ids():
        raise UnknownRate(
            f"Rate {rate_id!r} cannot be booked here",
            details={"rate_id": rate_id},
        )
    return rate_id


def enter_slot_selection(
    rate_id: str, payment: PaymentSource, ctx: WizardContext,
) -> SelectingSlot:
    """Recompute slots for the rate and open the first week that has any."""
    slots = tuple(ctx.slots_for(rate_id))
    week = first_week(slots) or ctx.current_week()
    return SelectingSlot(rate_id=rate_id, payment=payment, slots=slots, week_start=week)


def transition(state: WizardState, event: WizardEvent, ctx: WizardContext) -> WizardState:
    if state.step in TERMINAL_STEPS:
        raise _invalid(state, event)

    if isinstance(event, Cancel):
        return Cancelled(from_step=state.step)

    if isinstance(state, SelectingRate):
        if isinstance(event, ChooseRate):
            if event.rate_id is None:
                return SelectingRate()
            rate_id = _require_rate(event.rate_id, ctx)
            ctx.check_payment(rate_id, event.payment)
            return SelectingRate(rate_id=rate_id, payment=event.payment)
        if isinstance(event, ChoosePayment):
            rate_id = _require_rate(state.rate_id, ctx)
            ctx.check_payment(rate_id, event.payment)
            return SelectingRate(rate_id=rate_id, payment=event.payment)
        if isinstance(event, Continue):
            rate_id = _require_rate(state.rate_id, ctx)
            return enter_slot_selection(rate_id, state.payment, ctx)
        raise _invalid(state, event)

    if isinstance(state, SelectingSlot):
        if isinstance(event, ChooseSlot):
            for slot in state.slots:
                if slot.date == event.date and slot.start_minutes == event.start_minutes:
                    return SelectingSlot(
                        rate_id=state.rate_id,
                        payment=state.payment,
                        slots=state.slots,
                        week_start=monday_of(slot.date),
                        selected=slot,
                    )
            raise NoSlotSelected(
                f"{event.date} {fmt_minutes(event.start_minutes)} is not an open slot",
                details={"date": event.date.isoformat(), "start_minutes": event.start_minutes},
            )
        if isinstance(event, ChooseRate):
            if event.rate_id == state.rate_id and event.payment == state.payment:
                return state
            # A different rate (or payment for it) invalidates the slot list.
            if event.rate_id is None:
                return SelectingRate()
            rate_id = _require_rate(event.rate_id, ctx)
            ctx.check_payment(rate_id, event.payment)
            return SelectingRate(rate_id=rate_id, payment=event.payment)
        if isinstance(event, ShowWeek):
            return SelectingSlot(
                rate_id=state.rate_id,
                payment=state.payment,
                slots=state.slots,
                week_start=monday_of(event.week_start),
                selected=state.selected,
            )
        if isinstance(event, Continue):
            if state.selected is None:
                raise NoSlotSelected("Please select a time slot")
            return Confirming(
                rate_id=state.rate_id,
                payment=state.payment,
                slot=state.selected,
                slots=state.slots,
                week_start=state.week_start,
            )
        if isinstance(event, Back):
            return SelectingRate(rate_id=state.rate_id, payment=state.payment)
        raise _invalid(state, event)

    if isinstance(state, Confirming):
        if isinstance(event, ChoosePayment):
            ctx.check_payment(state.rate_id, event.payment)
            return Confirming(
                rate_id=state.rate_id,
                payment=event.payment,
                slot=state.slot,
                slots=state.slots,
                week_start=state.week_start,
            )
        if isinstance(event, Back):
            return SelectingSlot(
                rate_id=state.rate_id,
                payment=state.payment,
                slots=state.slots,
                week_start=state.week_start,
                selected=state.slot,
            )
        if isinstance(event, Confirm):
            booking = ctx.commit(state.rate_id, state.slot, state.payment)
            return Committed(booking=booking)
        raise _invalid(state, event)

    raise _invalid(state, event)


def recover(state: WizardState, error: BookingError, ctx: WizardContext) -> WizardState:
    """State to land in after a failed ``Confirm``.

    A lost slot or a stale slot list sends the counterparty back to slot
    selection with fresh slots, rate and payment kept. Anything else, such
    as spent credit, leaves the confirmation open so the payment can be
    switched.
    """
    if isinstance(state, Confirming) and isinstance(error, (SlotTaken, RateNotEnabledInWindow)):
        return enter_slot_selection(state.rate_id, state.payment, ctx)
    return state
