"""Per-attempt booking wizard: drives the state machine for one counterparty.

Each in-progress booking attempt gets a BookingWizard that:
  1. Offers the provider's rates that pass the wizard's rate filter
  2. Annotates them with the counterparty's usable credit
  3. Computes slots for the chosen rate and pages through them by week
  4. Hands the final selection to the BookingCommitter exactly once
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import date, timedelta
from typing import Any, Callable

from sessionbook.committer import BookingCommitter
from sessionbook.errors import BookingError, InvalidTransition
from sessionbook.events import BookingFeed, get_feed
from sessionbook.ledger import CreditLedger, CreditSources, redact_id
from sessionbook.models.booking import Booking, PaymentSource
from sessionbook.models.rates import SessionRate
from sessionbook.provider import STANDARD_RATES, RatePredicate
from sessionbook.repository import ProviderDirectory
from sessionbook.slots import Slot, SlotFinder, week_grid
from sessionbook.timeutil import monday_of

from .states import (
    TERMINAL_STEPS,
    Back,
    Cancel,
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
    Step,
    WizardEvent,
    WizardState,
)
from .transitions import recover, transition

log = logging.getLogger("sessionbook.wizard")


# ── Wizard registry ──────────────────────────────────────────────

_active_wizards: dict[str, "BookingWizard"] = {}


def register_wizard(wizard: "BookingWizard") -> str:
    """Register a wizard and return its unique ID."""
    wizard_id = secrets.token_urlsafe(18)
    wizard._wizard_id = wizard_id
    wizard._started_at = time.time()
    _active_wizards[wizard_id] = wizard
    log.info("Wizard registered: %s", wizard_id)
    return wizard_id


def unregister_wizard(wizard_id: str) -> None:
    """Remove a wizard from the registry."""
    _active_wizards.pop(wizard_id, None)
    log.info("Wizard unregistered: %s", wizard_id)


def get_active_wizards() -> dict[str, "BookingWizard"]:
    return _active_wizards


def get_wizard(wizard_id: str) -> "BookingWizard | None":
    return _active_wizards.get(wizard_id)


class BookingWizard:
    """One counterparty's booking attempt with one provider.

    Typical lifecycle::

        wizard = BookingWizard("t1", "c1", directory, finder, ledger, committer)
        wizard.choose_rate("rate-50")
        wizard.advance()                  # -> selecting_slot
        wizard.choose_slot(day, 600)
        wizard.advance()                  # -> confirming
        booking = wizard.confirm()        # -> committed
    """

    def __init__(
        self,
        provider_id: str,
        counterparty_id: str,
        directory: ProviderDirectory,
        finder: SlotFinder,
        ledger: CreditLedger,
        committer: BookingCommitter,
        rate_filter: RatePredicate = STANDARD_RATES,
        feed_for: Callable[[str], BookingFeed] = get_feed,
    ) -> None:
        self._provider_id = provider_id
        self._counterparty_id = counterparty_id
        self._provider = directory.get(provider_id)
        self._finder = finder
        self._ledger = ledger
        self._committer = committer
        self._rate_filter = rate_filter
        self._feed_for = feed_for

        # Registry metadata (set by register_wizard)
        self._wizard_id: str = ""
        self._started_at: float = 0.0

        self._state: WizardState = SelectingRate()
        self._last_error: BookingError | None = None

    # ── Public API ────────────────────────────────────────────

    @property
    def state(self) -> WizardState:
        return self._state

    @property
    def step(self) -> Step:
        return self._state.step

    @property
    def is_done(self) -> bool:
        return self._state.step in TERMINAL_STEPS

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def counterparty_id(self) -> str:
        return self._counterparty_id

    @property
    def last_error(self) -> BookingError | None:
        return self._last_error

    def rates(self) -> list[SessionRate]:
        return self._provider.catalog.eligible(self._rate_filter)

    def credit_sources(self, rate_id: str | None = None) -> CreditSources:
        """Usable credit for a rate, or across all offered rates."""
        sources = self._ledger.list_credit_sources(
            self._counterparty_id, self._provider_id, rate_id,
        )
        if rate_id is not None:
            return sources
        offered = self.eligible_rate_ids()
        return CreditSources(
            tuple(c for c in sources.courses if c.rate_id in offered),
            tuple(t for t in sources.tokens if t.rate_id in offered),
        )

    def choose_rate(self, rate_id: str | None, payment: PaymentSource | None = None) -> WizardState:
        return self.dispatch(ChooseRate(rate_id, payment or PaymentSource.cash()))

    def choose_payment(self, payment: PaymentSource) -> WizardState:
        return self.dispatch(ChoosePayment(payment))

    def advance(self) -> WizardState:
        return self.dispatch(Continue())

    def choose_slot(self, day: date, start_minutes: int) -> WizardState:
        return self.dispatch(ChooseSlot(day, start_minutes))

    def back(self) -> WizardState:
        return self.dispatch(Back())

    def cancel(self) -> WizardState:
        return self.dispatch(Cancel())

    def confirm(self) -> Booking:
        state = self.dispatch(Confirm())
        if not isinstance(state, Committed):
            raise InvalidTransition(
                f"Confirm left the wizard at {state.step.value}",
                details={"step": state.step.value},
            )
        return state.booking

    # ── Week navigation ───────────────────────────────────────

    def week_bounds(self) -> tuple[date, date]:
        """First and last week start the slot view may show."""
        first = self.current_week()
        last = monday_of(self._finder.booking_horizon(self._provider_id))
        return first, max(first, last)

    def show_week(self, week_start: date) -> WizardState:
        first, last = self.week_bounds()
        week = min(max(monday_of(week_start), first), last)
        return self.dispatch(ShowWeek(week))

    def next_week(self) -> WizardState:
        return self.show_week(self._require_slot_view().week_start + timedelta(days=7))

    def previous_week(self) -> WizardState:
        return self.show_week(self._require_slot_view().week_start - timedelta(days=7))

    def this_week(self) -> WizardState:
        return self.show_week(self.current_week())

    def visible_slots(self) -> dict[date, list[Slot]]:
        """The current week's open slots, keyed by each of its seven dates."""
        view = self._require_slot_view()
        return week_grid(view.slots, view.week_start)

    def _require_slot_view(self) -> SelectingSlot:
        if not isinstance(self._state, SelectingSlot):
            raise InvalidTransition(
                f"No slot view while {self._state.step.value}",
                details={"step": self._state.step.value},
            )
        return self._state

    # ── Dispatch ──────────────────────────────────────────────

    def dispatch(self, event: WizardEvent) -> WizardState:
        before = self._state
        try:
            after = transition(before, event, self)
        except BookingError as exc:
            self._last_error = exc
            if isinstance(event, Confirm):
                self._state = recover(before, exc, self)
                self._log_transition(before, self._state, event, failed=exc.code)
            else:
                log.info(
                    "Wizard %s stays %s: %s", self._wizard_id or "-", before.step.value, exc.code,
                )
            raise
        self._last_error = None
        self._state = after
        self._log_transition(before, after, event)
        return after

    def _log_transition(
        self, before: WizardState, after: WizardState, event: WizardEvent, failed: str = "",
    ) -> None:
        if before.step == after.step and not failed:
            return
        log.info(
            "Wizard %s: %s → %s (%s%s) for %s",
            self._wizard_id or "-", before.step.value, after.step.value,
            type(event).__name__, f", {failed}" if failed else "",
            redact_id(self._counterparty_id),
        )
        self._feed_for(self._provider_id).emit("wizard_transition", {
            "wizard_id": self._wizard_id,
            "from": before.step.value,
            "to": after.step.value,
            "event": type(event).__name__,
            "error": failed,
        })

    # ── WizardContext ─────────────────────────────────────────

    def eligible_rate_ids(self) -> set[str]:
        return {r.id for r in self.rates()}

    def slots_for(self, rate_id: str) -> list[Slot]:
        return self._finder.list_available_slots(self._provider_id, rate_id)

    def current_week(self) -> date:
        return monday_of(self._finder.today())

    def check_payment(self, rate_id: str, payment: PaymentSource) -> None:
        handle = self._ledger.reserve(payment, self._counterparty_id, self._provider_id, rate_id)
        self._ledger.release(handle)

    def commit(self, rate_id: str, slot: Slot, payment: PaymentSource) -> Booking:
        return self._committer.commit(
            self._provider_id, self._counterparty_id, rate_id,
            slot.date, slot.start_minutes, payment,
        )

    # ── Serialization ─────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Serialize wizard state for the API."""
        state = self._state
        d: dict[str, Any] = {
            "wizard_id": self._wizard_id,
            "provider_id": self._provider_id,
            "step": state.step.value,
            "is_done": self.is_done,
            "started_at": self._started_at,
            "error": self._last_error.code if self._last_error else None,
        }
        if isinstance(state, (SelectingRate, SelectingSlot, Confirming)):
            d["rate_id"] = state.rate_id
            d["payment"] = str(state.payment)
        if isinstance(state, SelectingSlot):
            d["week_start"] = state.week_start.isoformat()
            d["slot_count"] = len(state.slots)
            d["selected"] = _slot_dict(state.selected) if state.selected else None
            d["week"] = {
                day.isoformat(): [_slot_dict(s) for s in slots]
                for day, slots in self.visible_slots().items()
            }
        if isinstance(state, Confirming):
            d["slot"] = _slot_dict(state.slot)
        if isinstance(state, Committed):
            d["booking"] = state.booking.model_dump(mode="json")
        return d


def _slot_dict(slot: Slot) -> dict[str, Any]:
    return {
        "date": slot.date.isoformat(),
        "start_minutes": slot.start_minutes,
        "duration_minutes": slot.duration_minutes,
        "request_only": slot.request_only,
        "label": slot.label(),
    }
