"""Booking wizard: rate selection -> slot selection -> confirmation."""

from .states import (
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
    Step,
    WizardEvent,
    WizardState,
)
from .transitions import recover, transition
from .wizard import (
    BookingWizard,
    get_active_wizards,
    get_wizard,
    register_wizard,
    unregister_wizard,
)

__all__ = [
    "Back",
    "BookingWizard",
    "Cancel",
    "Cancelled",
    "ChoosePayment",
    "ChooseRate",
    "ChooseSlot",
    "Committed",
    "Confirm",
    "Confirming",
    "Continue",
    "SelectingRate",
    "SelectingSlot",
    "ShowWeek",
    "Step",
    "WizardEvent",
    "WizardState",
    "get_active_wizards",
    "get_wizard",
    "recover",
    "register_wizard",
    "transition",
    "unregister_wizard",
]
