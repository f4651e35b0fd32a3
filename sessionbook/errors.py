"""Booking error taxonomy.

Every error carries a stable ``code`` and a ``details`` dict so the HTTP
layer can report it without knowing the concrete class.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class BookingError(Exception):
    """Base class for all booking-core errors."""

    http_status: int = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.http_status,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class InvalidWindow(BookingError):
    """Malformed input to the slot computer. A caller bug, not retryable."""

    http_status = 422


class NoRateSelected(BookingError):
    """The wizard was asked to advance without a rate."""


class NoSlotSelected(BookingError):
    """The wizard was asked to advance without a slot."""


class SlotTaken(BookingError):
    """Lost a race to another booking for the same time."""

    http_status = status.HTTP_409_CONFLICT


class CreditExhausted(BookingError):
    """The chosen credit source was consumed between query and commit."""

    http_status = status.HTTP_409_CONFLICT


class RateNotEnabledInWindow(BookingError):
    """The selected slot's window does not authorize the rate."""

    http_status = status.HTTP_409_CONFLICT


class InvalidTransition(BookingError):
    """A wizard event that the current state does not accept."""

    http_status = status.HTTP_409_CONFLICT


class UnknownRate(BookingError):
    http_status = status.HTTP_404_NOT_FOUND


class UnknownProvider(BookingError):
    http_status = status.HTTP_404_NOT_FOUND


class UnknownCreditSource(BookingError):
    http_status = status.HTTP_404_NOT_FOUND


class UnknownBooking(BookingError):
    http_status = status.HTTP_404_NOT_FOUND


class CommitConflict(BookingError):
    """Optimistic commit kept losing to concurrent writers."""

    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class UnknownWizard(BookingError):
    http_status = status.HTTP_404_NOT_FOUND
