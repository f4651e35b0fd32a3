"""Data models for the booking core."""

from .availability import AvailabilityWindow
from .booking import Booking, BookingRequest, BookingStatus, PaymentKind, PaymentSource
from .credits import ClientCourseBooking, CoursePackage, CourseStatus, ProBonoToken, TokenStatus
from .rates import Modality, SessionRate

__all__ = [
    "AvailabilityWindow",
    "Booking",
    "BookingRequest",
    "BookingStatus",
    "ClientCourseBooking",
    "CoursePackage",
    "CourseStatus",
    "Modality",
    "PaymentKind",
    "PaymentSource",
    "ProBonoToken",
    "SessionRate",
    "TokenStatus",
]
