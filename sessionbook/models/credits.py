"""Prepaid course and gifted token records held by the credit ledger."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CourseStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TokenStatus(str, Enum):
    AVAILABLE = "available"
    USED = "used"
    EXPIRED = "expired"


class CoursePackage(BaseModel):
    """A multi-session course a provider offers for one rate."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider_id: str
    rate_id: str
    title: str = ""
    total_sessions: int = Field(gt=0)
    total_price: Decimal = Field(ge=0)
    active: bool = True


class ClientCourseBooking(BaseModel):
    """A counterparty's purchased instance of a course package.

    Records are immutable snapshots; the ledger swaps in a new copy on
    every debit.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    counterparty_id: str
    provider_id: str
    course_id: str
    course_title: str = ""
    rate_id: str
    total_sessions: int = Field(gt=0)
    sessions_used: int = Field(default=0, ge=0)
    status: CourseStatus = CourseStatus.ACTIVE
    purchased_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_usage(self) -> "ClientCourseBooking":
        if self.sessions_used > self.total_sessions:
            raise ValueError(
                f"Course booking {self.id} uses {self.sessions_used} "
                f"of {self.total_sessions} sessions"
            )
        used_up = self.sessions_used == self.total_sessions
        if self.status == CourseStatus.ACTIVE and used_up:
            raise ValueError(f"Course booking {self.id} has no sessions left but is still active")
        if self.status == CourseStatus.COMPLETED and not used_up:
            raise ValueError(
                f"Course booking {self.id} is completed with "
                f"{self.total_sessions - self.sessions_used} sessions left"
            )
        return self

    @property
    def remaining(self) -> int:
        return self.total_sessions - self.sessions_used

    @property
    def is_usable(self) -> bool:
        return self.status == CourseStatus.ACTIVE and self.sessions_used < self.total_sessions


class ProBonoToken(BaseModel):
    """A gifted single-use credit for one specific rate."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider_id: str
    counterparty_id: str
    rate_id: str
    rate_title: str = ""
    status: TokenStatus = TokenStatus.AVAILABLE
    created_at: Optional[datetime] = None
    used_at: Optional[datetime] = None

    @property
    def is_usable(self) -> bool:
        return self.status == TokenStatus.AVAILABLE
