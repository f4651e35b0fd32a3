"""Session rate definitions published by a provider."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Modality(str, Enum):
    VIDEO = "video"
    IN_PERSON = "inPerson"
    TEXT = "text"
    PHONE_CALL = "phoneCall"


class SessionRate(BaseModel):
    """One bookable kind of session. Immutable once published."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    modality: Modality = Modality.VIDEO
    duration_minutes: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    cooldown_minutes: int = Field(default=0, ge=0)
    is_supervision_only: bool = False
