from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from booking_service.domain.availability import to_calendar_date


class DateRangeRequest(BaseModel):
    start_date: date
    end_date: date

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _calendar_date(cls, value):
        # Timestamps are reduced to their UTC calendar day.
        if isinstance(value, (str, datetime)):
            return to_calendar_date(value)
        return value


class CreateRentalRequest(DateRangeRequest):
    listing_id: UUID
    message: Optional[str] = Field(default=None, max_length=2000)


class RescheduleRequest(DateRangeRequest):
    pass


class DeclineRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class QuoteRequest(DateRangeRequest):
    tier_override: Optional[int] = Field(default=None, ge=1)
    suggested_tier: Optional[int] = Field(default=None, ge=1)


class BlackoutRequest(DateRangeRequest):
    reason: Optional[str] = Field(default=None, max_length=500)


class UnavailableDatesResponse(BaseModel):
    listing_id: UUID
    dates: List[date]


class ExpirePendingResponse(BaseModel):
    expired: int
    rental_ids: List[UUID]
