"""Domain models for the Booking Service."""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class BookingType(str, Enum):
    """How a listing accepts bookings."""

    INSTANT = "instant"
    REQUEST = "request"


class ListingStatus(str, Enum):
    """Listing administrative status."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class RentalStatus(str, Enum):
    """Rental lifecycle status."""

    PENDING = "pending"
    APPROVED = "approved"
    ACTIVE = "active"
    RETURNED = "returned"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


# Statuses that count toward the non-overlap invariant.
CONFIRMED_OCCUPANCY = frozenset(
    {RentalStatus.APPROVED, RentalStatus.ACTIVE, RentalStatus.RETURNED}
)

TERMINAL_STATUSES = frozenset(
    {RentalStatus.COMPLETED, RentalStatus.DECLINED, RentalStatus.CANCELLED}
)

# Statuses from which the renter may still reschedule or cancel.
RENTER_MUTABLE_STATUSES = frozenset({RentalStatus.PENDING, RentalStatus.APPROVED})


class DashboardStatus(str, Enum):
    """Derived, non-persisted display status."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"
    COMPLETED = "completed"


class DashboardView(str, Enum):
    """Whose dashboard a rental is classified for."""

    RENTER = "renter"
    OWNER = "owner"


class Category(BaseModel):
    """Category reference data."""

    category_id: UUID = Field(default_factory=uuid4)
    name: str
    risk_tier: int = 1
    risk_daily_fee: Decimal = Decimal("0.00")
    deductible_amount: Decimal = Decimal("0.00")

    model_config = {"from_attributes": True}


class Listing(BaseModel):
    """A rentable item."""

    listing_id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    category_id: UUID
    title: str = ""
    daily_price: Decimal = Decimal("0.00")
    is_high_powered: bool = False
    accepts_barter: bool = False
    booking_type: BookingType = BookingType.REQUEST
    risk_tier_override: Optional[int] = None
    deposit_override: Optional[Decimal] = None
    status: ListingStatus = ListingStatus.ACTIVE

    model_config = {"from_attributes": True}


class BlackoutRange(BaseModel):
    """Owner-declared inclusive date span during which a listing is not rentable."""

    blackout_id: UUID = Field(default_factory=uuid4)
    listing_id: UUID
    owner_id: UUID
    start_date: date
    end_date: date
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class Rental(BaseModel):
    """The booking record."""

    rental_id: UUID = Field(default_factory=uuid4)
    listing_id: UUID
    renter_id: UUID
    owner_id: UUID
    start_date: date
    end_date: date
    total_days: int
    daily_price_snapshot: Decimal
    risk_tier_snapshot: int
    rental_fee: Decimal
    peace_fund_fee: Decimal
    deposit_amount: Decimal = Decimal("0.00")
    total_paid: Decimal
    status: RentalStatus = RentalStatus.PENDING
    decline_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"from_attributes": True}

    @property
    def is_confirmed(self) -> bool:
        return self.status in CONFIRMED_OCCUPANCY


class TierResolution(BaseModel):
    """Effective protection tier and the fees it drives."""

    effective_tier: int
    peace_fund_daily_fee: Decimal
    deductible: Decimal


class PriceBreakdown(BaseModel):
    """Price of a rental for a number of days."""

    total_days: int
    daily_price: Decimal
    effective_tier: int
    subtotal: Decimal
    peace_fund_total: Decimal
    final_total: Decimal
    deposit: Decimal
    total_due: Decimal
    deductible: Decimal


class CategorySuggestion(BaseModel):
    """Result of title auto-categorization."""

    category_id: UUID
    confidence: float = 0.0
    tier: Optional[int] = None


class UserInfo(BaseModel):
    """User information from the user service."""

    user_id: UUID
    full_name: Optional[str] = None
    email: Optional[str] = None


class ChatThread(BaseModel):
    """Conversation between an owner and a renter about one listing."""

    chat_id: UUID = Field(default_factory=uuid4)
    listing_id: UUID
    owner_id: UUID
    renter_id: UUID
    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"from_attributes": True}


class ChatMessage(BaseModel):
    """A single message, visible to its recipient."""

    message_id: UUID = Field(default_factory=uuid4)
    chat_id: UUID
    sender_id: UUID
    recipient_id: UUID
    content: str
    message_type: str = "system"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"from_attributes": True}


class DashboardEntry(BaseModel):
    """A rental as shown on a dashboard."""

    rental: Rental
    display_status: DashboardStatus
    days_overdue: int = 0


class OwnerDashboard(BaseModel):
    """Owner view: incoming requests, classified rentals and filter counts."""

    pending_requests: List[Rental] = Field(default_factory=list)
    rentals: List[DashboardEntry] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)


class RenterDashboard(BaseModel):
    """Renter view: requests awaiting an answer and confirmed rentals."""

    pending_requests: List[Rental] = Field(default_factory=list)
    rentals: List[DashboardEntry] = Field(default_factory=list)


class TierSuggestion(BaseModel):
    """Category and protection tier proposed for a listing title."""

    category_id: UUID
    category_name: str
    is_auto_suggested: bool
    effective_tier: int
    peace_fund_daily_fee: Decimal
    deductible: Decimal
