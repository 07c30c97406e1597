"""SQLAlchemy ORM models for database tables."""
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSON, UUID as PostgreSQL_UUID
from sqlalchemy.types import CHAR, TypeDecorator

from booking_service.domain.models import BookingType, ListingStatus, RentalStatus
from booking_service.infrastructure.database import Base


class GUID(TypeDecorator):
    """Platform-independent GUID type.

    Uses PostgreSQL UUID, otherwise CHAR(32), storing as stringified hex.
    """
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PostgreSQL_UUID(as_uuid=True))
        else:
            return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return str(value)
        else:
            if not isinstance(value, uuid.UUID):
                return "%.32x" % uuid.UUID(value).int
            else:
                return "%.32x" % value.int

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        else:
            if not isinstance(value, uuid.UUID):
                value = uuid.UUID(value)
            return value


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class CategoryModel(Base):
    """SQLAlchemy model for categories table."""

    __tablename__ = "categories"

    category_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    risk_tier = Column(Integer, nullable=False, default=1)
    risk_daily_fee = Column(Numeric(10, 2), nullable=False, default=0)
    deductible_amount = Column(Numeric(10, 2), nullable=False, default=0)


class ListingModel(Base):
    """SQLAlchemy model for listings table."""

    __tablename__ = "listings"

    listing_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    owner_id = Column(GUID(), nullable=False, index=True)
    category_id = Column(GUID(), ForeignKey("categories.category_id"), nullable=False)
    title = Column(String(255), nullable=False, default="")
    daily_price = Column(Numeric(10, 2), nullable=False, default=0)
    is_high_powered = Column(Boolean, nullable=False, default=False)
    accepts_barter = Column(Boolean, nullable=False, default=False)
    booking_type = Column(
        Enum(BookingType, name="booking_type", values_callable=_enum_values),
        nullable=False,
        default=BookingType.REQUEST,
    )
    risk_tier_override = Column(Integer, nullable=True)
    deposit_override = Column(Numeric(10, 2), nullable=True)
    status = Column(
        Enum(ListingStatus, name="listing_status", values_callable=_enum_values),
        nullable=False,
        default=ListingStatus.ACTIVE,
    )


class BlackoutRangeModel(Base):
    """SQLAlchemy model for owner blackout ranges."""

    __tablename__ = "blocked_dates"

    blackout_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    listing_id = Column(
        GUID(), ForeignKey("listings.listing_id"), nullable=False, index=True
    )
    owner_id = Column(GUID(), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=True)


class RentalModel(Base):
    """SQLAlchemy model for rentals table."""

    __tablename__ = "rentals"

    rental_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    listing_id = Column(GUID(), ForeignKey("listings.listing_id"), nullable=False)
    renter_id = Column(GUID(), nullable=False, index=True)
    owner_id = Column(GUID(), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_days = Column(Integer, nullable=False)
    daily_price_snapshot = Column(Numeric(10, 2), nullable=False)
    risk_tier_snapshot = Column(Integer, nullable=False)
    rental_fee = Column(Numeric(10, 2), nullable=False)
    peace_fund_fee = Column(Numeric(10, 2), nullable=False)
    deposit_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total_paid = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(RentalStatus, name="rental_status", values_callable=_enum_values),
        nullable=False,
        default=RentalStatus.PENDING,
        index=True,
    )
    decline_reason = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Composite indexes for common queries
    __table_args__ = (
        Index("idx_rentals_listing_status", "listing_id", "status"),
        Index("idx_rentals_listing_dates", "listing_id", "start_date", "end_date"),
    )


class RentalEventModel(Base):
    """SQLAlchemy model for rental audit log."""

    __tablename__ = "rental_events"

    event_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    rental_id = Column(GUID(), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    ts = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    payload_json = Column(JSON, nullable=True)

    __table_args__ = (Index("idx_rental_events_rental_ts", "rental_id", "ts"),)


class ChatModel(Base):
    """SQLAlchemy model for chat threads."""

    __tablename__ = "chats"

    chat_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    listing_id = Column(GUID(), nullable=False)
    owner_id = Column(GUID(), nullable=False)
    renter_id = Column(GUID(), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("owner_id", "renter_id", "listing_id", name="uq_chats_triple"),
    )


class MessageModel(Base):
    """SQLAlchemy model for chat messages."""

    __tablename__ = "messages"

    message_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    chat_id = Column(GUID(), ForeignKey("chats.chat_id"), nullable=False, index=True)
    sender_id = Column(GUID(), nullable=False)
    recipient_id = Column(GUID(), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(String(20), nullable=False, default="system")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
