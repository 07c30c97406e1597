"""Pytest configuration and fixtures.

Services run against the in-memory repositories; the PostgreSQL repository
is exercised on SQLite in-memory for fast tests.
"""
import pytest
from unittest.mock import AsyncMock
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from booking_service.domain.models import (
    BookingType,
    Category,
    Listing,
    Rental,
    RentalStatus,
)
from booking_service.infrastructure.database import Base
from booking_service.infrastructure.repositories_inmemory import (
    InMemoryBookingRepository,
    InMemoryChatRepository,
)
from booking_service.infrastructure.repositories_postgres import (
    PostgresBookingRepository,
    PostgresChatRepository,
)
from booking_service.infrastructure.clients import CategorizationClient, UserClient
from booking_service.services.booking_service import BookingService
from booking_service.services.catalog_service import CatalogService
from booking_service.services.messaging_service import MessagingService

TODAY = date(2024, 7, 1)
NOW = datetime(2024, 7, 1, 9, 30)


@pytest.fixture
async def async_session():
    """Create async session for testing with SQLite in-memory."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_factory() as session:
        yield session
        await session.rollback()

    await engine.dispose()


@pytest.fixture
def postgres_repository(async_session: AsyncSession) -> PostgresBookingRepository:
    """PostgreSQL repository fixture (with SQLite backend for tests)."""
    return PostgresBookingRepository(async_session)


@pytest.fixture
def postgres_chat_repository(async_session: AsyncSession) -> PostgresChatRepository:
    return PostgresChatRepository(async_session)


@pytest.fixture
def booking_repository() -> InMemoryBookingRepository:
    return InMemoryBookingRepository()


@pytest.fixture
def chat_repository() -> InMemoryChatRepository:
    return InMemoryChatRepository()


@pytest.fixture
def owner_id() -> UUID:
    """Listing owner."""
    return UUID("550e8400-e29b-41d4-a716-446655440000")


@pytest.fixture
def renter_id() -> UUID:
    """Renter."""
    return UUID("123e4567-e89b-12d3-a456-426614174000")


@pytest.fixture
def other_renter_id() -> UUID:
    """A second renter competing for the same dates."""
    return UUID("9f1c2d3e-4b5a-4c6d-8e7f-001122334455")


@pytest.fixture
def category() -> Category:
    """Power tools, default tier 2."""
    return Category(
        category_id=UUID("aaaaaaaa-0000-4000-8000-000000000001"),
        name="Power Tools",
        risk_tier=2,
        risk_daily_fee=Decimal("4.00"),
        deductible_amount=Decimal("75.00"),
    )


@pytest.fixture
def hand_tools_category() -> Category:
    """Hand tools, default tier 1."""
    return Category(
        category_id=UUID("aaaaaaaa-0000-4000-8000-000000000002"),
        name="Hand Tools",
        risk_tier=1,
        risk_daily_fee=Decimal("1.50"),
        deductible_amount=Decimal("25.00"),
    )


@pytest.fixture
def listing(owner_id: UUID, category: Category) -> Listing:
    """Request-type listing."""
    return Listing(
        listing_id=UUID("bbbbbbbb-0000-4000-8000-000000000001"),
        owner_id=owner_id,
        category_id=category.category_id,
        title="Cordless Drill",
        daily_price=Decimal("25.00"),
        booking_type=BookingType.REQUEST,
    )


@pytest.fixture
def instant_listing(owner_id: UUID, category: Category) -> Listing:
    """Instant-book listing."""
    return Listing(
        listing_id=UUID("bbbbbbbb-0000-4000-8000-000000000002"),
        owner_id=owner_id,
        category_id=category.category_id,
        title="Circular Saw",
        daily_price=Decimal("30.00"),
        booking_type=BookingType.INSTANT,
    )


@pytest.fixture
async def seeded_repository(
    booking_repository: InMemoryBookingRepository,
    category: Category,
    hand_tools_category: Category,
    listing: Listing,
    instant_listing: Listing,
) -> InMemoryBookingRepository:
    """In-memory repository holding both categories and both listings."""
    await booking_repository.save_category(category)
    await booking_repository.save_category(hand_tools_category)
    await booking_repository.save_listing(listing)
    await booking_repository.save_listing(instant_listing)
    return booking_repository


@pytest.fixture
def mock_user_client(owner_id: UUID, renter_id: UUID) -> AsyncMock:
    """Mock user client."""
    names = {owner_id: "dana", renter_id: "Alex"}

    async def display_name(user_id: UUID):
        return names.get(user_id)

    client = AsyncMock(spec=UserClient)
    client.get_display_name = AsyncMock(side_effect=display_name)
    return client


@pytest.fixture
def mock_categorization_client() -> AsyncMock:
    """Mock categorization client that never has a suggestion."""
    client = AsyncMock(spec=CategorizationClient)
    client.suggest_category = AsyncMock(return_value=None)
    return client


@pytest.fixture
def messaging_service(
    chat_repository: InMemoryChatRepository, mock_user_client: AsyncMock
) -> MessagingService:
    return MessagingService(
        chat_repository,
        user_client=mock_user_client,
        seller_fee_percent=Decimal("7"),
        pending_request_ttl_hours=24,
    )


@pytest.fixture
def booking_service(
    seeded_repository: InMemoryBookingRepository,
    messaging_service: MessagingService,
) -> BookingService:
    """Booking service over the seeded in-memory store."""
    return BookingService(
        seeded_repository,
        messaging_service=messaging_service,
        platform_deposit=Decimal("0.00"),
        pending_request_ttl_hours=24,
        reschedule_cutoff_days=0,
    )


@pytest.fixture
def catalog_service(
    seeded_repository: InMemoryBookingRepository,
    mock_categorization_client: AsyncMock,
) -> CatalogService:
    return CatalogService(
        seeded_repository,
        suggester=mock_categorization_client,
        platform_deposit=Decimal("0.00"),
        availability_horizon_days=365,
        min_title_length=3,
    )


@pytest.fixture
def make_rental(listing: Listing, renter_id: UUID):
    """Factory for rentals of the request-type listing."""

    def factory(
        start: date,
        end: date,
        status: RentalStatus = RentalStatus.APPROVED,
        renter: UUID = None,
        target: Listing = None,
        created_at: datetime = NOW,
    ) -> Rental:
        target = target or listing
        days = (end - start).days + 1
        return Rental(
            listing_id=target.listing_id,
            renter_id=renter or renter_id,
            owner_id=target.owner_id,
            start_date=start,
            end_date=end,
            total_days=days,
            daily_price_snapshot=target.daily_price,
            risk_tier_snapshot=2,
            rental_fee=target.daily_price * days,
            peace_fund_fee=Decimal("4.00") * days,
            total_paid=(target.daily_price + Decimal("4.00")) * days,
            status=status,
            created_at=created_at,
            updated_at=created_at,
        )

    return factory
