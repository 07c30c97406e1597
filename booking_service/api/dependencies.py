"""API dependencies with dependency injection."""
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from booking_service.infrastructure.clients import CategorizationClient, UserClient
from booking_service.infrastructure.database import get_async_session, uses_database
from booking_service.infrastructure.repositories import (
    BookingRepository,
    ChatRepository,
)
from booking_service.infrastructure.repositories_inmemory import (
    InMemoryBookingRepository,
    InMemoryChatRepository,
)
from booking_service.infrastructure.repositories_postgres import (
    PostgresBookingRepository,
    PostgresChatRepository,
)
from booking_service.services.booking_service import BookingService
from booking_service.services.catalog_service import CatalogService
from booking_service.services.messaging_service import MessagingService

# Singleton instances for clients
_categorization_client: Optional[CategorizationClient] = None
_user_client: Optional[UserClient] = None

# Shared stores for storage_backend == "memory"
_memory_booking_repository: Optional[InMemoryBookingRepository] = None
_memory_chat_repository: Optional[InMemoryChatRepository] = None


def get_categorization_client() -> CategorizationClient:
    """Get CategorizationClient singleton."""
    global _categorization_client
    if _categorization_client is None:
        _categorization_client = CategorizationClient()
    return _categorization_client


def get_user_client() -> UserClient:
    """Get UserClient singleton."""
    global _user_client
    if _user_client is None:
        _user_client = UserClient()
    return _user_client


async def close_clients() -> None:
    global _categorization_client, _user_client
    if _categorization_client is not None:
        await _categorization_client.close()
        _categorization_client = None
    if _user_client is not None:
        await _user_client.close()
        _user_client = None


def get_user_id(authorization: str = Header(None)) -> UUID:
    """Acting user, passed as a bare UUID by the gateway."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    token = authorization.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    try:
        return UUID(token)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid Authorization header")


def get_clock() -> datetime:
    """Current instant; overridden in tests to pin "today"."""
    return datetime.now(timezone.utc)


async def get_session() -> AsyncGenerator[Optional[AsyncSession], None]:
    """Database session, or None when running on the in-memory store."""
    if not uses_database():
        yield None
        return
    async for session in get_async_session():
        yield session


def get_booking_repository(
    session: Optional[AsyncSession] = Depends(get_session),
) -> BookingRepository:
    global _memory_booking_repository
    if session is None:
        if _memory_booking_repository is None:
            _memory_booking_repository = InMemoryBookingRepository()
        return _memory_booking_repository
    return PostgresBookingRepository(session)


def get_chat_repository(
    session: Optional[AsyncSession] = Depends(get_session),
) -> ChatRepository:
    global _memory_chat_repository
    if session is None:
        if _memory_chat_repository is None:
            _memory_chat_repository = InMemoryChatRepository()
        return _memory_chat_repository
    return PostgresChatRepository(session)


def get_messaging_service(
    chat_repository: ChatRepository = Depends(get_chat_repository),
) -> MessagingService:
    return MessagingService(chat_repository, user_client=get_user_client())


def get_booking_service(
    booking_repository: BookingRepository = Depends(get_booking_repository),
    messaging_service: MessagingService = Depends(get_messaging_service),
) -> BookingService:
    """Get BookingService with dependencies."""
    return BookingService(booking_repository, messaging_service=messaging_service)


def get_catalog_service(
    booking_repository: BookingRepository = Depends(get_booking_repository),
) -> CatalogService:
    """Get CatalogService with dependencies."""
    return CatalogService(booking_repository, suggester=get_categorization_client())
