"""External service clients."""
from booking_service.infrastructure.clients.categorization_client import CategorizationClient
from booking_service.infrastructure.clients.user_client import UserClient

__all__ = ["CategorizationClient", "UserClient"]
