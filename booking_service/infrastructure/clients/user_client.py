"""User Service client."""
import logging
from typing import Optional
from uuid import UUID

from tenacity import retry, stop_after_attempt, wait_fixed

from booking_service.config import settings
from booking_service.domain.models import UserInfo
from booking_service.infrastructure.clients.base import BaseHTTPClient

logger = logging.getLogger(__name__)


class UserClient:
    """Client for User Service profile lookups."""

    def __init__(
        self,
        base_url: str = settings.user_service_url,
        timeout: float = settings.user_service_timeout,
    ):
        self.http_client = BaseHTTPClient(base_url, timeout)

    async def close(self) -> None:
        """Close the client."""
        await self.http_client.close()

    @retry(stop=stop_after_attempt(3), wait=wait_fixed(1), reraise=True)
    async def get_user_info(self, user_id: UUID) -> UserInfo:
        response = await self.http_client.get(f"/api/v1/users/{user_id}")
        return UserInfo(
            user_id=UUID(str(response.get("user_id", user_id))),
            full_name=response.get("full_name") or response.get("name"),
            email=response.get("email"),
        )

    async def get_display_name(self, user_id: UUID) -> Optional[str]:
        """Display name of a user, or None when the profile is unavailable."""
        try:
            user = await self.get_user_info(user_id)
        except Exception as e:
            logger.warning(f"Failed to fetch user info for {user_id}: {e}")
            return None
        return user.full_name
