"""Auto-categorization service client with TTL cache."""
import logging
from typing import Optional
from uuid import UUID

from cachetools import TTLCache

from booking_service.config import settings
from booking_service.domain.models import CategorySuggestion
from booking_service.infrastructure.clients.base import BaseHTTPClient

logger = logging.getLogger(__name__)


class CategorizationClient:
    """Suggests a category (and optionally a tier) for a listing title.

    Any failure of the remote service degrades to "no suggestion".
    """

    def __init__(
        self,
        base_url: str = settings.categorization_service_url,
        timeout: float = settings.categorization_service_timeout,
        cache_ttl: int = settings.suggestion_cache_ttl,
        cache_max_size: int = settings.suggestion_cache_max_size,
    ):
        self.http_client = BaseHTTPClient(base_url, timeout)
        self.cache: TTLCache = TTLCache(maxsize=cache_max_size, ttl=cache_ttl)

    async def close(self) -> None:
        """Close the client."""
        await self.http_client.close()

    @staticmethod
    def _make_cache_key(title: str) -> str:
        return " ".join(title.lower().split())

    async def suggest_category(self, title: str) -> Optional[CategorySuggestion]:
        cache_key = self._make_cache_key(title)
        if cache_key in self.cache:
            logger.debug(f"Returning cached suggestion for '{cache_key}'")
            return self.cache[cache_key]

        try:
            response = await self.http_client.get(
                "/api/v1/categorize", params={"title": title}
            )
        except Exception as e:
            logger.warning(f"Category suggestion unavailable for '{cache_key}': {e}")
            return None

        if not response or not response.get("category_id"):
            suggestion = None
        else:
            suggestion = CategorySuggestion(
                category_id=UUID(str(response["category_id"])),
                confidence=float(response.get("confidence", 0.0)),
                tier=response.get("tier"),
            )

        self.cache[cache_key] = suggestion
        return suggestion

    def clear_cache(self) -> None:
        """Clear the cache."""
        self.cache.clear()
