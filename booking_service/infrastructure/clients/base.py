"""Base client class."""
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class BaseHTTPClient:
    """Thin JSON-over-HTTP client with a per-request timeout."""

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Close the client."""
        await self.client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling {method} {url}: {e}")
            raise
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error calling {method} {url}: {e.response.status_code}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"Error calling {method} {url}: {e}")
            raise

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make GET request and decode the JSON body."""
        return await self._request("GET", path, params=params)
