"""
Forward geocoding (place name -> coordinates) for user destinations.

Public Nominatim instances are rate-limited and require a descriptive
User-Agent; set GEOCODER_USER_AGENT to something that identifies the
deployment.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    display_name: str


class Geocoder:
    def __init__(
        self,
        url: str = settings.GEOCODER_URL,
        user_agent: str = settings.GEOCODER_USER_AGENT,
        timeout_seconds: float = settings.GEOCODER_TIMEOUT_SECONDS,
    ):
        self.url = url
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self._cache: Dict[str, Optional[GeocodeResult]] = {}

    @staticmethod
    def cache_key(query: str) -> str:
        return " ".join(query.lower().split())

    async def geocode(self, query: str) -> Optional[GeocodeResult]:
        """Resolve a free-text place name; None when nothing matches or the service fails"""
        key = self.cache_key(query)
        if not key:
            return None
        if key in self._cache:
            return self._cache[key]

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.url,
                    params={"q": query, "format": "jsonv2", "limit": "1"},
                    headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
                ) as response:
                    if response.status != 200:
                        logger.error(f"Geocoder error: {response.status} for {query!r}")
                        return None
                    payload = await response.json(content_type=None)

        except asyncio.TimeoutError:
            logger.error(f"Geocoder timeout for {query!r}")
            return None
        except (aiohttp.ClientError, ValueError) as e:
            logger.error(f"Geocoder request error for {query!r}: {e}")
            return None

        result = self.parse_response(payload)
        # Only definite answers are cached; failures above are retried next time
        self._cache[key] = result
        return result

    @staticmethod
    def parse_response(payload) -> Optional[GeocodeResult]:
        if not isinstance(payload, list) or not payload:
            return None
        first = payload[0]
        try:
            return GeocodeResult(
                latitude=float(first["lat"]),
                longitude=float(first["lon"]),
                display_name=str(first.get("display_name", "")),
            )
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Unexpected geocoder payload: {first!r}")
            return None


# Global instance
geocoder = Geocoder()
