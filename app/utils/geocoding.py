import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from app.config import settings
from app.core.errors import ExternalUnavailable
from app.core.geofencing import Coordinate

logger = logging.getLogger(__name__)

class GeocodingService:
    """
    Address -> coordinate lookup against a Google-Geocoding-compatible API.

    Only the events endpoint calls this, when an event is first stored.
    The allocation core reads whatever coordinate (or absence) was saved.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.api_url = api_url or settings.GEOCODING_API_URL
        self.api_key = settings.GEOCODING_API_KEY if api_key is None else api_key
        self.timeout_seconds = timeout_seconds or settings.GEOCODING_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    async def lookup(self, address: str) -> Coordinate:
        """
        Geocode an address, raising ExternalUnavailable on timeout, HTTP
        errors, or an empty result.
        """
        if not self.is_configured:
            raise ExternalUnavailable("Geocoding service is not configured")

        params = {"address": address, "key": self.api_key}

        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.api_url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
                ) as response:
                    if response.status != 200:
                        raise ExternalUnavailable(
                            f"Geocoding API error: {response.status}",
                            status=response.status
                        )
                    data = await response.json()
        except asyncio.TimeoutError:
            raise ExternalUnavailable("Geocoding request timed out")
        except aiohttp.ClientError as e:
            raise ExternalUnavailable(f"Geocoding request failed: {e}")

        return self._parse_response(data)

    def _parse_response(self, data: Dict[str, Any]) -> Coordinate:
        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            raise ExternalUnavailable(
                f"Geocoding returned no result ({data.get('status')})",
                status=data.get("status")
            )

        location = results[0]["geometry"]["location"]
        return Coordinate(latitude=float(location["lat"]), longitude=float(location["lng"]))

    async def geocode(self, address: Optional[str]) -> Optional[Coordinate]:
        """Geocode or return None; a miss is normal, not an error"""
        if not address:
            return None

        try:
            return await self.lookup(address)
        except ExternalUnavailable as e:
            logger.warning(f"Geocoding failed for {address!r}: {e.message}")
            return None

geocoding_service = GeocodingService()
