import logging
from typing import Any, Dict, Optional

import requests

from .base import GeocodingProvider, empty_result

logger = logging.getLogger(__name__)


class NominatimProvider(GeocodingProvider):
    """
    OpenStreetMap Nominatim reverse-geocoding provider.

    - No API key required.
    - Includes a User-Agent header as required by the Nominatim usage policy.
    """

    BASE_URL = "https://nominatim.openstreetmap.org/reverse"

    def __init__(self, user_agent: str = "community-safety-alerts/1.0", timeout_seconds: float = 3.0):
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds

    def reverse_geocode(self, latitude: float, longitude: float) -> Dict[str, Optional[str]]:
        try:
            resp = requests.get(
                self.BASE_URL,
                params={"lat": latitude, "lon": longitude, "format": "json", "addressdetails": 1},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
            )
            if resp.status_code != 200:
                logger.warning(f"Nominatim reverse-geocode failed with status {resp.status_code}")
                return empty_result("nominatim")

            data: Dict[str, Any] = resp.json()
            address = data.get("address") or {}

            locality = (
                address.get("city")
                or address.get("town")
                or address.get("village")
                or address.get("suburb")
                or address.get("county")
            )

            return {
                "formatted": data.get("display_name"),
                "locality": locality,
                "state": address.get("state"),
                "country": address.get("country"),
                "provider": "nominatim",
            }
        except Exception as e:
            logger.warning(f"Nominatim reverse-geocode error: {e}")
            return empty_result("nominatim")
