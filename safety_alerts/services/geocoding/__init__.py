"""
Optional server-side reverse geocoding for alerts created without location labels.
"""

import logging
from typing import Optional

from safety_alerts.core.settings import settings
from .base import GeocodingProvider, empty_result
from .nominatim_provider import NominatimProvider

logger = logging.getLogger(__name__)

_provider_instance: Optional[GeocodingProvider] = None


def get_geocoding_provider() -> Optional[GeocodingProvider]:
    """Return the configured provider, or None when geocoding is disabled."""
    global _provider_instance
    if not settings.GEOCODING_ENABLED:
        return None
    if _provider_instance is None:
        _provider_instance = NominatimProvider(user_agent=settings.GEOCODING_USER_AGENT)
        logger.info("Geocoding provider initialized: nominatim")
    return _provider_instance


__all__ = ["GeocodingProvider", "NominatimProvider", "empty_result", "get_geocoding_provider"]
