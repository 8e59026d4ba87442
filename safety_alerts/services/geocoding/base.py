from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class GeocodingProvider(ABC):
    """
    Abstract reverse-geocoding provider, the server-side counterpart of the
    dashboard's map widget.

    Contract:
    - Input: latitude, longitude (floats)
    - Output: dict with keys
      {
        "formatted": str | None,
        "locality": str | None,
        "state": str | None,
        "country": str | None,
        "provider": str
      }
    - MUST NEVER raise upstream exceptions; empty fields on failure.
    - Implementations enforce a network timeout <= 3 seconds.
    """

    @abstractmethod
    def reverse_geocode(self, latitude: float, longitude: float) -> Dict[str, Optional[str]]:
        raise NotImplementedError


def empty_result(provider: str) -> Dict[str, Optional[str]]:
    return {
        "formatted": None,
        "locality": None,
        "state": None,
        "country": None,
        "provider": provider,
    }
