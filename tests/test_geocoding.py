"""
Tests for the optional Nominatim reverse geocoder.
"""

import requests
from unittest.mock import MagicMock, patch

from safety_alerts.services import geocoding
from safety_alerts.services.geocoding import NominatimProvider, get_geocoding_provider


def response(status_code, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    return resp


class TestNominatimProvider:

    @patch("safety_alerts.services.geocoding.nominatim_provider.requests.get")
    def test_maps_address_fields(self, mock_get):
        mock_get.return_value = response(200, {
            "display_name": "Allen Avenue, Ikeja, Lagos State, Nigeria",
            "address": {"town": "Ikeja", "state": "Lagos State", "country": "Nigeria"},
        })

        result = NominatimProvider(user_agent="tests/1.0").reverse_geocode(6.6, 3.35)

        assert result == {
            "formatted": "Allen Avenue, Ikeja, Lagos State, Nigeria",
            "locality": "Ikeja",
            "state": "Lagos State",
            "country": "Nigeria",
            "provider": "nominatim",
        }
        _, kwargs = mock_get.call_args
        assert kwargs["headers"] == {"User-Agent": "tests/1.0"}
        assert kwargs["timeout"] <= 3

    @patch("safety_alerts.services.geocoding.nominatim_provider.requests.get")
    def test_http_error_returns_empty_result(self, mock_get):
        mock_get.return_value = response(503)
        result = NominatimProvider().reverse_geocode(0, 0)
        assert result["locality"] is None and result["country"] is None

    @patch("safety_alerts.services.geocoding.nominatim_provider.requests.get")
    def test_network_error_never_raises(self, mock_get):
        mock_get.side_effect = requests.Timeout("timed out")
        assert NominatimProvider().reverse_geocode(0, 0)["provider"] == "nominatim"


class TestProviderSelection:

    def test_disabled_by_default(self):
        assert get_geocoding_provider() is None

    def test_enabled(self, test_settings, monkeypatch):
        monkeypatch.setattr(test_settings, "GEOCODING_ENABLED", True)
        monkeypatch.setattr(geocoding, "_provider_instance", None)
        provider = get_geocoding_provider()
        assert isinstance(provider, NominatimProvider)
        assert provider.user_agent == test_settings.GEOCODING_USER_AGENT
