import logging
from typing import Optional

import requests
from civicseva.config.settings import settings
from civicseva.utils.errors import ExternalServiceError

logger = logging.getLogger(__name__)

USER_AGENT = "CivicSeva/1.0 (municipal issue reporting)"


class Geocoder:
    """Turns coordinates into a human readable address."""

    name = "base"

    def reverse(self, latitude: float, longitude: float) -> str:
        raise NotImplementedError


class OfflineGeocoder(Geocoder):
    name = "offline"

    def reverse(self, latitude: float, longitude: float) -> str:
        return f"{latitude:.6f}, {longitude:.6f}"


class NominatimGeocoder(Geocoder):
    """Reverse geocoding against an OpenStreetMap Nominatim endpoint."""

    name = "nominatim"

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def reverse(self, latitude: float, longitude: float) -> str:
        params = {"lat": latitude, "lon": longitude, "format": "jsonv2"}
        headers = {"User-Agent": USER_AGENT}
        try:
            response = self.session.get(self.url, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            raise ExternalServiceError(f"Geocoding request failed: {e}") from e
        except ValueError as e:
            raise ExternalServiceError(f"Geocoding returned invalid JSON: {e}") from e

        address = result.get("display_name")
        if not address:
            raise ExternalServiceError("Geocoding returned no address")
        return address


def get_geocoder(name: Optional[str] = None) -> Geocoder:
    name = (name or settings.GEOCODER).lower()
    if name == "offline":
        return OfflineGeocoder()
    if name == "nominatim":
        return NominatimGeocoder(settings.GEOCODER_URL, timeout=settings.GEOCODER_TIMEOUT)
    raise ValueError(f"Unknown geocoder: {name}")


def enrich_address(latitude: float, longitude: float, geocoder: Optional[Geocoder] = None) -> str:
    """Best-effort address lookup; falls back to the raw coordinates."""
    geocoder = geocoder or get_geocoder()
    try:
        return geocoder.reverse(latitude, longitude)
    except ExternalServiceError as e:
        logger.warning(f"Geocoder '{geocoder.name}' unavailable, using coordinates: {e}")
        return OfflineGeocoder().reverse(latitude, longitude)
