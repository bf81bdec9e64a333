import logging
from dataclasses import dataclass
from typing import Optional

import requests
from django.conf import settings

from ..exceptions import GeocodeError, NoResultsFound

logger = logging.getLogger("weatherhub")


@dataclass(frozen=True)
class GeocodedPlace:
    """Unsaved geocoding result; becomes a Location once persisted."""
    city_name: str
    latitude: float
    longitude: float
    country_code: str = ""


class GoogleGeocoder:
    """
    Google Geocoding API client.

    Forward lookups send ``address=<name>``, reverse lookups send
    ``latlng=<lat>,<lon>`` rounded to two decimals. Only the first result is
    used; its ``locality`` component becomes the canonical city name.
    """

    def __init__(self, api_key: Optional[str] = None, url: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.url = url or settings.GOOGLE_GEOCODE_URL
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT

    def close(self):
        self.session.close()

    def geocode(self, city_name: str) -> GeocodedPlace:
        return self._lookup({"address": city_name})

    def reverse_geocode(self, latitude: float, longitude: float) -> GeocodedPlace:
        return self._lookup({"latlng": f"{latitude:.2f},{longitude:.2f}"})

    def _lookup(self, params: dict) -> GeocodedPlace:
        params = {**params, "key": self.api_key}

        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise GeocodeError(f"geocoding API request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise GeocodeError(f"geocoding API request returned non-200 status: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise GeocodeError(f"failed to decode geocoding response: {e}") from e

        status = payload.get("status") if isinstance(payload, dict) else None
        if status == "ZERO_RESULTS":
            raise NoResultsFound("no results found for the given query")
        if status != "OK":
            raise GeocodeError(f"geocoding API returned status: {status}")

        results = payload.get("results") or []
        if not results:
            raise NoResultsFound("no results found for the given query")

        return self.parse_result(results[0])

    @staticmethod
    def parse_result(result: dict) -> GeocodedPlace:
        city_name = ""
        country_code = ""
        for component in result.get("address_components", []):
            types = component.get("types", [])
            if "locality" in types:
                city_name = component.get("long_name", "")
            if "country" in types:
                country_code = component.get("short_name", "")

        if not city_name:
            raise GeocodeError("geocoding result has no locality")

        try:
            coordinates = result["geometry"]["location"]
            latitude = float(coordinates["lat"])
            longitude = float(coordinates["lng"])
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeError(f"geocoding result has no coordinates: {e}") from e

        return GeocodedPlace(
            city_name=city_name,
            latitude=latitude,
            longitude=longitude,
            country_code=country_code,
        )


def get_geocoder() -> GoogleGeocoder:
    return GoogleGeocoder()
