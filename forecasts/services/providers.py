import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests
from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ..exceptions import ParseError, TransportError
from ..records import (
    CurrentWeatherRecord,
    DailyForecastRecord,
    ForecastKind,
    HourlyForecastRecord,
)

logger = logging.getLogger("weatherhub")

HOURLY_SLOTS = 24
DAILY_SLOTS = 5

# WMO weather interpretation codes (Open-Meteo)
WMO_CODES = {
    0: 'clear sky', 1: 'mainly clear', 2: 'partly cloudy', 3: 'overcast',
    45: 'fog', 48: 'depositing rime fog',
    51: 'light drizzle', 53: 'moderate drizzle', 55: 'dense drizzle',
    56: 'light freezing drizzle', 57: 'dense freezing drizzle',
    61: 'slight rain', 63: 'moderate rain', 65: 'heavy rain',
    66: 'light freezing rain', 67: 'heavy freezing rain',
    71: 'slight snowfall', 73: 'moderate snowfall', 75: 'heavy snowfall', 77: 'snow grains',
    80: 'slight showers', 81: 'moderate showers', 82: 'violent showers',
    85: 'slight snow showers', 86: 'heavy snow showers',
    95: 'thunderstorm', 96: 'thunderstorm with slight hail', 99: 'thunderstorm with heavy hail',
}


@dataclass(frozen=True)
class ProviderRequest:
    """One ready-to-send request, bound to the provider that will parse it."""
    provider: "WeatherProvider"
    kind: ForecastKind
    url: str
    params: dict = field(default_factory=dict)


def format_coordinate(value: float) -> str:
    return f"{value:.2f}"


def interpret_weather_code(code) -> str:
    return WMO_CODES.get(code, 'unknown code')


def _dig(data, *keys, default=None):
    for key in keys:
        if not isinstance(data, dict):
            return default
        data = data.get(key)
        if data is None:
            return default
    return data


def _as_int(value):
    if value is None:
        return None
    return int(round(float(value)))


def _percent(fraction) -> int:
    # truncated, 0.57 is stored as 56
    return int(float(fraction or 0) * 100)


def _from_unix(value) -> datetime:
    return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed.astimezone(dt_timezone.utc)


def _ms_to_kmh(value) -> Optional[float]:
    if value is None:
        return None
    return round(float(value) * 3.6, 4)


class WeatherProvider:
    """
    Base adapter for one upstream weather API.

    Subclasses describe how to address the API for a location and forecast
    kind and how to map its JSON into normalized records. Transport and
    decoding failures surface as TransportError / ParseError tagged with the
    provider name so the fan-out can log and skip them.
    """

    name = "unknown"

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name}>"

    def close(self):
        self.session.close()

    def build_request(self, location, kind) -> ProviderRequest:
        kind = ForecastKind(kind)
        url, params = self.request_target(location, kind)
        return ProviderRequest(provider=self, kind=kind, url=url, params=params)

    def request_target(self, location, kind: ForecastKind):
        raise NotImplementedError

    def fetch(self, request: ProviderRequest):
        """Execute the request; returns (records, timezone or None)."""
        payload = self._get_json(request)
        parsers = {
            ForecastKind.CURRENT: self.parse_current,
            ForecastKind.HOURLY: self.parse_hourly,
            ForecastKind.DAILY: self.parse_daily,
        }
        try:
            return parsers[request.kind](payload)
        except ParseError:
            raise
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ParseError(self.name, f"unexpected {request.kind} payload: {e}") from e

    def _get_json(self, request: ProviderRequest) -> dict:
        try:
            response = self.session.get(request.url, params=request.params, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(self.name, f"request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise TransportError(self.name, f"failed to fetch forecast: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ParseError(self.name, f"invalid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ParseError(self.name, "empty or invalid response from API")
        return payload

    def _zone(self, name: Optional[str]):
        if not name:
            return dt_timezone.utc
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(
                "Failed to load timezone, using UTC as fallback",
                extra={'event': 'timezone_fallback', 'provider': self.name, 'error': name},
            )
            return dt_timezone.utc

    def parse_current(self, payload: dict):
        raise NotImplementedError

    def parse_hourly(self, payload: dict):
        raise NotImplementedError

    def parse_daily(self, payload: dict):
        raise NotImplementedError


class GoogleWeatherProvider(WeatherProvider):
    name = "Google Weather API"

    ENDPOINTS = {
        ForecastKind.CURRENT: "currentConditions:lookup",
        ForecastKind.HOURLY: "forecast/hours:lookup",
        ForecastKind.DAILY: "forecast/days:lookup",
    }

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.base_url = base_url or settings.GOOGLE_WEATHER_URL

    def request_target(self, location, kind):
        params = {
            "key": self.api_key,
            "location.latitude": format_coordinate(location.latitude),
            "location.longitude": format_coordinate(location.longitude),
        }
        return f"{self.base_url}{self.ENDPOINTS[kind]}", params

    def parse_current(self, payload):
        observed_at = _parse_timestamp(payload.get("currentTime"))
        if observed_at is None:
            raise ParseError(self.name, "empty or invalid response from API")

        record = CurrentWeatherRecord(
            source_api=self.name,
            observed_at=observed_at,
            temperature_c=_dig(payload, "temperature", "degrees"),
            humidity=_as_int(payload.get("relativeHumidity")),
            wind_speed_kmh=_dig(payload, "wind", "speed", "value"),
            precipitation_mm=_dig(payload, "precipitation", "qpf", "quantity", default=0.0),
            condition_text=_dig(payload, "weatherCondition", "description", "text", default=""),
        )
        return [record], _dig(payload, "timeZone", "id")

    def parse_hourly(self, payload):
        hours = payload.get("forecastHours") or []
        if not hours:
            raise ParseError(self.name, "empty or invalid response from API")

        records = []
        for hour in hours[:HOURLY_SLOTS]:
            start = _parse_timestamp(_dig(hour, "interval", "startTime"))
            if start is None:
                raise ParseError(self.name, "forecast hour without start time")
            records.append(HourlyForecastRecord(
                source_api=self.name,
                forecast_datetime=start,
                temperature_c=_dig(hour, "temperature", "degrees"),
                humidity=_as_int(hour.get("relativeHumidity")),
                wind_speed_kmh=_dig(hour, "wind", "speed", "value"),
                precipitation_mm=_dig(hour, "precipitation", "qpf", "quantity", default=0.0),
                precipitation_chance=_as_int(_dig(hour, "precipitation", "probability", "percent")),
                condition_text=_dig(hour, "weatherCondition", "description", "text", default=""),
            ))
        return records, _dig(payload, "timeZone", "id")

    def parse_daily(self, payload):
        days = payload.get("forecastDays") or []
        if not days:
            raise ParseError(self.name, "empty or invalid response from API")

        tz_name = _dig(payload, "timeZone", "id")
        zone = self._zone(tz_name)
        records = []
        for day in days[:DAILY_SLOTS]:
            start = _parse_timestamp(_dig(day, "interval", "startTime"))
            if start is None:
                raise ParseError(self.name, "forecast day without start time")
            daytime = day.get("daytimeForecast") or {}
            records.append(DailyForecastRecord(
                source_api=self.name,
                forecast_date=start.astimezone(zone).date(),
                min_temp_c=_dig(day, "minTemperature", "degrees"),
                max_temp_c=_dig(day, "maxTemperature", "degrees"),
                precipitation_mm=_dig(daytime, "precipitation", "qpf", "quantity", default=0.0),
                precipitation_chance=_as_int(_dig(daytime, "precipitation", "probability", "percent")),
                wind_speed_kmh=_dig(daytime, "wind", "speed", "value"),
                humidity=_as_int(daytime.get("relativeHumidity")),
            ))
        return records, tz_name


class OpenWeatherMapProvider(WeatherProvider):
    """OpenWeatherMap One Call API; reports wind in m/s, stored as km/h."""

    name = "OpenWeatherMap API"

    EXCLUDE = {
        ForecastKind.CURRENT: "minutely,hourly,daily,alerts",
        ForecastKind.HOURLY: "current,minutely,daily,alerts",
        ForecastKind.DAILY: "current,minutely,hourly,alerts",
    }

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key if api_key is not None else settings.OPENWEATHER_API_KEY
        self.base_url = base_url or settings.OPENWEATHER_ONECALL_URL

    def request_target(self, location, kind):
        params = {
            "lat": format_coordinate(location.latitude),
            "lon": format_coordinate(location.longitude),
            "exclude": self.EXCLUDE[kind],
            "units": "metric",
            "appid": self.api_key,
        }
        return self.base_url, params

    @staticmethod
    def _condition(entry: dict) -> str:
        weather = entry.get("weather") or [{}]
        return weather[0].get("main", "")

    @staticmethod
    def _hourly_precipitation(entry: dict) -> float:
        return float(_dig(entry, "rain", "1h", default=0.0)) + float(_dig(entry, "snow", "1h", default=0.0))

    def parse_current(self, payload):
        current = payload.get("current") or {}
        if not current.get("dt"):
            raise ParseError(self.name, "empty or invalid response from API")

        record = CurrentWeatherRecord(
            source_api=self.name,
            observed_at=_from_unix(current["dt"]),
            temperature_c=current.get("temp"),
            humidity=_as_int(current.get("humidity")),
            wind_speed_kmh=_ms_to_kmh(current.get("wind_speed")),
            precipitation_mm=self._hourly_precipitation(current),
            condition_text=self._condition(current),
        )
        return [record], payload.get("timezone")

    def parse_hourly(self, payload):
        hours = payload.get("hourly") or []
        if not hours:
            raise ParseError(self.name, "empty or invalid response from API")

        records = [
            HourlyForecastRecord(
                source_api=self.name,
                forecast_datetime=_from_unix(hour["dt"]),
                temperature_c=hour.get("temp"),
                humidity=_as_int(hour.get("humidity")),
                wind_speed_kmh=_ms_to_kmh(hour.get("wind_speed")),
                precipitation_mm=self._hourly_precipitation(hour),
                precipitation_chance=_percent(hour.get("pop")),
                condition_text=self._condition(hour),
            )
            for hour in hours[:HOURLY_SLOTS]
        ]
        return records, payload.get("timezone")

    def parse_daily(self, payload):
        days = payload.get("daily") or []
        if not days:
            raise ParseError(self.name, "empty or invalid response from API")

        tz_name = payload.get("timezone")
        zone = self._zone(tz_name)
        records = [
            DailyForecastRecord(
                source_api=self.name,
                forecast_date=_from_unix(day["dt"]).astimezone(zone).date(),
                min_temp_c=_dig(day, "temp", "min"),
                max_temp_c=_dig(day, "temp", "max"),
                precipitation_mm=float(day.get("rain", 0.0)) + float(day.get("snow", 0.0)),
                precipitation_chance=_percent(day.get("pop")),
                wind_speed_kmh=_ms_to_kmh(day.get("wind_speed")),
                humidity=_as_int(day.get("humidity")),
            )
            for day in days[:DAILY_SLOTS]
        ]
        return records, tz_name


class OpenMeteoProvider(WeatherProvider):
    name = "Open-Meteo API"

    VARIABLES = {
        ForecastKind.CURRENT: "temperature_2m,relative_humidity_2m,wind_speed_10m,precipitation,weather_code",
        ForecastKind.HOURLY: "temperature_2m,relative_humidity_2m,wind_speed_10m,precipitation,precipitation_probability,weather_code",
        ForecastKind.DAILY: "temperature_2m_max,temperature_2m_min,precipitation_sum,precipitation_probability_max,wind_speed_10m_max,weather_code,relative_humidity_2m_max",
    }

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url or settings.OPEN_METEO_URL

    def request_target(self, location, kind):
        params = {
            "latitude": format_coordinate(location.latitude),
            "longitude": format_coordinate(location.longitude),
            kind.value: self.VARIABLES[kind],
            "timezone": "auto",
            "timeformat": "unixtime",
        }
        if kind == ForecastKind.HOURLY:
            params["forecast_days"] = 2
        return self.base_url, params

    def parse_current(self, payload):
        current = payload.get("current") or {}
        if not current.get("time"):
            raise ParseError(self.name, "empty or invalid response from API")

        record = CurrentWeatherRecord(
            source_api=self.name,
            observed_at=_from_unix(current["time"]),
            temperature_c=current.get("temperature_2m"),
            humidity=_as_int(current.get("relative_humidity_2m")),
            wind_speed_kmh=current.get("wind_speed_10m"),
            precipitation_mm=current.get("precipitation"),
            condition_text=interpret_weather_code(current.get("weather_code")),
        )
        return [record], payload.get("timezone")

    def parse_hourly(self, payload):
        hourly = payload.get("hourly") or {}
        times = hourly.get("time") or []
        if not times:
            raise ParseError(self.name, "empty or invalid response from API")

        cutoff = timezone.now() - timedelta(hours=1)
        start = next((i for i, ts in enumerate(times) if _from_unix(ts) > cutoff), None)
        if start is None:
            raise ParseError(self.name, "all forecasts are in the past")

        records = []
        for i in range(start, min(start + HOURLY_SLOTS, len(times))):
            records.append(HourlyForecastRecord(
                source_api=self.name,
                forecast_datetime=_from_unix(times[i]),
                temperature_c=hourly["temperature_2m"][i],
                humidity=_as_int(hourly["relative_humidity_2m"][i]),
                wind_speed_kmh=hourly["wind_speed_10m"][i],
                precipitation_mm=hourly["precipitation"][i],
                precipitation_chance=_as_int(hourly["precipitation_probability"][i]),
                condition_text=interpret_weather_code(hourly["weather_code"][i]),
            ))
        return records, payload.get("timezone")

    def parse_daily(self, payload):
        daily = payload.get("daily") or {}
        times = daily.get("time") or []
        if not times:
            raise ParseError(self.name, "empty or invalid response from API")

        tz_name = payload.get("timezone")
        zone = self._zone(tz_name)
        records = []
        for i in range(min(DAILY_SLOTS, len(times))):
            records.append(DailyForecastRecord(
                source_api=self.name,
                forecast_date=_from_unix(times[i]).astimezone(zone).date(),
                min_temp_c=daily["temperature_2m_min"][i],
                max_temp_c=daily["temperature_2m_max"][i],
                precipitation_mm=daily["precipitation_sum"][i],
                precipitation_chance=_as_int(daily["precipitation_probability_max"][i]),
                wind_speed_kmh=daily["wind_speed_10m_max"][i],
                humidity=_as_int(daily["relative_humidity_2m_max"][i]),
            ))
        return records, tz_name


def get_providers():
    """Configured providers, in a fixed order."""
    return [
        GoogleWeatherProvider(),
        OpenWeatherMapProvider(),
        OpenMeteoProvider(),
    ]


def build_requests(location, kind, providers=None):
    providers = providers if providers is not None else get_providers()
    return [provider.build_request(location, kind) for provider in providers]
