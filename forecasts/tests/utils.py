import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

from django.utils import timezone

from ..models import Location
from ..records import CurrentWeatherRecord, DailyForecastRecord, HourlyForecastRecord
from ..services.providers import WeatherProvider


class StubProvider(WeatherProvider):
    """Provider returning canned records, optionally after a delay or an event."""

    def __init__(self, name, records=None, tz=None, error=None, delay=0, wait_for=None, done=None):
        super().__init__(session=MagicMock(), timeout=1)
        self.name = name
        self.records = records or []
        self.tz = tz
        self.error = error
        self.delay = delay
        self.wait_for = wait_for
        self.done = done
        self.calls = 0
        self._lock = threading.Lock()

    def request_target(self, location, kind):
        return f"stub://{self.name}", {"location": str(location.pk)}

    def fetch(self, request):
        with self._lock:
            self.calls += 1
        if self.wait_for is not None:
            self.wait_for.wait(timeout=5)
        if self.delay:
            time.sleep(self.delay)
        try:
            if self.error is not None:
                raise self.error
            return list(self.records), self.tz
        finally:
            if self.done is not None:
                self.done.set()


def make_location(city_name="Testville", latitude=51.11, longitude=17.04, **kwargs):
    kwargs.setdefault("country_code", "TV")
    return Location.objects.create(city_name=city_name, latitude=latitude, longitude=longitude, **kwargs)


def current_record(source_api, observed_at=None, **kwargs):
    kwargs.setdefault("temperature_c", 18.5)
    kwargs.setdefault("humidity", 60)
    kwargs.setdefault("wind_speed_kmh", 12.0)
    kwargs.setdefault("precipitation_mm", 0.0)
    kwargs.setdefault("condition_text", "clear sky")
    return CurrentWeatherRecord(
        source_api=source_api,
        observed_at=observed_at or timezone.now().replace(microsecond=0),
        **kwargs,
    )


def hourly_records(source_api, count=3, start=None):
    start = start or (timezone.now() + timedelta(hours=1)).replace(minute=0, second=0, microsecond=0)
    return [
        HourlyForecastRecord(
            source_api=source_api,
            forecast_datetime=start + timedelta(hours=i),
            temperature_c=10.0 + i,
            humidity=70,
            wind_speed_kmh=8.0,
            precipitation_mm=0.1 * i,
            precipitation_chance=10 * i,
            condition_text="overcast",
        )
        for i in range(count)
    ]


def daily_records(source_api, count=3, start=None):
    start = start or timezone.now().date()
    return [
        DailyForecastRecord(
            source_api=source_api,
            forecast_date=start + timedelta(days=i),
            min_temp_c=5.0 + i,
            max_temp_c=15.0 + i,
            precipitation_mm=1.5,
            precipitation_chance=40,
            wind_speed_kmh=20.0,
            humidity=65,
        )
        for i in range(count)
    ]


def stamp(records, location, fetched_at=None):
    fetched_at = fetched_at or timezone.now()
    return [record.with_location(location.pk, fetched_at) for record in records]
