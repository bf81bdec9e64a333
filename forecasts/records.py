"""
Normalized weather records shared by providers, the cache tiers and persistence.

Each forecast kind has one record dataclass. They all expose the same small
capability surface (``to_dict``/``from_dict``, ``timestamp``,
``with_location``, ``from_row``, ``upsert_spec``) so the fetch, cache and
persist logic can be written once and parameterized by ``KindConfig``.
"""
import uuid
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, ClassVar, Optional

from .models import CurrentWeather, DailyForecast, HourlyForecast


class ForecastKind(str, Enum):
    CURRENT = "current"
    HOURLY = "hourly"
    DAILY = "daily"

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class UpsertSpec:
    """Natural key plus payload for one durable row."""
    model: type
    lookup: dict
    values: dict
    context: dict


class WeatherRecord:
    kind: ClassVar[ForecastKind]
    model: ClassVar[type]
    slot_field: ClassVar[str]
    natural_key_has_slot: ClassVar[bool] = True

    @property
    def timestamp(self):
        return getattr(self, self.slot_field)

    def with_location(self, location_id, fetched_at: datetime):
        return replace(self, location_id=location_id, fetched_at=fetched_at)

    def to_dict(self) -> dict:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            elif isinstance(value, uuid.UUID):
                value = str(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict):
        """Rebuild a record from ``to_dict`` output. Raises on malformed input."""
        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if value is not None:
                if f.name == "location_id":
                    value = uuid.UUID(str(value))
                elif f.name in cls._datetime_fields():
                    value = datetime.fromisoformat(value)
                elif f.name in cls._date_fields():
                    value = date.fromisoformat(value)
            kwargs[f.name] = value
        return cls(**kwargs)

    @classmethod
    def _datetime_fields(cls):
        return {"fetched_at", cls.slot_field} - cls._date_fields()

    @classmethod
    def _date_fields(cls):
        return set()

    @classmethod
    def measurement_fields(cls):
        return [
            f.name for f in fields(cls)
            if f.name not in ("source_api", "location_id", "fetched_at", cls.slot_field)
        ]

    @classmethod
    def from_row(cls, row):
        kwargs = {name: getattr(row, name) for name in cls.measurement_fields()}
        return cls(
            source_api=row.source_api,
            location_id=row.location_id,
            fetched_at=row.updated_at,
            **{cls.slot_field: getattr(row, cls.slot_field)},
            **kwargs,
        )

    def upsert_spec(self) -> UpsertSpec:
        lookup = {"location_id": self.location_id, "source_api": self.source_api}
        values = {name: getattr(self, name) for name in self.measurement_fields()}
        values["updated_at"] = self.fetched_at
        if self.natural_key_has_slot:
            lookup[self.slot_field] = self.timestamp
        else:
            values[self.slot_field] = self.timestamp
        return UpsertSpec(
            model=self.model,
            lookup=lookup,
            values=values,
            context={
                "kind": self.kind.value,
                "location": str(self.location_id),
                "provider": self.source_api,
            },
        )


@dataclass(frozen=True)
class CurrentWeatherRecord(WeatherRecord):
    kind: ClassVar[ForecastKind] = ForecastKind.CURRENT
    model: ClassVar[type] = CurrentWeather
    slot_field: ClassVar[str] = "observed_at"
    # one "latest" row per provider; the observation time is payload
    natural_key_has_slot: ClassVar[bool] = False

    source_api: str
    observed_at: datetime
    temperature_c: Optional[float] = None
    humidity: Optional[int] = None
    wind_speed_kmh: Optional[float] = None
    precipitation_mm: Optional[float] = None
    condition_text: str = ""
    location_id: Optional[uuid.UUID] = None
    fetched_at: Optional[datetime] = None


@dataclass(frozen=True)
class HourlyForecastRecord(WeatherRecord):
    kind: ClassVar[ForecastKind] = ForecastKind.HOURLY
    model: ClassVar[type] = HourlyForecast
    slot_field: ClassVar[str] = "forecast_datetime"

    source_api: str
    forecast_datetime: datetime
    temperature_c: Optional[float] = None
    humidity: Optional[int] = None
    wind_speed_kmh: Optional[float] = None
    precipitation_mm: Optional[float] = None
    precipitation_chance: Optional[int] = None
    condition_text: str = ""
    location_id: Optional[uuid.UUID] = None
    fetched_at: Optional[datetime] = None


@dataclass(frozen=True)
class DailyForecastRecord(WeatherRecord):
    kind: ClassVar[ForecastKind] = ForecastKind.DAILY
    model: ClassVar[type] = DailyForecast
    slot_field: ClassVar[str] = "forecast_date"

    source_api: str
    forecast_date: date
    min_temp_c: Optional[float] = None
    max_temp_c: Optional[float] = None
    precipitation_mm: Optional[float] = None
    precipitation_chance: Optional[int] = None
    wind_speed_kmh: Optional[float] = None
    humidity: Optional[int] = None
    location_id: Optional[uuid.UUID] = None
    fetched_at: Optional[datetime] = None

    @classmethod
    def _date_fields(cls):
        return {"forecast_date"}


@dataclass(frozen=True)
class KindConfig:
    kind: ForecastKind
    label: str
    cache_prefix: str
    durable_ttl: timedelta
    volatile_ttl: timedelta
    record_class: type
    upcoming_filter: Callable[[datetime], dict]

    @property
    def model(self):
        return self.record_class.model

    def cache_key(self, location_id) -> str:
        return f"{self.cache_prefix}:{location_id}"


# Volatile TTLs sit a few minutes under the durable ones so an expired
# snapshot never outlives what the database still considers fresh.
KIND_CONFIG = {
    ForecastKind.CURRENT: KindConfig(
        kind=ForecastKind.CURRENT,
        label="current weather",
        cache_prefix="currentweather",
        durable_ttl=timedelta(minutes=10),
        volatile_ttl=timedelta(minutes=9),
        record_class=CurrentWeatherRecord,
        upcoming_filter=lambda now: {},
    ),
    ForecastKind.HOURLY: KindConfig(
        kind=ForecastKind.HOURLY,
        label="hourly forecast",
        cache_prefix="hourlyforecast",
        durable_ttl=timedelta(hours=1),
        volatile_ttl=timedelta(minutes=55),
        record_class=HourlyForecastRecord,
        upcoming_filter=lambda now: {"forecast_datetime__gte": now},
    ),
    ForecastKind.DAILY: KindConfig(
        kind=ForecastKind.DAILY,
        label="daily forecast",
        cache_prefix="dailyforecast",
        durable_ttl=timedelta(hours=12),
        volatile_ttl=timedelta(hours=11, minutes=55),
        record_class=DailyForecastRecord,
        upcoming_filter=lambda now: {"forecast_date__gte": now.date()},
    ),
}


def get_kind_config(kind) -> KindConfig:
    return KIND_CONFIG[ForecastKind(kind)]
