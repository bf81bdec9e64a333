import uuid

from django.db import models


class Location(models.Model):
    """
    Canonical place. Exactly one row per real-world city; any number of
    textual aliases may resolve to it.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    city_name = models.CharField(max_length=200, unique=True)
    latitude = models.FloatField()
    longitude = models.FloatField()
    country_code = models.CharField(max_length=2, blank=True)
    # IANA identifier, filled in by the first provider that reports one
    timezone = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'locations'
        ordering = ['city_name']

    def __str__(self):
        return f"{self.city_name}, {self.country_code}".strip(", ")


class LocationAlias(models.Model):
    alias = models.CharField(max_length=200, primary_key=True)
    location = models.ForeignKey(Location, on_delete=models.CASCADE, related_name='aliases')

    class Meta:
        db_table = 'location_aliases'

    def __str__(self):
        return f"{self.alias} -> {self.location.city_name}"


class CurrentWeather(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    location = models.ForeignKey(Location, on_delete=models.CASCADE, related_name='current_weather')
    source_api = models.CharField(max_length=64)
    observed_at = models.DateTimeField()
    updated_at = models.DateTimeField(db_index=True)

    temperature_c = models.FloatField(null=True, blank=True)
    humidity = models.IntegerField(null=True, blank=True)
    wind_speed_kmh = models.FloatField(null=True, blank=True)
    precipitation_mm = models.FloatField(null=True, blank=True)
    condition_text = models.CharField(max_length=128, blank=True)

    class Meta:
        db_table = 'current_weather'
        constraints = [
            models.UniqueConstraint(
                fields=['location', 'source_api'],
                name='unique_current_weather_per_source'
            )
        ]

    def __str__(self):
        return f"{self.location.city_name} [{self.source_api}] @ {self.observed_at:%Y-%m-%d %H:%M}"


class HourlyForecast(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    location = models.ForeignKey(Location, on_delete=models.CASCADE, related_name='hourly_forecasts')
    source_api = models.CharField(max_length=64)
    forecast_datetime = models.DateTimeField()
    updated_at = models.DateTimeField(db_index=True)

    temperature_c = models.FloatField(null=True, blank=True)
    humidity = models.IntegerField(null=True, blank=True)
    wind_speed_kmh = models.FloatField(null=True, blank=True)
    precipitation_mm = models.FloatField(null=True, blank=True)
    precipitation_chance = models.IntegerField(null=True, blank=True)
    condition_text = models.CharField(max_length=128, blank=True)

    class Meta:
        db_table = 'hourly_forecasts'
        ordering = ['forecast_datetime', 'source_api']
        constraints = [
            models.UniqueConstraint(
                fields=['location', 'source_api', 'forecast_datetime'],
                name='unique_hourly_forecast_slot'
            )
        ]
        indexes = [
            models.Index(fields=['location', 'forecast_datetime'], name='hourly_location_slot_idx'),
        ]

    def __str__(self):
        return f"{self.location.city_name} [{self.source_api}] @ {self.forecast_datetime:%Y-%m-%d %H:%M}"


class DailyForecast(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    location = models.ForeignKey(Location, on_delete=models.CASCADE, related_name='daily_forecasts')
    source_api = models.CharField(max_length=64)
    forecast_date = models.DateField()
    updated_at = models.DateTimeField(db_index=True)

    min_temp_c = models.FloatField(null=True, blank=True)
    max_temp_c = models.FloatField(null=True, blank=True)
    precipitation_mm = models.FloatField(null=True, blank=True)
    precipitation_chance = models.IntegerField(null=True, blank=True)
    wind_speed_kmh = models.FloatField(null=True, blank=True)
    humidity = models.IntegerField(null=True, blank=True)

    class Meta:
        db_table = 'daily_forecasts'
        ordering = ['forecast_date', 'source_api']
        constraints = [
            models.UniqueConstraint(
                fields=['location', 'source_api', 'forecast_date'],
                name='unique_daily_forecast_slot'
            )
        ]
        indexes = [
            models.Index(fields=['location', 'forecast_date'], name='daily_location_slot_idx'),
        ]

    def __str__(self):
        return f"{self.location.city_name} [{self.source_api}] {self.forecast_date:%Y-%m-%d}"
