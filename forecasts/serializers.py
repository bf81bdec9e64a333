from datetime import timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rest_framework import serializers

from .models import Location

SLOT_FORMAT = "%Y-%m-%d %H:%M"


def location_zone(location):
    """The Location's IANA zone, or UTC when unset or unknown."""
    if not location.timezone:
        return dt_timezone.utc
    try:
        return ZoneInfo(location.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return dt_timezone.utc


class LocalDateTimeField(serializers.DateTimeField):
    """Renders an aware datetime in the zone passed as context['zone']."""

    def to_representation(self, value):
        if value is None:
            return None
        zone = self.context.get('zone', dt_timezone.utc)
        return value.astimezone(zone).strftime(SLOT_FORMAT)


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = ["id", "city_name", "country_code", "latitude", "longitude", "timezone"]


class LocationQuerySerializer(serializers.Serializer):
    city = serializers.CharField(max_length=200, required=False)
    lat = serializers.FloatField(min_value=-90, max_value=90, required=False)
    lon = serializers.FloatField(min_value=-180, max_value=180, required=False)

    def validate_city(self, value):
        return value.strip()

    def validate(self, attrs):
        if attrs.get("city"):
            return attrs
        if attrs.get("lat") is not None and attrs.get("lon") is not None:
            return attrs
        raise serializers.ValidationError("either city or lat/lon query parameters are required")

    def to_query(self):
        data = self.validated_data
        if data.get("city"):
            return data["city"]
        return data["lat"], data["lon"]


class CurrentWeatherSerializer(serializers.Serializer):
    source_api = serializers.CharField()
    observed_at = LocalDateTimeField()
    temperature_c = serializers.FloatField(allow_null=True)
    humidity = serializers.IntegerField(allow_null=True)
    wind_speed_kmh = serializers.FloatField(allow_null=True)
    precipitation_mm = serializers.FloatField(allow_null=True)
    condition_text = serializers.CharField()


class HourlyForecastSerializer(serializers.Serializer):
    source_api = serializers.CharField()
    forecast_datetime = LocalDateTimeField()
    temperature_c = serializers.FloatField(allow_null=True)
    humidity = serializers.IntegerField(allow_null=True)
    wind_speed_kmh = serializers.FloatField(allow_null=True)
    precipitation_mm = serializers.FloatField(allow_null=True)
    precipitation_chance = serializers.IntegerField(allow_null=True)
    condition_text = serializers.CharField()


class DailyForecastSerializer(serializers.Serializer):
    source_api = serializers.CharField()
    forecast_date = serializers.DateField()
    min_temp_c = serializers.FloatField(allow_null=True)
    max_temp_c = serializers.FloatField(allow_null=True)
    precipitation_mm = serializers.FloatField(allow_null=True)
    precipitation_chance = serializers.IntegerField(allow_null=True)
    wind_speed_kmh = serializers.FloatField(allow_null=True)
    humidity = serializers.IntegerField(allow_null=True)
