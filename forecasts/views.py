import logging
import time

from django.conf import settings
from django.core.cache import cache
from django.db import connection
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import AllProvidersFailedError, NoResultsFound, ResolutionError, StoreError
from .models import Location
from .records import ForecastKind
from .serializers import (
    CurrentWeatherSerializer,
    DailyForecastSerializer,
    HourlyForecastSerializer,
    LocationQuerySerializer,
    LocationSerializer,
    location_zone,
)
from .services.cache_service import get_cached_or_fetch
from .services.locations import resolve_location

logger = logging.getLogger("weatherhub.api")


class StandardResultsPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = 'page_size'
    max_page_size = 100


class ForecastView(APIView):
    """
    Shared GET handler: resolve ?city= or ?lat=&lon= to a Location, read the
    kind through the cache tiers and render slots in the Location's timezone.
    """
    kind = None
    response_key = "forecasts"
    record_serializer_class = None

    def get(self, request):
        query = LocationQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return Response(query.errors, status=status.HTTP_400_BAD_REQUEST)

        start_time = time.monotonic()
        log_extra = {'kind': self.kind.value}

        try:
            location = resolve_location(query.to_query())
        except NoResultsFound as e:
            logger.warning("Location not found", extra={**log_extra, 'event': 'location_not_found', 'error': str(e)})
            return Response(
                {"error": "Location not found", "detail": str(e)},
                status=status.HTTP_404_NOT_FOUND
            )
        except ResolutionError as e:
            logger.warning("Location could not be resolved", extra={**log_extra, 'event': 'location_error', 'error': str(e)})
            return Response(
                {"error": "Error getting location data", "detail": str(e)},
                status=status.HTTP_400_BAD_REQUEST
            )
        except StoreError as e:
            logger.error("Store error while resolving location", extra={**log_extra, 'event': 'store_error', 'error': str(e)})
            return Response(
                {"error": "Internal server error", "detail": str(e)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        log_extra['location'] = str(location.pk)

        try:
            records = get_cached_or_fetch(location, self.kind)
        except AllProvidersFailedError as e:
            logger.error("All providers failed", extra={**log_extra, 'event': 'providers_unavailable', 'error': str(e)})
            return Response(
                {"error": f"Error getting {self.kind.value} weather data", "detail": str(e)},
                status=status.HTTP_503_SERVICE_UNAVAILABLE
            )
        except StoreError as e:
            logger.error("Store error while reading weather", extra={**log_extra, 'event': 'store_error', 'error': str(e)})
            return Response(
                {"error": "Internal server error", "detail": str(e)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        records = sorted(records, key=lambda record: (record.timestamp, record.source_api))
        serializer = self.record_serializer_class(records, many=True, context={'zone': location_zone(location)})

        logger.info(
            "Weather request served",
            extra={**log_extra, 'event': 'weather_request_success', 'latency': f"{time.monotonic() - start_time:.3f}s"}
        )

        return Response({
            "location": LocationSerializer(location).data,
            self.response_key: serializer.data,
        })


class CurrentWeatherView(ForecastView):
    kind = ForecastKind.CURRENT
    response_key = "weather"
    record_serializer_class = CurrentWeatherSerializer


class HourlyForecastView(ForecastView):
    kind = ForecastKind.HOURLY
    record_serializer_class = HourlyForecastSerializer


class DailyForecastView(ForecastView):
    kind = ForecastKind.DAILY
    record_serializer_class = DailyForecastSerializer


class LocationViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Location.objects.all()
    serializer_class = LocationSerializer
    pagination_class = StandardResultsPagination
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['country_code']


class HealthCheckView(APIView):
    def get(self, request):
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
            db_status = "healthy"
        except Exception as e:
            db_status = f"unhealthy: {str(e)}"

        try:
            cache.set("health:ping", "pong", timeout=5)
            cache_status = "healthy" if cache.get("health:ping") == "pong" else "unhealthy: read mismatch"
        except Exception as e:
            cache_status = f"unhealthy: {str(e)}"

        health_data = {
            "status": "healthy" if db_status == "healthy" and cache_status == "healthy" else "degraded",
            "timestamp": timezone.now().isoformat(),
            "components": {
                "database": db_status,
                "cache": cache_status,
            }
        }

        status_code = status.HTTP_200_OK if health_data["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE

        return Response(health_data, status=status_code)


class ConfigView(APIView):
    def get(self, request):
        return Response({"dev_mode": settings.DEV_MODE})
