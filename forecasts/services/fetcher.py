import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed

from django.db import DatabaseError
from django.db.models import Q
from django.utils import timezone

from ..exceptions import AllProvidersFailedError, ProviderError
from ..models import Location
from ..records import get_kind_config
from .providers import build_requests, get_providers

logger = logging.getLogger("weatherhub")


def _timed_fetch(request):
    started = time.monotonic()
    records, tz_name = request.provider.fetch(request)
    return records, tz_name, time.monotonic() - started


def claim_timezone(location: Location, tz_name: str) -> bool:
    """
    Set the Location's timezone unless one is already stored.

    The check and the write happen in a single conditional UPDATE, so when
    several fetches race only the first writer wins and later values are
    discarded. Failures are logged and reported as "not claimed".
    """
    try:
        claimed = (
            Location.objects
            .filter(pk=location.pk)
            .filter(Q(timezone__isnull=True) | Q(timezone=""))
            .update(timezone=tz_name)
        )
        if not claimed:
            location.refresh_from_db(fields=["timezone"])
    except DatabaseError as e:
        logger.warning(
            "Could not store location timezone",
            extra={
                'event': 'timezone_claim_failed',
                'location': str(location.pk),
                'error': str(e),
            }
        )
        return False

    if claimed:
        location.timezone = tz_name
        logger.info(
            "Location timezone stored",
            extra={'event': 'timezone_claimed', 'location': str(location.pk)}
        )
    return bool(claimed)


def fetch_all(location: Location, kind, providers=None) -> list:
    """
    Query every provider for one Location and kind concurrently.

    Worker threads only perform HTTP and parsing; the timezone claim runs on
    the calling thread. Records come back in provider completion order,
    stamped with the Location id and one shared fetch time. Raises
    AllProvidersFailedError when not a single provider succeeded.
    Providers built here, when none are passed, are closed afterwards.
    """
    if providers is None:
        providers = get_providers()
        try:
            return fetch_all(location, kind, providers)
        finally:
            for provider in providers:
                provider.close()

    config = get_kind_config(kind)
    provider_requests = build_requests(location, config.kind, providers)
    fetched_at = timezone.now()

    records = []
    errors = {}
    succeeded = 0
    tz_seen = bool(location.timezone)

    if provider_requests:
        with ThreadPoolExecutor(max_workers=len(provider_requests)) as executor:
            futures = {executor.submit(_timed_fetch, request): request for request in provider_requests}

            for future in as_completed(futures):
                provider_name = futures[future].provider.name
                try:
                    batch, tz_name, elapsed = future.result()
                except ProviderError as e:
                    errors[provider_name] = str(e)
                    logger.warning(
                        "Provider fetch failed",
                        extra={
                            'event': 'provider_fetch_failed',
                            'kind': config.kind.value,
                            'location': str(location.pk),
                            'provider': provider_name,
                            'error': str(e),
                        }
                    )
                    continue
                except Exception as e:
                    errors[provider_name] = str(e)
                    logger.exception(
                        "Unexpected provider error",
                        extra={
                            'event': 'provider_fetch_failed',
                            'kind': config.kind.value,
                            'location': str(location.pk),
                            'provider': provider_name,
                            'error': str(e),
                        }
                    )
                    continue

                succeeded += 1
                records.extend(record.with_location(location.pk, fetched_at) for record in batch)
                logger.debug(
                    "Provider fetch succeeded",
                    extra={
                        'event': 'provider_fetch',
                        'kind': config.kind.value,
                        'location': str(location.pk),
                        'provider': provider_name,
                        'latency': f"{elapsed:.3f}s",
                    }
                )

                if tz_name and not tz_seen:
                    tz_seen = True
                    claim_timezone(location, tz_name)

    if not succeeded:
        raise AllProvidersFailedError(config.kind.value, errors)

    return records
