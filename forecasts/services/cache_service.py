import logging
from typing import Optional

from django.core.cache import cache
from django.db import DatabaseError
from django.utils import timezone

from ..exceptions import StoreError
from ..models import Location
from ..records import KindConfig, get_kind_config
from .fetcher import fetch_all
from .persistence import persist

logger = logging.getLogger("weatherhub")


def _read_volatile(config: KindConfig, key: str, context: dict) -> Optional[list]:
    try:
        payload = cache.get(key)
    except Exception as e:
        logger.warning(
            "Cache read failed - treating as miss",
            extra={**context, 'event': 'cache_error', 'cache_tier': 'volatile', 'error': str(e)}
        )
        return None

    if not payload:
        return None

    try:
        if not isinstance(payload, list):
            raise TypeError(f"unexpected cached payload type {type(payload).__name__}")
        return [config.record_class.from_dict(item) for item in payload]
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        logger.warning(
            "Cached entry could not be decoded - treating as miss",
            extra={**context, 'event': 'cache_corrupt', 'cache_tier': 'volatile', 'error': str(e)}
        )
        return None


def _write_volatile(config: KindConfig, key: str, records: list, context: dict) -> None:
    try:
        cache.set(
            key,
            [record.to_dict() for record in records],
            timeout=int(config.volatile_ttl.total_seconds()),
        )
    except Exception as e:
        logger.warning(
            "Cache write failed",
            extra={**context, 'event': 'cache_write_failed', 'cache_tier': 'volatile', 'error': str(e)}
        )
        return

    logger.info(
        "Data successfully saved to cache",
        extra={**context, 'event': 'cache_update', 'cache_tier': 'volatile'}
    )


def _read_durable(config: KindConfig, location: Location) -> list:
    now = timezone.now()
    try:
        rows = list(
            config.model.objects.filter(
                location=location,
                updated_at__gte=now - config.durable_ttl,
                **config.upcoming_filter(now),
            )
        )
    except DatabaseError as e:
        raise StoreError(f"could not read {config.label} for {location.pk}: {e}") from e
    return [config.record_class.from_row(row) for row in rows]


def get_cached_or_fetch(location: Location, kind) -> list:
    """
    Return records of one kind for a Location through the cache tiers:

    1. volatile cache (Redis) - short TTL, best effort
    2. durable store (database) - rows refreshed within the kind's TTL
    3. providers - fetched, persisted and cached on the way out

    Raises StoreError if the database cannot be read and
    AllProvidersFailedError if every provider fails.
    """
    config = get_kind_config(kind)
    key = config.cache_key(location.pk)
    context = {'kind': config.kind.value, 'location': str(location.pk)}

    records = _read_volatile(config, key, context)
    if records:
        logger.info(
            "Cache hit - using cached data",
            extra={**context, 'event': 'cache_hit', 'cache_tier': 'volatile'}
        )
        return records

    logger.info(
        "Cache miss - checking database",
        extra={**context, 'event': 'cache_miss', 'cache_tier': 'volatile'}
    )

    records = _read_durable(config, location)
    if records:
        logger.info(
            "Database hit - using stored data",
            extra={**context, 'event': 'db_cache_hit', 'cache_tier': 'durable'}
        )
        _write_volatile(config, key, records, context)
        return records

    logger.info(
        "All cache miss - fetching from providers",
        extra={**context, 'event': 'api_fetch', 'cache_tier': 'providers'}
    )

    records = fetch_all(location, config.kind)
    persist(records)
    _write_volatile(config, key, records, context)
    return records
