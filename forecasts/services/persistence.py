import logging
from collections import Counter

from django.db import DatabaseError

from ..records import UpsertSpec

logger = logging.getLogger("weatherhub")


def upsert(spec: UpsertSpec) -> bool:
    """Insert or update one row by natural key. Returns True when created."""
    _, created = spec.model.objects.update_or_create(**spec.lookup, defaults=spec.values)
    return created


def persist(records) -> dict:
    """
    Write every record to the durable store, one upsert each.

    Never raises: a failed upsert is logged and the remaining records are
    still written. Returns created/updated/failed counts.
    """
    summary = Counter(created=0, updated=0, failed=0)

    for record in records:
        spec = record.upsert_spec()
        try:
            created = upsert(spec)
        except (DatabaseError, ValueError, TypeError) as e:
            summary['failed'] += 1
            logger.error(
                "Failed to upsert weather record",
                extra={**spec.context, 'event': 'upsert_failed', 'error': str(e)}
            )
            continue
        summary['created' if created else 'updated'] += 1

    logger.debug(
        "Records persisted: %(created)d created, %(updated)d updated, %(failed)d failed",
        dict(summary),
        extra={'event': 'persist'},
    )
    return dict(summary)
