import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from django.conf import settings
from django.db import DatabaseError, connections

from ..models import Location
from ..records import ForecastKind, get_kind_config
from .fetcher import fetch_all
from .persistence import persist

logger = logging.getLogger("weatherhub")


def refresh_location(location: Location, kind) -> dict:
    """Fetch one kind for one Location from all providers and persist it."""
    records = fetch_all(location, kind)
    return persist(records)


def _refresh_in_worker(location: Location, kind) -> dict:
    try:
        return refresh_location(location, kind)
    finally:
        # worker threads own their database connections
        connections.close_all()


class WeatherScheduler:
    """
    Periodic background refresh of every known Location.

    One interval job per forecast kind runs on an APScheduler
    BackgroundScheduler. A job never overlaps with itself (max_instances=1)
    and missed runs are coalesced. Within a cycle every Location is refreshed
    on its own thread and the cycle ends once all of them have finished.
    """

    def __init__(self, current_interval: timedelta, hourly_interval: timedelta, daily_interval: timedelta):
        self.intervals = {
            ForecastKind.CURRENT: current_interval,
            ForecastKind.HOURLY: hourly_interval,
            ForecastKind.DAILY: daily_interval,
        }
        for kind, interval in self.intervals.items():
            if interval <= timedelta(0):
                raise ValueError(f"{kind} interval must be positive, got {interval}")
        self._scheduler: Optional[BackgroundScheduler] = None

    @classmethod
    def from_settings(cls):
        return cls(
            current_interval=timedelta(minutes=settings.SCHEDULER_CURRENT_INTERVAL_MIN),
            hourly_interval=timedelta(minutes=settings.SCHEDULER_HOURLY_INTERVAL_MIN),
            daily_interval=timedelta(minutes=settings.SCHEDULER_DAILY_INTERVAL_MIN),
        )

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def run_cycle(self, kind) -> Optional[dict]:
        """
        Refresh one kind for all Locations. Returns a summary, or None when
        the Location list could not be read.
        """
        config = get_kind_config(kind)
        started = time.monotonic()

        try:
            locations = list(Location.objects.all())
        except DatabaseError as e:
            logger.error(
                "Scheduler failed to list locations - skipping cycle",
                extra={'event': 'scheduler_cycle_skipped', 'kind': config.kind.value, 'error': str(e)}
            )
            return None

        summary = {'locations': len(locations), 'refreshed': 0, 'failed': 0}
        if not locations:
            return summary

        with ThreadPoolExecutor(max_workers=len(locations), thread_name_prefix=f"refresh-{config.kind.value}") as executor:
            futures = {
                executor.submit(_refresh_in_worker, location, config.kind): location
                for location in locations
            }
            for future in as_completed(futures):
                location = futures[future]
                try:
                    future.result()
                except Exception as e:
                    summary['failed'] += 1
                    logger.warning(
                        "Scheduler failed to refresh location",
                        extra={
                            'event': 'scheduler_refresh_failed',
                            'kind': config.kind.value,
                            'location': str(location.pk),
                            'error': str(e),
                        }
                    )
                else:
                    summary['refreshed'] += 1

        logger.info(
            "Scheduler cycle completed: %(refreshed)d refreshed, %(failed)d failed",
            summary,
            extra={
                'event': 'scheduler_cycle',
                'kind': config.kind.value,
                'latency': f"{time.monotonic() - started:.3f}s",
            }
        )
        return summary

    def run_all(self) -> dict:
        return {kind.value: self.run_cycle(kind) for kind in ForecastKind}

    def _job(self, kind: ForecastKind):
        try:
            self.run_cycle(kind)
        finally:
            connections.close_all()

    def start(self):
        if self.running:
            return

        scheduler = BackgroundScheduler(timezone="UTC")
        for kind, interval in self.intervals.items():
            scheduler.add_job(
                self._job,
                trigger='interval',
                seconds=interval.total_seconds(),
                args=[kind],
                id=f"refresh_{kind.value}",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Scheduler started", extra={'event': 'scheduler_started'})

    def stop(self, wait: bool = True):
        """Stop the timers; with wait=True block until running cycles finish."""
        if not self.running:
            return
        self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("Scheduler stopped", extra={'event': 'scheduler_stopped'})

    def get_jobs(self) -> list:
        return self._scheduler.get_jobs() if self._scheduler is not None else []
