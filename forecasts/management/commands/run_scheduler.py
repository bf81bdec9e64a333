import signal
import threading

from django.core.management.base import BaseCommand

from forecasts.records import ForecastKind
from forecasts.services.scheduler import WeatherScheduler


class Command(BaseCommand):
    help = "Run the periodic weather refresh scheduler in the foreground"

    def handle(self, *args, **options):
        scheduler = WeatherScheduler.from_settings()
        stopped = threading.Event()

        def _request_stop(signum, frame):
            stopped.set()

        signal.signal(signal.SIGTERM, _request_stop)

        scheduler.start()
        self.stdout.write(self.style.SUCCESS(
            "Scheduler running (current every %s, hourly every %s, daily every %s). Press Ctrl+C to stop." % (
                scheduler.intervals[ForecastKind.CURRENT],
                scheduler.intervals[ForecastKind.HOURLY],
                scheduler.intervals[ForecastKind.DAILY],
            )
        ))

        try:
            while not stopped.wait(timeout=1):
                pass
        except KeyboardInterrupt:
            pass
        finally:
            self.stdout.write("Stopping scheduler, waiting for running jobs to finish...")
            scheduler.stop(wait=True)
            self.stdout.write(self.style.SUCCESS("Scheduler stopped"))
