"""Run one scheduler cycle synchronously."""
import json

from django.core.management.base import BaseCommand, CommandError

from forecasts.records import ForecastKind
from forecasts.services.scheduler import WeatherScheduler


class Command(BaseCommand):
    help = "Refresh stored weather for every known location"

    def add_arguments(self, parser):
        parser.add_argument(
            "--kind",
            choices=[kind.value for kind in ForecastKind],
            help="Refresh only this kind (default: all three)",
        )

    def handle(self, *args, **options):
        scheduler = WeatherScheduler.from_settings()
        kind = options.get("kind")

        if kind:
            summary = scheduler.run_cycle(kind)
            if summary is None:
                raise CommandError("Could not list locations")
            result = {kind: summary}
        else:
            result = scheduler.run_all()
            if all(summary is None for summary in result.values()):
                raise CommandError("Could not list locations")

        self.stdout.write(json.dumps(result))
