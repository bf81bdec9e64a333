import threading
from unittest.mock import patch

from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections
from django.test import TestCase

from ..exceptions import AllProvidersFailedError, ParseError, TransportError
from ..models import Location
from ..records import ForecastKind
from ..services.fetcher import claim_timezone, fetch_all
from .utils import StubProvider, current_record, hourly_records, make_location


class FetchAllTests(TestCase):
    def setUp(self):
        self.location = make_location()

    def test_concatenates_and_stamps_records(self):
        providers = [
            StubProvider("A", hourly_records("A", 3)),
            StubProvider("B", hourly_records("B", 2)),
        ]

        records = fetch_all(self.location, ForecastKind.HOURLY, providers)

        self.assertEqual(len(records), 5)
        self.assertEqual({r.source_api for r in records}, {"A", "B"})
        self.assertTrue(all(r.location_id == self.location.pk for r in records))
        self.assertEqual(len({r.fetched_at for r in records}), 1)

    def test_partial_failure_is_not_an_error(self):
        providers = [
            StubProvider("A", [current_record("A")]),
            StubProvider("B", error=TransportError("B", "HTTP 500")),
            StubProvider("C", error=ParseError("C", "empty or invalid response from API")),
        ]

        with self.assertLogs("weatherhub", level="WARNING") as logs:
            records = fetch_all(self.location, ForecastKind.CURRENT, providers)

        self.assertEqual([r.source_api for r in records], ["A"])
        failed = [r.provider for r in logs.records if getattr(r, "event", None) == "provider_fetch_failed"]
        self.assertEqual(sorted(failed), ["B", "C"])

    def test_total_failure_raises(self):
        providers = [
            StubProvider("A", error=TransportError("A", "timeout")),
            StubProvider("B", error=ParseError("B", "bad json")),
        ]

        with self.assertRaises(AllProvidersFailedError) as ctx:
            fetch_all(self.location, ForecastKind.DAILY, providers)

        self.assertEqual(ctx.exception.kind, "daily")
        self.assertEqual(set(ctx.exception.errors), {"A", "B"})

    def test_unexpected_provider_exception_is_isolated(self):
        providers = [
            StubProvider("A", error=RuntimeError("boom")),
            StubProvider("B", [current_record("B")]),
        ]

        records = fetch_all(self.location, ForecastKind.CURRENT, providers)

        self.assertEqual([r.source_api for r in records], ["B"])

    def test_no_providers_is_total_failure(self):
        with self.assertRaises(AllProvidersFailedError):
            fetch_all(self.location, ForecastKind.CURRENT, [])

    def test_records_follow_completion_order(self):
        first_done = threading.Event()
        providers = [
            StubProvider("slow", [current_record("slow")], wait_for=first_done, delay=0.1),
            StubProvider("fast", [current_record("fast")], done=first_done),
        ]

        records = fetch_all(self.location, ForecastKind.CURRENT, providers)

        self.assertEqual([r.source_api for r in records], ["fast", "slow"])

    @patch("forecasts.services.fetcher.get_providers")
    def test_default_providers_are_closed(self, mock_get_providers):
        providers = [
            StubProvider("A", [current_record("A")]),
            StubProvider("B", error=TransportError("B", "HTTP 500")),
        ]
        mock_get_providers.return_value = providers

        fetch_all(self.location, ForecastKind.CURRENT)

        for provider in providers:
            provider.session.close.assert_called_once_with()

    @patch("forecasts.services.fetcher.get_providers")
    def test_default_providers_closed_on_total_failure(self, mock_get_providers):
        providers = [StubProvider("A", error=TransportError("A", "timeout"))]
        mock_get_providers.return_value = providers

        with self.assertRaises(AllProvidersFailedError):
            fetch_all(self.location, ForecastKind.CURRENT)

        providers[0].session.close.assert_called_once_with()

    def test_given_providers_stay_open(self):
        providers = [StubProvider("A", [current_record("A")])]

        fetch_all(self.location, ForecastKind.CURRENT, providers)

        providers[0].session.close.assert_not_called()


class TimezoneClaimTests(TestCase):
    def setUp(self):
        self.location = make_location()

    def test_first_timezone_wins(self):
        first_done = threading.Event()
        providers = [
            StubProvider("late", [current_record("late")], tz="Europe/Berlin", wait_for=first_done, delay=0.1),
            StubProvider("early", [current_record("early")], tz="Europe/Warsaw", done=first_done),
            StubProvider("silent", [current_record("silent")]),
        ]

        fetch_all(self.location, ForecastKind.CURRENT, providers)

        self.assertEqual(self.location.timezone, "Europe/Warsaw")
        self.location.refresh_from_db()
        self.assertEqual(self.location.timezone, "Europe/Warsaw")

    def test_timezone_never_overwritten(self):
        stale_copies = [Location.objects.get(pk=self.location.pk) for _ in range(3)]

        for copy, tz in zip(stale_copies, ["Europe/Warsaw", "Europe/Berlin", "Europe/Prague"]):
            fetch_all(copy, ForecastKind.CURRENT, [StubProvider("A", [current_record("A")], tz=tz)])

        self.location.refresh_from_db()
        self.assertEqual(self.location.timezone, "Europe/Warsaw")
        self.assertTrue(all(copy.timezone == "Europe/Warsaw" for copy in stale_copies))

    def test_concurrent_fetches_store_one_timezone(self):
        zones = ["Europe/Warsaw", "Europe/Berlin", "Europe/Prague"]
        copies = [Location.objects.get(pk=self.location.pk) for _ in zones]
        shared = connections[DEFAULT_DB_ALIAS]
        start = threading.Barrier(len(zones), timeout=5)
        failures = []

        def fetch(copy, tz):
            # run on the test's connection so the open transaction is visible
            connections[DEFAULT_DB_ALIAS] = shared
            try:
                start.wait()
                fetch_all(copy, ForecastKind.CURRENT, [StubProvider("A", [current_record("A")], tz=tz)])
            except Exception as e:
                failures.append(e)

        shared.inc_thread_sharing()
        try:
            threads = [threading.Thread(target=fetch, args=pair) for pair in zip(copies, zones)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=10)
        finally:
            shared.dec_thread_sharing()

        self.assertEqual(failures, [])
        self.location.refresh_from_db()
        stored = self.location.timezone
        self.assertIn(stored, zones)
        self.assertTrue(all(copy.timezone == stored for copy in copies))

        late = copies[0]
        late.timezone = None
        fetch_all(late, ForecastKind.CURRENT, [StubProvider("A", [current_record("A")], tz="Asia/Tokyo")])

        self.location.refresh_from_db()
        self.assertEqual(self.location.timezone, stored)
        self.assertEqual(late.timezone, stored)

    def test_claim_only_when_unset(self):
        self.assertTrue(claim_timezone(self.location, "Europe/Warsaw"))
        self.assertFalse(claim_timezone(self.location, "America/New_York"))

        self.location.refresh_from_db()
        self.assertEqual(self.location.timezone, "Europe/Warsaw")

    def test_empty_string_counts_as_unset(self):
        Location.objects.filter(pk=self.location.pk).update(timezone="")

        self.assertTrue(claim_timezone(self.location, "Asia/Tokyo"))

    def test_claim_failure_is_logged_not_raised(self):
        with patch("forecasts.services.fetcher.Location.objects.filter", side_effect=DatabaseError("locked")):
            with self.assertLogs("weatherhub", level="WARNING"):
                claimed = claim_timezone(self.location, "Europe/Warsaw")

        self.assertFalse(claimed)
        self.assertIsNone(self.location.timezone)

    def test_fetch_survives_claim_failure(self):
        with patch("forecasts.services.fetcher.Location.objects.filter", side_effect=DatabaseError("locked")):
            records = fetch_all(
                self.location, ForecastKind.CURRENT,
                [StubProvider("A", [current_record("A")], tz="Europe/Warsaw")],
            )

        self.assertEqual(len(records), 1)
