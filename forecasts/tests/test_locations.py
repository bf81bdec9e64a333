from unittest.mock import MagicMock, patch

import requests
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase

from ..exceptions import GeocodeError, NoResultsFound, ResolutionError, StoreError
from ..models import Location, LocationAlias
from ..services.geocoding import GeocodedPlace, GoogleGeocoder
from ..services.locations import get_or_create_location, normalize_alias, resolve_location


WROCLAW_RESULT = {
    "status": "OK",
    "results": [{
        "address_components": [
            {"long_name": "Wrocław", "short_name": "Wrocław", "types": ["locality", "political"]},
            {"long_name": "Lower Silesian Voivodeship", "short_name": "Lower Silesian Voivodeship",
             "types": ["administrative_area_level_1", "political"]},
            {"long_name": "Poland", "short_name": "PL", "types": ["country", "political"]},
        ],
        "geometry": {"location": {"lat": 51.1079, "lng": 17.0385}},
    }],
}


def geocoder_for(place):
    geocoder = MagicMock()
    geocoder.geocode.return_value = place
    geocoder.reverse_geocode.return_value = place
    return geocoder


class NormalizeAliasTests(SimpleTestCase):
    def test_normalization(self):
        cases = [
            ("  Kraków ", "krakow"),
            ("São   Paulo", "sao paulo"),
            ("ZÜRICH", "zurich"),
            ("Wrocław", "wrocław"),
            ("New\tYork", "new york"),
            ("Straße", "strasse"),
        ]
        for raw, expected in cases:
            with self.subTest(raw=raw):
                self.assertEqual(normalize_alias(raw), expected)

    def test_empty_name_rejected(self):
        for raw in ("", "   ", "\u0301"):
            with self.subTest(raw=raw):
                with self.assertRaises(ResolutionError):
                    normalize_alias(raw)


class GoogleGeocoderTests(SimpleTestCase):
    def _geocoder(self, payload=None, status_code=200, raises=None):
        session = MagicMock()
        if raises is not None:
            session.get.side_effect = raises
        else:
            session.get.return_value = MagicMock(status_code=status_code, json=MagicMock(return_value=payload))
        return GoogleGeocoder(session=session), session

    def test_geocode_parses_first_result(self):
        geocoder, session = self._geocoder(WROCLAW_RESULT)

        place = geocoder.geocode("wroclaw")

        self.assertEqual(place, GeocodedPlace("Wrocław", 51.1079, 17.0385, "PL"))
        self.assertEqual(session.get.call_args.kwargs["params"], {"address": "wroclaw", "key": "test-google-key"})
        self.assertEqual(session.get.call_args.args[0], "https://geocode.example.test/json")

    def test_reverse_geocode_rounds_coordinates(self):
        geocoder, session = self._geocoder(WROCLAW_RESULT)

        geocoder.reverse_geocode(51.10789, 17.03854)

        self.assertEqual(session.get.call_args.kwargs["params"]["latlng"], "51.11,17.04")

    def test_zero_results(self):
        geocoder, _ = self._geocoder({"status": "ZERO_RESULTS", "results": []})
        with self.assertRaises(NoResultsFound):
            geocoder.geocode("nowhere")

    def test_ok_without_results(self):
        geocoder, _ = self._geocoder({"status": "OK", "results": []})
        with self.assertRaises(NoResultsFound):
            geocoder.geocode("nowhere")

    def test_error_status(self):
        geocoder, _ = self._geocoder({"status": "REQUEST_DENIED"})
        with self.assertRaises(GeocodeError) as ctx:
            geocoder.geocode("Paris")
        self.assertNotIsInstance(ctx.exception, NoResultsFound)

    def test_http_error(self):
        geocoder, _ = self._geocoder(status_code=500)
        with self.assertRaises(GeocodeError):
            geocoder.geocode("Paris")

    def test_transport_error(self):
        geocoder, _ = self._geocoder(raises=requests.ConnectionError("down"))
        with self.assertRaises(GeocodeError):
            geocoder.geocode("Paris")

    def test_result_without_locality(self):
        payload = {"status": "OK", "results": [{
            "address_components": [{"long_name": "Poland", "short_name": "PL", "types": ["country"]}],
            "geometry": {"location": {"lat": 52.0, "lng": 19.0}},
        }]}
        geocoder, _ = self._geocoder(payload)
        with self.assertRaises(GeocodeError):
            geocoder.geocode("Poland")


class LocationResolverTests(TestCase):
    def setUp(self):
        self.place = GeocodedPlace("Wrocław", 51.1079, 17.0385, "PL")

    def test_new_location_gets_input_and_canonical_aliases(self):
        geocoder = geocoder_for(self.place)

        location = get_or_create_location("Breslau", geocoder)

        self.assertEqual(location.city_name, "Wrocław")
        self.assertEqual(location.country_code, "PL")
        aliases = set(location.aliases.values_list("alias", flat=True))
        self.assertEqual(aliases, {"breslau", "wrocław"})
        geocoder.geocode.assert_called_once_with("Breslau")

    def test_canonical_alias_not_duplicated(self):
        location = get_or_create_location("  WROCŁAW ", geocoder_for(self.place))

        self.assertEqual(list(location.aliases.values_list("alias", flat=True)), ["wrocław"])

    def test_known_alias_skips_geocoder(self):
        location = get_or_create_location("Breslau", geocoder_for(self.place))
        geocoder = geocoder_for(self.place)

        again = get_or_create_location("breslau", geocoder)

        self.assertEqual(again.pk, location.pk)
        geocoder.geocode.assert_not_called()

    def test_second_spelling_attaches_to_existing_location(self):
        first = get_or_create_location("Breslau", geocoder_for(self.place))

        second = get_or_create_location("Vratislavia", geocoder_for(self.place))

        self.assertEqual(second.pk, first.pk)
        self.assertEqual(Location.objects.count(), 1)
        self.assertTrue(LocationAlias.objects.filter(alias="vratislavia", location=first).exists())

    def test_geocode_error_propagates(self):
        geocoder = MagicMock()
        geocoder.geocode.side_effect = NoResultsFound("no results")

        with self.assertRaises(ResolutionError):
            get_or_create_location("Atlantis", geocoder)
        self.assertFalse(Location.objects.exists())

    def test_alias_creation_failure_is_swallowed(self):
        with patch("forecasts.services.locations.LocationAlias.objects.create",
                   side_effect=DatabaseError("alias table locked")):
            with self.assertLogs("weatherhub", level="WARNING"):
                location = get_or_create_location("Breslau", geocoder_for(self.place))

        self.assertEqual(location.city_name, "Wrocław")
        self.assertFalse(LocationAlias.objects.exists())

    def test_concurrent_creator_is_reused(self):
        existing = Location.objects.create(city_name="Wrocław", latitude=51.1, longitude=17.0, country_code="PL")

        # canonical lookup misses, as if the row appeared right after it
        with patch("forecasts.services.locations.Location.objects.filter") as mock_filter:
            mock_filter.return_value.first.return_value = None
            location = get_or_create_location("Breslau", geocoder_for(self.place))

        self.assertEqual(location.pk, existing.pk)
        self.assertEqual(Location.objects.count(), 1)

    def test_alias_lookup_database_error(self):
        with patch("forecasts.services.locations.Location.objects.get", side_effect=DatabaseError("down")):
            with self.assertRaises(StoreError):
                get_or_create_location("Breslau", geocoder_for(self.place))

    def test_resolve_by_name(self):
        location = resolve_location("Breslau", geocoder_for(self.place))
        self.assertEqual(location.city_name, "Wrocław")

    def test_resolve_by_coordinates_funnels_through_name(self):
        geocoder = geocoder_for(self.place)

        location = resolve_location((51.1079, 17.0385), geocoder)

        geocoder.reverse_geocode.assert_called_once_with(51.1079, 17.0385)
        geocoder.geocode.assert_called_once_with("Wrocław")
        self.assertEqual(location.city_name, "Wrocław")

    def test_resolve_rejects_out_of_range_coordinates(self):
        geocoder = geocoder_for(self.place)
        for query in [(91, 0), (0, -181), ("north", 0), (1, 2, 3), None]:
            with self.subTest(query=query):
                with self.assertRaises(ResolutionError):
                    resolve_location(query, geocoder)
        geocoder.reverse_geocode.assert_not_called()

    def test_spellings_of_one_city_share_a_location(self):
        geocoder = geocoder_for(GeocodedPlace("New York", 40.71, -74.01, "US"))

        locations = [get_or_create_location(name, geocoder) for name in ("New York", "new york ", "NEW YORK")]

        self.assertEqual({location.pk for location in locations}, {locations[0].pk})
        self.assertEqual(Location.objects.count(), 1)
        self.assertLessEqual(LocationAlias.objects.count(), 2)
        geocoder.geocode.assert_called_once_with("New York")

    @patch("forecasts.services.locations.get_geocoder")
    def test_default_geocoder_is_closed(self, mock_get_geocoder):
        mock_get_geocoder.return_value = geocoder_for(self.place)

        resolve_location((51.1079, 17.0385))

        mock_get_geocoder.assert_called_once_with()
        mock_get_geocoder.return_value.close.assert_called_once_with()

    @patch("forecasts.services.locations.get_geocoder")
    def test_default_geocoder_closed_on_error(self, mock_get_geocoder):
        mock_get_geocoder.return_value.geocode.side_effect = NoResultsFound("no results")

        with self.assertRaises(NoResultsFound):
            get_or_create_location("Atlantis")

        mock_get_geocoder.return_value.close.assert_called_once_with()
