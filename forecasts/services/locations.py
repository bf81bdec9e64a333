import logging
import unicodedata
from contextlib import contextmanager

from django.db import DatabaseError, IntegrityError, transaction

from ..exceptions import ResolutionError, StoreError
from ..models import Location, LocationAlias
from .geocoding import GeocodedPlace, get_geocoder

logger = logging.getLogger("weatherhub")


def normalize_alias(name: str) -> str:
    """Accent-free, case-folded, whitespace-collapsed form of a city name."""
    if not isinstance(name, str):
        raise ResolutionError("city name must be a string")

    decomposed = unicodedata.normalize("NFD", name)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    alias = " ".join(unicodedata.normalize("NFC", stripped).split()).casefold()

    if not alias:
        raise ResolutionError("city name is empty")
    return alias


@contextmanager
def _open_geocoder(geocoder):
    if geocoder is not None:
        yield geocoder
        return

    geocoder = get_geocoder()
    try:
        yield geocoder
    finally:
        geocoder.close()


def _create_alias(alias: str, location: Location) -> None:
    try:
        with transaction.atomic():
            LocationAlias.objects.create(alias=alias, location=location)
    except DatabaseError as e:
        logger.warning(
            "Could not create location alias",
            extra={'event': 'alias_create_failed', 'location': str(location.pk), 'error': str(e)}
        )


def _create_location(place: GeocodedPlace) -> Location:
    try:
        with transaction.atomic():
            return Location.objects.create(
                city_name=place.city_name,
                latitude=place.latitude,
                longitude=place.longitude,
                country_code=place.country_code,
            )
    except IntegrityError:
        # Another request created the same canonical city first
        try:
            return Location.objects.get(city_name=place.city_name)
        except (Location.DoesNotExist, DatabaseError) as e:
            raise StoreError(f"could not load location {place.city_name!r}: {e}") from e
    except DatabaseError as e:
        raise StoreError(f"could not persist location {place.city_name!r}: {e}") from e


def get_or_create_location(city_name: str, geocoder=None) -> Location:
    """
    Map a user-supplied city name to its canonical Location.

    Known aliases are answered from the database. Otherwise the name is
    geocoded and the canonical city is looked up or created; the input
    alias (and the canonical alias, when it differs) is recorded so the
    next lookup skips the geocoder.
    """
    alias = normalize_alias(city_name)

    try:
        location = Location.objects.get(aliases__alias=alias)
        logger.debug("Location found by alias", extra={'event': 'alias_hit', 'location': str(location.pk)})
        return location
    except Location.DoesNotExist:
        pass
    except DatabaseError as e:
        raise StoreError(f"database error when fetching location by alias: {e}") from e

    with _open_geocoder(geocoder) as active:
        place = active.geocode(city_name)

    try:
        location = Location.objects.filter(city_name=place.city_name).first()
    except DatabaseError as e:
        raise StoreError(f"database error when fetching location by canonical name: {e}") from e

    if location is not None:
        _create_alias(alias, location)
        return location

    location = _create_location(place)
    logger.info("New location created", extra={'event': 'location_created', 'location': str(location.pk)})

    _create_alias(alias, location)
    try:
        canonical_alias = normalize_alias(location.city_name)
    except ResolutionError:
        canonical_alias = alias
    if canonical_alias != alias:
        _create_alias(canonical_alias, location)

    return location


def resolve_location(query, geocoder=None) -> Location:
    """Resolve a city name or a (latitude, longitude) pair to a Location."""
    if isinstance(query, str):
        return get_or_create_location(query, geocoder)

    try:
        latitude, longitude = (float(value) for value in query)
    except (TypeError, ValueError) as e:
        raise ResolutionError("query must be a city name or a (lat, lon) pair") from e

    if not -90 <= latitude <= 90:
        raise ResolutionError(f"latitude out of range: {latitude}")
    if not -180 <= longitude <= 180:
        raise ResolutionError(f"longitude out of range: {longitude}")

    with _open_geocoder(geocoder) as active:
        place = active.reverse_geocode(latitude, longitude)
        return get_or_create_location(place.city_name, active)
