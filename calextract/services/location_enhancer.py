from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import replace
from functools import lru_cache
from types import MappingProxyType

from calextract.services.event_models import EventRecord, LocationDetails
from calextract.services.geocoding_client import GeocodingError, GooglePlacesGeocodingClient

logger = logging.getLogger(__name__)

_TORONTO = {"city": "Toronto", "state": "ON", "country": "Canada"}
_MULTIPLE_LOCATIONS = "Multiple locations in Toronto area"

_DEFAULT_KNOWN_LOCATIONS: tuple[tuple[str, LocationDetails], ...] = (
    (
        "cn tower",
        LocationDetails(
            name="CN Tower",
            address="290 Bremner Blvd, Toronto, ON M5V 3L9",
            is_well_known_place=True,
            **_TORONTO,
        ),
    ),
    (
        "rogers centre",
        LocationDetails(
            name="Rogers Centre",
            address="1 Blue Jays Way, Toronto, ON M5V 1J1",
            is_well_known_place=True,
            **_TORONTO,
        ),
    ),
    (
        "union station",
        LocationDetails(
            name="Union Station Toronto",
            address="65 Front St W, Toronto, ON M5J 1E6",
            is_well_known_place=True,
            **_TORONTO,
        ),
    ),
    (
        "eaton centre",
        LocationDetails(
            name="CF Toronto Eaton Centre",
            address="220 Yonge St, Toronto, ON M5B 2H1",
            is_well_known_place=True,
            **_TORONTO,
        ),
    ),
    (
        "pearson airport",
        LocationDetails(
            name="Toronto Pearson International Airport",
            address="6301 Silver Dart Dr, Mississauga, ON L5P 1B2",
            city="Mississauga",
            state="ON",
            country="Canada",
            is_well_known_place=True,
        ),
    ),
    (
        "casa loma",
        LocationDetails(
            name="Casa Loma",
            address="1 Austin Terrace, Toronto, ON M5R 1X8",
            is_well_known_place=True,
            **_TORONTO,
        ),
    ),
    (
        "harbourfront centre",
        LocationDetails(
            name="Harbourfront Centre",
            address="235 Queens Quay W, Toronto, ON M5J 2G8",
            is_well_known_place=True,
            **_TORONTO,
        ),
    ),
    (
        "jack astors",
        LocationDetails(name="Jack Astor's Bar and Grill", address=_MULTIPLE_LOCATIONS, **_TORONTO),
    ),
    (
        "the keg",
        LocationDetails(name="The Keg Steakhouse + Bar", address=_MULTIPLE_LOCATIONS, **_TORONTO),
    ),
    (
        "swiss chalet",
        LocationDetails(name="Swiss Chalet", address=_MULTIPLE_LOCATIONS, **_TORONTO),
    ),
)


class LocationDirectory:
    """Lookup table of well-known places keyed by lowercase name.

    Readers take a snapshot of an immutable mapping, so lookups need no lock.
    ``register`` swaps in a new mapping under a lock.
    """

    def __init__(self, entries: Mapping[str, LocationDetails] | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: Mapping[str, LocationDetails] = MappingProxyType(
            {key.strip().lower(): value for key, value in (entries or {}).items()},
        )

    def register(self, key: str, details: LocationDetails) -> None:
        normalized_key = key.strip().lower()
        if not normalized_key:
            raise ValueError("Location key must not be empty.")
        with self._lock:
            updated = dict(self._entries)
            updated[normalized_key] = replace(details)
            self._entries = MappingProxyType(updated)

    def find(self, name: str) -> LocationDetails | None:
        """Exact key match first, then the first key contained in either direction."""
        lookup_key = name.strip().lower()
        if not lookup_key:
            return None
        entries = self._entries
        exact_match = entries.get(lookup_key)
        if exact_match is not None:
            return exact_match
        for key, details in entries.items():
            if key in lookup_key or lookup_key in key:
                return details
        return None

    def __len__(self) -> int:
        return len(self._entries)


class LocationEnhancer:
    def __init__(
        self,
        directory: LocationDirectory | None = None,
        geocoder: GooglePlacesGeocodingClient | None = None,
    ) -> None:
        self.directory = directory if directory is not None else get_location_directory()
        self.geocoder = geocoder

    def enhance(self, location_details: LocationDetails | None) -> LocationDetails | None:
        if location_details is None or not location_details.name:
            return location_details

        canonical = self.directory.find(location_details.name)
        if canonical is not None:
            return LocationDetails(
                name=location_details.name,
                address=canonical.address,
                city=canonical.city,
                state=canonical.state,
                country=canonical.country,
                is_well_known_place=canonical.is_well_known_place,
            )

        if self.geocoder is not None and not location_details.address:
            return self._geocode(location_details)
        return location_details

    def enhance_record(self, record: EventRecord) -> EventRecord:
        if record.location_details is not None:
            record.location_details = self.enhance(record.location_details)
            return record

        if record.location and self.directory.find(record.location) is not None:
            record.location_details = self.enhance(LocationDetails(name=record.location))
        return record

    def _geocode(self, location_details: LocationDetails) -> LocationDetails:
        try:
            found = self.geocoder.lookup(location_details.name or "")
        except GeocodingError as exc:
            logger.warning(
                "Geocoding failed location=%s error=%s",
                location_details.name,
                exc,
            )
            return location_details
        if found is None:
            return location_details
        return LocationDetails(
            name=location_details.name,
            address=found.address,
            city=found.city or location_details.city,
            state=found.state or location_details.state,
            country=found.country or location_details.country,
            is_well_known_place=location_details.is_well_known_place,
        )


@lru_cache
def get_location_directory() -> LocationDirectory:
    return LocationDirectory(dict(_DEFAULT_KNOWN_LOCATIONS))
