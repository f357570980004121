"""Free-text location resolution: US Census for ZIP codes, Nominatim for everything else."""
from __future__ import annotations

import re
from typing import Any, List, Optional

from moongazer.config import settings
from moongazer.data_sources import http
from moongazer.data_sources.base import CallableStrategy, Strategy, run_chain
from moongazer.domain import Coordinates, PostalKind, ResolvedLocation
from moongazer.errors import InvalidCoordinates, InvalidInput, LocationNotFound, MalformedPayload
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/geocoding")

CENSUS_GEOCODER_URL = "https://geocoding.geo.census.gov/geocoder/geographies/onelineaddress"
CENSUS_ZIP_URL = "https://geocoding.geo.census.gov/geocoder/locations/address"
NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"

_US_ZIP = re.compile(r"^\d{5}(-\d{4})?$")
_CA_POSTAL = re.compile(r"^[A-Za-z]\d[A-Za-z][ -]?\d[A-Za-z]\d$")
_UK_POSTCODE = re.compile(r"^[A-Za-z]{1,2}\d[A-Za-z\d]?\s*\d[A-Za-z]{2}$")

COUNTRY_HINTS = {
    PostalKind.US_ZIP: "United States",
    PostalKind.CA_POSTAL: "Canada",
    PostalKind.UK_POSTCODE: "United Kingdom",
    PostalKind.GENERAL: None,
}

# Address keys Nominatim may return, most specific first.
_NEIGHBORHOOD_KEYS = ("neighbourhood", "suburb", "quarter", "city_district")
_LOCALITY_KEYS = ("city", "town", "village", "hamlet", "municipality")
_REGION_KEYS = ("state", "province", "region", "state_district")
_DISTRICT_KEYS = ("city_district", "district", "borough")


def classify_location(text: str) -> PostalKind:
    """Classify location text as a postal code pattern or general free text."""
    candidate = text.strip()
    if _US_ZIP.match(candidate):
        return PostalKind.US_ZIP
    if _CA_POSTAL.match(candidate):
        return PostalKind.CA_POSTAL
    if _UK_POSTCODE.match(candidate):
        return PostalKind.UK_POSTCODE
    return PostalKind.GENERAL


def _first(mapping: dict, keys) -> Optional[str]:
    """Return the first non-blank string value for `keys`."""
    for key in keys:
        value = mapping.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _coordinates(lat: Any, lng: Any, provider: str) -> Coordinates:
    """Build Coordinates from loosely typed provider values."""
    try:
        return Coordinates(float(lat), float(lng))
    except (TypeError, ValueError, InvalidCoordinates) as exc:
        raise MalformedPayload(provider, f"bad coordinates {lat!r}, {lng!r}") from exc


def _mapping(value: Any, provider: str, what: str) -> dict:
    """Treat a missing field as empty, but reject anything that is not a JSON object."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedPayload(provider, f"{what} is not an object")
    return value


def census_display_name(match: dict) -> str:
    """
    Prefer "City, ST" from the matched components, with the county in parentheses.

    Falls back to the census `matchedAddress` when city/state are absent.
    """
    components = match.get("addressComponents") or {}
    city = _first(components, ("city",))
    state = _first(components, ("state",))

    counties = (match.get("geographies") or {}).get("Counties") or []
    county = None
    if counties and isinstance(counties[0], dict):
        county = _first(counties[0], ("NAME", "BASENAME"))

    if city and state:
        name = f"{city}, {state}"
    else:
        name = (match.get("matchedAddress") or "").strip()
    if county and name:
        name = f"{name} ({county})"
    return name or county or ""


def nominatim_display_name(place: dict) -> str:
    """
    Compose "Neighborhood, City, State, Country [Postal: ...] [District: ...] [County: ...]".

    Only the pieces present in `address` are used; repeated names (e.g. city
    and state both "Berlin") appear once. Falls back to `display_name`.
    """
    address = place.get("address") or {}
    hierarchy: List[str] = []
    for value in (
        _first(address, _NEIGHBORHOOD_KEYS),
        _first(address, _LOCALITY_KEYS),
        _first(address, _REGION_KEYS),
        _first(address, ("country",)),
    ):
        if value and value not in hierarchy:
            hierarchy.append(value)

    tags = []
    postcode = _first(address, ("postcode",))
    district = _first(address, _DISTRICT_KEYS)
    county = _first(address, ("county",))
    if postcode:
        tags.append(f"[Postal: {postcode}]")
    if district and district not in hierarchy:
        tags.append(f"[District: {district}]")
    if county and county not in hierarchy:
        tags.append(f"[County: {county}]")

    name = ", ".join(hierarchy)
    if not name:
        name = (place.get("display_name") or "").strip()
    if tags and name:
        name = f"{name} {' '.join(tags)}"
    return name


class CensusGeocoder:
    """US Census one-line-address geocoder (domestic, structured)."""

    name = "census"

    def __init__(self, *, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else settings.geocode_timeout_seconds

    def search(self, address: str) -> Optional[ResolvedLocation]:
        """Return the first one-line-address match, or None if the census has no match."""
        params = {
            "address": address,
            "benchmark": "Public_AR_Current",
            "vintage": "Current_Current",
            "format": "json",
        }
        data = http.get_json(self.name, CENSUS_GEOCODER_URL, params=params, timeout=self.timeout)
        return self._first_match(data, fallback_name=address)

    def search_zip(self, zip_code: str) -> Optional[ResolvedLocation]:
        """Structured address search with only the ZIP filled in."""
        params = {
            "street": "",
            "city": "",
            "state": "",
            "zip": zip_code,
            "benchmark": "Public_AR_Current",
            "format": "json",
        }
        data = http.get_json(self.name, CENSUS_ZIP_URL, params=params, timeout=self.timeout)
        return self._first_match(data, fallback_name=zip_code)

    def _first_match(self, data: Any, *, fallback_name: str) -> Optional[ResolvedLocation]:
        if not isinstance(data, dict):
            raise MalformedPayload(self.name, "expected a JSON object")
        matches = _mapping(data.get("result"), self.name, "result").get("addressMatches") or []
        if not isinstance(matches, list):
            raise MalformedPayload(self.name, "addressMatches is not a list")
        if not matches:
            return None
        match = _mapping(matches[0], self.name, "address match")
        point = _mapping(match.get("coordinates"), self.name, "coordinates")
        _mapping(match.get("addressComponents"), self.name, "addressComponents")
        _mapping(match.get("geographies"), self.name, "geographies")
        coords = _coordinates(point.get("y"), point.get("x"), self.name)
        display = census_display_name(match) or fallback_name
        return ResolvedLocation(coordinates=coords, display_name=display, provider=self.name)


class NominatimGeocoder:
    """OpenStreetMap Nominatim free-text search (global)."""

    name = "nominatim"

    def __init__(self, *, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else settings.geocode_timeout_seconds

    def search(self, query: str) -> Optional[ResolvedLocation]:
        """Return the single best match, or None if Nominatim found nothing."""
        params = {
            "q": query,
            "format": "jsonv2",
            "limit": 1,
            "addressdetails": 1,
            "accept-language": "en",
        }
        data = http.get_json(self.name, NOMINATIM_SEARCH_URL, params=params, timeout=self.timeout)
        if not isinstance(data, list):
            raise MalformedPayload(self.name, "expected a JSON array")
        if not data:
            return None
        place = _mapping(data[0], self.name, "search result")
        _mapping(place.get("address"), self.name, "address")
        coords = _coordinates(place.get("lat"), place.get("lon"), self.name)
        display = nominatim_display_name(place) or query
        return ResolvedLocation(coordinates=coords, display_name=display, provider=self.name)


def with_country_hint(text: str, kind: PostalKind) -> str:
    """Append the country name matching the postal classification, if any."""
    hint = COUNTRY_HINTS.get(kind)
    return f"{text}, {hint}" if hint else text


class GeoResolver:
    """Resolve free text to coordinates by walking an ordered geocoder chain."""

    def __init__(
        self,
        census: CensusGeocoder | None = None,
        nominatim: NominatimGeocoder | None = None,
    ) -> None:
        self.census = census or CensusGeocoder()
        self.nominatim = nominatim or NominatimGeocoder()

    def strategies(self, text: str) -> List[Strategy[ResolvedLocation]]:
        """Build the ordered chain for this input."""
        kind = classify_location(text)
        chain: List[Strategy[ResolvedLocation]] = []
        if kind is PostalKind.US_ZIP:
            chain.append(CallableStrategy("census", lambda: self.census.search(text)))
            chain.append(CallableStrategy("census+usa", lambda: self.census.search(f"{text}, USA")))
            chain.append(CallableStrategy("census-zip", lambda: self.census.search_zip(text)))
        hinted = with_country_hint(text, kind)
        chain.append(CallableStrategy("nominatim", lambda: self.nominatim.search(hinted)))
        return chain

    def resolve(self, location_text: str) -> ResolvedLocation:
        """Resolve `location_text` or raise LocationNotFound."""
        if location_text is None or not str(location_text).strip():
            raise InvalidInput("Location is required")
        text = str(location_text).strip()
        kind = classify_location(text)
        logger.info("Resolving location", extra={"location": text, "kind": kind.value})

        outcome = run_chain(self.strategies(text), context=f"geocode:{kind.value}")
        if outcome is None:
            raise LocationNotFound(text)
        resolved, strategy = outcome
        logger.info(
            "Resolved location",
            extra={"location": text, "strategy": strategy, "display_name": resolved.display_name},
        )
        return resolved
