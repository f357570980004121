"""IANA timezone lookup via TimeZoneDB with a coarse bounding-box fallback."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from moongazer.config import settings
from moongazer.data_sources import http
from moongazer.domain import Coordinates
from moongazer.errors import MalformedPayload, ProviderError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/timezones")

TIMEZONEDB_URL = "https://api.timezonedb.com/v2.1/get-time-zone"
DEFAULT_TIMEZONE = "UTC"


@dataclass(frozen=True)
class TimezoneBox:
    """Lat/lng rectangle mapped to a representative zone (inclusive bounds)."""
    region: str
    lat_min: float
    lat_max: float
    lng_min: float
    lng_max: float
    zone: str

    def contains(self, coords: Coordinates) -> bool:
        return (
            self.lat_min <= coords.latitude <= self.lat_max
            and self.lng_min <= coords.longitude <= self.lng_max
        )


# First match wins, so narrower boxes come before the wide ones they overlap.
FALLBACK_BOXES: Sequence[TimezoneBox] = (
    TimezoneBox("Alaska", 51.0, 72.0, -170.0, -130.0, "America/Anchorage"),
    TimezoneBox("US/Canada Pacific", 24.0, 60.0, -130.0, -114.0, "America/Los_Angeles"),
    TimezoneBox("US/Canada Mountain", 24.0, 60.0, -114.0, -102.0, "America/Denver"),
    TimezoneBox("US/Canada Central", 24.0, 60.0, -102.0, -87.0, "America/Chicago"),
    TimezoneBox("US/Canada Eastern", 24.0, 60.0, -87.0, -52.0, "America/New_York"),
    TimezoneBox("Western Europe", 35.0, 72.0, -25.0, 0.0, "Europe/London"),
    TimezoneBox("Central Europe", 35.0, 72.0, 0.0, 20.0, "Europe/Berlin"),
    TimezoneBox("Eastern Europe", 35.0, 72.0, 20.0, 40.0, "Europe/Bucharest"),
    TimezoneBox("Australia", -45.0, -10.0, 112.0, 155.0, "Australia/Sydney"),
    TimezoneBox("Asia-Pacific", -10.0, 60.0, 60.0, 150.0, "Asia/Shanghai"),
    TimezoneBox("South America", -56.0, 13.0, -82.0, -34.0, "America/Sao_Paulo"),
    TimezoneBox("Africa", -35.0, 35.0, -18.0, 52.0, "Africa/Johannesburg"),
)


def fallback_timezone(coords: Coordinates) -> str:
    """Return the zone of the first box containing `coords`, else UTC."""
    for box in FALLBACK_BOXES:
        if box.contains(coords):
            return box.zone
    return DEFAULT_TIMEZONE


def is_valid_zone(name: Optional[str]) -> bool:
    """True when zoneinfo knows `name`."""
    if not name or not isinstance(name, str):
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


class TimezoneDbClient:
    """Thin client for TimeZoneDB's get-time-zone endpoint."""

    name = "timezonedb"

    def __init__(self, api_key: str | None = None, *, timeout: float | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.timezonedb_key
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds

    def lookup(self, coords: Coordinates) -> str:
        """Return the zone name or raise ProviderError."""
        if not self.api_key:
            raise ProviderError(self.name, "no API key configured")
        params = {
            "key": self.api_key,
            "format": "json",
            "by": "position",
            "lat": coords.latitude,
            "lng": coords.longitude,
        }
        data = http.get_json(self.name, TIMEZONEDB_URL, params=params, timeout=self.timeout)
        if not isinstance(data, dict):
            raise MalformedPayload(self.name, "expected a JSON object")
        if data.get("status") not in (None, "OK"):
            raise ProviderError(self.name, f"status {data.get('status')}: {data.get('message', '')}")
        zone = data.get("zoneName")
        if not is_valid_zone(zone):
            raise MalformedPayload(self.name, f"unknown zone {zone!r}")
        return zone


class TimezoneResolver:
    """Resolve coordinates to an IANA zone; never raises."""

    def __init__(self, client: TimezoneDbClient | None = None) -> None:
        self.client = client or TimezoneDbClient()

    def resolve(self, coords: Coordinates) -> str:
        """Provider first, then the static boxes, then UTC."""
        try:
            zone = self.client.lookup(coords)
            logger.debug("Resolved timezone from provider", extra={"zone": zone})
            return zone
        except ProviderError as exc:
            zone = fallback_timezone(coords)
            logger.warning(
                "Timezone provider failed; using fallback table",
                extra={"error": str(exc), "zone": zone, "coords": coords.cache_key()},
            )
            return zone
