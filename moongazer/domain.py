"""Immutable records that flow between resolvers, providers and the scorer."""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from moongazer.errors import InvalidCoordinates


class PostalKind(str, Enum):
    """Classification of free-text location input."""
    US_ZIP = "us_zip"
    CA_POSTAL = "ca_postal"
    UK_POSTCODE = "uk_postcode"
    GENERAL = "general"


class MoonImpact(str, Enum):
    """How much moonlight degrades faint-object viewing."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True)
class Coordinates:
    """Validated WGS84 point."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat, lng = self.latitude, self.longitude
        if not (isinstance(lat, (int, float)) and isinstance(lng, (int, float))):
            raise InvalidCoordinates(f"Coordinates must be numeric: {lat!r}, {lng!r}")
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise InvalidCoordinates(f"Coordinates must be finite: {lat}, {lng}")
        if not -90.0 <= lat <= 90.0:
            raise InvalidCoordinates(f"Latitude out of range: {lat}")
        if not -180.0 <= lng <= 180.0:
            raise InvalidCoordinates(f"Longitude out of range: {lng}")

    def cache_key(self) -> str:
        """Rounded representation; ~1 km precision is plenty for forecasts."""
        return f"{self.latitude:.2f},{self.longitude:.2f}"


@dataclass(frozen=True)
class ResolvedLocation:
    """Geocoder result: where the user is and what to call it."""
    coordinates: Coordinates
    display_name: str
    provider: str


@dataclass(frozen=True)
class HourSample:
    """One hour of forecast weather (UTC timestamp)."""
    time: dt.datetime  # timezone-aware, UTC
    cloud_cover_percent: float
    temperature: float
    wind_speed: float
    # True when the provider omitted cloud cover and the placeholder was used.
    cloud_cover_estimated: bool = False


@dataclass(frozen=True)
class HourlySeries:
    """Chronological, contiguous hourly forecast from a single provider."""
    samples: Tuple[HourSample, ...]
    provider: str

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self):
        return iter(self.samples)


@dataclass(frozen=True)
class TimeSlot:
    """A scored hour, scoped to one scoring pass."""
    sample: HourSample
    local_time: dt.datetime
    score: float
    is_night: bool

    @property
    def time(self) -> dt.datetime:
        return self.sample.time


@dataclass(frozen=True)
class CandidateWindow:
    """Contiguous run of good night-time slots."""
    start: dt.datetime
    end: dt.datetime
    average_score: float
    slots: Tuple[TimeSlot, ...]

    @property
    def midpoint(self) -> dt.datetime:
        return self.start + (self.end - self.start) / 2


@dataclass(frozen=True)
class SkySnapshot:
    """Moon and bright-object visibility for one instant."""
    moon_phase: str
    moon_illumination: int
    moon_altitude: Optional[float] = None  # degrees; None when the provider gave none
    planets: Tuple[str, ...] = field(default_factory=tuple)
    stars: Tuple[str, ...] = field(default_factory=tuple)
    source: str = "unknown"

    @property
    def moon_visible(self) -> bool:
        return self.moon_altitude is not None and self.moon_altitude > 0
