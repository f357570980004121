"""Moon phase and bright-object visibility: Astrospheric first, local approximation second."""
from __future__ import annotations

import csv
import datetime as dt
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple

from moongazer import astro
from moongazer.config import settings
from moongazer.data_sources import http
from moongazer.data_sources.base import CallableStrategy, run_chain
from moongazer.domain import Coordinates, MoonImpact, SkySnapshot
from moongazer.errors import MalformedPayload, ProviderError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/sky")

ASTROSPHERIC_SKY_URL = "https://api.astrospheric.com/GetSky_V1"

BRIGHT_STAR_MAX_MAGNITUDE = 2.0
FALLBACK_STAR_LIMIT = 5
# No ephemeris in the fallback path; these two are up most nights of the year.
PLACEHOLDER_PLANETS: Tuple[str, ...] = ("Jupiter", "Saturn")

_ASTROSPHERIC_STAR = 0
_ASTROSPHERIC_PLANET = 1


@dataclass(frozen=True)
class BrightStar:
    """Catalog row: position in degrees, visual magnitude (smaller is brighter)."""
    name: str
    ra: float
    dec: float
    mag: float


@lru_cache(maxsize=4)
def load_bright_stars(path: Path) -> Tuple[BrightStar, ...]:
    """Read the star catalog CSV (`name,ra,dec,mag`), skipping incomplete rows."""
    if not path.exists():
        raise FileNotFoundError(f"Bright star catalog not found: {path}")
    stars: List[BrightStar] = []
    with open(path, "r", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            name = (row.get("name") or "").strip()
            try:
                star = BrightStar(name=name, ra=float(row["ra"]), dec=float(row["dec"]), mag=float(row["mag"]))
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed catalog row", extra={"row": row})
                continue
            if name:
                stars.append(star)
    return tuple(stars)


def bright_star_names(stars, *, max_magnitude: float = BRIGHT_STAR_MAX_MAGNITUDE,
                      limit: int = FALLBACK_STAR_LIMIT) -> Tuple[str, ...]:
    """First `limit` stars at or brighter than `max_magnitude`, in catalog order."""
    return tuple(s.name for s in stars if s.mag <= max_magnitude)[:limit]


def moon_impact(illumination: float, moon_visible: bool) -> MoonImpact:
    """Classify how much the moon will wash out the sky."""
    if not moon_visible or illumination < 30:
        return MoonImpact.LOW
    if illumination < 60:
        return MoonImpact.MEDIUM
    return MoonImpact.HIGH


def local_sky_snapshot(coords: Coordinates, instant: dt.datetime, *,
                       catalog_path: Optional[Path] = None) -> SkySnapshot:
    """Offline snapshot: computed moon, placeholder planets, brightest catalog stars."""
    fraction = astro.moon_phase_fraction(instant)
    altitude = astro.moon_altitude_deg(instant, coords.latitude, coords.longitude)
    stars = load_bright_stars(Path(catalog_path or settings.star_catalog_path))
    return SkySnapshot(
        moon_phase=astro.phase_name(fraction),
        moon_illumination=astro.illumination_percent(fraction),
        moon_altitude=round(altitude, 1),
        planets=PLACEHOLDER_PLANETS,
        stars=bright_star_names(stars),
        source="local",
    )


def _float_or_none(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_astrospheric_sky(payload: Any) -> SkySnapshot:
    """Convert a GetSky response into a SkySnapshot; only objects above the horizon count."""
    data = payload.get("data", payload) if isinstance(payload, Mapping) else None
    if not isinstance(data, Mapping):
        raise MalformedPayload("astrospheric", "sky payload is not an object")
    moon = data.get("moon")
    if not isinstance(moon, Mapping):
        raise MalformedPayload("astrospheric", "sky payload has no moon block")

    planets: List[str] = []
    stars: List[str] = []
    for obj in data.get("objects") or []:
        if not isinstance(obj, Mapping) or not obj.get("name"):
            continue
        altitude = _float_or_none(obj.get("alt"))
        if altitude is None or altitude <= 0:
            continue
        if obj.get("type") == _ASTROSPHERIC_PLANET:
            planets.append(str(obj["name"]))
        elif obj.get("type") == _ASTROSPHERIC_STAR:
            stars.append(str(obj["name"]))

    illumination = _float_or_none(moon.get("illumination")) or 0.0
    return SkySnapshot(
        moon_phase=str(moon.get("phase") or "Unknown"),
        moon_illumination=int(round(min(100.0, max(0.0, illumination)))),
        moon_altitude=_float_or_none(moon.get("altitude")),
        planets=tuple(planets),
        stars=tuple(stars),
        source="astrospheric",
    )


def fetch_astrospheric_sky(coords: Coordinates, instant: dt.datetime, timezone: str, *,
                           api_key: str | None = None, timeout: float | None = None) -> SkySnapshot:
    """Query the Astrospheric sky endpoint for one instant."""
    api_key = api_key if api_key is not None else settings.astrospheric_key
    if not api_key:
        raise ProviderError("astrospheric", "no API key configured")
    params = {
        "key": api_key,
        "lat": coords.latitude,
        "lon": coords.longitude,
        "date": instant.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S"),
        "tz": timezone,
    }
    payload = http.get_json(
        "astrospheric",
        ASTROSPHERIC_SKY_URL,
        params=params,
        timeout=timeout if timeout is not None else settings.provider_timeout_seconds,
    )
    return parse_astrospheric_sky(payload)


class SkyDataProvider:
    """Sky snapshot for an instant; the local fallback cannot fail on bad input data."""

    def __init__(self, primary=None, fallback=None) -> None:
        self.primary = primary or fetch_astrospheric_sky
        self.fallback = fallback or local_sky_snapshot

    def fetch(self, coords: Coordinates, instant: dt.datetime, timezone: str) -> SkySnapshot:
        """Return the first successful snapshot."""
        outcome = run_chain(
            [
                CallableStrategy("astrospheric", lambda: self.primary(coords, instant, timezone)),
                CallableStrategy("local", lambda: self.fallback(coords, instant)),
            ],
            context="sky",
        )
        if outcome is None:
            raise ProviderError("sky", "no sky data source succeeded")
        snapshot, _strategy = outcome
        return snapshot
