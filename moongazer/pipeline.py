"""
Request pipeline: location text in, ranked and enriched observing windows out.

Geocoding, timezone and forecast run in sequence (each needs the previous
result). Scoring is a pure bulk pass. Only the few ranked windows get sky
lookups, which run concurrently while keeping the ranked order.
"""
from __future__ import annotations

import datetime as dt
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional
from zoneinfo import ZoneInfo

from moongazer import cache_manager, scoring
from moongazer.config import settings
from moongazer.data_sources.forecast import ForecastProvider
from moongazer.data_sources.geocoding import GeoResolver
from moongazer.data_sources.sky import SkyDataProvider, moon_impact
from moongazer.data_sources.timezones import TimezoneResolver
from moongazer.domain import CandidateWindow, Coordinates, HourlySeries, SkySnapshot
from moongazer.errors import InvalidInput
from moongazer.schemas import BestWindowsResponse, CurrentWeather, MoonSummary, ScoredWindow, WeatherSummary
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="pipeline")

# The nearest forecast hour only counts as "current" if it is this close to now.
CURRENT_WEATHER_MAX_OFFSET = dt.timedelta(minutes=90)

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_clock(t: dt.datetime) -> str:
    """`9:00 PM` style, independent of the process locale."""
    hour = t.hour % 12 or 12
    return f"{hour}:{t.minute:02d} {'AM' if t.hour < 12 else 'PM'}"


def format_start_label(t: dt.datetime) -> str:
    """`Oct 19, 9:00 PM`."""
    return f"{_MONTHS[t.month - 1]} {t.day}, {format_clock(t)}"


def sky_quality(cloud_cover_percent: float) -> str:
    """Coarse label for the current sky."""
    if cloud_cover_percent <= 10:
        return "Excellent"
    if cloud_cover_percent <= 30:
        return "Good"
    if cloud_cover_percent <= 60:
        return "Fair"
    return "Poor"


def current_weather(series: HourlySeries, now: dt.datetime) -> Optional[CurrentWeather]:
    """Summarize the forecast hour nearest `now`, or None if the series does not cover it."""
    if not len(series):
        return None
    nearest = min(series.samples, key=lambda s: abs(s.time - now))
    if abs(nearest.time - now) > CURRENT_WEATHER_MAX_OFFSET:
        return None
    return CurrentWeather(
        temperature=round(nearest.temperature),
        cloud_cover=round(nearest.cloud_cover_percent),
        sky_quality=sky_quality(nearest.cloud_cover_percent),
    )


def summarize_window(window: CandidateWindow, sky: SkySnapshot, tz: ZoneInfo) -> ScoredWindow:
    """Fold window-average weather and the midpoint sky snapshot into the output record."""
    samples = [slot.sample for slot in window.slots]
    n = len(samples)
    weather = WeatherSummary(
        cloud=round(sum(s.cloud_cover_percent for s in samples) / n),
        temp=round(sum(s.temperature for s in samples) / n),
        wind=round(sum(s.wind_speed for s in samples) / n),
    )
    moon = MoonSummary(
        phase=sky.moon_phase,
        illum=sky.moon_illumination,
        impact=moon_impact(sky.moon_illumination, sky.moon_visible).value,
    )
    return ScoredWindow(
        start=format_start_label(window.start.astimezone(tz)),
        end=format_clock(window.end.astimezone(tz)),
        weather=weather,
        moon=moon,
        planets=list(sky.planets),
        stars=list(sky.stars),
    )


class BestWindowsService:
    """Wire the resolvers, providers and scorer together for one request at a time."""

    def __init__(
        self,
        geo: GeoResolver | None = None,
        timezones: TimezoneResolver | None = None,
        forecast: ForecastProvider | None = None,
        sky: SkyDataProvider | None = None,
        *,
        max_windows: int | None = None,
        workers: int | None = None,
    ) -> None:
        self.geo = geo or GeoResolver()
        self.timezones = timezones or TimezoneResolver()
        self.forecast = forecast or ForecastProvider()
        self.sky = sky or SkyDataProvider()
        self.max_windows = max_windows or settings.max_windows
        self.workers = workers or settings.enrichment_workers

    def _sky_for(self, coords: Coordinates, window: CandidateWindow, timezone: str) -> SkySnapshot:
        midpoint = window.midpoint
        return cache_manager.cached_sky(
            coords, midpoint, timezone, lambda: self.sky.fetch(coords, midpoint, timezone)
        )

    def enrich(self, coords: Coordinates, windows: List[CandidateWindow], timezone: str) -> List[ScoredWindow]:
        """Sky lookups for each window in parallel; output follows `windows` order."""
        if not windows:
            return []
        tz = ZoneInfo(timezone)
        with ThreadPoolExecutor(max_workers=min(self.workers, len(windows)),
                                thread_name_prefix="sky-enrich") as pool:
            snapshots = list(pool.map(lambda w: self._sky_for(coords, w, timezone), windows))
        return [summarize_window(w, snap, tz) for w, snap in zip(windows, snapshots)]

    def find(self, location_text: str | None, *, now: dt.datetime | None = None) -> BestWindowsResponse:
        """Run the full pipeline for one location."""
        if location_text is None or not str(location_text).strip():
            raise InvalidInput("Location is required")
        text = str(location_text).strip()
        now = now or dt.datetime.now(dt.timezone.utc)

        location = cache_manager.cached_location(text, lambda: self.geo.resolve(text))
        coords = location.coordinates
        timezone = self.timezones.resolve(coords)
        series = cache_manager.cached_forecast(coords, lambda: self.forecast.fetch(coords))

        candidates = scoring.score_series(series, timezone, limit=self.max_windows)
        logger.info(
            "Scored forecast",
            extra={"location": location.display_name, "timezone": timezone,
                   "provider": series.provider, "windows": len(candidates)},
        )

        return BestWindowsResponse(
            location=location.display_name,
            windows=self.enrich(coords, candidates, timezone),
            current_weather=current_weather(series, now),
        )


_service: BestWindowsService | None = None


def get_service() -> BestWindowsService:
    """Lazily build the default service."""
    global _service
    if _service is None:
        _service = BestWindowsService()
    return _service


def find_best_windows(location_text: str | None) -> BestWindowsResponse:
    """Entry point used by the HTTP layer."""
    return get_service().find(location_text)
