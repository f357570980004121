"""Hourly cloud/temperature/wind forecasts from Astrospheric with an Open-Meteo fallback."""
from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Union

from moongazer.config import settings
from moongazer.data_sources import http
from moongazer.data_sources.base import CallableStrategy, run_chain
from moongazer.domain import Coordinates, HourlySeries, HourSample
from moongazer.errors import ForecastUnavailable, MalformedPayload, ProviderError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/forecast")

ASTROSPHERIC_FORECAST_URL = "https://api.astrospheric.com/GetForecastData_V1"
OPEN_METEO_WEATHER_URL = "https://api.open-meteo.com/v1/forecast"

# Placeholders for fields a provider leaves out. Cloud cover has its own
# placeholder so the sample can be flagged as estimated.
DEFAULT_TEMPERATURE = 70.0
DEFAULT_WIND_SPEED = 5.0
MISSING_CLOUD_COVER_PLACEHOLDER = 0.0

_CLOUD_KEYS = ("cloudcover", "cloud_cover")
_TEMPERATURE_KEYS = ("temperature_2m", "temperature")
_WIND_KEYS = ("wind_speed_10m", "windspeed_10m", "wind_speed")

EXPECTED_HOURLY_UNITS = {
    "cloudcover": {"%", "percent"},
    "cloud_cover": {"%", "percent"},
    "temperature_2m": {"°F"},
    "wind_speed_10m": {"mph"},
}


@dataclass(frozen=True)
class FlatEnvelope:
    """`{"hourly": {...}}`, as Open-Meteo returns it."""
    hourly: Mapping[str, Any]
    utc_offset_seconds: int = 0
    units: Optional[Mapping[str, str]] = None


@dataclass(frozen=True)
class NestedEnvelope:
    """`{"data": {"hourly": {...}}}`, as Astrospheric returns it."""
    hourly: Mapping[str, Any]
    utc_offset_seconds: int = 0
    units: Optional[Mapping[str, str]] = None


ForecastEnvelope = Union[FlatEnvelope, NestedEnvelope]


def _offset(container: Mapping[str, Any]) -> int:
    """Read `utc_offset_seconds` if the provider sent one."""
    value = container.get("utc_offset_seconds", 0)
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def detect_envelope(payload: Any, *, provider: str = "forecast") -> ForecastEnvelope:
    """Identify which response shape `payload` is, or raise MalformedPayload."""
    if isinstance(payload, Mapping):
        hourly = payload.get("hourly")
        if isinstance(hourly, Mapping):
            return FlatEnvelope(hourly=hourly, utc_offset_seconds=_offset(payload),
                                units=payload.get("hourly_units"))
        data = payload.get("data")
        if isinstance(data, Mapping) and isinstance(data.get("hourly"), Mapping):
            return NestedEnvelope(hourly=data["hourly"], utc_offset_seconds=_offset(data),
                                  units=data.get("hourly_units"))
    raise MalformedPayload(provider, "no hourly block in forecast payload")


def _column(hourly: Mapping[str, Any], keys: Sequence[str]) -> Optional[Sequence[Any]]:
    """Return the first present array among `keys` (providers disagree on spelling)."""
    for key in keys:
        values = hourly.get(key)
        if isinstance(values, Sequence) and not isinstance(values, (str, bytes)):
            return values
    return None


def _value_at(values: Optional[Sequence[Any]], i: int) -> Optional[float]:
    """Numeric value at `i`, or None when absent/null/non-numeric."""
    if values is None or i >= len(values):
        return None
    raw = values[i]
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _parse_time(raw: Any, utc_offset_seconds: int) -> dt.datetime:
    """Parse an ISO timestamp; naive values are local to `utc_offset_seconds`."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return dt.datetime.fromtimestamp(raw, tz=dt.timezone.utc)
    parsed = dt.datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone(dt.timedelta(seconds=utc_offset_seconds)))
    return parsed.astimezone(dt.timezone.utc)


def _warn_on_unexpected_units(units: Optional[Mapping[str, str]], *, provider: str) -> None:
    """Log a warning if the provider reports units we did not ask for."""
    if not units:
        return
    for field, allowed in EXPECTED_HOURLY_UNITS.items():
        actual = units.get(field)
        if actual and actual not in allowed:
            logger.warning(
                "Unexpected forecast unit",
                extra={"provider": provider, "field": field, "unit": actual, "allowed": sorted(allowed)},
            )


def to_hourly_series(envelope: ForecastEnvelope, *, provider: str) -> HourlySeries:
    """Unwrap either envelope into the canonical, chronologically sorted HourlySeries."""
    hourly = envelope.hourly
    times = hourly.get("time")
    if not isinstance(times, Sequence) or isinstance(times, (str, bytes)) or not times:
        raise MalformedPayload(provider, "hourly.time missing or empty")
    _warn_on_unexpected_units(envelope.units, provider=provider)

    cloud = _column(hourly, _CLOUD_KEYS)
    temperature = _column(hourly, _TEMPERATURE_KEYS)
    wind = _column(hourly, _WIND_KEYS)

    samples: List[HourSample] = []
    estimated = 0
    for i, raw_time in enumerate(times):
        try:
            time = _parse_time(raw_time, envelope.utc_offset_seconds)
        except (TypeError, ValueError, OverflowError) as exc:
            raise MalformedPayload(provider, f"bad timestamp {raw_time!r}") from exc

        cloud_value = _value_at(cloud, i)
        cloud_missing = cloud_value is None
        if cloud_missing:
            estimated += 1
            cloud_value = MISSING_CLOUD_COVER_PLACEHOLDER
        temp_value = _value_at(temperature, i)
        wind_value = _value_at(wind, i)

        samples.append(
            HourSample(
                time=time,
                cloud_cover_percent=min(100.0, max(0.0, cloud_value)),
                temperature=DEFAULT_TEMPERATURE if temp_value is None else temp_value,
                wind_speed=DEFAULT_WIND_SPEED if wind_value is None else wind_value,
                cloud_cover_estimated=cloud_missing,
            )
        )

    if estimated:
        logger.warning(
            "Cloud cover missing; placeholder used and samples flagged as estimated",
            extra={"provider": provider, "estimated_hours": estimated, "total_hours": len(samples)},
        )

    samples.sort(key=lambda s: s.time)
    return HourlySeries(samples=tuple(samples), provider=provider)


def normalize_forecast(payload: Any, *, provider: str) -> HourlySeries:
    """Detect the envelope shape and produce the canonical series."""
    return to_hourly_series(detect_envelope(payload, provider=provider), provider=provider)


def fetch_astrospheric_forecast(
    coords: Coordinates,
    *,
    api_key: str | None = None,
    hours: int | None = None,
    timeout: float | None = None,
) -> HourlySeries:
    """Fetch the astronomy-specialised forecast; raises ProviderError on any failure."""
    api_key = api_key if api_key is not None else settings.astrospheric_key
    if not api_key:
        raise ProviderError("astrospheric", "no API key configured")
    params = {
        "key": api_key,
        "lat": coords.latitude,
        "lon": coords.longitude,
        "hours": hours or settings.forecast_hours,
    }
    payload = http.get_json(
        "astrospheric",
        ASTROSPHERIC_FORECAST_URL,
        params=params,
        timeout=timeout if timeout is not None else settings.provider_timeout_seconds,
    )
    return normalize_forecast(payload, provider="astrospheric")


def fetch_open_meteo_forecast(
    coords: Coordinates,
    *,
    forecast_days: int | None = None,
    timeout: float | None = None,
    temperature_unit: str = "fahrenheit",
    wind_speed_unit: str = "mph",
) -> HourlySeries:
    """Fetch the general-purpose forecast with times in GMT."""
    params = {
        "latitude": coords.latitude,
        "longitude": coords.longitude,
        "hourly": "cloudcover,temperature_2m,wind_speed_10m",
        "forecast_days": forecast_days or settings.open_meteo_forecast_days,
        "timezone": "GMT",
        "temperature_unit": temperature_unit,
        "wind_speed_unit": wind_speed_unit,
    }
    payload = http.get_json(
        "open_meteo",
        OPEN_METEO_WEATHER_URL,
        params=params,
        timeout=timeout if timeout is not None else settings.fallback_timeout_seconds,
    )
    return normalize_forecast(payload, provider="open_meteo")


class ForecastProvider:
    """Primary/secondary forecast chain producing one HourlySeries."""

    def __init__(self, primary=None, secondary=None) -> None:
        self.primary = primary or fetch_astrospheric_forecast
        self.secondary = secondary or fetch_open_meteo_forecast

    def fetch(self, coords: Coordinates) -> HourlySeries:
        """Return the series from the first provider that succeeds."""
        outcome = run_chain(
            [
                CallableStrategy("astrospheric", lambda: self.primary(coords)),
                CallableStrategy("open_meteo", lambda: self.secondary(coords)),
            ],
            context="forecast",
        )
        if outcome is None:
            raise ForecastUnavailable("No weather provider returned a forecast")
        series, strategy = outcome
        logger.info(
            "Fetched forecast",
            extra={"provider": strategy, "hours": len(series), "coords": coords.cache_key()},
        )
        return series
