"""Upstream providers: geocoding, timezones, weather forecasts and sky data."""

from . import http
from .base import CallableStrategy, Strategy, run_chain
from .forecast import ForecastProvider, fetch_astrospheric_forecast, fetch_open_meteo_forecast, normalize_forecast
from .geocoding import CensusGeocoder, GeoResolver, NominatimGeocoder, classify_location
from .sky import SkyDataProvider, fetch_astrospheric_sky, local_sky_snapshot
from .timezones import TimezoneDbClient, TimezoneResolver, fallback_timezone

__all__ = [
    "http",
    "CallableStrategy",
    "Strategy",
    "run_chain",
    "ForecastProvider",
    "fetch_astrospheric_forecast",
    "fetch_open_meteo_forecast",
    "normalize_forecast",
    "CensusGeocoder",
    "GeoResolver",
    "NominatimGeocoder",
    "classify_location",
    "SkyDataProvider",
    "fetch_astrospheric_sky",
    "local_sky_snapshot",
    "TimezoneDbClient",
    "TimezoneResolver",
    "fallback_timezone",
]
