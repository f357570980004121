"""Process-wide cache facade: backend selection, codecs and cached provider calls."""
import datetime as dt
from typing import Callable

import redis

from moongazer.cache import Cache, Codec, InMemoryCache, RedisCache
from moongazer.config import settings
from moongazer.domain import Coordinates, HourlySeries, HourSample, ResolvedLocation, SkySnapshot
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="cache_manager")


def _init_cache() -> Cache:
    """Use Redis when configured and reachable, otherwise an in-memory cache."""
    if settings.cache_redis_url:
        masked = mask_url(settings.cache_redis_url)
        try:
            client = redis.Redis.from_url(settings.cache_redis_url)
            client.ping()
            logger.info("Using RedisCache", extra={"redis_url": masked})
            return RedisCache(client)
        except (redis.RedisError, ValueError) as exc:
            logger.warning("Falling back to InMemoryCache (Redis unavailable)",
                           extra={"redis_url": masked, "error": str(exc)})
    return InMemoryCache()


_cache: Cache = _init_cache()


def get_cache() -> Cache:
    return _cache


def use_in_memory_cache_for_tests() -> InMemoryCache:
    """Swap in a fresh in-memory cache so tests never share state."""
    global _cache
    _cache = InMemoryCache()
    return _cache


def _location_dump(loc: ResolvedLocation) -> dict:
    return {
        "latitude": loc.coordinates.latitude,
        "longitude": loc.coordinates.longitude,
        "display_name": loc.display_name,
        "provider": loc.provider,
    }


def _location_load(data: dict) -> ResolvedLocation:
    return ResolvedLocation(
        coordinates=Coordinates(data["latitude"], data["longitude"]),
        display_name=data["display_name"],
        provider=data["provider"],
    )


def _series_dump(series: HourlySeries) -> dict:
    return {
        "provider": series.provider,
        "samples": [
            [s.time.isoformat(), s.cloud_cover_percent, s.temperature, s.wind_speed, s.cloud_cover_estimated]
            for s in series.samples
        ],
    }


def _series_load(data: dict) -> HourlySeries:
    samples = tuple(
        HourSample(
            time=dt.datetime.fromisoformat(t),
            cloud_cover_percent=cloud,
            temperature=temp,
            wind_speed=wind,
            cloud_cover_estimated=estimated,
        )
        for t, cloud, temp, wind, estimated in data["samples"]
    )
    return HourlySeries(samples=samples, provider=data["provider"])


def _sky_dump(snap: SkySnapshot) -> dict:
    return {
        "moon_phase": snap.moon_phase,
        "moon_illumination": snap.moon_illumination,
        "moon_altitude": snap.moon_altitude,
        "planets": list(snap.planets),
        "stars": list(snap.stars),
        "source": snap.source,
    }


def _sky_load(data: dict) -> SkySnapshot:
    return SkySnapshot(
        moon_phase=data["moon_phase"],
        moon_illumination=data["moon_illumination"],
        moon_altitude=data["moon_altitude"],
        planets=tuple(data["planets"]),
        stars=tuple(data["stars"]),
        source=data["source"],
    )


LOCATION_CODEC: Codec[ResolvedLocation] = Codec(dump=_location_dump, load=_location_load)
SERIES_CODEC: Codec[HourlySeries] = Codec(dump=_series_dump, load=_series_load)
SKY_CODEC: Codec[SkySnapshot] = Codec(dump=_sky_dump, load=_sky_load)


def cached_location(location_text: str, producer: Callable[[], ResolvedLocation]) -> ResolvedLocation:
    """Geocoding results change rarely; keyed on normalized input text."""
    key = f"geocode:{' '.join(location_text.lower().split())}"
    return _cache.get_or_compute(key, settings.geocode_ttl_seconds, producer, LOCATION_CODEC)


def cached_forecast(coords: Coordinates, producer: Callable[[], HourlySeries]) -> HourlySeries:
    """Forecasts are refreshed a few times a day."""
    return _cache.get_or_compute(f"forecast:{coords.cache_key()}", settings.forecast_ttl_seconds,
                                 producer, SERIES_CODEC)


def cached_sky(coords: Coordinates, instant: dt.datetime, timezone: str,
               producer: Callable[[], SkySnapshot]) -> SkySnapshot:
    """Sky snapshots are keyed to the minute they describe."""
    minute = instant.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M")
    key = f"sky:{coords.cache_key()}:{minute}:{timezone}"
    return _cache.get_or_compute(key, settings.sky_ttl_seconds, producer, SKY_CODEC)


def clear_cache() -> None:
    """Drop every cached entry (dev/testing)."""
    _cache.clear()
