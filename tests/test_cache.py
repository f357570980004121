import datetime as dt
import threading
import time
import unittest

from moongazer import cache_manager
from moongazer.cache import InMemoryCache, KeyedLocks, RedisCache
from moongazer.domain import Coordinates, HourlySeries, HourSample, ResolvedLocation, SkySnapshot


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.expires = {}

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.expires[key] = ttl

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)
        self.expires.pop(key, None)

    def scan_iter(self, pattern):
        prefix = pattern.rstrip("*")
        return [k for k in list(self.store.keys()) if k.startswith(prefix)]


def _series():
    start = dt.datetime(2024, 1, 1, 21, tzinfo=dt.timezone.utc)
    return HourlySeries(
        samples=tuple(
            HourSample(time=start + dt.timedelta(hours=i), cloud_cover_percent=10.0 * i,
                       temperature=50.5, wind_speed=3.0, cloud_cover_estimated=(i == 2))
            for i in range(3)
        ),
        provider="open_meteo",
    )


class TestInMemoryCache(unittest.TestCase):
    def test_hit_until_ttl_expires(self):
        clock = FakeClock()
        cache = InMemoryCache(clock=clock)
        calls = []

        def produce():
            calls.append(1)
            return len(calls)

        self.assertEqual(cache.get_or_compute("k", 60, produce), 1)
        clock.advance(59)
        self.assertEqual(cache.get_or_compute("k", 60, produce), 1)
        clock.advance(1)
        self.assertEqual(cache.get_or_compute("k", 60, produce), 2)
        self.assertEqual(len(calls), 2)

    def test_producer_errors_are_not_cached(self):
        cache = InMemoryCache()
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("upstream down")
            return "ok"

        with self.assertRaises(RuntimeError):
            cache.get_or_compute("k", 60, flaky)
        self.assertEqual(len(cache), 0)
        self.assertEqual(cache.get_or_compute("k", 60, flaky), "ok")

    def test_concurrent_misses_run_producer_once(self):
        cache = InMemoryCache()
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow():
            calls.append(1)
            started.set()
            release.wait(5)
            return "value"

        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get_or_compute("k", 60, slow)))
                   for _ in range(8)]
        for t in threads:
            t.start()
        self.assertTrue(started.wait(5))
        time.sleep(0.05)
        release.set()
        for t in threads:
            t.join(5)

        self.assertEqual(len(calls), 1)
        self.assertEqual(results, ["value"] * 8)

    def test_eviction_respects_max_entries(self):
        clock = FakeClock()
        cache = InMemoryCache(max_entries=2, clock=clock)
        cache.get_or_compute("short", 10, lambda: 1)
        cache.get_or_compute("long", 100, lambda: 2)
        cache.get_or_compute("medium", 50, lambda: 3)
        self.assertEqual(len(cache), 2)
        self.assertEqual(cache.get_or_compute("long", 100, lambda: "recomputed"), 2)
        self.assertEqual(cache.get_or_compute("short", 10, lambda: "recomputed"), "recomputed")

    def test_invalidate_and_clear(self):
        cache = InMemoryCache()
        cache.get_or_compute("a", 60, lambda: 1)
        cache.get_or_compute("b", 60, lambda: 2)
        cache.invalidate("a")
        self.assertEqual(len(cache), 1)
        cache.clear()
        self.assertEqual(len(cache), 0)

    def test_keyed_locks_are_released(self):
        locks = KeyedLocks()
        with locks.hold("x"):
            self.assertEqual(len(locks), 1)
        self.assertEqual(len(locks), 0)


class TestRedisCache(unittest.TestCase):
    def test_round_trip_through_codecs(self):
        client = FakeRedis()
        cache = RedisCache(client)
        series = _series()
        location = ResolvedLocation(Coordinates(41.75, -88.15), "Naperville, IL (DuPage County)", "census")
        snapshot = SkySnapshot("Full Moon", 99, None, ("Jupiter",), ("Vega", "Deneb"), "astrospheric")

        for key, value, codec in (
            ("series", series, cache_manager.SERIES_CODEC),
            ("location", location, cache_manager.LOCATION_CODEC),
            ("sky", snapshot, cache_manager.SKY_CODEC),
        ):
            self.assertEqual(cache.get_or_compute(key, 60, lambda v=value: v, codec), value)
            self.assertEqual(client.expires[f"moongazer:{key}"], 60)
            fresh = RedisCache(client)
            self.assertEqual(fresh.get_or_compute(key, 60, lambda: self.fail("should hit"), codec), value)

    def test_undecodable_entry_is_a_miss(self):
        client = FakeRedis()
        client.store["moongazer:k"] = b"{not json"
        cache = RedisCache(client)
        self.assertEqual(cache.get_or_compute("k", 30, lambda: {"v": 1}), {"v": 1})
        self.assertEqual(cache.get_or_compute("k", 30, lambda: {"v": 2}), {"v": 1})

    def test_clear_only_touches_prefix(self):
        client = FakeRedis()
        client.store["other:key"] = b"1"
        cache = RedisCache(client)
        cache.get_or_compute("a", 30, lambda: 1)
        cache.clear()
        self.assertEqual(list(client.store), ["other:key"])


class TestCacheManager(unittest.TestCase):
    def setUp(self):
        cache_manager.use_in_memory_cache_for_tests()

    def test_location_key_normalizes_case_and_spacing(self):
        loc = ResolvedLocation(Coordinates(51.5, -0.14), "Westminster", "nominatim")
        calls = []

        def produce():
            calls.append(1)
            return loc

        cache_manager.cached_location("SW1A  1AA", produce)
        cache_manager.cached_location("sw1a 1aa", produce)
        self.assertEqual(len(calls), 1)

    def test_forecast_shared_between_nearby_points(self):
        calls = []

        def produce():
            calls.append(1)
            return _series()

        cache_manager.cached_forecast(Coordinates(41.7508, -88.1535), produce)
        cache_manager.cached_forecast(Coordinates(41.7491, -88.1549), produce)
        self.assertEqual(len(calls), 1)

    def test_sky_keyed_by_instant(self):
        calls = []
        snap = SkySnapshot("New Moon", 0)

        def produce():
            calls.append(1)
            return snap

        coords = Coordinates(41.75, -88.15)
        t = dt.datetime(2024, 1, 2, 0, tzinfo=dt.timezone.utc)
        cache_manager.cached_sky(coords, t, "America/Chicago", produce)
        cache_manager.cached_sky(coords, t, "America/Chicago", produce)
        cache_manager.cached_sky(coords, t + dt.timedelta(hours=1), "America/Chicago", produce)
        self.assertEqual(len(calls), 2)

    def test_clear_cache(self):
        cache_manager.cached_forecast(Coordinates(1, 1), _series)
        cache_manager.clear_cache()
        self.assertEqual(len(cache_manager.get_cache()), 0)


if __name__ == "__main__":
    unittest.main()
