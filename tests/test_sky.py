import datetime as dt
import tempfile
import unittest
from pathlib import Path

from moongazer import astro
from moongazer.data_sources import sky
from moongazer.domain import Coordinates, MoonImpact, SkySnapshot
from moongazer.errors import MalformedPayload, ProviderError, ProviderTimeout

NAPERVILLE = Coordinates(41.75, -88.15)


class TestPhaseMath(unittest.TestCase):
    def test_phase_buckets_cover_unit_interval_without_overlap(self):
        uppers = [upper for upper, _ in astro.PHASE_BUCKETS]
        self.assertEqual(uppers, sorted(uppers))
        self.assertEqual(len(set(uppers)), len(uppers))
        self.assertEqual(uppers[-1], 1.0)
        names = {name for _, name in astro.PHASE_BUCKETS}
        self.assertEqual(len(names), 8)
        for i in range(1000):
            self.assertIn(astro.phase_name(i / 1000), names)

    def test_phase_boundaries(self):
        self.assertEqual(astro.phase_name(0.0), "New Moon")
        self.assertEqual(astro.phase_name(0.0624), "New Moon")
        self.assertEqual(astro.phase_name(0.0625), "Waxing Crescent")
        self.assertEqual(astro.phase_name(0.25), "First Quarter")
        self.assertEqual(astro.phase_name(0.5), "Full Moon")
        self.assertEqual(astro.phase_name(0.75), "Last Quarter")
        self.assertEqual(astro.phase_name(0.8125), "Waning Crescent")
        self.assertEqual(astro.phase_name(1.0), "New Moon")

    def test_illumination_formula(self):
        self.assertEqual(astro.illumination_percent(0.0), 0)
        self.assertEqual(astro.illumination_percent(0.25), 50)
        self.assertEqual(astro.illumination_percent(0.5), 100)
        self.assertEqual(astro.illumination_percent(0.75), 50)

    def test_known_full_and_new_moon(self):
        full = dt.datetime(2024, 1, 25, 17, 54, tzinfo=dt.timezone.utc)
        new = dt.datetime(2024, 1, 11, 11, 57, tzinfo=dt.timezone.utc)
        full_fraction = astro.moon_phase_fraction(full)
        self.assertEqual(astro.phase_name(full_fraction), "Full Moon")
        self.assertGreaterEqual(astro.illumination_percent(full_fraction), 95)
        self.assertLessEqual(astro.illumination_percent(astro.moon_phase_fraction(new)), 5)

    def test_moon_altitude_is_an_angle(self):
        when = dt.datetime(2024, 3, 1, 3, tzinfo=dt.timezone.utc)
        altitude = astro.moon_altitude_deg(when, 41.75, -88.15)
        self.assertGreaterEqual(altitude, -90.0)
        self.assertLessEqual(altitude, 90.0)


class TestBrightStars(unittest.TestCase):
    def test_shipped_catalog_first_five_bright_stars(self):
        from moongazer.config import settings

        stars = sky.load_bright_stars(Path(settings.star_catalog_path))
        self.assertEqual(
            sky.bright_star_names(stars),
            ("Achernar", "Hamal", "Polaris", "Mirfak", "Aldebaran"),
        )

    def test_malformed_rows_are_skipped(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "stars.csv"
            path.write_text("name,ra,dec,mag\nVega,279.2,38.8,0.03\nBroken,x,1,1\n,1,1,1\n", encoding="utf-8")
            stars = sky.load_bright_stars(path)
        self.assertEqual([s.name for s in stars], ["Vega"])

    def test_missing_catalog_raises(self):
        with self.assertRaises(FileNotFoundError):
            sky.load_bright_stars(Path("/nonexistent/stars.csv"))


class TestMoonImpact(unittest.TestCase):
    def test_thresholds(self):
        self.assertEqual(sky.moon_impact(29, True), MoonImpact.LOW)
        self.assertEqual(sky.moon_impact(30, True), MoonImpact.MEDIUM)
        self.assertEqual(sky.moon_impact(59, True), MoonImpact.MEDIUM)
        self.assertEqual(sky.moon_impact(60, True), MoonImpact.HIGH)

    def test_moon_below_horizon_is_low(self):
        self.assertEqual(sky.moon_impact(100, False), MoonImpact.LOW)

    def test_unknown_altitude_counts_as_below_horizon(self):
        snap = SkySnapshot(moon_phase="Full Moon", moon_illumination=100)
        self.assertFalse(snap.moon_visible)
        self.assertFalse(SkySnapshot(moon_phase="Full Moon", moon_illumination=100, moon_altitude=-3.0).moon_visible)
        self.assertTrue(SkySnapshot(moon_phase="Full Moon", moon_illumination=100, moon_altitude=0.5).moon_visible)

    def test_bright_moon_without_altitude_is_low_impact(self):
        snap = sky.parse_astrospheric_sky({"data": {"moon": {"phase": "Full Moon", "illumination": 95}, "objects": []}})
        self.assertIsNone(snap.moon_altitude)
        self.assertEqual(sky.moon_impact(snap.moon_illumination, snap.moon_visible), MoonImpact.LOW)


class TestAstrosphericSky(unittest.TestCase):
    def test_parse_keeps_objects_above_horizon(self):
        payload = {
            "data": {
                "moon": {"phase": "Waxing Gibbous", "illumination": 72.4, "altitude": 31.5},
                "objects": [
                    {"name": "Jupiter", "type": 1, "alt": 40.0},
                    {"name": "Mars", "type": 1, "alt": -5.0},
                    {"name": "Vega", "type": 0, "alt": 60.0},
                    {"name": "Sirius", "type": 0, "alt": None},
                    {"type": 0, "alt": 10.0},
                ],
            }
        }
        snap = sky.parse_astrospheric_sky(payload)
        self.assertEqual(snap.moon_phase, "Waxing Gibbous")
        self.assertEqual(snap.moon_illumination, 72)
        self.assertEqual(snap.moon_altitude, 31.5)
        self.assertEqual(snap.planets, ("Jupiter",))
        self.assertEqual(snap.stars, ("Vega",))
        self.assertEqual(snap.source, "astrospheric")

    def test_parse_without_moon_is_malformed(self):
        with self.assertRaises(MalformedPayload):
            sky.parse_astrospheric_sky({"data": {"objects": []}})

    def test_fetch_without_key_is_a_provider_error(self):
        with self.assertRaises(ProviderError):
            sky.fetch_astrospheric_sky(NAPERVILLE, dt.datetime.now(dt.timezone.utc), "UTC", api_key="")


class TestSkyDataProvider(unittest.TestCase):
    def test_primary_failure_falls_back_to_local_snapshot(self):
        def primary(coords, instant, timezone):
            raise ProviderTimeout("astrospheric", "timed out")

        provider = sky.SkyDataProvider(primary=primary)
        when = dt.datetime(2024, 1, 25, 18, tzinfo=dt.timezone.utc)
        snap = provider.fetch(NAPERVILLE, when, "America/Chicago")

        self.assertEqual(snap.source, "local")
        self.assertEqual(snap.moon_phase, "Full Moon")
        self.assertEqual(snap.planets, ("Jupiter", "Saturn"))
        self.assertEqual(len(snap.stars), 5)
        self.assertIsNotNone(snap.moon_altitude)

    def test_primary_result_is_used_when_available(self):
        expected = SkySnapshot(moon_phase="New Moon", moon_illumination=1, source="astrospheric")
        calls = []

        def fallback(coords, instant):
            calls.append(instant)
            return None

        provider = sky.SkyDataProvider(primary=lambda c, i, tz: expected, fallback=fallback)
        self.assertIs(provider.fetch(NAPERVILLE, dt.datetime.now(dt.timezone.utc), "UTC"), expected)
        self.assertEqual(calls, [])


if __name__ == "__main__":
    unittest.main()
