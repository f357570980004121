"""Low-precision sun/moon positions for the offline sky fallback.

Good to roughly a degree, which is plenty for naming a moon phase and deciding
whether the moon is above the horizon.
"""
import datetime
import math

J2000 = 2451545.0

# Upper bounds of the eight named phases, as a fraction of the synodic month.
PHASE_BUCKETS = (
    (1 / 16, "New Moon"),
    (3 / 16, "Waxing Crescent"),
    (5 / 16, "First Quarter"),
    (7 / 16, "Waxing Gibbous"),
    (9 / 16, "Full Moon"),
    (11 / 16, "Waning Gibbous"),
    (13 / 16, "Last Quarter"),
    (1.0, "Waning Crescent"),
)


def julian_date(when: datetime.datetime) -> float:
    if when.tzinfo is None:
        when = when.replace(tzinfo=datetime.timezone.utc)
    when = when.astimezone(datetime.timezone.utc)
    year, month = when.year, when.month
    day = when.day + (when.hour + (when.minute + when.second / 60.0) / 60.0) / 24.0
    if month <= 2:
        year -= 1
        month += 12
    a = math.floor(year / 100)
    b = 2 - a + math.floor(a / 4)
    return math.floor(365.25 * (year + 4716)) + math.floor(30.6001 * (month + 1)) + day + b - 1524.5


def _days_since_j2000(when: datetime.datetime) -> float:
    return julian_date(when) - J2000


def sun_ecliptic_longitude_deg(when: datetime.datetime) -> float:
    n = _days_since_j2000(when)
    mean_lon = 280.460 + 0.9856474 * n
    g = math.radians(357.528 + 0.9856003 * n)
    return (mean_lon + 1.915 * math.sin(g) + 0.020 * math.sin(2 * g)) % 360.0


def moon_ecliptic_deg(when: datetime.datetime) -> tuple[float, float]:
    """Geocentric ecliptic (longitude, latitude) of the moon in degrees."""
    n = _days_since_j2000(when)
    mean_lon = 218.316 + 13.176396 * n
    mean_anomaly = math.radians(134.963 + 13.064993 * n)
    arg_latitude = math.radians(93.272 + 13.229350 * n)
    lon = (mean_lon + 6.289 * math.sin(mean_anomaly)) % 360.0
    lat = 5.128 * math.sin(arg_latitude)
    return lon, lat


def moon_phase_fraction(when: datetime.datetime) -> float:
    """Position in the synodic cycle: 0 new, 0.25 first quarter, 0.5 full, 0.75 last quarter."""
    moon_lon, _ = moon_ecliptic_deg(when)
    elongation = (moon_lon - sun_ecliptic_longitude_deg(when)) % 360.0
    return elongation / 360.0


def illumination_percent(phase_fraction: float) -> int:
    return round(100 * (1 - 2 * abs(0.5 - phase_fraction)))


def phase_name(phase_fraction: float) -> str:
    """Name one of eight phases; fractions wrap into [0, 1)."""
    fraction = phase_fraction % 1.0
    for upper, name in PHASE_BUCKETS:
        if fraction < upper:
            return name
    return PHASE_BUCKETS[-1][1]


def _gmst_deg(when: datetime.datetime) -> float:
    gmst_hours = 18.697374558 + 24.06570982441908 * _days_since_j2000(when)
    return (gmst_hours % 24.0) * 15.0


def moon_altitude_deg(when: datetime.datetime, latitude: float, longitude: float) -> float:
    """Altitude of the moon above the observer's horizon (no parallax/refraction)."""
    n = _days_since_j2000(when)
    lon_deg, lat_deg = moon_ecliptic_deg(when)
    lam, beta = math.radians(lon_deg), math.radians(lat_deg)
    eps = math.radians(23.439 - 0.0000004 * n)

    sin_dec = math.sin(beta) * math.cos(eps) + math.cos(beta) * math.sin(eps) * math.sin(lam)
    dec = math.asin(max(-1.0, min(1.0, sin_dec)))
    ra = math.atan2(math.sin(lam) * math.cos(eps) - math.tan(beta) * math.sin(eps), math.cos(lam))

    hour_angle = math.radians((_gmst_deg(when) + longitude) % 360.0) - ra
    phi = math.radians(latitude)
    sin_alt = math.sin(dec) * math.sin(phi) + math.cos(dec) * math.cos(phi) * math.cos(hour_angle)
    return math.degrees(math.asin(max(-1.0, min(1.0, sin_alt))))
