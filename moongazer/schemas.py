"""Strict response schemas for the best-windows endpoint.

These are the externally visible contract; internal records live in
`moongazer.domain`.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class WeatherSummary(_StrictBaseModel):
    """Window-average weather, rounded to whole units."""
    cloud: int = Field(ge=0, le=100)
    temp: int
    wind: int


class MoonSummary(_StrictBaseModel):
    """Moon conditions at the window midpoint."""
    phase: str
    illum: int = Field(ge=0, le=100)
    impact: Literal["Low", "Medium", "High"]


class ScoredWindow(_StrictBaseModel):
    """One recommended observing window, formatted in the location's local time."""
    start: str
    end: str
    weather: WeatherSummary
    moon: MoonSummary
    planets: List[str] = Field(default_factory=list)
    stars: List[str] = Field(default_factory=list)


class CurrentWeather(_StrictBaseModel):
    """Forecast hour nearest to the request time."""
    temperature: int
    cloud_cover: int = Field(alias="cloudCover", ge=0, le=100)
    sky_quality: str = Field(alias="skyQuality")


class BestWindowsRequest(BaseModel):
    """Incoming request; blank or missing location is rejected by the handler."""
    location: Optional[str] = None


class BestWindowsResponse(_StrictBaseModel):
    """Successful response body."""
    location: str
    windows: List[ScoredWindow] = Field(default_factory=list)
    current_weather: Optional[CurrentWeather] = Field(default=None, alias="currentWeather")


class ErrorResponse(_StrictBaseModel):
    """Error body for every non-2xx response."""
    error: str
