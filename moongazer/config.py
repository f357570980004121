"""Application configuration pulled from environment variables via pydantic."""
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")

_DEFAULT_STAR_CATALOG = Path(__file__).resolve().parent / "data" / "bright_stars.csv"


class Settings(BaseSettings):
    """Environment-driven configuration for the moongazer service."""
    model_config = SettingsConfigDict(env_prefix="MOONGAZER_", extra="ignore")

    # Provider credentials; a missing key skips that provider in its fallback chain.
    astrospheric_key: str | None = None
    timezonedb_key: str | None = None

    user_agent: str = "Moongazers-App/1.0"
    provider_timeout_seconds: float = 5.0
    fallback_timeout_seconds: float = 10.0
    geocode_timeout_seconds: float = 10.0

    forecast_hours: int = 72
    open_meteo_forecast_days: int = 4

    cache_redis_url: str | None = None
    geocode_ttl_seconds: int = 60 * 60 * 24 * 30
    forecast_ttl_seconds: int = 60 * 60 * 6
    sky_ttl_seconds: int = 60 * 60 * 12

    max_windows: int = 3
    enrichment_workers: int = 3
    star_catalog_path: Path = _DEFAULT_STAR_CATALOG
    log_level: str = "INFO"

    @field_validator("user_agent", mode="after")
    @classmethod
    def require_user_agent(cls, v: str) -> str:
        """Public geocoders reject anonymous clients, so the agent string may not be blank."""
        v = str(v).strip()
        if not v:
            raise ValueError("user_agent must not be empty")
        return v

    @field_validator("enrichment_workers", "max_windows", mode="after")
    @classmethod
    def at_least_one(cls, v: int) -> int:
        """Clamp pool/window sizes to a usable minimum."""
        return max(1, int(v))


settings = Settings()


if __name__ == "__main__":
    logger.logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4, exclude={'astrospheric_key', 'timezonedb_key'})}")
