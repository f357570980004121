"""Exception taxonomy shared by providers, the pipeline and the HTTP layer."""


class MoongazerError(Exception):
    """Base exception for moongazer errors."""


class InvalidInput(MoongazerError):
    """Raised when a request is missing required input (rendered as HTTP 400)."""


class InvalidCoordinates(InvalidInput, ValueError):
    """Raised when latitude/longitude are not finite or out of range."""


class LocationNotFound(MoongazerError):
    """Raised when no geocoder matched the location text."""

    def __init__(self, location_text: str) -> None:
        super().__init__(f"Location not found: {location_text}")
        self.location_text = location_text


class ForecastUnavailable(MoongazerError):
    """Raised when every weather provider failed."""


class ProviderError(MoongazerError):
    """A single upstream provider failed; fallback chains absorb these."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderTimeout(ProviderError):
    """The provider did not answer within the configured timeout."""


class MalformedPayload(ProviderError):
    """The provider answered, but not in a shape we can normalize."""
