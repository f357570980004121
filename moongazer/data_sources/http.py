"""Shared requests session and a JSON GET helper with uniform failure handling."""
from __future__ import annotations

from typing import Any, Mapping, Optional

import requests

from moongazer.config import settings
from moongazer.errors import MalformedPayload, ProviderError, ProviderTimeout
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/http")

# No retry adapter: the only recovery mechanism is the provider fallback chain.
session = requests.Session()
session.headers.update({"User-Agent": settings.user_agent, "Accept": "application/json"})


def get_json(
    provider: str,
    url: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    timeout: float,
    headers: Optional[Mapping[str, str]] = None,
) -> Any:
    """
    GET `url` and decode JSON, raising a ProviderError subclass on any failure.

    `timeout` is the requests connect/read timeout, applied to each socket wait
    rather than the whole call; when it trips the caller sees ProviderTimeout.
    """
    try:
        resp = session.get(url, params=params, headers=headers, timeout=timeout)
    except requests.exceptions.Timeout as exc:
        raise ProviderTimeout(provider, f"timed out after {timeout}s") from exc
    except requests.exceptions.RequestException as exc:
        raise ProviderError(provider, f"request failed: {exc.__class__.__name__}") from exc

    if not 200 <= resp.status_code < 300:
        raise ProviderError(provider, f"HTTP {resp.status_code}")

    try:
        return resp.json()
    except ValueError as exc:
        raise MalformedPayload(provider, "response body is not JSON") from exc
