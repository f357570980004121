"""Interfaces and helpers for provider fallback chains."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, Protocol, Sequence, Tuple, TypeVar

from moongazer.errors import ProviderError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="data_sources/base")

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class Strategy(Protocol[T_co]):
    """One capability-equivalent way of getting a result.

    `attempt` returns None for "no match" and raises ProviderError for a failure;
    chains treat both as a reason to move on.
    """

    name: str

    def attempt(self) -> Optional[T_co]:
        ...


@dataclass
class CallableStrategy(Generic[T]):
    """Wrap a zero-argument callable so it can sit in a fallback chain."""

    name: str
    func: Callable[[], Optional[T]]

    def attempt(self) -> Optional[T]:
        """Delegate to the wrapped callable."""
        return self.func()


def run_chain(strategies: Sequence[Strategy[T]], *, context: str) -> Optional[Tuple[T, str]]:
    """
    Try each strategy in order and return `(result, strategy_name)` for the first success.

    ProviderErrors from a strategy are logged and swallowed; anything else is a
    programming error and propagates. Returns None once every strategy is exhausted.
    """
    for strategy in strategies:
        try:
            result = strategy.attempt()
        except ProviderError as exc:
            logger.warning(
                "Provider failed; trying next in chain",
                extra={"context": context, "strategy": strategy.name, "error": str(exc)},
            )
            continue
        if result is None:
            logger.info("Provider returned no result", extra={"context": context, "strategy": strategy.name})
            continue
        logger.debug("Provider succeeded", extra={"context": context, "strategy": strategy.name})
        return result, strategy.name

    logger.warning("All providers exhausted", extra={"context": context, "tried": [s.name for s in strategies]})
    return None
