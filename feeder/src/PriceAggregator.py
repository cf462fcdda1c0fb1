"""PriceAggregator: First-success price aggregation across sources.

Algorithm:
    1. Request every configured source concurrently
    2. Take the first source that answers with at least one valid quote
    3. Cancel the remaining requests
    4. Reduce duplicate quotes for the same currency to their median
    5. Return an empty observation if every source failed

Prices from different sources are never mixed: one healthy source is enough
for a vote, and waiting for the slowest one only adds latency.

.. code-block:: python

    >>> aggregator = PriceAggregator(fetch_timeout=5.0)
    >>> observation = await aggregator.fetch(["https://a.example/latest"])
    >>> observation.source
    'https://a.example/latest'
    >>> observation["krw"]
    Decimal('5436.1')
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from statistics import median as _median
from types import MappingProxyType
from typing import Callable

from .fetchers import BaseFetcher, FetcherError, get_fetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceObservation(Mapping[str, Decimal]):
    """One price per currency symbol, taken from a single source.

    :ivar prices: Read-only mapping of lowercase symbol to price.
    :ivar source: Source the prices came from, or None if empty.
    """

    prices: Mapping[str, Decimal] = field(default_factory=dict)
    source: str | None = None

    def __post_init__(self) -> None:
        normalized = {symbol.lower(): price for symbol, price in self.prices.items()}
        object.__setattr__(self, "prices", MappingProxyType(normalized))

    def __getitem__(self, symbol: str) -> Decimal:
        return self.prices[symbol.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self.prices)

    def __len__(self) -> int:
        return len(self.prices)

    @classmethod
    def empty(cls) -> PriceObservation:
        """Observation used when no source answered."""
        return cls({}, None)


def reduce_quotes(quotes: Mapping[str, list[Decimal]]) -> dict[str, Decimal]:
    """Reduce each currency's quotes to a single price.

    :param quotes: Dict mapping symbol to all prices seen for it.
    :returns: Dict mapping symbol to the median of its prices.

    .. code-block:: python

        >>> reduce_quotes({"krw": [Decimal("3"), Decimal("1"), Decimal("2")]})
        {'krw': Decimal('2')}
    """
    return {
        symbol.lower(): _median(prices)
        for symbol, prices in quotes.items()
        if prices
    }


class PriceAggregator:
    """Races price sources and keeps the first successful answer.

    :ivar fetch_timeout: Timeout for each source request in seconds.
    """

    def __init__(
        self,
        fetch_timeout: float = 10.0,
        fetcher_factory: Callable[[str], BaseFetcher] | None = None,
    ) -> None:
        """Initialize the aggregator.

        :param fetch_timeout: Timeout for each source request (default: 10.0).
        :param fetcher_factory: Builds a fetcher for a source URL. Defaults to
            get_fetcher.
        :raises ValueError: If the timeout is not positive.
        """
        if fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be positive")

        self.fetch_timeout = fetch_timeout
        self._fetcher_factory = fetcher_factory or (
            lambda source: get_fetcher(source, timeout=fetch_timeout)
        )
        self._fetchers: dict[str, BaseFetcher] = {}

    def _get_fetcher(self, source: str) -> BaseFetcher:
        if source not in self._fetchers:
            self._fetchers[source] = self._fetcher_factory(source)
        return self._fetchers[source]

    async def fetch(self, sources: list[str]) -> PriceObservation:
        """Fetch prices from the first source to answer successfully.

        :param sources: Ordered list of source URLs.
        :returns: PriceObservation, empty if every source failed.
        """
        if not sources:
            return PriceObservation.empty()

        tasks = [
            asyncio.ensure_future(self._fetch_source(source, self._get_fetcher(source)))
            for source in sources
        ]

        try:
            for next_done in asyncio.as_completed(tasks):
                source, quotes = await next_done
                if quotes:
                    observation = PriceObservation(reduce_quotes(quotes), source)
                    logger.debug(
                        f"Using prices from {source}: "
                        f"{', '.join(f'{s}={p}' for s, p in observation.items())}"
                    )
                    return observation
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.warning(f"All {len(sources)} price sources failed")
        return PriceObservation.empty()

    async def _fetch_source(
        self,
        source: str,
        fetcher: BaseFetcher,
    ) -> tuple[str, dict[str, list[Decimal]] | None]:
        """Fetch one source with timeout.

        :param source: Source URL, used for logging and result tagging.
        :param fetcher: Fetcher bound to the source.
        :returns: Tuple of (source, quotes), quotes being None on failure.
        """
        try:
            quotes = await asyncio.wait_for(fetcher.fetch(), timeout=self.fetch_timeout)
            return source, quotes
        except asyncio.TimeoutError:
            logger.warning(f"[{source}] Timeout fetching prices")
        except FetcherError as e:
            logger.warning(f"[{source}] Failed to fetch prices: {e}")
        except Exception as e:
            logger.warning(f"[{source}] Unexpected error fetching prices: {e}")
        return source, None
