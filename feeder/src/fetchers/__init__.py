"""
Price fetchers for oracle price sources.

Usage:
    from feeder.src.fetchers import get_fetcher

    fetcher = get_fetcher("https://prices.example.com/latest")
    quotes = await fetcher.fetch()
    # {'krw': [Decimal('5436.1')], 'usd': [Decimal('4.52')]}
"""

from .base import (
    BaseFetcher,
    FetcherError,
    FetcherHTTPError,
    parse_price,
)
from .price_server import PriceServerFetcher


def get_fetcher(source: str, timeout: float | None = None) -> BaseFetcher:
    """Get a fetcher instance for a source endpoint.

    :param source: Source URL (http or https).
    :param timeout: Optional request timeout in seconds.
    :returns: Fetcher instance.
    :raises ValueError: If the source is not an HTTP URL.
    """
    if not source.startswith(("http://", "https://")):
        raise ValueError(f"Unsupported price source '{source}'. Expected an http(s) URL")
    return PriceServerFetcher(source, timeout=timeout)


__all__ = [
    "BaseFetcher",
    "FetcherError",
    "FetcherHTTPError",
    "PriceServerFetcher",
    "get_fetcher",
    "parse_price",
]
