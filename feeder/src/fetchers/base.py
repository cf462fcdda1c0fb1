"""Base fetcher interface and shared HTTP client management.

All price fetchers inherit from BaseFetcher and implement the fetch() method.
A shared httpx.AsyncClient is used across all fetchers to avoid connection overhead.

A fetcher is bound to one source endpoint and returns every quote it found,
keyed by lowercase currency symbol. Duplicate quotes are kept so that the
aggregator can reduce them with a single rule.

.. code-block:: python

    class MyFetcher(BaseFetcher):
        async def fetch(self) -> dict[str, list[Decimal]]:
            response = await self._get(self.url)
            return {"krw": [Decimal(response.json()["krw"])]}
"""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import ClassVar

import httpx

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


def parse_price(value: object) -> Decimal | None:
    """Convert a quoted price into a positive Decimal.

    :param value: Raw price from a JSON payload (string or number).
    :returns: Price as Decimal, or None if missing, malformed or not positive.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


class BaseFetcher(ABC):
    """Abstract base class for price fetchers.

    Subclasses must implement:
        - fetch(): Async method returning all quotes from the source

    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar url: Source endpoint.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Default timeout for HTTP requests (seconds)
    DEFAULT_TIMEOUT = 10.0

    def __init__(self, url: str, timeout: float | None = None):
        """Initialize the fetcher.

        :param url: Source endpoint URL.
        :param timeout: Request timeout in seconds (default: 10).
        """
        self.url = url
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    def __repr__(self) -> str:
        """Return a developer-friendly string representation."""
        return f"{type(self).__name__}({self.url!r})"

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all fetcher instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        if BaseFetcher._shared_client is None or BaseFetcher._shared_client.is_closed:
            BaseFetcher._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return BaseFetcher._shared_client

    @classmethod
    def set_shared_client(cls, client: httpx.AsyncClient | None) -> None:
        """Replace the shared HTTP client (e.g., with a mocked transport).

        :param client: Client to share, or None to recreate lazily.
        """
        BaseFetcher._shared_client = client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseFetcher._shared_client = None

    @abstractmethod
    async def fetch(self) -> dict[str, list[Decimal]]:
        """Fetch all quotes published by the source.

        :returns: Dict mapping lowercase symbol to every valid price seen for it.
        :raises FetcherError: If the source is unreachable or returns garbage.
        """
        pass

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherError: On network/timeout errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise FetcherHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise FetcherError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e
