"""Price server fetcher.

Endpoint: any URL serving the price-server JSON document
Response: {"created_at": "...", "prices": [{"currency": "KRW", "price": "..."}, ...]}
Quotes are denominated in LUNA.
"""

import logging
from decimal import Decimal

from .base import BaseFetcher, FetcherError, parse_price

logger = logging.getLogger(__name__)


class PriceServerFetcher(BaseFetcher):
    """Fetcher for a price-server endpoint.

    One request returns every currency the server tracks, so a single call
    covers all denoms. Currencies appearing more than once are kept as
    separate quotes.
    """

    async def fetch(self) -> dict[str, list[Decimal]]:
        """Fetch all quotes from the price server.

        :returns: Dict mapping lowercase currency to its quoted prices.
        :raises FetcherError: On network errors or an unusable document.
        """
        response = await self._get(self.url)

        try:
            data = response.json()
            entries = data["prices"]
        except (KeyError, ValueError, TypeError) as e:
            raise FetcherError(f"Malformed price document from {self.url}: {e}") from e

        if not isinstance(entries, list):
            raise FetcherError(f"Malformed price document from {self.url}: 'prices' is not a list")

        quotes: dict[str, list[Decimal]] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            currency = entry.get("currency")
            price = parse_price(entry.get("price"))
            if not isinstance(currency, str) or not currency.strip() or price is None:
                logger.debug(f"[{self.url}] Skipping invalid quote: {entry}")
                continue
            quotes.setdefault(currency.strip().lower(), []).append(price)

        if not quotes:
            raise FetcherError(f"No valid prices from {self.url}")

        return quotes
