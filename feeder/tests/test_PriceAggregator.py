"""Unit tests for PriceAggregator."""

import asyncio
from decimal import Decimal

import pytest

from feeder.src.fetchers import BaseFetcher, FetcherError
from feeder.src.PriceAggregator import PriceAggregator, PriceObservation, reduce_quotes


class FakeFetcher(BaseFetcher):
    """Fetcher returning canned quotes after a delay."""

    def __init__(self, url: str, quotes=None, delay: float = 0.0, error: Exception | None = None):
        super().__init__(url)
        self.quotes = quotes
        self.delay = delay
        self.error = error
        self.calls = 0
        self.cancelled = False

    async def fetch(self) -> dict[str, list[Decimal]]:
        self.calls += 1
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.quotes


def make_aggregator(fetchers: dict[str, FakeFetcher], timeout: float = 1.0) -> PriceAggregator:
    return PriceAggregator(fetch_timeout=timeout, fetcher_factory=lambda source: fetchers[source])


class TestPriceAggregatorInit:
    """Test PriceAggregator initialization."""

    def test_default_timeout(self) -> None:
        """Default timeout should be 10 seconds."""
        assert PriceAggregator().fetch_timeout == 10.0

    def test_invalid_timeout(self) -> None:
        """Non-positive timeouts should raise ValueError."""
        with pytest.raises(ValueError, match="fetch_timeout must be positive"):
            PriceAggregator(fetch_timeout=0)


class TestReduceQuotes:
    """Test per-currency reduction."""

    def test_single_quotes(self) -> None:
        """Single quotes should pass through."""
        assert reduce_quotes({"krw": [Decimal("5000")]}) == {"krw": Decimal("5000")}

    def test_duplicates_use_median(self) -> None:
        """Duplicates should reduce to their median, not the last one."""
        result = reduce_quotes({"krw": [Decimal("3"), Decimal("1"), Decimal("2")]})
        assert result == {"krw": Decimal("2")}

    def test_even_duplicates(self) -> None:
        """An even number of quotes averages the middle two."""
        result = reduce_quotes({"usd": [Decimal("1"), Decimal("2")]})
        assert result == {"usd": Decimal("1.5")}

    def test_empty_lists_dropped(self) -> None:
        """Currencies without quotes should be omitted."""
        assert reduce_quotes({"krw": []}) == {}


class TestPriceObservation:
    """Test the observation mapping."""

    def test_case_insensitive_lookup(self) -> None:
        """Lookups should ignore symbol case."""
        observation = PriceObservation({"KRW": Decimal("5000")}, "a")
        assert observation["krw"] == Decimal("5000")
        assert observation["KRW"] == Decimal("5000")
        assert list(observation) == ["krw"]

    def test_immutable(self) -> None:
        """Observations should not be modifiable."""
        observation = PriceObservation({"krw": Decimal("5000")}, "a")
        with pytest.raises(TypeError):
            observation.prices["krw"] = Decimal("1")

    def test_empty(self) -> None:
        """Empty observation is falsy."""
        observation = PriceObservation.empty()
        assert not observation
        assert len(observation) == 0
        assert observation.source is None


class TestPriceAggregatorFetch:
    """Test first-success fetching."""

    def test_first_success_wins(self) -> None:
        """The fastest successful source should be used."""
        fetchers = {
            "slow": FakeFetcher("slow", {"krw": [Decimal("2")]}, delay=0.5),
            "fast": FakeFetcher("fast", {"krw": [Decimal("1")]}, delay=0.0),
        }
        observation = asyncio.run(make_aggregator(fetchers).fetch(["slow", "fast"]))

        assert observation.source == "fast"
        assert observation["krw"] == Decimal("1")
        assert fetchers["slow"].cancelled

    def test_failed_source_falls_through(self) -> None:
        """A failing source should not prevent a slower healthy one."""
        fetchers = {
            "broken": FakeFetcher("broken", error=FetcherError("HTTP 500")),
            "ok": FakeFetcher("ok", {"usd": [Decimal("4.5")]}, delay=0.05),
        }
        observation = asyncio.run(make_aggregator(fetchers).fetch(["broken", "ok"]))

        assert observation.source == "ok"
        assert dict(observation) == {"usd": Decimal("4.5")}

    def test_no_mixing_between_sources(self) -> None:
        """Only currencies from the winning source should be present."""
        fetchers = {
            "a": FakeFetcher("a", {"krw": [Decimal("1")]}),
            "b": FakeFetcher("b", {"usd": [Decimal("2")]}, delay=0.2),
        }
        observation = asyncio.run(make_aggregator(fetchers).fetch(["a", "b"]))
        assert set(observation) == {"krw"}

    def test_empty_answer_is_failure(self) -> None:
        """A source answering without quotes should not win."""
        fetchers = {
            "empty": FakeFetcher("empty", {}),
            "ok": FakeFetcher("ok", {"krw": [Decimal("1")]}, delay=0.05),
        }
        observation = asyncio.run(make_aggregator(fetchers).fetch(["empty", "ok"]))
        assert observation.source == "ok"

    def test_all_sources_fail(self) -> None:
        """All failures should give an empty observation, not an exception."""
        fetchers = {
            "a": FakeFetcher("a", error=FetcherError("down")),
            "b": FakeFetcher("b", error=RuntimeError("boom")),
        }
        observation = asyncio.run(make_aggregator(fetchers).fetch(["a", "b"]))
        assert not observation

    def test_timeout(self) -> None:
        """Sources slower than the timeout should count as failed."""
        fetchers = {"slow": FakeFetcher("slow", {"krw": [Decimal("1")]}, delay=1.0)}
        observation = asyncio.run(make_aggregator(fetchers, timeout=0.05).fetch(["slow"]))
        assert not observation

    def test_no_sources(self) -> None:
        """No sources should give an empty observation."""
        assert not asyncio.run(make_aggregator({}).fetch([]))

    def test_fetchers_reused(self) -> None:
        """The fetcher for a source should be created once."""
        created = []

        def factory(source: str) -> FakeFetcher:
            created.append(source)
            return FakeFetcher(source, {"krw": [Decimal("1")]})

        aggregator = PriceAggregator(fetcher_factory=factory)

        async def run_twice() -> None:
            await aggregator.fetch(["a"])
            await aggregator.fetch(["a"])

        asyncio.run(run_twice())
        assert created == ["a"]
