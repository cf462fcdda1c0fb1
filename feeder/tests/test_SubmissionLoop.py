"""Unit tests for SubmissionLoop."""

import asyncio
import itertools
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from feeder.src.CommitRevealScheduler import CommitRevealScheduler
from feeder.src.LcdClient import ChainQueryError, LcdError, SubmissionResult
from feeder.src.PeriodTracker import PeriodTracker
from feeder.src.PriceAggregator import PriceObservation
from feeder.src.SequenceManager import AccountState
from feeder.src.Signer import Signer, SigningError
from feeder.src.SubmissionLoop import SubmissionLoop

FEEDER = "terra1feeder"
VALIDATOR = "terravaloper1validator"
PRICES = {"krw": Decimal("5436.12"), "usd": Decimal("4.52")}


class FakeAggregator:
    """Aggregator returning canned observations."""

    def __init__(self, prices=PRICES):
        self.prices = prices

    async def fetch(self, sources):
        if not self.prices:
            return PriceObservation.empty()
        return PriceObservation(self.prices, sources[0])


class FakeLcd:
    """LCD answering from scripted heights and sequences."""

    def __init__(self, heights, sequences=None, results=None):
        self.heights = list(heights)
        self.sequences = list(sequences or [])
        self.results = list(results or [])
        self.bodies = []
        self.closed = False

    async def latest_block_height(self):
        height = self.heights.pop(0)
        if isinstance(height, Exception):
            raise height
        return height

    async def account_state(self, address):
        sequence = self.sequences.pop(0) if self.sequences else 0
        if sequence is None:
            return None
        return AccountState(account_number="42", sequence=sequence)

    async def broadcast(self, body):
        self.bodies.append(body)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return SubmissionResult(height=100 + len(self.bodies), txhash=f"TX{len(self.bodies)}")

    async def close(self):
        self.closed = True


class FakeSigner(Signer):
    """Signer recording the account states it signed with."""

    def __init__(self, error=None):
        self.error = error
        self.accounts = []
        self.closed = False

    async def sign(self, sign_doc, account):
        if self.error is not None:
            raise self.error
        self.accounts.append(account)
        return self.std_signature(b"\x01" * 64, b"\x02" * 33, account)

    async def close(self):
        self.closed = True


def make_loop(lcd, signer=None, aggregator=None, **kwargs) -> SubmissionLoop:
    salts = (f"s{i}" for i in itertools.count())
    scheduler = CommitRevealScheduler(FEEDER, VALIDATOR, salt_fn=lambda: next(salts))
    return SubmissionLoop(
        sources=["https://prices.example/latest"],
        feeder=FEEDER,
        chain_id="columbus-3",
        aggregator=aggregator or FakeAggregator(),
        lcd=lcd,
        signer=signer or FakeSigner(),
        scheduler=scheduler,
        tracker=PeriodTracker(10),
        **kwargs,
    )


def message_types(body):
    return [message["type"] for message in body["tx"]["msg"]]


class TestSubmissionLoopInit:
    """Test SubmissionLoop construction."""

    def test_requires_sources(self) -> None:
        """An empty source list should raise ValueError."""
        with pytest.raises(ValueError, match="At least one price source"):
            SubmissionLoop(
                sources=[],
                feeder=FEEDER,
                chain_id="c",
                aggregator=FakeAggregator(),
                lcd=FakeLcd([]),
                signer=FakeSigner(),
                scheduler=CommitRevealScheduler(FEEDER, VALIDATOR),
            )

    def test_negative_interval(self) -> None:
        """Negative intervals should raise ValueError."""
        with pytest.raises(ValueError, match="must not be negative"):
            make_loop(FakeLcd([]), min_interval=-1)

    def test_sleep_duration(self) -> None:
        """Sleep should fill up the target interval but never drop below the minimum."""
        loop = make_loop(FakeLcd([]), target_interval=15.0, min_interval=10.0)
        assert loop.sleep_duration(2.0) == 13.0
        assert loop.sleep_duration(8.0) == 10.0
        assert loop.sleep_duration(30.0) == 10.0


class TestRunIteration:
    """Test single iterations."""

    def test_first_iteration_prevotes_only(self) -> None:
        """Without pending commits only prevotes are broadcast."""
        lcd = FakeLcd([104], [7])
        loop = make_loop(lcd)

        report = asyncio.run(loop.run_iteration())

        assert report.votes == 0
        assert report.prevotes == 2
        assert len(lcd.bodies) == 1
        assert message_types(lcd.bodies[0]) == ["oracle/MsgPricePrevote"] * 2
        assert lcd.bodies[0]["mode"] == "block"
        assert set(loop.scheduler.pending) == {"krw", "usd"}

    def test_reveal_then_commit(self) -> None:
        """The next period reveals old commits, then commits fresh prices."""
        lcd = FakeLcd([104, 114], [7, 8])
        signer = FakeSigner()
        loop = make_loop(lcd, signer=signer)

        async def two_iterations():
            await loop.run_iteration()
            return await loop.run_iteration()

        report = asyncio.run(two_iterations())

        assert report.votes == 2
        assert report.prevotes == 2
        assert [message_types(body)[0] for body in lcd.bodies] == [
            "oracle/MsgPricePrevote",
            "oracle/MsgPriceVote",
            "oracle/MsgPricePrevote",
        ]

        votes = lcd.bodies[1]["tx"]["msg"]
        assert [v["value"]["denom"] for v in votes] == ["ukrw", "uusd"]
        assert [v["value"]["salt"] for v in votes] == ["s0", "s1"]
        assert votes[0]["value"]["price"] == "5436.120000000000000000"

        # Vote and prevote in one iteration use consecutive sequences.
        assert [account.sequence for account in signer.accounts] == [7, 8, 9]
        assert all(r.success for r in report.results)
        assert {c.vote_period for c in loop.scheduler.pending.values()} == {11}

    def test_same_period_does_nothing(self) -> None:
        """A second iteration in the same period neither reveals nor commits."""
        lcd = FakeLcd([104, 106], [7, 8])
        loop = make_loop(lcd)

        async def two_iterations():
            await loop.run_iteration()
            return await loop.run_iteration()

        report = asyncio.run(two_iterations())
        assert report.votes == 0
        assert report.prevotes == 0
        assert len(lcd.bodies) == 1

    def test_reveal_window_no_prevotes(self) -> None:
        """The last block of a period is reveal only."""
        lcd = FakeLcd([109], [7])
        report = asyncio.run(make_loop(lcd).run_iteration())

        assert report.status.prevote_window is False
        assert report.prevotes == 0
        assert lcd.bodies == []

    def test_no_prices(self) -> None:
        """Without prices nothing is queried or broadcast."""
        lcd = FakeLcd([104], [7])
        loop = make_loop(lcd, aggregator=FakeAggregator(prices={}))

        report = asyncio.run(loop.run_iteration())

        assert report.skipped == "no prices"
        assert lcd.heights == [104]
        assert lcd.bodies == []

    def test_account_not_found(self) -> None:
        """An unknown account should skip broadcasting."""
        lcd = FakeLcd([104], [None])
        report = asyncio.run(make_loop(lcd).run_iteration())

        assert report.skipped == "account not found"
        assert lcd.bodies == []

    def test_signing_failure_keeps_state(self) -> None:
        """A signing failure should not create pending commits."""
        lcd = FakeLcd([104], [7])
        loop = make_loop(lcd, signer=FakeSigner(error=SigningError("device locked")))

        report = asyncio.run(loop.run_iteration())

        assert report.prevotes == 2
        assert len(report.results) == 1
        assert not report.results[0].success
        assert "device locked" in report.results[0].reason
        assert lcd.bodies == []
        assert loop.scheduler.pending == {}

    def test_rejected_prevote_not_committed(self) -> None:
        """A rejected transaction should leave pending commits untouched."""
        lcd = FakeLcd([104], [7], results=[SubmissionResult(height=None, code=4, reason="bad sig")])
        loop = make_loop(lcd)

        report = asyncio.run(loop.run_iteration())

        assert not report.results[0].success
        assert loop.scheduler.pending == {}
        assert loop.sequence.current().sequence == 7

    def test_failed_vote_keeps_commit(self) -> None:
        """A failed reveal keeps the commit and blocks a new prevote."""
        lcd = FakeLcd([104, 114], [7, 8], results=[
            SubmissionResult(height=105, txhash="A"),
            LcdError("connection reset"),
        ])
        loop = make_loop(lcd)

        async def two_iterations():
            await loop.run_iteration()
            return await loop.run_iteration()

        report = asyncio.run(two_iterations())

        assert report.votes == 2
        assert report.prevotes == 0
        assert not report.results[0].success
        assert {c.vote_period for c in loop.scheduler.pending.values()} == {10}

    def test_chain_query_error_propagates(self) -> None:
        """Height query failures should leave the iteration."""
        lcd = FakeLcd([ChainQueryError("GET /blocks/latest failed")], [7])
        with pytest.raises(ChainQueryError):
            asyncio.run(make_loop(lcd).run_iteration())


class StopLoop(Exception):
    """Raised from the patched sleep to end run()."""


class TestRun:
    """Test the endless loop."""

    def test_continues_after_failure(self) -> None:
        """An iteration error should be logged and the loop should go on."""
        lcd = FakeLcd([ChainQueryError("unreachable"), 104], [7])
        signer = FakeSigner()
        loop = make_loop(lcd, signer=signer, target_interval=15.0, min_interval=10.0)
        sleep = AsyncMock(side_effect=[None, StopLoop()])

        with patch("feeder.src.SubmissionLoop.asyncio.sleep", sleep):
            with pytest.raises(StopLoop):
                asyncio.run(loop.run())

        assert sleep.await_count == 2
        assert all(10.0 <= call.args[0] <= 15.0 for call in sleep.await_args_list)
        assert len(lcd.bodies) == 1
        assert lcd.closed
        assert signer.closed
