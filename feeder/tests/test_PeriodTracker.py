"""Unit tests for PeriodTracker."""

import logging

import pytest

from feeder.src.PeriodTracker import MAX_STALE_READS, PeriodStatus, PeriodTracker, StaleHeightError


class TestPeriodTrackerInit:
    """Test PeriodTracker initialization."""

    def test_default_period_length(self) -> None:
        """Default period length should be 10 blocks."""
        assert PeriodTracker().period_length == 10

    def test_period_length_below_two_rejected(self) -> None:
        """A period of one block has no prevote window."""
        with pytest.raises(ValueError, match="period_length must be at least 2"):
            PeriodTracker(period_length=1)

        with pytest.raises(ValueError, match="period_length must be at least 2"):
            PeriodTracker(period_length=0)


class TestVotePeriod:
    """Test height to vote period conversion."""

    @pytest.mark.parametrize("period_length", [2, 3, 5, 10, 17])
    def test_integer_division(self, period_length: int) -> None:
        """Vote period should be height // period_length."""
        tracker = PeriodTracker(period_length)
        for height in range(0, 200):
            assert tracker.vote_period(height) == height // period_length

    @pytest.mark.parametrize("period_length", [2, 5, 10])
    def test_monotonic(self, period_length: int) -> None:
        """Vote period should never decrease as height increases."""
        tracker = PeriodTracker(period_length)
        periods = [tracker.vote_period(h) for h in range(0, 100)]
        assert periods == sorted(periods)


class TestPrevoteWindow:
    """Test prevote window detection."""

    def test_all_but_last_block(self) -> None:
        """Prevotes should be open for every block but the last of a period."""
        tracker = PeriodTracker(10)
        for offset in range(9):
            assert tracker.is_prevote_window(100 + offset)
        assert not tracker.is_prevote_window(109)

    def test_two_block_period(self) -> None:
        """Smallest period: first block prevote, second reveal only."""
        tracker = PeriodTracker(2)
        assert tracker.is_prevote_window(4)
        assert not tracker.is_prevote_window(5)


class TestObserve:
    """Test height observation."""

    def test_scenario_height_104(self) -> None:
        """Height 104 with period 10 is period 10 with prevotes open."""
        status = PeriodTracker(10).observe(104)
        assert status == PeriodStatus(height=104, vote_period=10, prevote_window=True)

    def test_tracks_last_period(self) -> None:
        """Observed periods should be remembered."""
        tracker = PeriodTracker(10)
        tracker.observe(104)
        assert tracker.last_period == 10
        tracker.observe(112)
        assert tracker.last_period == 11

    def test_same_period_allowed(self) -> None:
        """A lower height within the same period is not stale."""
        tracker = PeriodTracker(10)
        tracker.observe(107)
        status = tracker.observe(103)
        assert status.vote_period == 10

    def test_earlier_period_rejected(self) -> None:
        """A height from an earlier period should raise StaleHeightError."""
        tracker = PeriodTracker(10)
        tracker.observe(112)
        with pytest.raises(StaleHeightError):
            tracker.observe(109)
        assert tracker.last_period == 11

    def test_follows_chain_after_repeated_stale_reads(self) -> None:
        """A chain that stays behind is followed after MAX_STALE_READS reads."""
        tracker = PeriodTracker(10)
        tracker.observe(5000)

        for height in (10, 20):
            with pytest.raises(StaleHeightError):
                tracker.observe(height)
        assert tracker.last_period == 500

        status = tracker.observe(34)
        assert status == PeriodStatus(height=34, vote_period=3, prevote_window=True)
        assert tracker.last_period == 3
        assert tracker.stale_reads == 0
        assert tracker.observe(45).vote_period == 4

    def test_fresh_read_resets_stale_count(self) -> None:
        """A fresh read in between should restart the stale read count."""
        tracker = PeriodTracker(10)
        tracker.observe(112)
        for _ in range(MAX_STALE_READS - 1):
            with pytest.raises(StaleHeightError):
                tracker.observe(109)
        tracker.observe(115)

        with pytest.raises(StaleHeightError):
            tracker.observe(109)
        assert tracker.last_period == 11

    def test_rebase_logged(self, caplog) -> None:
        """Following the chain back should be logged as an error."""
        tracker = PeriodTracker(10)
        tracker.observe(5000)
        for _ in range(MAX_STALE_READS - 1):
            with pytest.raises(StaleHeightError):
                tracker.observe(4989)

        with caplog.at_level(logging.ERROR, logger="feeder.src.PeriodTracker"):
            tracker.observe(4989)
        assert "following it back to period 498" in caplog.text

    def test_negative_height_rejected(self) -> None:
        """Negative heights should raise ValueError."""
        with pytest.raises(ValueError, match="Invalid block height"):
            PeriodTracker().observe(-1)
