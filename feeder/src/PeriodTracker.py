"""PeriodTracker: Block height to oracle vote period conversion.

The oracle groups blocks into fixed-length vote periods. Prevotes are accepted
during every block of a period except the last one, which is left for reveals
and tallying.

.. code-block:: python

    >>> tracker = PeriodTracker(period_length=10)
    >>> tracker.vote_period(104)
    10
    >>> tracker.is_prevote_window(104)
    True
    >>> tracker.is_prevote_window(109)
    False
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_LENGTH = 10

# Consecutive stale reads after which the tracker follows the chain backwards.
MAX_STALE_READS = 3


class StaleHeightError(Exception):
    """Raised when the chain reports a height from an already passed period."""

    pass


@dataclass(frozen=True)
class PeriodStatus:
    """Position of a block height within the vote period schedule.

    :ivar height: Observed block height.
    :ivar vote_period: Index of the vote period containing the height.
    :ivar prevote_window: True if prevotes may be submitted at this height.
    """

    height: int
    vote_period: int
    prevote_window: bool


class PeriodTracker:
    """Tracks vote periods from successive block height reads.

    :ivar period_length: Number of blocks per vote period.
    :ivar last_period: Highest vote period observed so far.
    :ivar stale_reads: Consecutive heights rejected as stale.
    """

    def __init__(self, period_length: int = DEFAULT_PERIOD_LENGTH) -> None:
        """Initialize the tracker.

        :param period_length: Blocks per vote period (default: 10).
        :raises ValueError: If period_length is below 2, which would leave no
            block for prevotes.
        """
        if period_length < 2:
            raise ValueError("period_length must be at least 2")
        self.period_length = period_length
        self.last_period: int | None = None
        self.stale_reads = 0

    def vote_period(self, height: int) -> int:
        """Return the vote period index for a block height."""
        return height // self.period_length

    def is_prevote_window(self, height: int) -> bool:
        """Check whether prevotes are accepted at a block height."""
        return height % self.period_length <= self.period_length - 2

    def observe(self, height: int) -> PeriodStatus:
        """Record a freshly read block height.

        :param height: Latest block height reported by the chain.
        :returns: PeriodStatus for the height.
        :raises ValueError: If the height is negative.
        :raises StaleHeightError: If the height belongs to a period earlier
            than one already observed (e.g., a lagging LCD node). After
            MAX_STALE_READS consecutive stale reads the earlier period is
            accepted instead.
        """
        if height < 0:
            raise ValueError(f"Invalid block height {height}")

        period = self.vote_period(height)
        if self.last_period is not None and period < self.last_period:
            self.stale_reads += 1
            if self.stale_reads < MAX_STALE_READS:
                logger.warning(
                    f"Height {height} is in vote period {period}, but period "
                    f"{self.last_period} was already observed "
                    f"(stale read {self.stale_reads}/{MAX_STALE_READS})"
                )
                raise StaleHeightError(
                    f"Height {height} is in vote period {period}, "
                    f"but period {self.last_period} was already observed"
                )
            logger.error(
                f"Chain stayed behind vote period {self.last_period} for "
                f"{self.stale_reads} reads, following it back to period {period}. "
                "Was the chain reset or the LCD switched to another network?"
            )
        self.stale_reads = 0

        if period != self.last_period:
            logger.debug(f"Entered vote period {period} at height {height}")
        self.last_period = period

        return PeriodStatus(
            height=height,
            vote_period=period,
            prevote_window=self.is_prevote_window(height),
        )
