"""SubmissionLoop: Fixed-interval driver of the commit-reveal protocol.

Each iteration:
    1. Fetch prices (first healthy source wins)
    2. Read the latest block height and derive the vote period
    3. Read the account number and sequence
    4. Reveal the previous period's commits in one transaction
    5. Commit fresh prices as prevotes in a second transaction
    6. Sleep until the next tick

Every error is caught at the iteration boundary; the loop itself only ends
when the process is terminated.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from .CommitRevealScheduler import CommitRevealScheduler
from .fetchers import BaseFetcher
from .LcdClient import LcdClient, LcdError, SubmissionResult
from .OracleMessage import OracleMessage
from .PeriodTracker import PeriodStatus, PeriodTracker
from .PriceAggregator import PriceAggregator
from .SequenceManager import SequenceManager
from .Signer import Signer, SigningError
from .TransactionBuilder import TransactionBuilder

logger = logging.getLogger(__name__)

DEFAULT_TARGET_INTERVAL = 15.0
DEFAULT_MIN_INTERVAL = 10.0


@dataclass
class IterationReport:
    """What happened during one loop iteration.

    :ivar status: Period status the iteration ran in, if the height was read.
    :ivar prices: Number of prices fetched.
    :ivar votes: Number of vote messages planned.
    :ivar prevotes: Number of prevote messages planned.
    :ivar results: Submission results in broadcast order.
    :ivar skipped: Reason the iteration stopped early, if it did.
    """

    status: PeriodStatus | None = None
    prices: int = 0
    votes: int = 0
    prevotes: int = 0
    results: list[SubmissionResult] = field(default_factory=list)
    skipped: str | None = None


class SubmissionLoop:
    """Runs the feeder's voting iterations forever.

    :ivar sources: Price source URLs.
    :ivar feeder: Account address signing the transactions.
    :ivar chain_id: Target chain ID.
    :ivar target_interval: Desired seconds between iteration starts.
    :ivar min_interval: Minimum sleep between iterations.
    :ivar broadcast_mode: LCD broadcast mode.
    """

    def __init__(
        self,
        sources: list[str],
        feeder: str,
        chain_id: str,
        aggregator: PriceAggregator,
        lcd: LcdClient,
        signer: Signer,
        scheduler: CommitRevealScheduler,
        tracker: PeriodTracker | None = None,
        builder: TransactionBuilder | None = None,
        sequence: SequenceManager | None = None,
        target_interval: float = DEFAULT_TARGET_INTERVAL,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        broadcast_mode: str = "block",
    ) -> None:
        """Initialize the loop.

        :param sources: Price source URLs, in preference order.
        :param feeder: Account address signing the transactions.
        :param chain_id: Target chain ID.
        :param aggregator: Price aggregator.
        :param lcd: LCD client for queries and broadcasts.
        :param signer: Transaction signer.
        :param scheduler: Commit-reveal scheduler holding pending commits.
        :param tracker: Vote period tracker (default: 10 block periods).
        :param builder: Transaction builder (default fees, gas and memo).
        :param sequence: Sequence manager.
        :param target_interval: Seconds between iteration starts (default: 15).
        :param min_interval: Minimum sleep between iterations (default: 10).
        :param broadcast_mode: LCD broadcast mode (default: "block").
        :raises ValueError: If no sources are given or intervals are invalid.
        """
        if not sources:
            raise ValueError("At least one price source must be specified")
        if min_interval < 0 or target_interval < 0:
            raise ValueError("Intervals must not be negative")

        self.sources = list(sources)
        self.feeder = feeder
        self.chain_id = chain_id
        self.aggregator = aggregator
        self.lcd = lcd
        self.signer = signer
        self.scheduler = scheduler
        self.tracker = tracker or PeriodTracker()
        self.builder = builder or TransactionBuilder()
        self.sequence = sequence or SequenceManager()
        self.target_interval = target_interval
        self.min_interval = min_interval
        self.broadcast_mode = broadcast_mode

    def sleep_duration(self, elapsed: float) -> float:
        """Seconds to sleep after an iteration that took ``elapsed`` seconds."""
        return max(self.min_interval, self.target_interval - elapsed)

    async def _submit(self, messages: list[OracleMessage], kind: str) -> SubmissionResult:
        """Sign and broadcast one batch of messages.

        :param messages: Messages to put in a single transaction.
        :param kind: Batch label used in logs ("vote" or "prevote").
        :returns: SubmissionResult; failed if signing or broadcasting failed.
        """
        account = self.sequence.current()
        unsigned_tx = self.builder.build_unsigned(messages)
        sign_doc = self.builder.sign_doc(unsigned_tx, self.chain_id, account)

        try:
            signature = await self.signer.sign(sign_doc, account)
        except SigningError as e:
            logger.error(f"Failed to sign {kind} transaction: {e}")
            return SubmissionResult.failed(f"signing failed: {e}")

        signed_tx = self.builder.create_signed(unsigned_tx, signature)
        body = self.builder.broadcast_body(signed_tx, self.broadcast_mode)

        try:
            result = await self.lcd.broadcast(body)
        except LcdError as e:
            logger.error(f"Failed to broadcast {kind} transaction: {e}")
            return SubmissionResult.failed(str(e))

        denoms = ", ".join(message.denom for message in messages)
        if result.success:
            self.sequence.record_success()
            logger.info(
                f"Submitted {kind} for [{denoms}] at height {result.height} "
                f"(sequence={account.sequence}, txhash={result.txhash})"
            )
        else:
            logger.error(
                f"{kind.capitalize()} transaction for [{denoms}] rejected "
                f"(sequence={account.sequence}, code={result.code}): {result.reason}"
            )
        return result

    async def run_iteration(self) -> IterationReport:
        """Run one fetch, reveal and commit cycle.

        :returns: IterationReport describing the iteration.
        :raises ChainQueryError: If the height or account cannot be read.
        :raises StaleHeightError: If the LCD reports an older vote period.
        """
        report = IterationReport()

        prices = await self.aggregator.fetch(self.sources)
        report.prices = len(prices)
        if not prices:
            report.skipped = "no prices"
            logger.warning("No prices available, skipping voting this iteration")
            return report

        height = await self.lcd.latest_block_height()
        status = self.tracker.observe(height)
        report.status = status

        account = await self.lcd.account_state(self.feeder)
        if account is None:
            report.skipped = "account not found"
            logger.error(f"Account {self.feeder} not found on chain, is it funded?")
            return report
        self.sequence.reset(account)

        logger.info(
            f"Height {status.height}, vote period {status.vote_period} "
            f"({'prevote' if status.prevote_window else 'reveal only'}), "
            f"sequence {account.sequence}, {len(prices)} prices from {prices.source}"
        )

        votes = self.scheduler.plan_votes(status)
        report.votes = len(votes)
        if votes:
            result = await self._submit(votes, "vote")
            report.results.append(result)
            if result.success:
                self.scheduler.confirm_votes(votes)

        batch = self.scheduler.plan_prevotes(prices, status)
        report.prevotes = len(batch)
        if batch:
            result = await self._submit(batch.messages, "prevote")
            report.results.append(result)
            if result.success:
                self.scheduler.confirm_prevotes(batch)

        return report

    async def run(self) -> None:
        """Run iterations forever, sleeping between them.

        Errors never leave an iteration; they are logged and the next
        iteration starts on schedule.
        """
        logger.info(
            f"Starting voting loop: sources={self.sources}, "
            f"period_length={self.tracker.period_length}, "
            f"target_interval={self.target_interval}s, min_interval={self.min_interval}s"
        )

        try:
            while True:
                started = time.monotonic()
                try:
                    await self.run_iteration()
                except Exception as e:
                    logger.error(f"Voting iteration failed: {e}")
                    logger.debug("Iteration failure details", exc_info=True)

                await asyncio.sleep(self.sleep_duration(time.monotonic() - started))
        finally:
            await self.lcd.close()
            await self.signer.close()
            await BaseFetcher.close_shared_client()
