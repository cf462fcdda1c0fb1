"""CommitRevealScheduler: Per-denom commit-reveal state machine.

Each denom cycles through ``Idle -> PendingReveal -> Idle``:

    - Prevote (commit): inside the prevote window of period N, a fresh price
      is salted and hashed. Once the prevote transaction is broadcast the
      price and salt become the denom's pending commit.
    - Vote (reveal): in period N + 1 the pending commit's price and salt are
      revealed. Once the vote transaction is broadcast the commit is cleared.

Pending commits only change after a successful broadcast, so a failed
transaction never loses the salt of a prevote the chain already holds.
A commit that missed its reveal period can no longer be revealed and is
dropped.

.. code-block:: python

    >>> scheduler = CommitRevealScheduler("terra1...", "terravaloper1...")
    >>> batch = scheduler.plan_prevotes(observation, status)
    >>> # ... broadcast batch.messages ...
    >>> scheduler.confirm_prevotes(batch)
    >>> votes = scheduler.plan_votes(next_period_status)
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable

from .Denom import Denom, DenomFilter
from .OracleMessage import Prevote, Vote, format_price
from .PeriodTracker import PeriodStatus

logger = logging.getLogger(__name__)

VoteHashFn = Callable[[str, Decimal, str, str], str]


def vote_hash(salt: str, price: Decimal, denom: str, validator: str) -> str:
    """Compute the commit hash of a price vote.

    The hash is the first 20 bytes of
    ``sha256("{salt}:{price}:{denom}:{validator}")``, hex encoded, with the
    price rendered as an 18-digit fixed-point decimal.

    :param salt: Salt mixed into the hash.
    :param price: Price being committed.
    :param denom: Micro-denom (e.g., "ukrw").
    :param validator: Validator operator address.
    :returns: 40 character hex string.
    """
    payload = f"{salt}:{format_price(price)}:{denom}:{validator}"
    return hashlib.sha256(payload.encode("utf-8")).digest()[:20].hex()


def generate_salt() -> str:
    """Return a random 4 character hex salt."""
    return secrets.token_hex(2)


@dataclass(frozen=True)
class PendingCommit:
    """A broadcast prevote awaiting its reveal.

    :ivar price: Committed price.
    :ivar salt: Salt used in the committed hash.
    :ivar vote_period: Vote period in which the prevote was broadcast.
    """

    price: Decimal
    salt: str
    vote_period: int


@dataclass
class PrevoteBatch:
    """Prevotes planned for one transaction, with their commit candidates.

    :ivar messages: Prevote messages to broadcast.
    :ivar candidates: Dict mapping symbol to the commit that becomes pending
        once the messages are broadcast.
    """

    messages: list[Prevote] = field(default_factory=list)
    candidates: dict[str, PendingCommit] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.messages)

    def __len__(self) -> int:
        return len(self.messages)


class CommitRevealScheduler:
    """Decides which denoms to reveal and which to commit each iteration.

    :ivar feeder: Account address that signs oracle messages.
    :ivar validator: Validator operator address votes are cast for.
    :ivar denom_filter: Allow-list of symbols taking part in voting.
    :ivar pending: Dict mapping symbol to its pending commit.
    """

    def __init__(
        self,
        feeder: str,
        validator: str,
        denom_filter: DenomFilter | None = None,
        hash_fn: VoteHashFn = vote_hash,
        salt_fn: Callable[[], str] = generate_salt,
    ) -> None:
        """Initialize the scheduler.

        :param feeder: Account address that signs oracle messages.
        :param validator: Validator operator address.
        :param denom_filter: Symbols allowed to vote (default: all).
        :param hash_fn: Deterministic commit hash function.
        :param salt_fn: Salt generator.
        """
        self.feeder = feeder
        self.validator = validator
        self.denom_filter = denom_filter or DenomFilter(None)
        self.hash_fn = hash_fn
        self.salt_fn = salt_fn
        self.pending: dict[str, PendingCommit] = {}

    def plan_votes(self, status: PeriodStatus) -> list[Vote]:
        """Build reveals for commits made in the previous vote period.

        Commits older than the previous period are abandoned. Commits from
        the current period are kept for the next one. Commits from a later
        period than the current one can only survive a chain reset and are
        dropped.

        :param status: Current period status.
        :returns: Vote messages, one per revealable denom.
        """
        votes: list[Vote] = []
        for symbol, commit in sorted(self.pending.items()):
            if commit.vote_period == status.vote_period:
                continue

            if commit.vote_period > status.vote_period:
                logger.warning(
                    f"{Denom(symbol)}: Dropping prevote from period "
                    f"{commit.vote_period}, chain is back at period {status.vote_period}"
                )
                del self.pending[symbol]
                continue

            if commit.vote_period + 1 < status.vote_period:
                logger.warning(
                    f"{Denom(symbol)}: Abandoning prevote from period "
                    f"{commit.vote_period}, reveal period has passed"
                )
                del self.pending[symbol]
                continue

            votes.append(
                Vote(
                    price=commit.price,
                    salt=commit.salt,
                    denom=str(Denom(symbol)),
                    feeder=self.feeder,
                    validator=self.validator,
                )
            )
        return votes

    def confirm_votes(self, votes: list[Vote]) -> None:
        """Clear pending commits after their reveals were broadcast.

        :param votes: Vote messages included in the successful transaction.
        """
        for vote in votes:
            symbol = vote.denom[1:]
            commit = self.pending.get(symbol)
            if commit is not None and commit.salt == vote.salt:
                del self.pending[symbol]

    def plan_prevotes(
        self,
        prices: Mapping[str, Decimal],
        status: PeriodStatus,
    ) -> PrevoteBatch:
        """Build prevotes for fresh prices in the prevote window.

        A denom is skipped if it was already committed in this period, or if
        it still holds a commit that has not been revealed yet.

        :param prices: Fresh prices keyed by symbol.
        :param status: Current period status.
        :returns: PrevoteBatch, empty outside the prevote window.
        """
        batch = PrevoteBatch()
        if not status.prevote_window:
            return batch

        for raw_symbol, price in sorted(prices.items()):
            denom = Denom(raw_symbol)
            if not self.denom_filter.allows(denom.symbol):
                continue
            if price is None or price <= 0:
                continue

            commit = self.pending.get(denom.symbol)
            if commit is not None:
                if commit.vote_period == status.vote_period:
                    continue
                if commit.vote_period + 1 == status.vote_period:
                    logger.debug(f"{denom}: Waiting for reveal before next prevote")
                    continue

            salt = self.salt_fn()
            batch.messages.append(
                Prevote(
                    hash=self.hash_fn(salt, price, str(denom), self.validator),
                    denom=str(denom),
                    feeder=self.feeder,
                    validator=self.validator,
                )
            )
            batch.candidates[denom.symbol] = PendingCommit(
                price=price, salt=salt, vote_period=status.vote_period
            )
        return batch

    def confirm_prevotes(self, batch: PrevoteBatch) -> None:
        """Promote a broadcast batch's candidates to pending commits.

        :param batch: Batch whose transaction was broadcast successfully.
        """
        self.pending.update(batch.candidates)
