"""SequenceManager: Account sequence bookkeeping within one loop iteration.

The chain rejects a transaction whose sequence does not match the account's
next expected value. The sequence is read once at the start of an iteration
and bumped locally after each successful broadcast, so a second transaction
in the same iteration can be signed without waiting for the chain to catch up.

.. code-block:: python

    >>> manager = SequenceManager()
    >>> manager.reset(AccountState(account_number="42", sequence=7))
    >>> manager.current().sequence
    7
    >>> manager.record_success()
    >>> manager.current().sequence
    8
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountState:
    """Account metadata needed to sign a transaction.

    :ivar account_number: Chain-assigned account number.
    :ivar sequence: Next expected transaction sequence.
    """

    account_number: str
    sequence: int


class SequenceManager:
    """Owns the in-memory account state for one submission iteration.

    :ivar initial: Chain-reported state at the start of the iteration.
    :ivar submitted: Number of transactions broadcast since the last reset.
    """

    def __init__(self) -> None:
        """Initialize without account state; reset() must be called first."""
        self.initial: AccountState | None = None
        self.submitted = 0

    def reset(self, account: AccountState) -> None:
        """Replace the in-memory state with the chain-reported one.

        :param account: Account state just read from the chain.
        """
        if self.initial is not None and account.sequence < self.initial.sequence + self.submitted:
            logger.warning(
                f"Chain sequence {account.sequence} is behind local sequence "
                f"{self.initial.sequence + self.submitted}, earlier transactions "
                "may not have been included"
            )
        self.initial = account
        self.submitted = 0

    def current(self) -> AccountState:
        """Return the account state to sign the next transaction with.

        :returns: AccountState with the sequence for the next transaction.
        :raises RuntimeError: If reset() was never called.
        """
        if self.initial is None:
            raise RuntimeError("Account state not loaded, call reset() first")
        return replace(self.initial, sequence=self.initial.sequence + self.submitted)

    def record_success(self) -> None:
        """Advance the sequence after a successful broadcast."""
        if self.initial is None:
            raise RuntimeError("Account state not loaded, call reset() first")
        self.submitted += 1
