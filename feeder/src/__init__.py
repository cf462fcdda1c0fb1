"""
Terra Oracle Feeder - Commit-Reveal Price Voting Module

This module submits exchange rate votes to the oracle module:
- Denom: Asset symbol normalization and denom allow-list
- PriceAggregator: First-success aggregation across price sources
- PeriodTracker: Block height to vote period conversion
- CommitRevealScheduler: Prevote/vote state machine per denom
- SequenceManager: Account sequence tracking within an iteration
- TransactionBuilder: Amino JSON transaction construction
- LocalKeySigner / RemoteSigner: Transaction signing
- LcdClient: Chain queries and broadcasting
- SubmissionLoop: Main orchestrator for voting iterations
"""

from .CommitRevealScheduler import CommitRevealScheduler, PendingCommit, PrevoteBatch, vote_hash
from .Denom import Denom, DenomFilter
from .LcdClient import ChainQueryError, LcdClient, LcdError, SubmissionResult
from .LocalKeySigner import LocalKeySigner
from .OracleMessage import OracleMessage, Prevote, Vote
from .PeriodTracker import PeriodStatus, PeriodTracker, StaleHeightError
from .PriceAggregator import PriceAggregator, PriceObservation
from .RemoteSigner import RemoteSigner
from .SequenceManager import AccountState, SequenceManager
from .Signer import Signer, SigningError
from .SubmissionLoop import IterationReport, SubmissionLoop
from .TransactionBuilder import TransactionBuilder

__all__ = [
    "AccountState",
    "ChainQueryError",
    "CommitRevealScheduler",
    "Denom",
    "DenomFilter",
    "IterationReport",
    "LcdClient",
    "LcdError",
    "LocalKeySigner",
    "OracleMessage",
    "PendingCommit",
    "PeriodStatus",
    "PeriodTracker",
    "PrevoteBatch",
    "PriceAggregator",
    "PriceObservation",
    "RemoteSigner",
    "SequenceManager",
    "Signer",
    "SigningError",
    "StaleHeightError",
    "SubmissionLoop",
    "SubmissionResult",
    "TransactionBuilder",
    "Prevote",
    "Vote",
    "vote_hash",
]
