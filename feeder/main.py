#!/usr/bin/env python3
"""Terra Oracle Feeder.

Fetches exchange rates from price servers and votes them into the oracle
module using the prevote/vote commit-reveal scheme.

Configure with CLI args or env vars. CLI args take precedence.
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys

from .src.CommitRevealScheduler import CommitRevealScheduler
from .src.Denom import DenomFilter
from .src.LcdClient import LcdClient
from .src.LocalKeySigner import LocalKeySigner
from .src.PeriodTracker import DEFAULT_PERIOD_LENGTH, PeriodTracker
from .src.PriceAggregator import PriceAggregator
from .src.RemoteSigner import RemoteSigner
from .src.Signer import (
    ACCOUNT_PREFIX,
    VALIDATOR_PREFIX,
    Signer,
    SigningError,
    decode_address,
    to_validator_address,
)
from .src.SubmissionLoop import DEFAULT_MIN_INTERVAL, DEFAULT_TARGET_INTERVAL, SubmissionLoop
from .src.TransactionBuilder import (
    DEFAULT_FEES,
    DEFAULT_GAS,
    DEFAULT_MEMO,
    TransactionBuilder,
    parse_fees,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_sources(source_args: list[str] | None) -> list[str]:
    """Flatten repeated and comma-separated source arguments.

    Example: ["https://a/latest,https://b/latest", "https://c/latest"]

    :param source_args: Values of --source, or None.
    :returns: Source URLs in order, without duplicates.
    """
    sources: list[str] = []
    for arg in source_args or []:
        for source in arg.split(","):
            source = source.strip()
            if source and source not in sources:
                sources.append(source)
    return sources


def build_signer(args: argparse.Namespace) -> Signer:
    """Create the signer selected on the command line.

    :param args: Parsed arguments.
    :returns: LocalKeySigner or RemoteSigner.
    :raises SigningError: If the local key cannot be loaded.
    :raises ValueError: If no local key is configured.
    """
    if args.signer == "remote":
        return RemoteSigner(url=args.signer_url or "")

    private_key = os.environ.get("FEEDER_PRIVATE_KEY")
    if private_key:
        return LocalKeySigner(private_key)

    if not args.keystore:
        raise ValueError("Local signing needs --keystore or FEEDER_PRIVATE_KEY")

    password = os.environ.get("FEEDER_PASSWORD") or getpass.getpass("Enter a passphrase: ")
    return LocalKeySigner.from_keystore(args.keystore, password)


def main() -> None:
    """Main entry point for the feeder CLI."""
    parser = argparse.ArgumentParser(
        description="Terra oracle feeder: commit-reveal exchange rate voting",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Vote every denom published by two price servers
  python -m feeder.main --lcd http://localhost:1317 --chain-id columbus-3 \\
      --source https://price-a.example/latest --source https://price-b.example/latest \\
      --feeder terra1... --keystore ./voter.json

  # Vote selected denoms, signing through a hardware wallet bridge
  python -m feeder.main --lcd http://localhost:1317 --chain-id columbus-3 \\
      --source https://price-a.example/latest --denoms krw,usd,sdr \\
      --feeder terra1... --signer remote --signer-url /run/ledger-bridge.sock

Environment variables (CLI args take precedence):
  LCD_ADDRESS, CHAIN_ID, SOURCES, DENOMS, FEEDER_ADDRESS, VALIDATOR_ADDRESS,
  VOTE_PERIOD, TARGET_INTERVAL, MIN_INTERVAL, FEES, GAS, MEMO, SIGNER,
  SIGNER_URL, KEYSTORE, FETCH_TIMEOUT, FEEDER_PRIVATE_KEY, FEEDER_PASSWORD
""",
    )

    parser.add_argument(
        "-l", "--lcd",
        type=str,
        help="LCD address (e.g., http://localhost:1317)",
        default=os.environ.get("LCD_ADDRESS"),
    )

    parser.add_argument(
        "-c", "--chain-id",
        dest="chain_id",
        type=str,
        help="Chain ID",
        default=os.environ.get("CHAIN_ID"),
    )

    parser.add_argument(
        "-s", "--source",
        action="append",
        help="Price source URL (repeat or comma-separate for multiple sources)",
        default=None,
    )

    parser.add_argument(
        "-d", "--denoms",
        type=str,
        help='Denoms to vote (e.g., "all" or "krw,eur,usd", default: all)',
        default=os.environ.get("DENOMS") or "all",
    )

    parser.add_argument(
        "--feeder",
        type=str,
        help="Feeder account address signing the votes (terra1...)",
        default=os.environ.get("FEEDER_ADDRESS"),
    )

    parser.add_argument(
        "--validator",
        type=str,
        help="Validator operator address (terravaloper1..., default: derived from --feeder)",
        default=os.environ.get("VALIDATOR_ADDRESS"),
    )

    parser.add_argument(
        "--vote-period",
        dest="vote_period",
        type=int,
        help=f"Blocks per oracle vote period (minimum: 2, default: {DEFAULT_PERIOD_LENGTH})",
        default=int(os.environ.get("VOTE_PERIOD") or DEFAULT_PERIOD_LENGTH),
    )

    parser.add_argument(
        "--target-interval",
        dest="target_interval",
        type=float,
        help=f"Seconds between iteration starts (default: {DEFAULT_TARGET_INTERVAL})",
        default=float(os.environ.get("TARGET_INTERVAL") or DEFAULT_TARGET_INTERVAL),
    )

    parser.add_argument(
        "--min-interval",
        dest="min_interval",
        type=float,
        help=f"Minimum sleep between iterations (default: {DEFAULT_MIN_INTERVAL})",
        default=float(os.environ.get("MIN_INTERVAL") or DEFAULT_MIN_INTERVAL),
    )

    parser.add_argument(
        "--fees",
        type=str,
        help=f"Transaction fees (default: {DEFAULT_FEES})",
        default=os.environ.get("FEES") or DEFAULT_FEES,
    )

    parser.add_argument(
        "--gas",
        type=int,
        help=f"Gas limit per transaction (default: {DEFAULT_GAS})",
        default=int(os.environ.get("GAS") or DEFAULT_GAS),
    )

    parser.add_argument(
        "--memo",
        type=str,
        help="Transaction memo",
        default=os.environ.get("MEMO") or DEFAULT_MEMO,
    )

    parser.add_argument(
        "--signer",
        type=str,
        choices=["local", "remote"],
        help="Sign with a local key or a remote signing daemon (default: local)",
        default=os.environ.get("SIGNER") or "local",
    )

    parser.add_argument(
        "--signer-url",
        dest="signer_url",
        type=str,
        help="Remote signer URL or Unix socket path",
        default=os.environ.get("SIGNER_URL"),
    )

    parser.add_argument(
        "--keystore",
        type=str,
        help="Encrypted keystore file holding the feeder key",
        default=os.environ.get("KEYSTORE"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for price and LCD requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if not args.lcd:
        parser.error("--lcd is required")

    if not args.chain_id:
        parser.error("--chain-id is required")

    sources = parse_sources(args.source or [os.environ.get("SOURCES") or ""])
    if not sources:
        parser.error("At least one --source must be specified")

    if args.vote_period < 2:
        parser.error("--vote-period must be at least 2 blocks")

    if args.min_interval < 0 or args.target_interval < 0:
        parser.error("--min-interval and --target-interval must not be negative")

    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")

    if not args.feeder:
        parser.error("--feeder is required")

    try:
        decode_address(args.feeder, ACCOUNT_PREFIX)
        validator = args.validator or to_validator_address(args.feeder)
        decode_address(validator, VALIDATOR_PREFIX)
        denom_filter = DenomFilter.from_string(args.denoms)
        fees = parse_fees(args.fees)
        builder = TransactionBuilder(fees=fees, gas=args.gas, memo=args.memo)
    except ValueError as e:
        parser.error(str(e))

    # Log configuration
    logger.info("=" * 60)
    logger.info("Terra Oracle Feeder - Commit-Reveal Voting")
    logger.info("=" * 60)
    logger.info(f"LCD:               {args.lcd}")
    logger.info(f"Chain ID:          {args.chain_id}")
    logger.info(f"Sources:           {', '.join(sources)}")
    logger.info(f"Denoms:            {args.denoms}")
    logger.info(f"Feeder:            {args.feeder}")
    logger.info(f"Validator:         {validator}")
    logger.info(f"Vote Period:       {args.vote_period} blocks")
    logger.info(f"Target Interval:   {args.target_interval}s")
    logger.info(f"Min Interval:      {args.min_interval}s")
    logger.info(f"Fees:              {args.fees} (gas {args.gas})")
    logger.info(f"Signer:            {args.signer}")
    logger.info("=" * 60)

    try:
        signer = build_signer(args)
    except (SigningError, ValueError) as e:
        logger.error(f"Failed to set up signer: {e}")
        sys.exit(1)

    try:
        loop = SubmissionLoop(
            sources=sources,
            feeder=args.feeder,
            chain_id=args.chain_id,
            aggregator=PriceAggregator(fetch_timeout=args.fetch_timeout),
            lcd=LcdClient(args.lcd, timeout=args.fetch_timeout),
            signer=signer,
            scheduler=CommitRevealScheduler(
                feeder=args.feeder,
                validator=validator,
                denom_filter=denom_filter,
            ),
            tracker=PeriodTracker(args.vote_period),
            builder=builder,
            target_interval=args.target_interval,
            min_interval=args.min_interval,
        )
        asyncio.run(loop.run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
