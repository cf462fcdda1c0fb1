"""TransactionBuilder: Legacy amino JSON transactions for the LCD.

Builds the ``StdTx`` wrapping a batch of oracle messages, the canonical sign
document a signer hashes, and the broadcast request body for ``POST /txs``.
"""

from __future__ import annotations

import copy
import json
import re
from typing import Any

from .OracleMessage import OracleMessage
from .SequenceManager import AccountState

DEFAULT_FEES = "0uluna"
DEFAULT_GAS = 200000
DEFAULT_MEMO = "Voting from terra feeder"

BROADCAST_MODES = ("sync", "async", "block")

_COIN_RE = re.compile(r"^(\d+)([a-z][a-z0-9/]{2,127})$")

# The chain marshals sign bytes with HTML-safe escaping of these characters.
_HTML_ESCAPES = {
    "&": "\\u0026",
    "<": "\\u003c",
    ">": "\\u003e",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def parse_fees(fees: str) -> list[dict[str, str]]:
    """Parse a coin list such as "0uluna" or "1000uluna,50ukrw".

    :param fees: Comma-separated coins.
    :returns: List of {"amount", "denom"} dicts.
    :raises ValueError: If a coin is malformed.
    """
    coins = []
    for item in fees.split(","):
        item = item.strip()
        if not item:
            continue
        match = _COIN_RE.match(item)
        if match is None:
            raise ValueError(f"Invalid fee coin '{item}'. Expected e.g. '1000uluna'")
        coins.append({"amount": match.group(1), "denom": match.group(2)})
    return coins


class TransactionBuilder:
    """Builds unsigned, signable and broadcastable transactions.

    :ivar fees: Fee coins attached to every transaction.
    :ivar gas: Gas limit of every transaction.
    :ivar memo: Default memo.
    """

    def __init__(
        self,
        fees: list[dict[str, str]] | None = None,
        gas: int = DEFAULT_GAS,
        memo: str = DEFAULT_MEMO,
    ) -> None:
        """Initialize the builder.

        :param fees: Fee coins (default: 0uluna).
        :param gas: Gas limit (default: 200000).
        :param memo: Default memo.
        :raises ValueError: If gas is not positive.
        """
        if gas <= 0:
            raise ValueError("gas must be positive")
        self.fees = fees if fees is not None else parse_fees(DEFAULT_FEES)
        self.gas = gas
        self.memo = memo

    def build_unsigned(
        self,
        messages: list[OracleMessage],
        fees: list[dict[str, str]] | None = None,
        memo: str | None = None,
    ) -> dict[str, Any]:
        """Wrap oracle messages in an unsigned StdTx.

        :param messages: Messages to include, in order.
        :param fees: Optional fee override.
        :param memo: Optional memo override.
        :returns: StdTx dict without signatures.
        :raises ValueError: If messages is empty.
        """
        if not messages:
            raise ValueError("A transaction needs at least one message")
        return {
            "msg": [message.to_amino() for message in messages],
            "fee": {
                "amount": list(fees if fees is not None else self.fees),
                "gas": str(self.gas),
            },
            "signatures": None,
            "memo": self.memo if memo is None else memo,
        }

    @staticmethod
    def sign_doc(
        unsigned_tx: dict[str, Any],
        chain_id: str,
        account: AccountState,
    ) -> bytes:
        """Build the canonical bytes a signer signs.

        Keys are sorted, no whitespace is emitted and ``&``, ``<`` and ``>``
        are escaped, matching the chain's sign bytes.

        :param unsigned_tx: StdTx from build_unsigned().
        :param chain_id: Target chain ID.
        :param account: Account number and sequence to sign with.
        :returns: UTF-8 encoded sign document.
        """
        doc = {
            "account_number": str(account.account_number),
            "chain_id": chain_id,
            "fee": unsigned_tx["fee"],
            "memo": unsigned_tx["memo"],
            "msgs": unsigned_tx["msg"],
            "sequence": str(account.sequence),
        }
        encoded = json.dumps(doc, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        for char, escaped in _HTML_ESCAPES.items():
            encoded = encoded.replace(char, escaped)
        return encoded.encode("utf-8")

    @staticmethod
    def create_signed(
        unsigned_tx: dict[str, Any],
        signature: dict[str, Any],
    ) -> dict[str, Any]:
        """Attach a signature to a copy of an unsigned transaction."""
        signed = copy.deepcopy(unsigned_tx)
        signed["signatures"] = [signature]
        return signed

    @staticmethod
    def broadcast_body(signed_tx: dict[str, Any], mode: str = "block") -> dict[str, Any]:
        """Build the request body for ``POST /txs``.

        :param signed_tx: Signed StdTx.
        :param mode: Broadcast mode: "sync", "async" or "block".
        :returns: Request body dict.
        :raises ValueError: If mode is unknown.
        """
        if mode not in BROADCAST_MODES:
            raise ValueError(f"Unknown broadcast mode '{mode}'. Expected one of {BROADCAST_MODES}")
        return {"tx": signed_tx, "mode": mode}
