"""OracleMessage: Prevote and vote messages for the oracle module.

Both variants are validated at construction time and serialize to the
amino JSON accepted by the LCD ``/txs`` endpoint:

.. code-block:: python

    >>> prevote = Prevote(hash="8f1b...", denom="ukrw", feeder="terra1...",
    ...                   validator="terravaloper1...")
    >>> prevote.to_amino()["type"]
    'oracle/MsgPricePrevote'
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Union

# Fractional digits of the chain's fixed-point decimal type.
PRICE_PRECISION = 18


def format_price(price: Decimal) -> str:
    """Render a price the way the chain prints its fixed-point decimals.

    :param price: Positive price.
    :returns: Price with exactly 18 fractional digits.

    .. code-block:: python

        >>> format_price(Decimal("1.23"))
        '1.230000000000000000'
    """
    return f"{Decimal(price):.{PRICE_PRECISION}f}"


def _require(**fields: str) -> None:
    for name, value in fields.items():
        if not isinstance(value, str) or not value:
            raise ValueError(f"Oracle message field '{name}' must be a non-empty string")


@dataclass(frozen=True)
class Prevote:
    """Commit phase message carrying the hash of a not yet revealed price.

    :ivar hash: Hex encoded vote hash.
    :ivar denom: Micro-denom being voted on (e.g., "ukrw").
    :ivar feeder: Account address signing the transaction.
    :ivar validator: Validator operator address the vote is cast for.
    """

    hash: str
    denom: str
    feeder: str
    validator: str

    TYPE = "oracle/MsgPricePrevote"

    def __post_init__(self) -> None:
        _require(hash=self.hash, denom=self.denom, feeder=self.feeder, validator=self.validator)

    def to_amino(self) -> dict[str, Any]:
        """Serialize to the amino JSON message."""
        return {
            "type": self.TYPE,
            "value": {
                "hash": self.hash,
                "denom": self.denom,
                "feeder": self.feeder,
                "validator": self.validator,
            },
        }


@dataclass(frozen=True)
class Vote:
    """Reveal phase message carrying the price and salt committed earlier.

    :ivar price: Committed price.
    :ivar salt: Salt used in the committed hash.
    :ivar denom: Micro-denom being voted on.
    :ivar feeder: Account address signing the transaction.
    :ivar validator: Validator operator address the vote is cast for.
    """

    price: Decimal
    salt: str
    denom: str
    feeder: str
    validator: str

    TYPE = "oracle/MsgPriceVote"

    def __post_init__(self) -> None:
        _require(salt=self.salt, denom=self.denom, feeder=self.feeder, validator=self.validator)
        if not isinstance(self.price, Decimal) or not self.price.is_finite() or self.price <= 0:
            raise ValueError(f"Vote price must be a positive Decimal, got {self.price!r}")

    def to_amino(self) -> dict[str, Any]:
        """Serialize to the amino JSON message."""
        return {
            "type": self.TYPE,
            "value": {
                "price": format_price(self.price),
                "salt": self.salt,
                "denom": self.denom,
                "feeder": self.feeder,
                "validator": self.validator,
            },
        }


OracleMessage = Union[Prevote, Vote]
