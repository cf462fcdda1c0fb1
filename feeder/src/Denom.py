"""Denom: Asset symbol representation for oracle votes.

Price sources quote fiat currencies by symbol ("KRW", "usd"), while the oracle
module keys votes by micro-denom. The denom is computed as:
    "u" + lowercase(symbol)

.. code-block:: python

    >>> denom = Denom("KRW")
    >>> str(denom)
    'ukrw'
    >>> denom.symbol
    'krw'
    >>> DenomFilter.from_string("krw,usd").allows("USD")
    True
"""

from __future__ import annotations

ALL_DENOMS = "all"


class Denom:
    """An oracle asset, normalized to its lowercase symbol.

    :ivar symbol: Currency symbol (lowercase).
    """

    def __init__(self, symbol: str) -> None:
        """Initialize a denom.

        :param symbol: Currency symbol (e.g., "krw", "USD", "sdr").
        :raises ValueError: If the symbol is empty.
        """
        symbol = symbol.strip().lower()
        if not symbol:
            raise ValueError("Denom symbol must not be empty")
        self.symbol = symbol

    def __str__(self) -> str:
        """Return the on-chain micro-denom."""
        return f"u{self.symbol}"

    def __repr__(self) -> str:
        """Return a developer-friendly string representation."""
        return f"Denom({self.symbol!r})"

    def __hash__(self) -> int:
        """Return hash for use in dicts and sets."""
        return hash(str(self))

    def __eq__(self, other: object) -> bool:
        """Check equality based on the normalized symbol."""
        if not isinstance(other, Denom):
            return NotImplemented
        return self.symbol == other.symbol


class DenomFilter:
    """Allow-list of symbols taking part in voting.

    The sentinel ``"all"`` lets every symbol through.

    :ivar symbols: Allowed lowercase symbols, or None when all are allowed.
    """

    def __init__(self, symbols: list[str] | None = None) -> None:
        """Initialize the filter.

        :param symbols: Allowed symbols. None allows every symbol.
        """
        self.symbols: frozenset[str] | None = None
        if symbols is not None:
            self.symbols = frozenset(Denom(s).symbol for s in symbols)

    def __repr__(self) -> str:
        """Return a developer-friendly string representation."""
        if self.symbols is None:
            return f"DenomFilter({ALL_DENOMS!r})"
        return f"DenomFilter({sorted(self.symbols)!r})"

    def allows(self, symbol: str) -> bool:
        """Check whether a symbol may be voted on.

        :param symbol: Currency symbol in any case.
        :returns: True if the symbol passes the filter.
        """
        if self.symbols is None:
            return True
        return symbol.strip().lower() in self.symbols

    @classmethod
    def from_string(cls, denoms: str) -> DenomFilter:
        """Parse a denom list such as "all" or "krw,eur,usd".

        :param denoms: Comma-separated symbols or the "all" sentinel.
        :returns: New DenomFilter instance.
        :raises ValueError: If no symbol is given.
        """
        value = denoms.strip().lower()
        if value == ALL_DENOMS:
            return cls(None)
        symbols = [s.strip() for s in value.split(",") if s.strip()]
        if not symbols:
            raise ValueError(
                f"Invalid denom list '{denoms}'. Expected 'all' or e.g. 'krw,usd'"
            )
        return cls(symbols)
