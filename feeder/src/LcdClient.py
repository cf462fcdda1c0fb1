"""LcdClient: Chain queries and transaction broadcast through the LCD.

Endpoints used:
    - GET  /blocks/latest            latest block height
    - GET  /auth/accounts/{address}  account number and sequence
    - POST /txs                      broadcast a signed StdTx
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .SequenceManager import AccountState

logger = logging.getLogger(__name__)

ENDPOINT_LATEST_BLOCK = "/blocks/latest"
ENDPOINT_ACCOUNT = "/auth/accounts/{address}"
ENDPOINT_BROADCAST = "/txs"


class LcdError(Exception):
    """Base exception for LCD errors."""

    pass


class ChainQueryError(LcdError):
    """Raised when a chain query fails or returns an unusable response."""

    pass


@dataclass
class SubmissionResult:
    """Outcome of a transaction broadcast.

    :ivar height: Block height the transaction was committed at, or None.
    :ivar txhash: Transaction hash, if the LCD returned one.
    :ivar code: Error code returned by the chain, if any.
    :ivar reason: Chain-provided log explaining a rejection.
    """

    height: int | None
    txhash: str | None = None
    code: int | None = None
    reason: str | None = None

    @property
    def success(self) -> bool:
        """Check if the transaction was committed without error."""
        return self.height is not None and not self.code

    @classmethod
    def failed(cls, reason: str) -> SubmissionResult:
        """Result for a transaction that never reached the chain."""
        return cls(height=None, reason=reason)


class LcdClient:
    """Async client for the oracle network's LCD.

    :ivar lcd_address: Base URL of the LCD.
    :ivar timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        lcd_address: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        :param lcd_address: Base URL of the LCD (e.g., "http://localhost:1317").
        :param timeout: Request timeout (default: 10.0). Broadcasts in block
            mode wait for inclusion and use three times this value.
        :param transport: Optional transport override (used in tests).
        """
        self.lcd_address = lcd_address.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self.lcd_address,
            transport=transport,
            timeout=timeout,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if not self._client.is_closed:
            await self._client.aclose()

    async def _get_json(self, path: str) -> Any:
        """GET a JSON document from the LCD.

        :param path: Endpoint path.
        :returns: Decoded JSON body.
        :raises ChainQueryError: On network errors, non-2xx status or bad JSON.
        """
        try:
            response = await self._client.get(path)
        except httpx.RequestError as e:
            raise ChainQueryError(f"GET {path} failed: {e}") from e

        if not response.is_success:
            raise ChainQueryError(
                f"GET {path} failed: {response.status_code} {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise ChainQueryError(f"GET {path} returned invalid JSON: {e}") from e

    async def latest_block_height(self) -> int:
        """Query the latest block height.

        :returns: Block height.
        :raises ChainQueryError: If the query fails.
        """
        data = await self._get_json(ENDPOINT_LATEST_BLOCK)
        try:
            meta = data.get("block_meta") or data["block"]
            height = int(meta["header"]["height"])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ChainQueryError(f"Unexpected latest block response: {e}") from e

        logger.debug(f"Latest block height: {height}")
        return height

    async def account_state(self, address: str) -> AccountState | None:
        """Query the account number and sequence of an address.

        :param address: Account address.
        :returns: AccountState, or None if the account is unknown or unfunded.
        :raises ChainQueryError: If the query fails.
        """
        path = ENDPOINT_ACCOUNT.format(address=address)
        try:
            response = await self._client.get(path)
        except httpx.RequestError as e:
            raise ChainQueryError(f"GET {path} failed: {e}") from e

        if response.status_code in (204, 404):
            return None
        if not response.is_success:
            raise ChainQueryError(
                f"GET {path} failed: {response.status_code} {response.text[:200]}"
            )

        try:
            data = response.json()
            data = data.get("result", data)
            value = data.get("value", data) or {}
            if not value.get("address"):
                return None
            return AccountState(
                account_number=str(int(value["account_number"])),
                sequence=int(value.get("sequence") or 0),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ChainQueryError(f"Unexpected account response: {e}") from e

    async def broadcast(self, body: dict[str, Any]) -> SubmissionResult:
        """Broadcast a signed transaction.

        :param body: Request body from TransactionBuilder.broadcast_body().
        :returns: SubmissionResult; failed if the chain rejected the transaction.
        :raises LcdError: If the LCD could not be reached.
        """
        try:
            response = await self._client.post(
                ENDPOINT_BROADCAST, json=body, timeout=self.timeout * 3
            )
        except httpx.RequestError as e:
            raise LcdError(f"POST {ENDPOINT_BROADCAST} failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.is_success:
            reason = data.get("error") or response.text[:200] or response.reason_phrase
            return SubmissionResult(height=None, reason=str(reason))

        code = data.get("code")
        txhash = data.get("txhash")
        if code:
            return SubmissionResult(
                height=None,
                txhash=txhash,
                code=int(code),
                reason=str(data.get("raw_log") or data.get("logs") or "rejected"),
            )

        height = data.get("height")
        try:
            height = int(height) if height is not None else None
        except (TypeError, ValueError):
            height = None
        if height is None or (height == 0 and body.get("mode") == "block"):
            return SubmissionResult(height=None, txhash=txhash, reason="no height returned")

        return SubmissionResult(height=height, txhash=txhash)
