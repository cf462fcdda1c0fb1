"""RemoteSigner: Signer delegating to an external signing daemon.

Used when the key never enters this process, e.g. a hardware wallet bridge.
The daemon is reached over a Unix domain socket or HTTP and exposes:

    POST /sign
        {"sign_doc": "<base64>", "account_number": "42", "sequence": "7"}
    -> {"signature": "<base64 r||s>", "pub_key": "<base64 compressed key>"}
"""

import asyncio
import base64
import logging
from typing import Any

import httpx

from .SequenceManager import AccountState
from .Signer import Signer, SigningError

logger = logging.getLogger(__name__)

# Retry configuration for daemon requests
MAX_RETRIES = 3
BACKOFF_BASE = 1.0
BACKOFF_MAX = 5.0


class RemoteSigner(Signer):
    """Signer implementation for an external signing daemon.

    :cvar SIGNER_SOCKET_PATH: Default Unix socket path of the daemon.
    :ivar url: Optional HTTP URL or socket path override.
    """

    SIGNER_SOCKET_PATH = "/run/feeder-signer.sock"

    def __init__(
        self,
        url: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the remote signer.

        :param url: Optional URL or socket path. Empty uses default socket.
        :param timeout: Request timeout; device confirmation can be slow.
        :param transport: Optional transport override (used in tests).
        """
        self.url = url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _build_transport(self) -> httpx.AsyncBaseTransport | None:
        """Build HTTP transport for daemon requests."""
        if self._transport is not None:
            return self._transport
        if self.url and not self.url.startswith("http"):
            logger.debug("Using HTTP socket: %s", self.url)
            return httpx.AsyncHTTPTransport(uds=self.url)
        if not self.url:
            logger.debug("Using unix domain socket: %s", self.SIGNER_SOCKET_PATH)
            return httpx.AsyncHTTPTransport(uds=self.SIGNER_SOCKET_PATH)
        return None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            base_url = self.url if self.url.startswith("http") else "http://localhost"
            self._client = httpx.AsyncClient(
                base_url=base_url,
                transport=self._build_transport(),
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        """POST to the daemon with retry and backoff on transient errors.

        :param path: API endpoint path.
        :param payload: JSON payload.
        :returns: HTTP response.
        :raises SigningError: If the daemon refuses the request or stays
            unreachable after MAX_RETRIES attempts.
        """
        client = self._get_client()
        for attempt in range(MAX_RETRIES):
            try:
                response = await client.post(path, json=payload)
                logger.debug(
                    "Response: %s %s", response.status_code, response.reason_phrase
                )
                if response.is_success:
                    return response
                if response.is_client_error:
                    raise SigningError(
                        f"Signer refused request: {response.status_code} {response.text[:200]}"
                    )
                logger.warning(
                    "signer POST %s failed: %s %s (attempt %d/%d)",
                    path,
                    response.status_code,
                    response.reason_phrase,
                    attempt + 1,
                    MAX_RETRIES,
                )
            except httpx.RequestError as exc:
                logger.warning(
                    "signer POST %s error: %s (attempt %d/%d)",
                    path,
                    exc,
                    attempt + 1,
                    MAX_RETRIES,
                )
            if attempt + 1 < MAX_RETRIES:
                await asyncio.sleep(min(BACKOFF_BASE * (1.5 ** attempt), BACKOFF_MAX))

        raise SigningError(f"signer POST {path} failed after {MAX_RETRIES} attempts")

    async def sign(self, sign_doc: bytes, account: AccountState) -> dict[str, Any]:
        """Ask the daemon to sign a sign document.

        :param sign_doc: Canonical sign bytes.
        :param account: Account state the document was built with.
        :returns: StdSignature dict.
        :raises SigningError: If the daemon fails or answers with garbage.
        """
        payload = {
            "sign_doc": base64.b64encode(sign_doc).decode("ascii"),
            "account_number": str(account.account_number),
            "sequence": str(account.sequence),
        }

        response = await self._post("/sign", payload)
        try:
            result = response.json()
            signature = base64.b64decode(result["signature"], validate=True)
            public_key = base64.b64decode(result["pub_key"], validate=True)
        except (KeyError, TypeError, ValueError) as e:
            raise SigningError(f"Malformed signer response: {e}") from e

        if len(signature) != 64 or len(public_key) != 33:
            raise SigningError(
                f"Unexpected signature ({len(signature)} bytes) or "
                f"public key ({len(public_key)} bytes) length"
            )

        return self.std_signature(signature, public_key, account)
