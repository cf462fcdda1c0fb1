"""Signer: Abstract signing capability and bech32 address helpers."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from typing import Any

import bech32

from .SequenceManager import AccountState

ACCOUNT_PREFIX = "terra"
VALIDATOR_PREFIX = "terravaloper"

PUBKEY_TYPE = "tendermint/PubKeySecp256k1"


class SigningError(Exception):
    """Raised when a transaction cannot be signed (locked device, bad key)."""

    pass


def decode_address(address: str, prefix: str | None = None) -> bytes:
    """Decode a bech32 address to its raw bytes.

    :param address: Bech32 address (e.g., "terra1...").
    :param prefix: Expected human readable part, or None to accept any.
    :returns: Raw address bytes (20 bytes for accounts and validators).
    :raises ValueError: If address is invalid bech32 or has the wrong prefix.
    """
    hrp, data = bech32.bech32_decode(address)
    if data is None:
        raise ValueError(f"Invalid bech32 address: {address}")
    if prefix is not None and hrp != prefix:
        raise ValueError(f"Address {address} does not start with '{prefix}1'")

    # Convert 5-bit groups to bytes
    address_bytes = bech32.convertbits(data, 5, 8, False)
    if address_bytes is None:
        raise ValueError(f"Failed to convert address to bytes: {address}")

    return bytes(address_bytes)


def encode_address(prefix: str, address_bytes: bytes) -> str:
    """Encode raw address bytes as bech32.

    :param prefix: Human readable part (e.g., "terra").
    :param address_bytes: Raw address bytes.
    :returns: Bech32 address.
    """
    data = bech32.convertbits(address_bytes, 8, 5, True)
    return bech32.bech32_encode(prefix, data)


def to_validator_address(account_address: str) -> str:
    """Convert an account address to the validator operator address of the same key.

    :param account_address: Account address ("terra1...").
    :returns: Validator operator address ("terravaloper1...").
    :raises ValueError: If the account address is invalid.
    """
    return encode_address(VALIDATOR_PREFIX, decode_address(account_address, ACCOUNT_PREFIX))


class Signer(ABC):
    """Abstract base class for transaction signers.

    Implementations sign the canonical sign document of a transaction with
    the feeder's secp256k1 key, wherever that key lives.
    """

    @abstractmethod
    async def sign(self, sign_doc: bytes, account: AccountState) -> dict[str, Any]:
        """Sign a transaction's sign document.

        :param sign_doc: Canonical sign bytes from TransactionBuilder.sign_doc().
        :param account: Account number and sequence the document was built with.
        :returns: StdSignature dict to attach to the transaction.
        :raises SigningError: If the signature cannot be produced.
        """
        pass

    async def close(self) -> None:
        """Release resources held by the signer."""
        return None

    @staticmethod
    def std_signature(
        signature: bytes,
        public_key: bytes,
        account: AccountState,
    ) -> dict[str, Any]:
        """Build the StdSignature attached to a signed transaction.

        :param signature: 64-byte compact (r || s) signature.
        :param public_key: 33-byte compressed secp256k1 public key.
        :param account: Account state the transaction was signed with.
        :returns: StdSignature dict.
        """
        return {
            "signature": base64.b64encode(signature).decode("ascii"),
            "pub_key": {
                "type": PUBKEY_TYPE,
                "value": base64.b64encode(public_key).decode("ascii"),
            },
            "account_number": str(account.account_number),
            "sequence": str(account.sequence),
        }
