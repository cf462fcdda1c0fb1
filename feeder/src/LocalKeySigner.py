"""LocalKeySigner: Signer backed by a secp256k1 key held in process memory."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

from eth_account import Account
from eth_keys import keys

from .SequenceManager import AccountState
from .Signer import Signer, SigningError

logger = logging.getLogger(__name__)

# Order of the secp256k1 group.
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class LocalKeySigner(Signer):
    """Signer using a raw private key.

    Signatures are deterministic (RFC 6979) and normalized to low-S form, as
    required by the chain.

    :ivar public_key: 33-byte compressed public key.
    """

    def __init__(self, private_key: bytes | str) -> None:
        """Initialize the signer.

        :param private_key: 32-byte private key, raw or hex encoded.
        :raises ValueError: If the key is not 32 bytes.
        """
        if isinstance(private_key, str):
            key_hex = private_key[2:] if private_key.startswith("0x") else private_key
            private_key = bytes.fromhex(key_hex)
        if len(private_key) != 32:
            raise ValueError("Private key must be 32 bytes")

        self._key = keys.PrivateKey(private_key)
        self.public_key: bytes = self._key.public_key.to_compressed_bytes()

    @classmethod
    def from_keystore(cls, path: str | Path, password: str) -> LocalKeySigner:
        """Load the key from an encrypted keystore file.

        :param path: Path to an Ethereum V3 keystore JSON file.
        :param password: Keystore passphrase.
        :returns: New LocalKeySigner.
        :raises SigningError: If the file cannot be read or decrypted.
        """
        try:
            with open(path, "r") as file:
                keyfile: dict[str, Any] = json.load(file)
            private_key = Account.decrypt(keyfile, password)
        except (OSError, ValueError) as e:
            raise SigningError(f"Failed to load key from {path}: {e}") from e

        logger.debug(f"Loaded signing key from {path}")
        return cls(bytes(private_key))

    async def sign(self, sign_doc: bytes, account: AccountState) -> dict[str, Any]:
        """Sign the sha256 digest of a sign document.

        :param sign_doc: Canonical sign bytes.
        :param account: Account state the document was built with.
        :returns: StdSignature dict.
        """
        digest = hashlib.sha256(sign_doc).digest()
        signature = self._key.sign_msg_hash(digest)

        s = signature.s
        if s > SECP256K1_N // 2:
            s = SECP256K1_N - s
        compact = signature.r.to_bytes(32, "big") + s.to_bytes(32, "big")

        return self.std_signature(compact, self.public_key, account)
