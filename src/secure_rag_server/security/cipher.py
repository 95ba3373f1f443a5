"""
Authenticated Vector Cipher

AES-256-GCM encryption for embedding vectors and auxiliary strings.

Wire Format
-----------
Every payload is a single opaque byte string::

    IV (12 bytes) || AuthTag (16 bytes) || Ciphertext (variable)

externally represented as standard base64. Vectors are serialized as
little-endian IEEE-754 float64 before encryption, so a round trip is exact.

Security Properties
-------------------
- A fresh random IV is generated for every encryption call.
- Decryption verifies the authentication tag before any plaintext is
  released; a failed verification raises ``IntegrityError`` and yields
  nothing.
- A payload that cannot be parsed at all raises ``PayloadFormatError``, so
  tampering can be told apart from plain corruption.
- Optional associated data binds a payload to its context (for example the
  record it belongs to). It is authenticated but not encrypted, and the same
  bytes must be supplied to decrypt.
- The key lives only inside an immutable ``EncryptionConfig`` as a
  ``SecretStr``; it is never logged and never part of any payload.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel, ConfigDict, SecretStr

from ..core.errors import ConfigurationError, IntegrityError, PayloadFormatError

logger = logging.getLogger("rag.cipher")


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

SUPPORTED_ALGORITHM = "aes-256-gcm"
KEY_HEX_LENGTH = 64
IV_LENGTH = 12
TAG_LENGTH = 16
VECTOR_DTYPE = np.dtype("<f8")


# ---------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------

class EncryptionConfig(BaseModel):
    """
    Immutable cipher configuration, injected at construction time.
    """

    key_hex: SecretStr
    algorithm: str = SUPPORTED_ALGORITHM

    model_config = ConfigDict(frozen=True, extra="forbid")


@dataclass(frozen=True)
class EncryptedPayload:
    """
    Authenticated ciphertext split into its three fixed-layout fields.
    """

    iv: bytes
    tag: bytes
    ciphertext: bytes

    def to_bytes(self) -> bytes:
        return self.iv + self.tag + self.ciphertext

    def encode(self) -> str:
        """Return the text-safe (base64) external representation."""
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "EncryptedPayload":
        if len(raw) < IV_LENGTH + TAG_LENGTH:
            raise PayloadFormatError(
                f"Encrypted payload too short: {len(raw)} bytes."
            )
        return cls(
            iv=raw[:IV_LENGTH],
            tag=raw[IV_LENGTH : IV_LENGTH + TAG_LENGTH],
            ciphertext=raw[IV_LENGTH + TAG_LENGTH :],
        )

    @classmethod
    def decode(cls, encoded: str) -> "EncryptedPayload":
        """Parse the base64 external representation."""
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise PayloadFormatError("Encrypted payload is not valid base64.") from exc
        return cls.from_bytes(raw)

    def __repr__(self) -> str:
        return f"EncryptedPayload(<{len(self.ciphertext)} ciphertext bytes>)"


PayloadLike = Union[EncryptedPayload, str]


# ---------------------------------------------------------------------
# Cipher
# ---------------------------------------------------------------------

class VectorCipher:
    """
    Symmetric authenticated encryption for vectors and strings.

    Encryption and decryption are synchronous and CPU-only; they never
    perform I/O.
    """

    def __init__(self, config: EncryptionConfig) -> None:
        """
        Parameters
        ----------
        config : EncryptionConfig
            Key (64 hex characters, 256 bits) and algorithm name.

        Raises
        ------
        ConfigurationError
            If the key is missing, not hex, or not exactly 256 bits, or if the
            algorithm is not supported.
        """
        if config.algorithm.lower() != SUPPORTED_ALGORITHM:
            raise ConfigurationError(
                f"Unsupported encryption algorithm {config.algorithm!r}; "
                f"only {SUPPORTED_ALGORITHM!r} is available."
            )

        self._aead = AESGCM(_parse_key(config.key_hex))
        self.algorithm = SUPPORTED_ALGORITHM

        logger.info("Cipher initialized with %s", SUPPORTED_ALGORITHM.upper())

    # ------------------------------------------------------------------
    # Vectors
    # ------------------------------------------------------------------

    def encrypt_vector(
        self,
        vector: Sequence[float],
        associated_data: Optional[bytes] = None,
    ) -> EncryptedPayload:
        """Encrypt a numeric vector under a fresh random IV."""
        plaintext = np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()
        return self._seal(plaintext, associated_data)

    def decrypt_vector(
        self,
        payload: PayloadLike,
        associated_data: Optional[bytes] = None,
    ) -> List[float]:
        """
        Decrypt a vector payload.

        The returned list is plaintext: keep it on the stack of the current
        call and never persist or log it.

        Raises
        ------
        IntegrityError
            If tag verification fails, including when
            ``associated_data`` differs from what was sealed.

        PayloadFormatError
            If the payload cannot be parsed or does not hold float64 data.
        """
        plaintext = self._open(payload, associated_data)
        if len(plaintext) % VECTOR_DTYPE.itemsize:
            raise PayloadFormatError("Decrypted payload is not a float64 vector.")
        return np.frombuffer(plaintext, dtype=VECTOR_DTYPE).tolist()

    # ------------------------------------------------------------------
    # Auxiliary strings
    # ------------------------------------------------------------------

    def encrypt_text(self, text: str, associated_data: Optional[bytes] = None) -> EncryptedPayload:
        return self._seal(text.encode("utf-8"), associated_data)

    def decrypt_text(self, payload: PayloadLike, associated_data: Optional[bytes] = None) -> str:
        plaintext = self._open(payload, associated_data)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PayloadFormatError("Decrypted payload is not UTF-8 text.") from exc

    # ------------------------------------------------------------------
    # Fingerprints
    # ------------------------------------------------------------------

    @staticmethod
    def hash(data: Union[str, bytes]) -> str:
        """SHA-256 hex digest, for integrity fingerprints only."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        return hashlib.sha256(data).hexdigest()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _seal(self, plaintext: bytes, associated_data: Optional[bytes]) -> EncryptedPayload:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext, associated_data)
        # AESGCM appends the tag; the wire format puts it before the ciphertext.
        return EncryptedPayload(
            iv=iv,
            tag=sealed[-TAG_LENGTH:],
            ciphertext=sealed[:-TAG_LENGTH],
        )

    def _open(self, payload: PayloadLike, associated_data: Optional[bytes]) -> bytes:
        if isinstance(payload, str):
            payload = EncryptedPayload.decode(payload)
        elif not isinstance(payload, EncryptedPayload):
            raise PayloadFormatError(
                f"Unsupported payload type: {type(payload).__name__}"
            )

        if len(payload.iv) != IV_LENGTH or len(payload.tag) != TAG_LENGTH:
            raise PayloadFormatError("Encrypted payload has malformed IV or tag.")

        try:
            return self._aead.decrypt(payload.iv, payload.ciphertext + payload.tag, associated_data)
        except InvalidTag as exc:
            logger.error("Authentication tag verification failed")
            raise IntegrityError("Encrypted payload failed authentication.") from exc


def _parse_key(key_hex: SecretStr | None) -> bytes:
    raw = key_hex.get_secret_value().strip() if key_hex else ""

    if len(raw) != KEY_HEX_LENGTH:
        raise ConfigurationError(
            "Encryption key must be 256 bits (64 hex characters). Generate one with: "
            "python -c \"import secrets; print(secrets.token_hex(32))\""
        )

    try:
        return bytes.fromhex(raw)
    except ValueError:
        raise ConfigurationError(
            "Encryption key must contain only hexadecimal characters."
        ) from None
