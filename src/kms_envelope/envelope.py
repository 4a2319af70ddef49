"""
Envelope encryption service.

This module provides:
- EncryptedEnvelope: Self-describing encrypted payload with its wrapped data key
- EnvelopeCipher: Encrypts and decrypts byte payloads with per-call data keys

Crypto flow (encrypt):
1. Ask the key service for a fresh data key (plaintext + wrapped)
2. AES-256-GCM encrypt under a fresh 12-byte nonce, no AAD
3. Zero the plaintext data key
4. Return envelope (version, algorithm, wrapped key, nonce, ciphertext)

Decrypt mirrors this after checking the envelope's version and algorithm.
Every call uses its own data key, so a (key, nonce) pair is never reused.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from .audit import AuditEventName, AuditLogger
from .crypto import NONCE_SIZE, AesGcmCipher, EncryptedData
from .errors import (
    DecryptionError,
    EncryptionError,
    EnvelopeError,
    SerializationError,
    UnsupportedEnvelopeFormat,
)
from .kms import KmsClient

logger = structlog.get_logger(__name__)

ENVELOPE_VERSION = "1.0"
ALGORITHM = "AES-256-GCM"

_PAYLOAD_FIELDS = ("encryptedKey", "iv", "ciphertext", "algorithm", "version")


def _to_ints(data: bytes) -> List[int]:
    return list(data)


def _from_ints(values: Any, name: str) -> bytes:
    if not isinstance(values, list):
        raise SerializationError(f"Envelope field {name!r} must be a byte array")
    try:
        return bytes(values)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Envelope field {name!r} is not a byte array: {e}")


@dataclass(frozen=True)
class EncryptedEnvelope:
    """
    Encrypted payload at rest.

    Contains everything needed for decryption except access to the key service
    that unwraps `wrapped_data_key`. Holds no plaintext key material.
    """

    wrapped_data_key: bytes
    nonce: bytes  # 12 bytes
    ciphertext: bytes  # Ciphertext + 16-byte auth tag
    algorithm: str = ALGORITHM
    version: str = ENVELOPE_VERSION

    def __repr__(self) -> str:
        return (
            f"EncryptedEnvelope(version={self.version!r}, algorithm={self.algorithm!r}, "
            f"wrapped_data_key=<{len(self.wrapped_data_key)} bytes>, "
            f"nonce=<{len(self.nonce)} bytes>, ciphertext=<{len(self.ciphertext)} bytes>)"
        )

    @property
    def is_supported(self) -> bool:
        return self.version == ENVELOPE_VERSION and self.algorithm == ALGORITHM

    @property
    def encrypted_data(self) -> EncryptedData:
        return EncryptedData(nonce=self.nonce, ciphertext=self.ciphertext)

    def to_dict(self) -> Dict[str, Any]:
        """Wire structure with byte fields as integer arrays."""
        return {
            "encryptedKey": _to_ints(self.wrapped_data_key),
            "iv": _to_ints(self.nonce),
            "ciphertext": _to_ints(self.ciphertext),
            "algorithm": self.algorithm,
            "version": self.version,
        }

    def to_payload(self) -> str:
        """Serialize envelope to its persisted form (base64 of compact JSON)."""
        try:
            encoded = json.dumps(self.to_dict(), separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Failed to serialize envelope: {e}")
        return base64.standard_b64encode(encoded.encode("ascii")).decode("ascii")

    @classmethod
    def from_dict(cls, data: Any) -> EncryptedEnvelope:
        """
        Build an envelope from its wire structure.

        Version and algorithm are carried as found; EnvelopeCipher.decrypt
        rejects anything but the supported pair.

        Raises:
            SerializationError: If the structure is malformed
        """
        if not isinstance(data, dict):
            raise SerializationError("Envelope payload must be a JSON object")

        missing = [name for name in _PAYLOAD_FIELDS if name not in data]
        if missing:
            raise SerializationError(f"Envelope payload missing fields: {missing}")

        return cls(
            wrapped_data_key=_from_ints(data["encryptedKey"], "encryptedKey"),
            nonce=_from_ints(data["iv"], "iv"),
            ciphertext=_from_ints(data["ciphertext"], "ciphertext"),
            algorithm=data["algorithm"],
            version=data["version"],
        )

    @classmethod
    def from_payload(cls, payload: str) -> EncryptedEnvelope:
        """
        Deserialize envelope from its persisted form.

        Args:
            payload: Base64-encoded JSON envelope

        Returns:
            EncryptedEnvelope instance

        Raises:
            SerializationError: If decoding fails or data is malformed
        """
        if not isinstance(payload, (str, bytes)):
            raise SerializationError("Envelope payload must be a string")
        try:
            decoded = base64.b64decode(payload, validate=True)
            data = json.loads(decoded)
        except (binascii.Error, ValueError) as e:
            raise SerializationError(f"Failed to deserialize envelope: {e}")
        return cls.from_dict(data)


class EnvelopeCipher:
    """
    Envelope encryption of arbitrary byte payloads.

    Data keys come from the injected KmsClient; the plaintext key lives only
    for the duration of a single encrypt or decrypt call.
    """

    def __init__(self, kms: KmsClient, audit: Optional[AuditLogger] = None) -> None:
        """
        Initialize the cipher.

        Args:
            kms: Key service adapter (construct once per process and share)
            audit: Audit logger (defaults to the adapter's)
        """
        self._kms = kms
        self._audit = audit if audit is not None else kms.audit

    @property
    def kms(self) -> KmsClient:
        return self._kms

    async def encrypt(self, plaintext: bytes) -> EncryptedEnvelope:
        """
        Encrypt a payload under a fresh data key.

        Args:
            plaintext: Data to encrypt

        Returns:
            EncryptedEnvelope

        Raises:
            KeyServiceUnavailable, KeyGenerationFailed: Key service failures
            EncryptionError: Local encryption failures
        """
        try:
            envelope = await self._encrypt(plaintext)
        except Exception as e:
            self._audit.log(AuditEventName.ENCRYPTION_FAILED, {"algorithm": ALGORITHM}, e)
            if isinstance(e, EnvelopeError):
                raise
            raise EncryptionError(f"Encryption failed: {e}", operation="encrypt") from e

        self._audit.log(
            AuditEventName.DATA_ENCRYPTED,
            {"algorithm": ALGORITHM, "dataSize": len(plaintext)},
        )
        return envelope

    async def _encrypt(self, plaintext: bytes) -> EncryptedEnvelope:
        if not isinstance(plaintext, (bytes, bytearray)):
            raise EncryptionError(
                f"Plaintext must be bytes, got {type(plaintext).__name__}",
                operation="encrypt",
            )

        with await self._kms.generate_data_key() as data_key:
            encrypted = AesGcmCipher.encrypt(data_key.plaintext_key, bytes(plaintext))
            wrapped = data_key.wrapped_key

        return EncryptedEnvelope(
            wrapped_data_key=wrapped,
            nonce=encrypted.nonce,
            ciphertext=encrypted.ciphertext,
        )

    async def decrypt(self, envelope: EncryptedEnvelope) -> bytes:
        """
        Decrypt an envelope.

        Args:
            envelope: EncryptedEnvelope to decrypt

        Returns:
            Decrypted plaintext

        Raises:
            UnsupportedEnvelopeFormat: Version/algorithm mismatch (no key service call made)
            AuthenticationFailed: Tag verification failed or wrapped key rejected
            KeyServiceUnavailable, KeyUnwrapFailed: Key service failures
            DecryptionError: Other local decryption failures
        """
        details = {"algorithm": envelope.algorithm, "version": envelope.version}
        try:
            plaintext = await self._decrypt(envelope)
        except Exception as e:
            self._audit.log(AuditEventName.DECRYPTION_FAILED, details, e)
            if isinstance(e, EnvelopeError):
                raise
            raise DecryptionError(f"Decryption failed: {e}", operation="decrypt") from e

        self._audit.log(
            AuditEventName.DATA_DECRYPTED, {**details, "dataSize": len(plaintext)}
        )
        return plaintext

    async def _decrypt(self, envelope: EncryptedEnvelope) -> bytes:
        if not envelope.is_supported:
            raise UnsupportedEnvelopeFormat(
                "Unsupported encryption version or algorithm",
                operation="decrypt",
                details={"algorithm": envelope.algorithm, "version": envelope.version},
            )

        if len(envelope.nonce) != NONCE_SIZE:
            raise DecryptionError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(envelope.nonce)}",
                operation="decrypt",
            )

        with await self._kms.unwrap_data_key(envelope.wrapped_data_key) as data_key:
            return AesGcmCipher.decrypt(data_key, envelope.encrypted_data)

    async def encrypt_text(self, text: str) -> str:
        """Encrypt UTF-8 text and return the serialized envelope."""
        envelope = await self.encrypt(text.encode("utf-8"))
        return envelope.to_payload()

    async def decrypt_text(self, payload: str) -> str:
        """Decrypt a serialized envelope back to UTF-8 text."""
        try:
            envelope = EncryptedEnvelope.from_payload(payload)
        except SerializationError as e:
            self._audit.log(AuditEventName.DECRYPTION_FAILED, {}, e)
            raise

        plaintext = await self.decrypt(envelope)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError(
                "Decrypted payload is not valid UTF-8", operation="decrypt_text"
            ) from e

    async def reencrypt(self, envelope: EncryptedEnvelope) -> EncryptedEnvelope:
        """
        Re-encrypt an envelope under a freshly generated data key.

        Used to move stored data onto the current master key after rotation.

        Args:
            envelope: Existing envelope

        Returns:
            New envelope with a new wrapped key and nonce
        """
        plaintext = await self.decrypt(envelope)
        rotated = await self.encrypt(plaintext)
        logger.info("envelope_reencrypted", key_id=self._kms.key_id)
        return rotated
