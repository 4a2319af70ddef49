"""
Cryptographic primitives for AES-256-GCM envelope encryption.

This module provides:
- SecureKey: Mutable key wrapper with explicit and automatic zeroization
- EncryptedData: AES-GCM output (nonce and ciphertext with appended tag)
- AesGcmCipher: AES-256-GCM encryption/decryption operations
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationFailed, DecryptionError, EncryptionError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)


class SecureKey:
    """
    Key wrapper backed by a bytearray so it can be overwritten in place.

    Call zero() (or use the key as a context manager) as soon as the key is no
    longer needed. __del__ zeroes as a fallback, but Python's garbage collector
    doesn't guarantee immediate cleanup.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise TypeError("Key must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls) -> SecureKey:
        """Generate a cryptographically secure random 32-byte key."""
        return cls(secrets.token_bytes(AES_256_KEY_SIZE))

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def zero(self) -> None:
        """Overwrite the key material with zeros."""
        for i in range(len(self._bytes)):
            self._bytes[i] = 0

    @property
    def is_zeroed(self) -> bool:
        return not any(self._bytes)

    def __enter__(self) -> SecureKey:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.zero()

    def __len__(self) -> int:
        """Return key length in bytes."""
        return len(self._bytes)

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        """Zero memory on deletion (best-effort)."""
        if hasattr(self, "_bytes"):
            self.zero()


@dataclass(frozen=True)
class EncryptedData:
    """
    Encrypted data container with nonce and ciphertext.

    The ciphertext includes the 16-byte authentication tag appended by AESGCM.
    """

    nonce: bytes  # 12 bytes
    ciphertext: bytes  # Ciphertext + 16-byte auth tag


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption.

    Provides static methods for encryption and decryption. No associated
    data is bound.
    """

    @staticmethod
    def encrypt(key: SecureKey, plaintext: bytes) -> EncryptedData:
        """
        Encrypt plaintext with AES-256-GCM under a fresh random nonce.

        Args:
            key: 32-byte encryption key
            plaintext: Data to encrypt

        Returns:
            EncryptedData with nonce and ciphertext (includes auth tag)

        Raises:
            EncryptionError: If key size is invalid or encryption fails
        """
        if len(key) != AES_256_KEY_SIZE:
            raise EncryptionError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}",
                operation="encrypt",
            )

        nonce = secrets.token_bytes(NONCE_SIZE)
        aesgcm = AESGCM(key.as_bytes())

        try:
            ciphertext = aesgcm.encrypt(nonce, plaintext, None)
        except (TypeError, ValueError, OverflowError) as e:
            raise EncryptionError(f"Encryption error: {e}", operation="encrypt") from e

        return EncryptedData(nonce=nonce, ciphertext=ciphertext)

    @staticmethod
    def decrypt(key: SecureKey, encrypted: EncryptedData) -> bytes:
        """
        Decrypt ciphertext with AES-256-GCM.

        Args:
            key: 32-byte decryption key
            encrypted: EncryptedData with nonce and ciphertext

        Returns:
            Decrypted plaintext bytes

        Raises:
            DecryptionError: If key or nonce size is invalid
            AuthenticationFailed: If the authentication tag does not verify
        """
        if len(key) != AES_256_KEY_SIZE:
            raise DecryptionError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(key)}",
                operation="decrypt",
            )

        if len(encrypted.nonce) != NONCE_SIZE:
            raise DecryptionError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(encrypted.nonce)}",
                operation="decrypt",
            )

        if len(encrypted.ciphertext) < TAG_SIZE:
            raise AuthenticationFailed(
                "Ciphertext shorter than authentication tag", operation="decrypt"
            )

        aesgcm = AESGCM(key.as_bytes())

        try:
            return aesgcm.decrypt(encrypted.nonce, encrypted.ciphertext, None)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise AuthenticationFailed("Decryption failed", operation="decrypt") from None
