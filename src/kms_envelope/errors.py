"""
Exception classes for KMS envelope encryption operations.

Every error raised by this package derives from EnvelopeError. Errors carry the
name of the failing operation and a mapping of non-sensitive details so callers
can audit-log them without inspecting the message text.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EnvelopeError(Exception):
    """Base exception for all envelope encryption operations."""

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.details = dict(details or {})


class ConfigError(EnvelopeError):
    """Configuration error."""

    pass


class SerializationError(EnvelopeError):
    """Serialization or deserialization error."""

    pass


# =============================================================================
# Key service errors
# =============================================================================


class KeyServiceError(EnvelopeError):
    """Remote key service operation failed."""

    pass


class KeyServiceUnavailable(KeyServiceError):
    """Network, timeout or remote failure talking to the key service.

    Potentially retryable by the caller with backoff. Never retried internally.
    """

    pass


class KeyGenerationFailed(KeyServiceError):
    """GenerateDataKey response was missing the plaintext or wrapped key."""

    pass


class KeyUnwrapFailed(KeyServiceError):
    """Decrypt response was missing the plaintext key."""

    pass


# =============================================================================
# Cipher errors
# =============================================================================


class EncryptionError(EnvelopeError):
    """Local encryption failed."""

    pass


class DecryptionError(EnvelopeError):
    """Local decryption failed."""

    pass


class UnsupportedEnvelopeFormat(DecryptionError):
    """Envelope version or algorithm is not the supported pair."""

    pass


class AuthenticationFailed(DecryptionError):
    """Authentication tag verification failed (tampering or corruption)."""

    pass
