"""
KMS Envelope Encryption Library

Field-level envelope encryption for sensitive personal, financial and health
data, with per-operation data keys issued by AWS KMS.

Overview
--------
- **Data keys** are generated by KMS for every encryption and used once for
  local AES-256-GCM
- **Wrapped data keys** travel inside the encrypted envelope; only KMS can
  unwrap them
- **Audit events** are recorded for every key service and cipher operation

Quick Start
-----------
```python
import asyncio
from kms_envelope import (
    AuditLogger,
    EnvelopeCipher,
    FieldEncryptor,
    KmsClient,
    KmsSettings,
)

async def main():
    settings = KmsSettings.from_env()
    audit = AuditLogger.from_settings(settings)

    # Construct once per process and share
    kms = KmsClient(settings, audit)
    cipher = EnvelopeCipher(kms)

    # Encrypt selected fields of a record
    fields = FieldEncryptor(cipher)
    record = {"name": "Ada", "ssn": "123-45-6789", "balance": 1250}
    stored = await fields.encrypt_fields(record, ["ssn", "balance"])

    # Decrypt them again
    restored = await fields.decrypt_fields(
        stored, ["ssn", "balance"], field_types={"balance": int}
    )

asyncio.run(main())
```

Modules
-------
- `crypto`: AES-256-GCM encryption primitives
- `kms`: AWS KMS client adapter
- `envelope`: Envelope format and envelope cipher
- `fields`: Field-level record encryption
- `audit`: Audit trail of cryptographic operations
- `rotation`: Key rotation policy
- `config`: Settings and configuration status
- `errors`: Error types and exception classes
"""

__version__ = "0.1.0"

# ============================================================================
# Crypto Exports
# ============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    EncryptedData,
    SecureKey,
)

# ============================================================================
# Error Exports
# ============================================================================

from .errors import (
    AuthenticationFailed,
    ConfigError,
    DecryptionError,
    EncryptionError,
    EnvelopeError,
    KeyGenerationFailed,
    KeyServiceError,
    KeyServiceUnavailable,
    KeyUnwrapFailed,
    SerializationError,
    UnsupportedEnvelopeFormat,
)

# ============================================================================
# Configuration & Audit Exports
# ============================================================================

from .config import KmsSettings, KmsStatus

from .audit import AuditEvent, AuditEventName, AuditLogger

# ============================================================================
# Key Service Exports
# ============================================================================

from .kms import DataKeyPair, KmsClient

# ============================================================================
# Envelope & Field Exports (Primary API)
# ============================================================================

from .envelope import ALGORITHM, ENVELOPE_VERSION, EncryptedEnvelope, EnvelopeCipher

from .fields import FieldEncryptor, marker_for

# ============================================================================
# Rotation Exports
# ============================================================================

from .rotation import is_rotation_due, key_age_days, next_rotation_at

# ============================================================================
# Public API
# ============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "EncryptedData",
    "SecureKey",
    # Errors
    "EnvelopeError",
    "ConfigError",
    "SerializationError",
    "KeyServiceError",
    "KeyServiceUnavailable",
    "KeyGenerationFailed",
    "KeyUnwrapFailed",
    "EncryptionError",
    "DecryptionError",
    "UnsupportedEnvelopeFormat",
    "AuthenticationFailed",
    # Configuration & audit
    "KmsSettings",
    "KmsStatus",
    "AuditEvent",
    "AuditEventName",
    "AuditLogger",
    # Key service
    "KmsClient",
    "DataKeyPair",
    # Envelope & fields (Primary API)
    "ALGORITHM",
    "ENVELOPE_VERSION",
    "EncryptedEnvelope",
    "EnvelopeCipher",
    "FieldEncryptor",
    "marker_for",
    # Rotation
    "is_rotation_due",
    "key_age_days",
    "next_rotation_at",
]
