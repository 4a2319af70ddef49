"""
AWS KMS client adapter.

This module provides:
- KmsClient: Lazily-initialized, thread-safe handle to the remote key service
- DataKeyPair: Plaintext and wrapped data key returned by GenerateDataKey

Key hierarchy:
- KMS master key (never leaves the key service)
- Data key (generated per operation, wrapped by the master key)
- Data key -> Application data

The boto3 client is created once, on first use, under a double-checked lock.
Blocking boto3 calls run in worker threads so concurrent operations do not
block the event loop. No plaintext key is cached between calls.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .audit import AuditEventName, AuditLogger
from .config import KmsSettings
from .crypto import SecureKey
from .errors import (
    AuthenticationFailed,
    EnvelopeError,
    KeyGenerationFailed,
    KeyServiceUnavailable,
    KeyUnwrapFailed,
)

logger = structlog.get_logger(__name__)

KEY_SPEC = "AES_256"

# KMS error code for a wrapped key that was altered or belongs to another key
INVALID_CIPHERTEXT_CODE = "InvalidCiphertextException"

ClientFactory = Callable[[KmsSettings], Any]


@dataclass
class DataKeyPair:
    """
    Data key issued by the key service.

    The plaintext key must be zeroed as soon as it has been used; the pair is a
    context manager that does this on exit.
    """

    plaintext_key: SecureKey
    wrapped_key: bytes
    key_id: str

    def __enter__(self) -> DataKeyPair:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.plaintext_key.zero()


def build_boto_client(settings: KmsSettings) -> Any:
    """
    Create a boto3 KMS client from settings.

    Retries are disabled: retry policy belongs to the caller. Connect and read
    timeouts bound every request so a stalled key service surfaces as
    KeyServiceUnavailable.
    """
    config = Config(
        region_name=settings.region,
        connect_timeout=settings.timeout_seconds,
        read_timeout=settings.timeout_seconds,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )

    client_kwargs: Dict[str, Any] = {"config": config}
    if settings.access_key_id and settings.secret_access_key:
        client_kwargs["aws_access_key_id"] = settings.access_key_id
        client_kwargs["aws_secret_access_key"] = settings.secret_access_key
    if settings.session_token:
        client_kwargs["aws_session_token"] = settings.session_token
    if settings.endpoint_url:
        client_kwargs["endpoint_url"] = settings.endpoint_url

    session = boto3.session.Session()
    return session.client("kms", **client_kwargs)


class KmsClient:
    """
    Adapter over the remote key service's generate/unwrap contract.

    Every call is audited on both the success and the failure path.
    """

    def __init__(
        self,
        settings: KmsSettings,
        audit: Optional[AuditLogger] = None,
        *,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        """
        Initialize the adapter. No network activity happens here.

        Args:
            settings: Key service settings
            audit: Audit logger (built from settings if omitted)
            client_factory: Callable returning a boto3-compatible KMS client
        """
        self._settings = settings
        self._audit = audit if audit is not None else AuditLogger.from_settings(settings)
        self._client_factory = client_factory or build_boto_client
        self._client: Any = None
        self._lock = threading.Lock()

    @property
    def key_id(self) -> str:
        """Master key id used for data key generation."""
        return self._settings.key_id

    @property
    def settings(self) -> KmsSettings:
        return self._settings

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    @property
    def client(self) -> Any:
        """Underlying key service client, created exactly once."""
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = self._client_factory(self._settings)
                    logger.info(
                        "kms_client_initialized",
                        region=self._settings.region,
                        key_id=self._settings.key_id,
                    )
        return self._client

    async def generate_data_key(self) -> DataKeyPair:
        """
        Generate a new AES-256 data key under the configured master key.

        Returns:
            DataKeyPair with plaintext and wrapped key

        Raises:
            KeyServiceUnavailable: If the key service cannot be reached
            KeyGenerationFailed: If the response lacks either key
        """
        details = {"keyId": self.key_id, "keySpec": KEY_SPEC}
        try:
            response = await asyncio.to_thread(
                self._call,
                "generate_data_key",
                KeyId=self.key_id,
                KeySpec=KEY_SPEC,
            )
            plaintext = response.get("Plaintext")
            wrapped = response.get("CiphertextBlob")
            if not plaintext or not wrapped:
                raise KeyGenerationFailed(
                    "KMS GenerateDataKey failed to return keys",
                    operation="generate_data_key",
                    details=details,
                )
        except Exception as e:
            self._audit.log(AuditEventName.DATA_KEY_GENERATION_FAILED, details, e)
            if isinstance(e, EnvelopeError):
                raise
            raise KeyServiceUnavailable(
                f"KMS generate_data_key failed: {e}",
                operation="generate_data_key",
                details=details,
            ) from e

        pair = DataKeyPair(
            plaintext_key=SecureKey(plaintext),
            wrapped_key=bytes(wrapped),
            key_id=response.get("KeyId") or self.key_id,
        )
        self._audit.log(AuditEventName.DATA_KEY_GENERATED, details)
        return pair

    async def unwrap_data_key(self, wrapped: bytes) -> SecureKey:
        """
        Ask the key service to unwrap a data key.

        Args:
            wrapped: Wrapped key blob from a previous GenerateDataKey

        Returns:
            Plaintext data key (caller must zero it)

        Raises:
            KeyServiceUnavailable: If the key service cannot be reached
            KeyUnwrapFailed: If the response lacks the plaintext key
            AuthenticationFailed: If the key service rejects the blob as invalid
        """
        try:
            response = await asyncio.to_thread(
                self._call, "decrypt", CiphertextBlob=bytes(wrapped)
            )
            plaintext = response.get("Plaintext")
            if not plaintext:
                raise KeyUnwrapFailed(
                    "KMS Decrypt failed to return plaintext key",
                    operation="unwrap_data_key",
                )
        except Exception as e:
            self._audit.log(
                AuditEventName.DATA_KEY_DECRYPTION_FAILED,
                {"wrappedKeySize": len(wrapped)},
                e,
            )
            if isinstance(e, EnvelopeError):
                raise
            raise KeyServiceUnavailable(
                f"KMS decrypt failed: {e}", operation="unwrap_data_key"
            ) from e

        # Master key that served the request, for rotation auditing
        self._audit.log(
            AuditEventName.DATA_KEY_DECRYPTED, {"keyId": response.get("KeyId")}
        )
        return SecureKey(plaintext)

    def _call(self, operation: str, **params: Any) -> Dict[str, Any]:
        """Invoke a key service operation, mapping transport errors."""
        try:
            return getattr(self.client, operation)(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code == INVALID_CIPHERTEXT_CODE:
                raise AuthenticationFailed(
                    "Key service rejected the wrapped data key",
                    operation=operation,
                    details={"errorCode": code},
                ) from e
            raise KeyServiceUnavailable(
                f"KMS {operation} failed: {code}",
                operation=operation,
                details={"errorCode": code},
            ) from e
        except (BotoCoreError, OSError) as e:
            raise KeyServiceUnavailable(
                f"KMS {operation} failed: {e}", operation=operation
            ) from e
