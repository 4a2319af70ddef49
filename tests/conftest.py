"""
Pytest configuration and fixtures for KMS envelope encryption tests.
"""

from __future__ import annotations

import secrets
from typing import Any, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from kms_envelope import (
    AuditEvent,
    AuditLogger,
    EnvelopeCipher,
    FieldEncryptor,
    KmsClient,
    KmsSettings,
)

TEST_KEY_ARN = "arn:aws:kms:us-east-1:111122223333:key/test-master-key"

ENV_NAMES = (
    "AWS_KMS_KEY_ID",
    "AWS_REGION",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "AWS_KMS_ENDPOINT_URL",
    "KMS_AUDIT_WEBHOOK",
    "KMS_KEY_ROTATION_DAYS",
    "KMS_TIMEOUT_SECONDS",
)


class FakeKms:
    """
    In-process stand-in for the boto3 KMS client.

    Data keys are wrapped with AES-GCM under a random master key, so a
    tampered wrapped key is rejected the way the real service rejects it.
    """

    def __init__(self) -> None:
        self._master = AESGCM(AESGCM.generate_key(bit_length=256))
        self.calls: List[str] = []
        self.fail_with: Optional[Exception] = None
        self.fail_after: Optional[int] = None
        self.omit: set = set()

    def _maybe_fail(self) -> None:
        if self.fail_with is None:
            return
        if self.fail_after is None or len(self.calls) > self.fail_after:
            raise self.fail_with

    def generate_data_key(self, KeyId: str, KeySpec: str) -> Dict[str, Any]:
        self.calls.append("generate_data_key")
        self._maybe_fail()
        assert KeySpec == "AES_256"
        plaintext = secrets.token_bytes(32)
        nonce = secrets.token_bytes(12)
        response = {
            "Plaintext": plaintext,
            "CiphertextBlob": nonce + self._master.encrypt(nonce, plaintext, None),
            "KeyId": TEST_KEY_ARN,
        }
        for name in self.omit:
            response.pop(name, None)
        return response

    def decrypt(self, CiphertextBlob: bytes) -> Dict[str, Any]:
        self.calls.append("decrypt")
        self._maybe_fail()
        try:
            plaintext = self._master.decrypt(CiphertextBlob[:12], CiphertextBlob[12:], None)
        except (InvalidTag, ValueError):
            raise ClientError(
                {
                    "Error": {
                        "Code": "InvalidCiphertextException",
                        "Message": "The ciphertext is invalid",
                    }
                },
                "Decrypt",
            )
        response = {"Plaintext": plaintext, "KeyId": TEST_KEY_ARN}
        for name in self.omit:
            response.pop(name, None)
        return response


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove configuration variables; anything set during the test is undone."""
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


@pytest.fixture
def settings() -> KmsSettings:
    """Settings with static test credentials."""
    return KmsSettings(
        key_id="alias/test-key",
        region="us-east-1",
        access_key_id="test-key",
        secret_access_key="test-secret",
    )


@pytest.fixture
def fake_kms() -> FakeKms:
    return FakeKms()


@pytest.fixture
def audit_events() -> List[AuditEvent]:
    """Events recorded by the audit fixture."""
    return []


@pytest.fixture
def audit(audit_events: List[AuditEvent]) -> AuditLogger:
    return AuditLogger(sink=audit_events.append)


@pytest.fixture
def kms_client(settings: KmsSettings, audit: AuditLogger, fake_kms: FakeKms) -> KmsClient:
    return KmsClient(settings, audit, client_factory=lambda _settings: fake_kms)


@pytest.fixture
def cipher(kms_client: KmsClient) -> EnvelopeCipher:
    return EnvelopeCipher(kms_client)


@pytest.fixture
def field_encryptor(cipher: EnvelopeCipher) -> FieldEncryptor:
    return FieldEncryptor(cipher)
