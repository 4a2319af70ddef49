"""
Tests for field-level record encryption.
"""

from __future__ import annotations

import dataclasses
from typing import List

import pytest
from botocore.exceptions import EndpointConnectionError

from kms_envelope import (
    AuditEvent,
    EncryptedEnvelope,
    EnvelopeCipher,
    FieldEncryptor,
    KeyServiceUnavailable,
    SerializationError,
    UnsupportedEnvelopeFormat,
)

from conftest import FakeKms


@pytest.fixture
def patient() -> dict:
    return {
        "id": "rec-42",
        "name": "Jordan Reyes",
        "diagnosis": "Type 2 diabetes",
        "ssn": "123-45-6789",
        "notes": None,
    }


async def test_round_trip_restores_fields(field_encryptor: FieldEncryptor, patient: dict) -> None:
    encrypted = await field_encryptor.encrypt_fields(patient, ["diagnosis", "ssn"])

    assert encrypted["diagnosis"] != patient["diagnosis"]
    assert encrypted["diagnosis_encrypted"] is True
    assert encrypted["ssn_encrypted"] is True
    assert encrypted["name"] == "Jordan Reyes"
    assert "name_encrypted" not in encrypted

    decrypted = await field_encryptor.decrypt_fields(encrypted, ["diagnosis", "ssn"])

    assert decrypted == patient
    assert not [k for k in decrypted if k.endswith("_encrypted")]


async def test_encrypted_value_is_serialized_envelope(
    field_encryptor: FieldEncryptor, patient: dict
) -> None:
    encrypted = await field_encryptor.encrypt_fields(patient, ["ssn"])

    envelope = EncryptedEnvelope.from_payload(encrypted["ssn"])
    assert envelope.version == "1.0"
    assert envelope.algorithm == "AES-256-GCM"


async def test_null_and_absent_fields_pass_through(
    field_encryptor: FieldEncryptor, patient: dict, fake_kms: FakeKms
) -> None:
    encrypted = await field_encryptor.encrypt_fields(patient, ["notes", "missing"])

    assert encrypted["notes"] is None
    assert "notes_encrypted" not in encrypted
    assert "missing" not in encrypted
    assert "missing_encrypted" not in encrypted
    assert fake_kms.calls == []


async def test_input_record_not_mutated(field_encryptor: FieldEncryptor, patient: dict) -> None:
    snapshot = dict(patient)

    encrypted = await field_encryptor.encrypt_fields(patient, ["ssn"])
    encrypted_snapshot = dict(encrypted)
    await field_encryptor.decrypt_fields(encrypted, ["ssn"])

    assert patient == snapshot
    assert encrypted == encrypted_snapshot


async def test_scalar_types_reconstructed(field_encryptor: FieldEncryptor) -> None:
    record = {"balance": 1250, "rate": 4.75, "insured": True, "smoker": False, "memo": "ok"}
    fields = list(record)

    encrypted = await field_encryptor.encrypt_fields(record, fields)
    decrypted = await field_encryptor.decrypt_fields(
        encrypted,
        fields,
        field_types={"balance": int, "rate": float, "insured": bool, "smoker": bool},
    )

    assert decrypted == record
    assert isinstance(decrypted["balance"], int)
    assert decrypted["insured"] is True


async def test_without_field_types_values_come_back_as_text(
    field_encryptor: FieldEncryptor,
) -> None:
    encrypted = await field_encryptor.encrypt_fields({"balance": 1250, "insured": True}, ["balance", "insured"])

    decrypted = await field_encryptor.decrypt_fields(encrypted, ["balance", "insured"])

    assert decrypted == {"balance": "1250", "insured": "true"}


async def test_unsupported_value_type(field_encryptor: FieldEncryptor) -> None:
    with pytest.raises(SerializationError):
        await field_encryptor.encrypt_fields({"tags": ["a", "b"]}, ["tags"])


async def test_bad_field_type_on_decrypt(field_encryptor: FieldEncryptor) -> None:
    encrypted = await field_encryptor.encrypt_fields({"balance": "abc"}, ["balance"])

    with pytest.raises(SerializationError):
        await field_encryptor.decrypt_fields(encrypted, ["balance"], field_types={"balance": int})


async def test_decrypt_is_noop_without_markers(
    field_encryptor: FieldEncryptor, patient: dict, fake_kms: FakeKms
) -> None:
    result = await field_encryptor.decrypt_fields(patient, ["diagnosis", "ssn"])

    assert result == patient
    assert fake_kms.calls == []


async def test_mixed_legacy_and_encrypted_fields(
    field_encryptor: FieldEncryptor, patient: dict
) -> None:
    encrypted = await field_encryptor.encrypt_fields(patient, ["ssn"])

    decrypted = await field_encryptor.decrypt_fields(encrypted, ["diagnosis", "ssn"])

    assert decrypted["diagnosis"] == "Type 2 diabetes"
    assert decrypted["ssn"] == "123-45-6789"


async def test_double_decrypt_is_idempotent(field_encryptor: FieldEncryptor, patient: dict) -> None:
    encrypted = await field_encryptor.encrypt_fields(patient, ["ssn"])
    once = await field_encryptor.decrypt_fields(encrypted, ["ssn"])

    assert await field_encryptor.decrypt_fields(once, ["ssn"]) == once


async def test_already_encrypted_field_not_encrypted_twice(
    field_encryptor: FieldEncryptor, patient: dict
) -> None:
    encrypted = await field_encryptor.encrypt_fields(patient, ["ssn"])
    again = await field_encryptor.encrypt_fields(encrypted, ["ssn"])

    assert again["ssn"] == encrypted["ssn"]
    assert (await field_encryptor.decrypt_fields(again, ["ssn"]))["ssn"] == "123-45-6789"


async def test_partial_failure_returns_no_record(
    field_encryptor: FieldEncryptor,
    patient: dict,
    fake_kms: FakeKms,
    audit_events: List[AuditEvent],
) -> None:
    snapshot = dict(patient)
    fake_kms.fail_with = EndpointConnectionError(endpoint_url="https://kms.us-east-1.amazonaws.com")
    fake_kms.fail_after = 1

    with pytest.raises(KeyServiceUnavailable):
        await field_encryptor.encrypt_fields(patient, ["diagnosis", "ssn"])

    assert patient == snapshot
    assert [e.event for e in audit_events][-2:] == [
        "DATA_KEY_GENERATION_FAILED",
        "ENCRYPTION_FAILED",
    ]


async def test_marked_field_with_unsupported_envelope_fails(
    field_encryptor: FieldEncryptor, cipher: EnvelopeCipher, patient: dict
) -> None:
    envelope = await cipher.encrypt(b"123-45-6789")
    record = dict(patient)
    record["ssn"] = dataclasses.replace(envelope, version="0.9").to_payload()
    record["ssn_encrypted"] = True

    with pytest.raises(UnsupportedEnvelopeFormat):
        await field_encryptor.decrypt_fields(record, ["ssn"])


async def test_marked_field_with_garbage_fails(field_encryptor: FieldEncryptor) -> None:
    record = {"ssn": "123-45-6789", "ssn_encrypted": True}

    with pytest.raises(SerializationError):
        await field_encryptor.decrypt_fields(record, ["ssn"])


async def test_single_field_name_string(field_encryptor: FieldEncryptor, patient: dict) -> None:
    encrypted = await field_encryptor.encrypt_fields(patient, "ssn")

    assert encrypted["ssn_encrypted"] is True
    assert "s_encrypted" not in encrypted
