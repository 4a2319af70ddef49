"""
Field-level encryption of structured records.

This module provides:
- FieldEncryptor: Encrypts/decrypts a named subset of fields in a record

Each encrypted field holds a serialized envelope and gets a sibling boolean
marker `<field>_encrypted`. Records are never mutated in place; a failed call
raises instead of returning a partially processed record.

Values are limited to str, int, float and bool. They are stored as text inside
the envelope; decrypt_fields converts them back using the caller's field_types
mapping (str when not given).
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, Union

from .envelope import EnvelopeCipher
from .errors import SerializationError

MARKER_SUFFIX = "_encrypted"

ScalarValue = Union[str, int, float, bool]


def marker_for(field_name: str) -> str:
    """Name of the is-encrypted marker for a field."""
    return f"{field_name}{MARKER_SUFFIX}"


def to_text(value: ScalarValue) -> str:
    """Render a scalar field value as the text that gets encrypted."""
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    raise SerializationError(
        f"Unsupported field value type: {type(value).__name__}",
        operation="encrypt_fields",
    )


def from_text(text: str, target: Type[Any] = str) -> ScalarValue:
    """Convert decrypted text back to the field's scalar type."""
    if target is str:
        return text
    if target is bool:
        if text == "true":
            return True
        if text == "false":
            return False
        raise SerializationError(f"Not a boolean: {text!r}", operation="decrypt_fields")
    if target is int or target is float:
        try:
            return target(text)
        except ValueError:
            raise SerializationError(
                f"Not a {target.__name__}: {text!r}", operation="decrypt_fields"
            )
    raise SerializationError(
        f"Unsupported field type: {target!r}", operation="decrypt_fields"
    )


def _names(field_names: Iterable[str]) -> List[str]:
    if isinstance(field_names, str):
        return [field_names]
    return list(field_names)


class FieldEncryptor:
    """Applies an EnvelopeCipher to selected fields of a mapping."""

    def __init__(self, cipher: EnvelopeCipher) -> None:
        self._cipher = cipher

    async def encrypt_fields(
        self,
        record: Mapping[str, Any],
        field_names: Iterable[str],
    ) -> Dict[str, Any]:
        """
        Encrypt the named fields of a record.

        Absent or null fields are left untouched and get no marker. Fields
        already marked as encrypted are not encrypted a second time.

        Args:
            record: Input record (not modified)
            field_names: Fields to encrypt

        Returns:
            New record with encrypted fields and markers

        Raises:
            EnvelopeError: If any field fails; no partial record is returned
        """
        result = dict(record)
        for name in _names(field_names):
            value = result.get(name)
            if value is None or result.get(marker_for(name)) is True:
                continue
            result[name] = await self._cipher.encrypt_text(to_text(value))
            result[marker_for(name)] = True
        return result

    async def decrypt_fields(
        self,
        record: Mapping[str, Any],
        field_names: Iterable[str],
        field_types: Optional[Mapping[str, Type[Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Decrypt the named fields of a record.

        Only fields whose marker is True are touched, so legacy plaintext
        values and already-decrypted records pass through unchanged. A marked
        field whose envelope cannot be parsed or is of an unsupported version
        is a hard failure.

        Args:
            record: Input record (not modified)
            field_names: Fields to decrypt
            field_types: Scalar type per field for reconstruction (default str)

        Returns:
            New record with plaintext values and markers removed
        """
        types = dict(field_types or {})
        result = dict(record)
        for name in _names(field_names):
            marker = marker_for(name)
            payload = result.get(name)
            if result.get(marker) is not True or payload is None:
                continue
            text = await self._cipher.decrypt_text(payload)
            result[name] = from_text(text, types.get(name, str))
            del result[marker]
        return result
