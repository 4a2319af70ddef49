"""
Configuration for the KMS envelope encryption service.

This module provides:
- KmsSettings: Key service, audit and rotation settings loaded from the environment
- KmsStatus: Non-sensitive summary of the active configuration

Settings are read from environment variables. A `.env` file is loaded first
with python-dotenv; values already present in the environment win.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv

from .errors import ConfigError
from .rotation import DEFAULT_ROTATION_DAYS, is_rotation_due

DEFAULT_KEY_ID = "alias/kms-envelope-master"
DEFAULT_REGION = "us-east-1"
DEFAULT_TIMEOUT_SECONDS = 5.0


def _optional(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name, "").strip()
    return value or None


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _optional(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _optional(env, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class KmsStatus:
    """Configuration status report. Never contains credentials."""

    key_id: str
    region: str
    rotation_days: int
    is_configured: bool
    audit_forwarding: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyId": self.key_id,
            "region": self.region,
            "rotationDays": self.rotation_days,
            "isConfigured": self.is_configured,
            "auditForwarding": self.audit_forwarding,
        }


@dataclass(frozen=True)
class KmsSettings:
    """
    Settings for the key service adapter and its surrounding policy.

    Attributes:
        key_id: Master key id, ARN or alias used for GenerateDataKey
        region: AWS region of the key service
        access_key_id: Static access key (optional, falls back to the AWS chain)
        secret_access_key: Static secret key
        session_token: Session token for temporary credentials
        endpoint_url: Override endpoint (e.g. a local KMS emulator)
        audit_webhook_url: Collector that receives forwarded audit events
        rotation_days: Key rotation threshold in days
        timeout_seconds: Connect and read timeout for key service calls
    """

    key_id: str = DEFAULT_KEY_ID
    region: str = DEFAULT_REGION
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    endpoint_url: Optional[str] = None
    audit_webhook_url: Optional[str] = None
    rotation_days: int = DEFAULT_ROTATION_DAYS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental credential disclosure."""
        return (
            f"KmsSettings(key_id={self.key_id!r}, region={self.region!r}, "
            f"endpoint_url={self.endpoint_url!r}, rotation_days={self.rotation_days}, "
            f"timeout_seconds={self.timeout_seconds}, credentials=[REDACTED])"
        )

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        env_file: Optional[Union[str, Path]] = None,
    ) -> KmsSettings:
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read instead of os.environ (no .env loading)
            env_file: Explicit .env path; defaults to python-dotenv discovery

        Returns:
            KmsSettings instance

        Raises:
            ConfigError: If a numeric setting is malformed
        """
        if env is None:
            if env_file is not None:
                load_dotenv(env_file)
            else:
                load_dotenv()
            env = os.environ

        return cls(
            key_id=_optional(env, "AWS_KMS_KEY_ID") or DEFAULT_KEY_ID,
            region=_optional(env, "AWS_REGION") or DEFAULT_REGION,
            access_key_id=_optional(env, "AWS_ACCESS_KEY_ID"),
            secret_access_key=_optional(env, "AWS_SECRET_ACCESS_KEY"),
            session_token=_optional(env, "AWS_SESSION_TOKEN"),
            endpoint_url=_optional(env, "AWS_KMS_ENDPOINT_URL"),
            audit_webhook_url=_optional(env, "KMS_AUDIT_WEBHOOK"),
            rotation_days=_parse_int(env, "KMS_KEY_ROTATION_DAYS", DEFAULT_ROTATION_DAYS),
            timeout_seconds=_parse_float(
                env, "KMS_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS
            ),
        )

    @property
    def is_configured(self) -> bool:
        """True when static credentials for the key service are present."""
        return bool(self.access_key_id and self.secret_access_key)

    def status(self) -> KmsStatus:
        """Get configuration status."""
        return KmsStatus(
            key_id=self.key_id,
            region=self.region,
            rotation_days=self.rotation_days,
            is_configured=self.is_configured,
            audit_forwarding=self.audit_webhook_url is not None,
        )

    def is_rotation_due(
        self, key_created_at: datetime, now: Optional[datetime] = None
    ) -> bool:
        """Check a key's age against the configured rotation threshold."""
        return is_rotation_due(key_created_at, now=now, threshold_days=self.rotation_days)
