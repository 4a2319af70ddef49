"""
KMS envelope encryption self-check CLI.

Usage:
    kms-envelope-check [--env-file PATH] [--live]

Or run directly:
    python -m kms_envelope.cli

Checks:
    1. Configuration status (key id, region, credentials present)
    2. Local AES-256-GCM round-trip and tamper detection
    3. With --live: encrypt/decrypt round-trip through the configured KMS
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List, Optional

from kms_envelope.audit import AuditLogger
from kms_envelope.config import KmsSettings
from kms_envelope.crypto import AesGcmCipher, EncryptedData, SecureKey
from kms_envelope.envelope import EnvelopeCipher
from kms_envelope.errors import AuthenticationFailed, EnvelopeError
from kms_envelope.fields import FieldEncryptor
from kms_envelope.kms import KmsClient

SAMPLE_TEXT = "1234-5678-9012"


def check_configuration(settings: KmsSettings) -> bool:
    """Print configuration status. Fails when credentials are missing."""
    status = settings.status()
    print("[CONFIG] Checking KMS configuration...")
    print(f"  - Key ID:          {status.key_id}")
    print(f"  - Region:          {status.region}")
    print(f"  - Rotation days:   {status.rotation_days}")
    print(f"  - Audit webhook:   {'enabled' if status.audit_forwarding else 'disabled'}")
    if status.is_configured:
        print("  OK   credentials configured")
    else:
        print("  FAIL AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY missing")
    return status.is_configured


def check_local_cipher() -> bool:
    """Round-trip and tamper-check AES-256-GCM with a throwaway key."""
    print("\n[CIPHER] Checking AES-256-GCM...")
    plaintext = SAMPLE_TEXT.encode("utf-8")
    with SecureKey.generate() as key:
        encrypted = AesGcmCipher.encrypt(key, plaintext)
        if AesGcmCipher.decrypt(key, encrypted) != plaintext:
            print("  FAIL round-trip mismatch")
            return False
        print("  OK   round-trip")

        flipped = bytearray(encrypted.ciphertext)
        flipped[0] ^= 0x01
        try:
            AesGcmCipher.decrypt(
                key, EncryptedData(nonce=encrypted.nonce, ciphertext=bytes(flipped))
            )
        except AuthenticationFailed:
            print("  OK   tamper detection")
            return True

    print("  FAIL tampered ciphertext was accepted")
    return False


async def check_live(settings: KmsSettings) -> bool:
    """Encrypt and decrypt a sample record through the configured KMS."""
    print("\n[KMS] Live round-trip against the key service...")
    audit = AuditLogger.from_settings(settings)
    cipher = EnvelopeCipher(KmsClient(settings, audit))
    fields = FieldEncryptor(cipher)

    record = {"account_number": SAMPLE_TEXT, "note": None}
    try:
        encrypted = await fields.encrypt_fields(record, ["account_number", "note"])
        decrypted = await fields.decrypt_fields(encrypted, ["account_number", "note"])
    except EnvelopeError as e:
        print(f"  FAIL {type(e).__name__}: {e}")
        return False
    finally:
        await audit.drain()

    if decrypted != record:
        print("  FAIL decrypted record does not match")
        return False
    print("  OK   field round-trip")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    """Run the self-check and return the process exit code."""
    parser = argparse.ArgumentParser(
        prog="kms-envelope-check",
        description="Validate KMS envelope encryption configuration",
    )
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument(
        "--live",
        action="store_true",
        help="Perform a round-trip through the configured KMS",
    )
    args = parser.parse_args(argv)

    print("=== KMS Envelope Encryption Check ===\n")

    try:
        settings = KmsSettings.from_env(env_file=args.env_file)
    except EnvelopeError as e:
        print(f"ERROR: {e}")
        return 1

    results = [check_configuration(settings), check_local_cipher()]
    if args.live:
        results.append(asyncio.run(check_live(settings)))

    passed = all(results)
    print(f"\n{'All checks passed' if passed else 'Some checks failed'}")
    return 0 if passed else 1


if __name__ == "__main__":
    sys.exit(main())
