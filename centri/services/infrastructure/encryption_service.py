"""
At-rest encryption for integration credentials.

Each credential is one Fernet token over a JSON object, kept in a BYTEA
column. The key comes from ENCRYPTION_KEY; without it nothing can be
stored or read back.
"""

import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from centri.config import settings
from centri.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class EncryptionError(Exception):
    pass


def _cipher() -> Fernet:
    key = settings.ENCRYPTION_KEY
    if not key:
        raise EncryptionError("ENCRYPTION_KEY not configured in environment")
    try:
        return Fernet(key.encode("utf-8"))
    except (ValueError, TypeError) as e:
        logger.error("ENCRYPTION_KEY rejected by Fernet", error=str(e))
        raise EncryptionError(f"Invalid encryption key: {e}") from e


def encrypt_token(token: str) -> bytes:
    """Encrypt a non-empty string; the result goes straight into a BYTEA column."""
    if not isinstance(token, str) or not token:
        raise EncryptionError("Token must be a non-empty string")
    return _cipher().encrypt(token.encode("utf-8"))


def decrypt_token(encrypted_token: bytes | memoryview) -> str:
    """
    Reverse encrypt_token.

    psycopg hands BYTEA back as memoryview, so that is accepted too. A
    wrong key and a corrupted blob both surface as EncryptionError.
    """
    if isinstance(encrypted_token, memoryview):
        encrypted_token = encrypted_token.tobytes()
    if not isinstance(encrypted_token, bytes) or not encrypted_token:
        raise EncryptionError("Encrypted token must be non-empty bytes")

    cipher = _cipher()
    try:
        plain = cipher.decrypt(encrypted_token)
    except InvalidToken as e:
        logger.error("Stored token could not be decrypted")
        raise EncryptionError("Invalid or corrupted token") from e
    return plain.decode("utf-8")


def encrypt_credential(credential: dict[str, Any]) -> bytes:
    return encrypt_token(json.dumps(credential, default=str))


def decrypt_credential(encrypted: bytes | memoryview) -> dict[str, Any]:
    try:
        data = json.loads(decrypt_token(encrypted))
    except json.JSONDecodeError as e:
        raise EncryptionError("Decrypted credential is not valid JSON") from e
    if not isinstance(data, dict):
        raise EncryptionError("Decrypted credential is not a JSON object")
    return data


def validate_encryption_config() -> bool:
    """True when the configured key can round-trip a sample value."""
    sample = "centri-key-check"
    try:
        ok = decrypt_token(encrypt_token(sample)) == sample
    except EncryptionError as e:
        logger.error("Encryption self-check failed", error=str(e))
        return False
    if not ok:
        logger.error("Encryption self-check returned different plaintext")
    return ok


def generate_new_key() -> str:
    """Fresh Fernet key for ENCRYPTION_KEY (initial setup or rotation)."""
    return Fernet.generate_key().decode("utf-8")
