"""AES-256-GCM codec for stored provider API keys.

Keys are encrypted at rest with a process-wide 256-bit key taken from the
environment. The codec is built once at startup; a missing or malformed key
aborts startup instead of failing on first use.
"""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel

DEFAULT_KEY_ENV = "APP_ENCRYPTION_KEY"

IV_LENGTH = 12  # 96-bit nonce for GCM
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32

REDACTED_PLACEHOLDER = "[REDACTED]"

# Secrets shorter than this are never redacted.
MIN_REDACT_LENGTH = 8

_KEY_HELP = "Generate a 32-byte hex key with: openssl rand -hex 32"


class EncryptionConfigError(Exception):
    """Raised when the process encryption key is absent or malformed."""


class SecretDecryptionError(Exception):
    """Raised when a stored secret fails authentication or cannot be decoded."""


class EncryptedSecret(BaseModel):
    """Hex-encoded ciphertext, IV and GCM authentication tag."""

    model_config = {"frozen": True}

    ciphertext: str
    iv: str
    auth_tag: str


class SecretCodec:
    """Encrypts and decrypts API keys with AES-256-GCM."""

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_LENGTH:
            raise EncryptionConfigError(
                f"FATAL: encryption key must be exactly {KEY_LENGTH} bytes, "
                f"got {len(key)}. {_KEY_HELP}"
            )
        self._aead = AESGCM(key)

    @classmethod
    def from_hex(cls, hex_key: str | None, env_var: str = DEFAULT_KEY_ENV) -> SecretCodec:
        """Build a codec from a 64-character hex string.

        Raises:
            EncryptionConfigError: If the key is missing, the wrong length,
                or not valid hex.
        """
        if not hex_key:
            raise EncryptionConfigError(
                f"FATAL: {env_var} environment variable is not set. {_KEY_HELP}"
            )
        if len(hex_key) != KEY_LENGTH * 2:
            raise EncryptionConfigError(
                f"FATAL: {env_var} must be exactly {KEY_LENGTH * 2} hex characters "
                f"({KEY_LENGTH} bytes). {_KEY_HELP}"
            )
        try:
            key = bytes.fromhex(hex_key)
        except ValueError:
            raise EncryptionConfigError(
                f"FATAL: {env_var} is not valid hex. {_KEY_HELP}"
            ) from None
        return cls(key)

    @classmethod
    def from_env(cls, env_var: str = DEFAULT_KEY_ENV) -> SecretCodec:
        """Build a codec from the named environment variable."""
        return cls.from_hex(os.environ.get(env_var), env_var=env_var)

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        """Encrypt a plaintext secret under a fresh random IV."""
        iv = os.urandom(IV_LENGTH)
        sealed = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        # cryptography appends the tag to the ciphertext
        ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
        return EncryptedSecret(
            ciphertext=ciphertext.hex(),
            iv=iv.hex(),
            auth_tag=tag.hex(),
        )

    def decrypt(self, secret: EncryptedSecret) -> str:
        """Decrypt and authenticate a stored secret.

        Raises:
            SecretDecryptionError: On tampering, a wrong key, or malformed
                hex fields. Never returns unauthenticated plaintext.
        """
        try:
            iv = bytes.fromhex(secret.iv)
            sealed = bytes.fromhex(secret.ciphertext) + bytes.fromhex(secret.auth_tag)
        except ValueError:
            raise SecretDecryptionError("Stored secret is not valid hex") from None
        if len(iv) != IV_LENGTH:
            raise SecretDecryptionError(
                f"Stored secret IV must be {IV_LENGTH} bytes, got {len(iv)}"
            )
        try:
            plaintext = self._aead.decrypt(iv, sealed, None)
        except InvalidTag:
            raise SecretDecryptionError(
                "Stored secret failed authentication (tampered data or wrong key)"
            ) from None
        return plaintext.decode("utf-8")

    def validate_setup(self) -> None:
        """Run an encrypt/decrypt round trip; raise if it does not match."""
        sample = "test-key-12345"
        if self.decrypt(self.encrypt(sample)) != sample:
            raise EncryptionConfigError("Encryption round-trip self-test failed")


def redact(text: str, secret: str | None) -> str:
    """Replace every literal occurrence of *secret* in *text* with [REDACTED].

    Secrets shorter than MIN_REDACT_LENGTH characters are left as-is.
    """
    if not secret or len(secret) < MIN_REDACT_LENGTH:
        return text
    return text.replace(secret, REDACTED_PLACEHOLDER)


def last_four(secret: str) -> str:
    """Return the last four characters of a secret for display."""
    if len(secret) < 4:
        return "****"
    return secret[-4:]
