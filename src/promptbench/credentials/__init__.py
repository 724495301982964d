"""promptbench credentials - secret codec and stored key management."""

from promptbench.credentials.codec import (
    EncryptedSecret,
    EncryptionConfigError,
    SecretCodec,
    SecretDecryptionError,
    last_four,
    redact,
)

__all__ = [
    "EncryptedSecret",
    "EncryptionConfigError",
    "SecretCodec",
    "SecretDecryptionError",
    "last_four",
    "redact",
]
