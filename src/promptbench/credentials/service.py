"""Stored API key management: add, test, enable/disable, remove, discover models.

Plaintext keys are encrypted before they reach the store and decrypted only
for the duration of one provider call.
"""

from __future__ import annotations

import logging

from promptbench.adapters.base import ConnectionTestResult, describe_error
from promptbench.adapters.registry import AdapterRegistry
from promptbench.credentials.codec import SecretCodec, last_four, redact
from promptbench.models.records import StoredCredential, utcnow
from promptbench.storage.base import Store

logger = logging.getLogger(__name__)


class CredentialNotFoundError(LookupError):
    """Raised when a stored key does not exist for this user."""

    def __init__(self, key_id: str) -> None:
        self.key_id = key_id
        super().__init__(f"API key not found: {key_id}")


class KeyService:
    """Manages a user's encrypted provider credentials."""

    def __init__(self, store: Store, codec: SecretCodec, registry: AdapterRegistry) -> None:
        self._store = store
        self._codec = codec
        self._registry = registry

    def add_key(
        self,
        user_id: str,
        provider: str,
        api_key: str,
        label: str = "",
        base_url: str | None = None,
    ) -> StoredCredential:
        """Encrypt and store a new credential.

        Raises:
            UnknownProviderError: If provider is not registered.
            ValueError: If api_key is empty.
        """
        self._registry.get(provider)
        if not api_key:
            raise ValueError("API key is required")

        encrypted = self._codec.encrypt(api_key)
        credential = StoredCredential(
            user_id=user_id,
            provider=provider,
            label=label,
            ciphertext=encrypted.ciphertext,
            iv=encrypted.iv,
            auth_tag=encrypted.auth_tag,
            last_four=last_four(api_key),
            base_url=base_url or None,
        )
        self._store.save_credential(credential)
        logger.info("Stored %s key %s (...%s)", provider, credential.id, credential.last_four)
        return credential

    def _require(self, key_id: str, user_id: str) -> StoredCredential:
        credential = self._store.get_credential(key_id, user_id)
        if credential is None:
            raise CredentialNotFoundError(key_id)
        return credential

    async def test_key(self, key_id: str, user_id: str) -> ConnectionTestResult:
        """Check a stored key against its provider. Never raises."""
        credential = self._store.get_credential(key_id, user_id)
        if credential is None:
            return ConnectionTestResult(success=False, message="API key not found")
        if credential.provider not in self._registry:
            return ConnectionTestResult(
                success=False, message=f"Provider {credential.provider} not found"
            )

        api_key: str | None = None
        try:
            api_key = self._codec.decrypt(credential.secret())
            result = await self._registry.get(credential.provider).test_connection(
                api_key, credential.base_url
            )
        except Exception as exc:
            logger.warning("Key test for %s raised: %s", key_id, redact(describe_error(exc), api_key))
            return ConnectionTestResult(success=False, message="Failed to test API key")
        finally:
            api_key = None

        credential.last_tested_at = utcnow()
        self._store.save_credential(credential)
        return result

    def set_active(self, key_id: str, user_id: str, active: bool) -> StoredCredential:
        """Enable or disable a key. Disabled keys cannot be used for new runs.

        Raises:
            CredentialNotFoundError: If the key does not exist for this user.
        """
        credential = self._require(key_id, user_id)
        credential.is_active = active
        self._store.save_credential(credential)
        return credential

    def delete_key(self, key_id: str, user_id: str) -> bool:
        return self._store.delete_credential(key_id, user_id)

    def list_keys(self, user_id: str) -> list[StoredCredential]:
        return self._store.list_credentials(user_id)

    async def fetch_models_for_key(self, key_id: str, user_id: str) -> list[str]:
        """Discover models available to a stored key.

        Raises:
            CredentialNotFoundError: If the key does not exist for this user.
            UnknownProviderError: If the key's provider is not registered.
            SecretDecryptionError: If the stored key cannot be decrypted.
        """
        credential = self._require(key_id, user_id)
        adapter = self._registry.get(credential.provider)
        api_key: str | None = None
        try:
            api_key = self._codec.decrypt(credential.secret())
            return await adapter.fetch_available_models(api_key, credential.base_url)
        finally:
            api_key = None
