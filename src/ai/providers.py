"""
Tenant Provider Resolution
==========================

Each tenant may register its own completion provider with an encrypted API
key. Keys are stored as AES-256-GCM `iv:tag:ciphertext` (hex), keyed with the
first 32 characters of ENCRYPTION_KEY.
"""

import logging
import os
from typing import Callable, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..core.errors import CompletionProviderError
from .llm_client import LLMClient, get_llm_client

logger = logging.getLogger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16


def _key_bytes(encryption_key: Optional[str]) -> bytes:
    key = encryption_key if encryption_key is not None else os.getenv("ENCRYPTION_KEY", "")
    key_bytes = (key or "")[:32].encode("utf-8")
    if len(key_bytes) != 32:
        raise ValueError("ENCRYPTION_KEY must be at least 32 characters")
    return key_bytes


def encrypt_secret(plaintext: str, encryption_key: Optional[str] = None) -> str:
    """Encrypt to `iv:tag:ciphertext` hex."""
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_key_bytes(encryption_key)).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt_secret(encrypted: str, encryption_key: Optional[str] = None) -> str:
    """
    Decrypt an `iv:tag:ciphertext` hex string.

    Raises:
        ValueError: On a malformed value, wrong key or tampered data
    """
    parts = encrypted.split(":")
    if len(parts) != 3:
        raise ValueError("Invalid encrypted text format")

    try:
        iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
    except ValueError as e:
        raise ValueError("Invalid encrypted text format") from e

    try:
        plaintext = AESGCM(_key_bytes(encryption_key)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise ValueError("Decryption failed: authentication tag mismatch") from e

    return plaintext.decode("utf-8")


class ProviderResolver:
    """
    Picks the completion client for a tenant.

    The tenant's active default provider record wins; otherwise the
    environment default from `get_llm_client()` is used.
    """

    def __init__(
        self,
        store,
        encryption_key: Optional[str] = None,
        default_factory: Callable[[], LLMClient] = get_llm_client,
        client_factory: Callable[..., LLMClient] = get_llm_client,
    ):
        self.store = store
        self.encryption_key = encryption_key
        self.default_factory = default_factory
        self.client_factory = client_factory

    def for_tenant(self, tenant_id: str) -> LLMClient:
        record = self.store.get_default_provider(tenant_id)
        if record is None:
            return self._default()

        try:
            api_key = decrypt_secret(record.api_key_encrypted, self.encryption_key)
        except ValueError as e:
            logger.error(f"Provider {record.id} of tenant {tenant_id}: {e}")
            raise CompletionProviderError(
                "Could not decrypt the tenant's provider API key", provider=record.name
            ) from e

        logger.debug(f"Using tenant provider {record.name} for tenant {tenant_id}")
        return self.client_factory(provider=record.name, api_key=api_key, base_url=record.base_url)

    def _default(self) -> LLMClient:
        try:
            return self.default_factory()
        except ValueError as e:
            raise CompletionProviderError(f"No completion provider configured: {e}") from e
