"""Data encryption key lifecycle for client-side field encryption.

``EncryptionKeyManager`` guarantees that a data encryption key (DEK) exists
for an alternate name before any encrypt call, and caches discovered key
identifiers for the process lifetime. It also builds the KMS provider map
handed to the encryption client.

Key lookup is find-or-create without a distributed lock: two callers racing
on an unseen alternate name may both miss the find step and both create a
key. The window is narrow and accepted. Hardening it means a unique partial
index on ``keyAltNames`` in the key vault, so the losing creation fails and
the loser re-queries.

Example:
    >>> manager = EncryptionKeyManager()
    >>> providers = manager.kms_providers(options)
    >>> key_id = await manager.ensure_key("app-secrets.alt", vault, encryption)
"""

from __future__ import annotations

import base64
import binascii
import os
import secrets
from typing import TYPE_CHECKING, Any

from pymongo.encryption import Algorithm

from secretbridge.common.logging import get_logger
from secretbridge.exceptions import SecretConfigurationError


if TYPE_CHECKING:
    from secretbridge.options import DocumentOptions, SecretManagerOptions


logger = get_logger(__name__)

DEFAULT_DATABASE = "db"
DEFAULT_KEY_VAULT_COLLECTION = "keyVault"
DEFAULT_MASTER_KEY_ENV = "MDB_MASTER_KEY"
KEY_ALT_NAME_ENV = "SECRET_BRIDGE_KEY_ALT_NAME"
LOCAL_MASTER_KEY_BYTES = 96

LOCAL_PROVIDER = "local"
CLOUD_PROVIDER = "aws"
CLOUD_SOURCE = "cloud"

_ALGORITHMS: dict[str, str] = {
    "random": Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Random,
    "randomized": Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Random,
    "deterministic": Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Deterministic,
    Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Random.lower(): (
        Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Random
    ),
    Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Deterministic.lower(): (
        Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Deterministic
    ),
}


def key_alt_name(document: DocumentOptions | None) -> str:
    """Alternate name of the data encryption key for a document target.

    Precedence: explicit ``key_alt_name`` > ``SECRET_BRIDGE_KEY_ALT_NAME``
    > ``"{database}-{collection}.alt"`` (``db`` and ``co`` when unset).
    """
    if document is not None and document.key_alt_name:
        return document.key_alt_name
    from_env = os.environ.get(KEY_ALT_NAME_ENV)
    if from_env:
        return from_env
    database = (document.database if document else None) or DEFAULT_DATABASE
    collection = (document.collection if document else None) or "co"
    return f"{database}-{collection}.alt"


def key_vault_namespace(document: DocumentOptions | None) -> str:
    """Key vault namespace as ``database.collection``.

    The key vault shares the secrets collection unless ``key_vault`` names
    another one.
    """
    database = (document.database if document else None) or DEFAULT_DATABASE
    vault = None
    if document is not None:
        vault = document.key_vault or document.collection
    return f"{database}.{vault or DEFAULT_KEY_VAULT_COLLECTION}"


def resolve_algorithm(name: str | None) -> str:
    """Map an algorithm option to the driver's algorithm name.

    Raises:
        SecretConfigurationError: If the name is not a known algorithm.
    """
    if not name:
        return Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Random
    algorithm = _ALGORITHMS.get(name.strip().lower())
    if algorithm is None:
        raise SecretConfigurationError(
            f"Unsupported encryption algorithm: {name}",
            config_key="document.algorithm",
            details={"supported": ["random", "deterministic"]},
        )
    return algorithm


class EncryptionKeyManager:
    """Finds or creates data encryption keys and builds KMS providers.

    Attributes:
        master_key_env: Env var read when options do not name one.

    Example:
        >>> manager = EncryptionKeyManager()
        >>> first = await manager.ensure_key("app.alt", vault, encryption)
        >>> second = await manager.ensure_key("app.alt", vault, encryption)
        >>> first == second
        True
    """

    def __init__(self, master_key_env: str = DEFAULT_MASTER_KEY_ENV) -> None:
        self.master_key_env = master_key_env
        self._key_ids: dict[tuple[str, str, str], Any] = {}
        self._ephemeral_key: bytes | None = None

    def local_master_key(self, document: DocumentOptions | None) -> bytes:
        """Read the local master key, or generate an ephemeral one.

        The key is read as base64 from the env var named by ``document.key``.
        When that variable is unset a random key is generated once per
        manager; anything encrypted under it is unrecoverable after restart.

        Raises:
            SecretConfigurationError: If the variable holds invalid base64 or
                a key of the wrong length.
        """
        env_name = (document.key if document else None) or self.master_key_env
        encoded = os.environ.get(env_name)
        if not encoded:
            if self._ephemeral_key is None:
                logger.warning(
                    "Local master key not set, generating an ephemeral key",
                    env_var=env_name,
                )
                self._ephemeral_key = secrets.token_bytes(LOCAL_MASTER_KEY_BYTES)
            return self._ephemeral_key

        try:
            key = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SecretConfigurationError(
                f"Local master key in {env_name} is not valid base64",
                config_key="document.key",
                cause=e,
            ) from e
        if len(key) != LOCAL_MASTER_KEY_BYTES:
            raise SecretConfigurationError(
                f"Local master key in {env_name} must be {LOCAL_MASTER_KEY_BYTES} bytes",
                config_key="document.key",
                details={"length": len(key)},
            )
        return key

    def kms_providers(self, options: SecretManagerOptions) -> dict[str, Any]:
        """Build the KMS provider map for an encryption client.

        The local provider is always present. The cloud provider is added
        only when ``document.source`` is ``cloud`` and both credential env
        vars named in ``cloud`` hold values.
        """
        document = options.document
        providers: dict[str, Any] = {
            LOCAL_PROVIDER: {"key": self.local_master_key(document)},
        }

        source = (document.source if document else None) or LOCAL_PROVIDER
        cloud = options.cloud
        if source.lower() == CLOUD_SOURCE and cloud is not None:
            access_key_id = os.environ.get(cloud.access_key_id) if cloud.access_key_id else None
            secret_access_key = (
                os.environ.get(cloud.secret_access_key) if cloud.secret_access_key else None
            )
            if access_key_id and secret_access_key:
                providers[CLOUD_PROVIDER] = {
                    "accessKeyId": access_key_id,
                    "secretAccessKey": secret_access_key,
                }
            else:
                logger.warning(
                    "Cloud key source selected but credentials are not set",
                    access_key_id_env=cloud.access_key_id,
                    secret_access_key_env=cloud.secret_access_key,
                )
        return providers

    async def ensure_key(self, alt_name: str, vault: Any, encryption: Any) -> Any:
        """Return the identifier of the data key for an alternate name.

        Looks in the in-memory cache, then queries the key vault for a key
        document whose ``keyAltNames`` contains ``alt_name``, and creates a
        key through the local provider only when none exists.

        Args:
            alt_name: Alternate name of the key.
            vault: Key vault collection handle.
            encryption: Client encryption context used for creation.

        Returns:
            The key identifier (a UUID ``Binary``).
        """
        cache_key = (vault.database.name, vault.name, alt_name)
        key_id = self._key_ids.get(cache_key)
        if key_id is not None:
            return key_id

        existing = await vault.find_one({"keyAltNames": alt_name})
        if existing is not None:
            key_id = existing["_id"]
            logger.debug("Reusing data encryption key", key_alt_name=alt_name)
        else:
            key_id = await encryption.create_data_key(LOCAL_PROVIDER, key_alt_names=[alt_name])
            logger.info(
                "Created data encryption key",
                key_alt_name=alt_name,
                key_vault=f"{vault.database.name}.{vault.name}",
            )

        self._key_ids[cache_key] = key_id
        return key_id

    def clear_cache(self) -> None:
        """Forget every cached key identifier."""
        self._key_ids.clear()
