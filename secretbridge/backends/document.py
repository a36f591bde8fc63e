"""Document store backend: MongoDB with client-side field encryption.

Secrets live as ``{key, value, encrypted}`` documents, upserted by ``key``.
Values are encrypted with a data encryption key before they leave the
process and decrypted after they are read back.

Connection handles (client plus encryption context) are created lazily on
first use and kept per ``ConnectionDescriptor`` until ``close()``. After
``close()`` the next operation opens new handles.

Requires: pip install "pymongo[encryption]"

Example:
    >>> backend = DocumentStoreBackend()
    >>> options = SecretManagerOptions.from_dict({
    ...     "type": "mdb",
    ...     "document": {"uri": "MDB_URI", "database": "app", "collection": "secrets"},
    ... })
    >>> await backend.save("db/password", "hunter2", options)
    True
    >>> await backend.resolve("db/password", options)
    'hunter2'
    >>> await backend.close()
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bson.binary import UuidRepresentation
from bson.errors import BSONError
from bson.codec_options import CodecOptions
from pymongo.errors import ConfigurationError as DriverConfigurationError
from pymongo.errors import (
    ConnectionFailure,
    EncryptionError,
    OperationFailure,
    PyMongoError,
)

from secretbridge.base import SecretRecord
from secretbridge.common.logging import LogContext, get_logger, get_performance_logger
from secretbridge.exceptions import (
    SecretAuthenticationError,
    SecretBackendError,
    SecretConfigurationError,
    SecretConnectionError,
    SecretDecryptError,
    SecretEncryptError,
    SecretError,
)
from secretbridge.keys import (
    DEFAULT_DATABASE,
    EncryptionKeyManager,
    key_alt_name,
    key_vault_namespace,
    resolve_algorithm,
)


if TYPE_CHECKING:
    from collections.abc import Callable

    from secretbridge.options import CloudOptions, DocumentOptions, SecretManagerOptions


BACKEND_TYPE = "mdb"

# MongoDB server error code for a failed authentication.
_AUTHENTICATION_FAILED = 18

logger = get_logger(__name__)
perf_logger = get_performance_logger(__name__)


def _default_client_factory(uri: str) -> Any:
    from pymongo import AsyncMongoClient

    return AsyncMongoClient(uri, uuidRepresentation="standard")


def _default_encryption_factory(
    kms_providers: dict[str, Any],
    key_vault_namespace: str,
    client: Any,
) -> Any:
    from pymongo.asynchronous.encryption import AsyncClientEncryption

    return AsyncClientEncryption(
        kms_providers,
        key_vault_namespace,
        client,
        CodecOptions(uuid_representation=UuidRepresentation.STANDARD),
    )


@dataclass(frozen=True, slots=True)
class ConnectionDescriptor:
    """Identity of one client/encryption pair.

    Attributes:
        uri_env: Env var holding the connection string.
        key_vault_namespace: Key vault as ``database.collection``.
        master_key_env: Env var holding the local master key, if named.
        source: Key management source (``local`` or ``cloud``).
        access_key_id_env: Env var holding the cloud access key id (cloud source only).
        secret_access_key_env: Env var holding the cloud secret key (cloud source only).
    """

    uri_env: str
    key_vault_namespace: str
    master_key_env: str | None = None
    source: str = "local"
    access_key_id_env: str | None = None
    secret_access_key_env: str | None = None

    @classmethod
    def from_options(
        cls,
        document: DocumentOptions,
        cloud: CloudOptions | None = None,
    ) -> ConnectionDescriptor:
        """Build the descriptor for a document target.

        Cloud credential names are recorded for the ``cloud`` source only.

        Raises:
            SecretConfigurationError: If no connection string variable is named.
        """
        if not document.uri:
            raise SecretConfigurationError(
                "The document store URI variable is required",
                config_key="document.uri",
            )
        source = (document.source or "local").lower()
        access_key_id_env = secret_access_key_env = None
        if source == "cloud" and cloud is not None:
            access_key_id_env = cloud.access_key_id
            secret_access_key_env = cloud.secret_access_key
        return cls(
            uri_env=document.uri,
            key_vault_namespace=key_vault_namespace(document),
            master_key_env=document.key,
            source=source,
            access_key_id_env=access_key_id_env,
            secret_access_key_env=secret_access_key_env,
        )


@dataclass(slots=True)
class _Handles:
    client: Any
    encryption: Any


class DocumentStoreBackend:
    """Secret backend storing encrypted documents in MongoDB.

    Args:
        key_manager: Data key manager; one is created when omitted.
        client_factory: Builds an async client from a connection string.
        encryption_factory: Builds an async encryption context from
            ``(kms_providers, key_vault_namespace, client)``.

    Example:
        >>> backend = DocumentStoreBackend(
        ...     client_factory=FakeMongoClient,
        ...     encryption_factory=FakeClientEncryption,
        ... )
    """

    def __init__(
        self,
        *,
        key_manager: EncryptionKeyManager | None = None,
        client_factory: Callable[[str], Any] | None = None,
        encryption_factory: Callable[[dict[str, Any], str, Any], Any] | None = None,
    ) -> None:
        self._key_manager = key_manager or EncryptionKeyManager()
        self._client_factory = client_factory or _default_client_factory
        self._encryption_factory = encryption_factory or _default_encryption_factory
        self._handles: dict[ConnectionDescriptor, _Handles] = {}
        self._lock = asyncio.Lock()

    @property
    def key_manager(self) -> EncryptionKeyManager:
        """The data key manager used for encryption."""
        return self._key_manager

    @property
    def connected(self) -> bool:
        """Whether any client is currently open."""
        return bool(self._handles)

    async def resolve(self, key: str, options: SecretManagerOptions) -> Any | None:
        """Read a secret, decrypting it when stored encrypted.

        Returns:
            The value, or None when no record exists for the key.

        Raises:
            SecretConfigurationError: If the document target is incomplete.
            SecretBackendError: If the store fails.
            SecretDecryptError: If the value cannot be decrypted.
        """
        with LogContext(flow=options.flow, operation="resolve", backend=BACKEND_TYPE):
            try:
                document = self._require_target(options)
                handles = await self._ensure_handles(document, options)
                collection = self._collection(handles, document)

                with perf_logger.timed("mdb.find_one", key=key):
                    found = await collection.find_one({"key": key})
                if found is None:
                    logger.info(
                        "Secret not found in collection",
                        key=key,
                        collection=document.collection,
                    )
                    return None

                record = SecretRecord.from_document(found)
                if not record.encrypted:
                    return record.value
                return await self._decrypt(handles, record, key)
            except SecretError as e:
                logger.error("Failed to resolve secret", key=key, error=str(e))
                raise
            except (PyMongoError, BSONError) as e:
                logger.error("Failed to resolve secret", key=key, error=str(e))
                raise self._wrap(e, key) from e

    async def save(self, key: str, value: Any, options: SecretManagerOptions) -> bool:
        """Encrypt and upsert a secret.

        Returns:
            True when the write was acknowledged.

        Raises:
            SecretConfigurationError: If the document target is incomplete.
            SecretBackendError: If the store fails.
            SecretEncryptError: If the value cannot be encrypted.
        """
        with LogContext(flow=options.flow, operation="save", backend=BACKEND_TYPE):
            try:
                document = self._require_target(options)
                algorithm = resolve_algorithm(document.algorithm)
                handles = await self._ensure_handles(document, options)
                collection = self._collection(handles, document)

                key_id = await self._key_manager.ensure_key(
                    key_alt_name(document),
                    self._vault(handles, document),
                    handles.encryption,
                )
                try:
                    ciphertext = await handles.encryption.encrypt(
                        value,
                        algorithm,
                        key_id=key_id,
                    )
                except (EncryptionError, BSONError) as e:
                    raise SecretEncryptError(
                        f"Failed to encrypt secret: {e}",
                        algorithm=algorithm,
                        path=key,
                        cause=e,
                    ) from e

                record = SecretRecord(key=key, value=ciphertext, encrypted=True)
                with perf_logger.timed("mdb.update_one", key=key):
                    result = await collection.update_one(
                        {"key": key},
                        {"$set": {"value": record.value, "encrypted": record.encrypted}},
                        upsert=True,
                    )
                return bool(result.acknowledged)
            except SecretError as e:
                logger.error("Failed to store secret", key=key, error=str(e))
                raise
            except (PyMongoError, BSONError) as e:
                logger.error("Failed to store secret", key=key, error=str(e))
                raise self._wrap(e, key) from e

    async def close(self) -> None:
        """Close every client and encryption context.

        Cached key identifiers are dropped with them. The ephemeral master
        key, if one was generated, is kept so that values written earlier in
        the process stay readable.
        """
        async with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()

        for handle in handles:
            try:
                await handle.encryption.close()
            except PyMongoError as e:
                logger.warning("Failed to close encryption context", error=str(e))
            try:
                await handle.client.close()
            except PyMongoError as e:
                logger.warning("Failed to close document store client", error=str(e))
        self._key_manager.clear_cache()

    async def _ensure_handles(
        self,
        document: DocumentOptions,
        options: SecretManagerOptions,
    ) -> _Handles:
        descriptor = ConnectionDescriptor.from_options(document, options.cloud)

        handles = self._handles.get(descriptor)
        if handles is not None:
            return handles

        async with self._lock:
            handles = self._handles.get(descriptor)
            if handles is None:
                handles = await self._open(descriptor, options)
                self._handles[descriptor] = handles
            return handles

    async def _open(
        self,
        descriptor: ConnectionDescriptor,
        options: SecretManagerOptions,
    ) -> _Handles:
        uri = os.environ.get(descriptor.uri_env)
        if not uri:
            raise SecretConfigurationError(
                f"Connection string variable {descriptor.uri_env} is not set",
                config_key="document.uri",
            )

        kms_providers = self._key_manager.kms_providers(options)
        try:
            client = self._client_factory(uri)
        except DriverConfigurationError as e:
            raise SecretConfigurationError(
                f"Invalid connection string in {descriptor.uri_env}",
                config_key="document.uri",
                cause=e,
            ) from e

        try:
            await client.admin.command("ping")
            encryption = self._encryption_factory(
                kms_providers,
                descriptor.key_vault_namespace,
                client,
            )
        except PyMongoError as e:
            await client.close()
            if isinstance(e, ConnectionFailure):
                raise SecretConnectionError(
                    f"Failed to connect to document store: {e}",
                    backend=BACKEND_TYPE,
                    endpoint=descriptor.uri_env,
                    cause=e,
                ) from e
            if isinstance(e, DriverConfigurationError):
                raise SecretConfigurationError(
                    f"Client encryption is not available: {e}",
                    config_key="document",
                    cause=e,
                ) from e
            raise self._wrap(e, None) from e

        logger.info(
            "Opened document store connection",
            uri_env=descriptor.uri_env,
            key_vault=descriptor.key_vault_namespace,
            kms_providers=sorted(kms_providers),
        )
        return _Handles(client=client, encryption=encryption)

    async def _decrypt(self, handles: _Handles, record: SecretRecord, key: str) -> Any:
        try:
            return await handles.encryption.decrypt(record.value)
        except (EncryptionError, BSONError) as e:
            raise SecretDecryptError(
                f"Failed to decrypt secret: {e}",
                path=key,
                cause=e,
            ) from e

    @staticmethod
    def _require_target(options: SecretManagerOptions) -> DocumentOptions:
        document = options.document
        if document is None:
            raise SecretConfigurationError(
                "Document store options are missing",
                config_key="document",
            )
        if not document.collection:
            raise SecretConfigurationError(
                "Document store collection is not defined",
                config_key="document.collection",
            )
        return document

    @staticmethod
    def _collection(handles: _Handles, document: DocumentOptions) -> Any:
        return handles.client[document.database or DEFAULT_DATABASE][document.collection]

    @staticmethod
    def _vault(handles: _Handles, document: DocumentOptions) -> Any:
        database, _, collection = key_vault_namespace(document).partition(".")
        return handles.client[database][collection]

    @staticmethod
    def _wrap(error: PyMongoError | BSONError, key: str | None) -> SecretBackendError:
        if isinstance(error, ConnectionFailure):
            return SecretConnectionError(
                f"Document store connection failed: {error}",
                backend=BACKEND_TYPE,
                cause=error,
            )
        if isinstance(error, OperationFailure) and error.code == _AUTHENTICATION_FAILED:
            return SecretAuthenticationError(
                f"Document store authentication failed: {error}",
                backend=BACKEND_TYPE,
                cause=error,
            )
        return SecretBackendError(
            f"Document store error: {error}",
            backend=BACKEND_TYPE,
            path=key,
            cause=error,
        )
