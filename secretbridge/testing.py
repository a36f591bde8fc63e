"""Testing utilities for secretbridge.

In-memory fakes that stand in for the MongoDB async client and the client
encryption context, so the document store flow can run without a server,
plus a configurable mock backend for facade tests.

Example:
    >>> server = FakeMongoServer()
    >>> backend = DocumentStoreBackend(
    ...     client_factory=server.client,
    ...     encryption_factory=FakeClientEncryption,
    ... )
    >>> await backend.save("k1", "secret-value", options)
    True
    >>> server.collection("app", "secrets").documents[0]["encrypted"]
    True
"""

from __future__ import annotations

import asyncio
import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import bson
from bson.binary import Binary
from pymongo.errors import ConnectionFailure, EncryptionError, InvalidOperation

from secretbridge.exceptions import SecretOperationNotSupportedError


if TYPE_CHECKING:
    from collections.abc import Mapping

    from secretbridge.options import SecretManagerOptions


# Binary subtype of client-side encrypted values.
ENCRYPTED_SUBTYPE = 6


def _matches(document: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    for name, expected in query.items():
        actual = document.get(name)
        if isinstance(actual, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


@dataclass
class FakeUpdateResult:
    """Result of ``FakeCollection.update_one``."""

    acknowledged: bool = True
    matched_count: int = 0
    upserted_id: Any = None


class FakeCollection:
    """In-memory collection supporting the calls the backend makes.

    Attributes:
        documents: Stored documents, in insertion order.
        queries: Every ``find_one`` filter received.
    """

    def __init__(self, name: str, database: FakeDatabase) -> None:
        self.name = name
        self.database = database
        self.documents: list[dict[str, Any]] = []
        self.queries: list[dict[str, Any]] = []
        self.acknowledge_writes = True

    async def find_one(self, query: Mapping[str, Any]) -> dict[str, Any] | None:
        self.database.client.check_open()
        self.queries.append(dict(query))
        for document in self.documents:
            if _matches(document, query):
                return dict(document)
        return None

    async def insert_one(self, document: Mapping[str, Any]) -> Any:
        self.database.client.check_open()
        stored = dict(document)
        stored.setdefault("_id", uuid.uuid4().hex)
        self.documents.append(stored)
        return stored["_id"]

    async def update_one(
        self,
        query: Mapping[str, Any],
        update: Mapping[str, Any],
        upsert: bool = False,
    ) -> FakeUpdateResult:
        self.database.client.check_open()
        changes = update.get("$set", {})
        for document in self.documents:
            if _matches(document, query):
                document.update(changes)
                return FakeUpdateResult(self.acknowledge_writes, matched_count=1)

        if not upsert:
            return FakeUpdateResult(self.acknowledge_writes)
        upserted_id = await self.insert_one({**query, **changes})
        return FakeUpdateResult(self.acknowledge_writes, upserted_id=upserted_id)


class FakeDatabase:
    """In-memory database handing out collections by name."""

    def __init__(self, name: str, client: FakeMongoClient) -> None:
        self.name = name
        self.client = client

    def __getitem__(self, name: str) -> FakeCollection:
        return self.client.server.collection(self.name, name, client=self.client)


class _FakeAdmin:
    def __init__(self, client: FakeMongoClient) -> None:
        self._client = client

    async def command(self, name: str) -> dict[str, Any]:
        self._client.commands.append(name)
        if self._client.server.unreachable:
            raise ConnectionFailure("server unreachable")
        return {"ok": 1}


class FakeMongoClient:
    """Fake async client bound to a ``FakeMongoServer``."""

    def __init__(self, uri: str, server: FakeMongoServer | None = None) -> None:
        self.uri = uri
        self.server = server or FakeMongoServer()
        self.admin = _FakeAdmin(self)
        self.commands: list[str] = []
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return FakeDatabase(name, self)

    def check_open(self) -> None:
        if self.closed:
            raise InvalidOperation("Cannot use MongoClient after close")

    async def close(self) -> None:
        self.closed = True


class FakeMongoServer:
    """Shared state behind every client it creates.

    Data survives client close, as it would on a real server.

    Attributes:
        clients: Every client created, in order.
        unreachable: When set, ``ping`` fails with ``ConnectionFailure``.
    """

    def __init__(self) -> None:
        self.clients: list[FakeMongoClient] = []
        self.unreachable = False
        self.ciphertexts: dict[Binary, Any] = {}
        self._collections: dict[tuple[str, str], FakeCollection] = {}

    def client(self, uri: str) -> FakeMongoClient:
        """Client factory for ``DocumentStoreBackend``."""
        client = FakeMongoClient(uri, self)
        self.clients.append(client)
        return client

    def collection(
        self,
        database: str,
        name: str,
        *,
        client: FakeMongoClient | None = None,
    ) -> FakeCollection:
        """Get the collection ``database.name``, creating it when missing."""
        collection = self._collections.get((database, name))
        if collection is None:
            owner = client or FakeMongoClient("fake://", self)
            collection = FakeCollection(name, FakeDatabase(database, owner))
            self._collections[(database, name)] = collection
        elif client is not None:
            collection.database = FakeDatabase(database, client)
        return collection


class FakeClientEncryption:
    """Fake async client encryption context.

    Ciphertexts are opaque ``Binary`` values of subtype 6 recorded on the
    server, so any context on the same server can decrypt them. Data keys are
    stored in the key vault collection with their ``keyAltNames``.

    Attributes:
        created_keys: Alternate names passed to every ``create_data_key``.
    """

    def __init__(
        self,
        kms_providers: Mapping[str, Any],
        key_vault_namespace: str,
        key_vault_client: FakeMongoClient,
        codec_options: Any = None,
    ) -> None:
        self.kms_providers = dict(kms_providers)
        self.key_vault_namespace = key_vault_namespace
        self.client = key_vault_client
        self.created_keys: list[list[str]] = []
        self.closed = False

    @property
    def _vault(self) -> FakeCollection:
        database, _, collection = self.key_vault_namespace.partition(".")
        return self.client[database][collection]

    async def create_data_key(
        self,
        kms_provider: str,
        master_key: Mapping[str, Any] | None = None,
        key_alt_names: list[str] | None = None,
    ) -> Binary:
        self._check_open()
        if kms_provider not in self.kms_providers:
            raise EncryptionError(Exception(f"KMS provider {kms_provider} is not configured"))
        key_id = Binary.from_uuid(uuid.uuid4())
        await self._vault.insert_one({
            "_id": key_id,
            "keyAltNames": list(key_alt_names or []),
            "masterKey": {"provider": kms_provider},
            "creationDate": datetime.now(UTC),
        })
        self.created_keys.append(list(key_alt_names or []))
        return key_id

    async def encrypt(
        self,
        value: Any,
        algorithm: str,
        key_id: Binary | None = None,
        key_alt_name: str | None = None,
    ) -> Binary:
        self._check_open()
        # Values the driver cannot encode fail before any key lookup.
        bson.encode({"v": value})
        query = {"_id": key_id} if key_id is not None else {"keyAltNames": key_alt_name}
        if await self._vault.find_one(query) is None:
            raise EncryptionError(Exception("not all keys requested for encryption are present"))

        if algorithm.endswith("Deterministic"):
            digest = hashlib.sha256(repr((bytes(key_id or b""), value)).encode()).digest()
            payload = digest[:16]
        else:
            payload = uuid.uuid4().bytes
        ciphertext = Binary(payload, ENCRYPTED_SUBTYPE)
        self.client.server.ciphertexts[ciphertext] = value
        return ciphertext

    async def decrypt(self, value: Binary) -> Any:
        self._check_open()
        try:
            return self.client.server.ciphertexts[value]
        except KeyError:
            raise EncryptionError(Exception("cannot decrypt value")) from None

    async def close(self) -> None:
        self.closed = True

    def _check_open(self) -> None:
        if self.closed:
            raise InvalidOperation("Cannot use closed ClientEncryption")


@dataclass
class AsyncMockSecretBackend:
    """Configurable mock backend.

    Attributes:
        secrets: Stored secrets.
        call_history: List of method calls.
        should_fail: Whether to raise errors.
        failure_exception: Exception to raise on failure.
        delay_seconds: Artificial delay for each operation.
        read_only: Whether ``save`` is unsupported.
        closed: Whether ``close`` was called.
    """

    secrets: dict[str, Any] = field(default_factory=dict)
    call_history: list[dict[str, Any]] = field(default_factory=list)
    should_fail: bool = False
    failure_exception: Exception | None = None
    delay_seconds: float = 0.0
    read_only: bool = False
    closed: bool = False

    def _record_call(self, method: str, **kwargs: Any) -> None:
        self.call_history.append({
            "method": method,
            "timestamp": datetime.now(UTC),
            **kwargs,
        })

    async def _maybe_delay(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

    def _maybe_fail(self) -> None:
        if self.should_fail:
            raise self.failure_exception or RuntimeError("Mock failure")

    async def resolve(self, key: str, options: SecretManagerOptions) -> Any | None:
        """Return the stored secret or None."""
        self._record_call("resolve", key=key, options=options)
        await self._maybe_delay()
        self._maybe_fail()
        return self.secrets.get(key)

    async def save(self, key: str, value: Any, options: SecretManagerOptions) -> bool:
        """Store the secret unless read-only."""
        self._record_call("save", key=key, value=value, options=options)
        await self._maybe_delay()
        if self.read_only:
            raise SecretOperationNotSupportedError("save", backend="mock", path=key)
        self._maybe_fail()
        self.secrets[key] = value
        return True

    async def close(self) -> None:
        self._record_call("close")
        self.closed = True

    def reset(self) -> None:
        """Reset mock state."""
        self.secrets.clear()
        self.call_history.clear()
        self.should_fail = False
        self.failure_exception = None
        self.closed = False
