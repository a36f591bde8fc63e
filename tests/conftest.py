"""Shared fixtures for secretbridge tests."""

from __future__ import annotations

import base64
import os

import pytest

from secretbridge.backends.document import DocumentStoreBackend
from secretbridge.common.logging import BufferingHandler, configure_logging, reset_logging
from secretbridge.manager import reset_secret_manager
from secretbridge.options import DocumentOptions, SecretManagerOptions
from secretbridge.registry import reset_backend_registry
from secretbridge.testing import FakeClientEncryption, FakeMongoServer


MASTER_KEY = base64.b64encode(bytes(range(96))).decode()


@pytest.fixture(autouse=True)
def isolate_globals(monkeypatch):
    """Reset process-wide state and strip secretbridge env vars."""
    for name in list(os.environ):
        if name.startswith("SECRET_BRIDGE_"):
            monkeypatch.delenv(name, raising=False)
    reset_backend_registry()
    reset_secret_manager()
    yield
    reset_backend_registry()
    reset_secret_manager()
    reset_logging()


@pytest.fixture
def log_buffer():
    """Capture every record at DEBUG and above."""
    buffer = BufferingHandler()
    configure_logging(level="DEBUG", handlers=[buffer])
    return buffer


@pytest.fixture
def master_key(monkeypatch):
    """Set a valid local master key in MDB_MASTER_KEY."""
    monkeypatch.setenv("MDB_MASTER_KEY", MASTER_KEY)
    return MASTER_KEY


@pytest.fixture
def mongo_server(monkeypatch):
    """In-memory server reachable through the MDB_URI variable."""
    monkeypatch.setenv("MDB_URI", "mongodb://localhost:27017")
    return FakeMongoServer()


@pytest.fixture
def document_backend(mongo_server, master_key):
    """Document store backend wired to the in-memory server."""
    return DocumentStoreBackend(
        client_factory=mongo_server.client,
        encryption_factory=FakeClientEncryption,
    )


@pytest.fixture
def document_options():
    """Options targeting app.secrets through MDB_URI."""
    return SecretManagerOptions(
        flow="test-flow",
        type="mdb",
        document=DocumentOptions(uri="MDB_URI", database="app", collection="secrets"),
    )
