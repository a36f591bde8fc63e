"""Tests for the backend registry."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from secretbridge.exceptions import BackendNotFoundError, SecretConfigurationError
from secretbridge.registry import (
    BackendRegistry,
    get_backend_registry,
    register_builtin_backends,
    reset_backend_registry,
)
from secretbridge.testing import AsyncMockSecretBackend


class TestBackendRegistry:
    """Tests for BackendRegistry."""

    def test_register_and_lookup(self):
        """Test registering an instance."""
        registry = BackendRegistry()
        backend = AsyncMockSecretBackend()

        registry.register("memory", backend)

        assert registry.exists("memory")
        assert registry.lookup("memory") is backend

    def test_lookup_is_case_insensitive(self):
        """Test identifiers match regardless of case and whitespace."""
        registry = BackendRegistry()
        backend = AsyncMockSecretBackend()
        registry.register("MDB", backend)

        assert registry.lookup("mdb") is backend
        assert registry.lookup(" Mdb ") is backend

    def test_unknown_type_raises(self):
        """Test an unknown identifier is a configuration error."""
        registry = BackendRegistry()
        registry.register("aws", AsyncMockSecretBackend())

        with pytest.raises(BackendNotFoundError) as exc_info:
            registry.lookup("vault")

        assert isinstance(exc_info.value, SecretConfigurationError)
        assert exc_info.value.available == ["aws"]

    def test_register_empty_name(self):
        """Test registering with an empty identifier fails."""
        registry = BackendRegistry()
        with pytest.raises(SecretConfigurationError):
            registry.register("", AsyncMockSecretBackend())

    def test_register_rejects_non_backend(self):
        """Test objects without resolve/save are rejected."""
        registry = BackendRegistry()
        with pytest.raises(SecretConfigurationError):
            registry.register("bad", object())

    def test_factory_instantiated_once(self):
        """Test a factory runs on first lookup only."""
        registry = BackendRegistry()
        factory = MagicMock(side_effect=AsyncMockSecretBackend)
        registry.register_factory("memory", factory)

        assert factory.call_count == 0
        first = registry.lookup("memory")
        second = registry.lookup("MEMORY")

        assert first is second
        assert factory.call_count == 1

    def test_unregister(self):
        """Test unregistering instances and factories."""
        registry = BackendRegistry()
        registry.register("memory", AsyncMockSecretBackend())
        registry.register_factory("lazy", AsyncMockSecretBackend)

        assert registry.unregister("memory") is True
        assert registry.unregister("lazy") is True
        assert registry.unregister("missing") is False
        assert registry.list_types() == []

    def test_list_types_and_backends(self):
        """Test listing includes factories but backends only instances."""
        registry = BackendRegistry()
        registry.register("b", AsyncMockSecretBackend())
        registry.register_factory("a", AsyncMockSecretBackend)

        assert registry.list_types() == ["a", "b"]
        assert list(registry.backends) == ["b"]

    def test_discover_plugins(self):
        """Test entry point factories are registered and broken ones skipped."""
        good = MagicMock()
        good.name = "memory"
        good.load.return_value = AsyncMockSecretBackend
        broken = MagicMock()
        broken.name = "broken"
        broken.load.side_effect = ImportError("missing dependency")

        registry = BackendRegistry()
        with patch("secretbridge.registry.entry_points", return_value=[good, broken]):
            count = registry.discover_plugins()

        assert count == 1
        assert registry.exists("memory")
        assert not registry.exists("broken")


class TestGlobalRegistry:
    """Tests for the process-wide registry."""

    def test_singleton(self):
        """Test the same registry is returned."""
        assert get_backend_registry() is get_backend_registry()

    def test_builtins_registered(self):
        """Test aws and mdb are available without instantiation."""
        registry = get_backend_registry()
        assert registry.list_types() == ["aws", "mdb"]
        assert dict(registry.backends) == {}

    def test_builtin_lookup_types(self):
        """Test built-in factories build the expected backends."""
        from secretbridge.backends.aws import ManagedStoreBackend
        from secretbridge.backends.document import DocumentStoreBackend

        registry = BackendRegistry()
        register_builtin_backends(registry)

        assert isinstance(registry.lookup("AWS"), ManagedStoreBackend)
        assert isinstance(registry.lookup("mdb"), DocumentStoreBackend)

    def test_reset(self):
        """Test reset creates a fresh registry."""
        registry = get_backend_registry()
        registry.register("memory", AsyncMockSecretBackend())

        reset_backend_registry()

        assert get_backend_registry() is not registry
        assert not get_backend_registry().exists("memory")
