"""Options for secret operations and their field-wise merge.

A ``SecretManager`` keeps one stored ``SecretManagerOptions`` and merges the
per-call override into it for every operation. Merging is recursive: a leaf
in the override wins when it is set (not ``None``), and the nested ``cloud``
and ``document`` groups are merged key-by-key, so a partial override never
erases sibling keys configured earlier.

Environment-variable indirection:
    ``cloud.access_key_id``, ``cloud.secret_access_key``, ``document.uri`` and
    ``document.key`` hold the *names* of environment variables, never the
    secret material itself.

Example:
    >>> base = SecretManagerOptions(document=DocumentOptions(uri="A", database="D"))
    >>> merged = merge_options(base, {"document": {"uri": "B"}})
    >>> merged.document
    DocumentOptions(uri='B', database='D', ...)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields, is_dataclass
from pathlib import Path
from typing import Any, Self

from secretbridge.common.config import (
    DEFAULT_ENV_PREFIX,
    EnvReader,
    find_config_file,
    load_config_file,
)
from secretbridge.exceptions import SecretConfigurationError


DEFAULT_BACKEND_TYPE = "aws"

# camelCase keys and the ``mdb`` section name accepted in config files.
_ALIASES: dict[str, str] = {
    "accessKeyId": "access_key_id",
    "secretAccessKey": "secret_access_key",
    "keyAltName": "key_alt_name",
    "keyVault": "key_vault",
    "mdb": "document",
}


def _normalize_keys(data: Any, section: str) -> dict[str, Any]:
    if not isinstance(data, Mapping):
        raise SecretConfigurationError(
            f"Options for {section} must be a mapping, got {type(data).__name__}",
            config_key=section,
        )
    return {_ALIASES.get(key, key): value for key, value in data.items()}


@dataclass(frozen=True, slots=True)
class CloudOptions:
    """Managed cloud store settings.

    Attributes:
        region: Explicit region (e.g. ``eu-west-1``).
        access_key_id: Name of the env var holding the access key id.
        secret_access_key: Name of the env var holding the secret access key.
    """

    region: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create from a dictionary with snake_case or camelCase keys."""
        data = _normalize_keys(data, "cloud")
        return cls(
            region=data.get("region"),
            access_key_id=data.get("access_key_id"),
            secret_access_key=data.get("secret_access_key"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "region": self.region,
            "access_key_id": self.access_key_id,
            "secret_access_key": self.secret_access_key,
        }


@dataclass(frozen=True, slots=True)
class DocumentOptions:
    """Document store target and field encryption settings.

    Attributes:
        uri: Name of the env var holding the connection string.
        database: Database holding the secrets and the key vault.
        collection: Collection holding ``{key, value, encrypted}`` records.
        algorithm: ``random`` or ``deterministic`` (or the full algorithm name).
        key: Name of the env var holding the base64 local master key.
        key_alt_name: Alternate name of the data encryption key.
        source: ``local`` or ``cloud`` key management provider.
        key_vault: Key vault collection; defaults to ``collection``.
    """

    uri: str | None = None
    database: str | None = None
    collection: str | None = None
    algorithm: str | None = None
    key: str | None = None
    key_alt_name: str | None = None
    source: str | None = None
    key_vault: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create from a dictionary with snake_case or camelCase keys."""
        data = _normalize_keys(data, "document")
        return cls(
            uri=data.get("uri"),
            database=data.get("database"),
            collection=data.get("collection"),
            algorithm=data.get("algorithm"),
            key=data.get("key"),
            key_alt_name=data.get("key_alt_name"),
            source=data.get("source"),
            key_vault=data.get("key_vault"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "uri": self.uri,
            "database": self.database,
            "collection": self.collection,
            "algorithm": self.algorithm,
            "key": self.key,
            "key_alt_name": self.key_alt_name,
            "source": self.source,
            "key_vault": self.key_vault,
        }


@dataclass(frozen=True, slots=True)
class SecretManagerOptions:
    """Effective options for one secret operation.

    Attributes:
        flow: Correlation identifier attached to every log record.
        type: Backend type identifier (``aws``, ``mdb``, ...), case-insensitive.
        cloud: Managed cloud store settings.
        document: Document store settings.

    Example:
        >>> options = SecretManagerOptions.from_dict({
        ...     "type": "mdb",
        ...     "mdb": {"uri": "MDB_URI", "database": "app", "collection": "secrets"},
        ... })
    """

    flow: str | None = None
    type: str | None = None
    cloud: CloudOptions | None = None
    document: DocumentOptions | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create options from a dictionary.

        Accepts camelCase keys and
        ``mdb`` as an alias of ``document``.

        Args:
            data: Dictionary containing options.

        Returns:
            New SecretManagerOptions instance.
        """
        data = _normalize_keys(data, "options")
        cloud = data.get("cloud")
        document = data.get("document")
        return cls(
            flow=data.get("flow"),
            type=data.get("type"),
            cloud=CloudOptions.from_dict(cloud) if cloud is not None else None,
            document=DocumentOptions.from_dict(document) if document is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "flow": self.flow,
            "type": self.type,
            "cloud": self.cloud.to_dict() if self.cloud else None,
            "document": self.document.to_dict() if self.document else None,
        }

    @classmethod
    def from_env(cls, prefix: str = DEFAULT_ENV_PREFIX) -> Self:
        """Create options from environment variables.

        Environment Variables:
            {PREFIX}_TYPE: Backend type
            {PREFIX}_FLOW: Correlation identifier
            {PREFIX}_CLOUD_REGION / _CLOUD_ACCESS_KEY_ID / _CLOUD_SECRET_ACCESS_KEY
            {PREFIX}_DOCUMENT_URI / _DATABASE / _COLLECTION / _ALGORITHM / _KEY /
            _KEY_ALT_NAME / _SOURCE / _KEY_VAULT

        Unset variables leave the matching option unset. A nested group is
        only created when at least one of its variables is set.

        Args:
            prefix: Environment variable prefix.

        Returns:
            New SecretManagerOptions instance.
        """
        env = EnvReader(prefix)
        cloud_env = EnvReader(f"{prefix}_CLOUD")
        document_env = EnvReader(f"{prefix}_DOCUMENT")

        cloud = CloudOptions(
            region=cloud_env.get("REGION"),
            access_key_id=cloud_env.get("ACCESS_KEY_ID"),
            secret_access_key=cloud_env.get("SECRET_ACCESS_KEY"),
        )
        document = DocumentOptions(
            uri=document_env.get("URI"),
            database=document_env.get("DATABASE"),
            collection=document_env.get("COLLECTION"),
            algorithm=document_env.get("ALGORITHM"),
            key=document_env.get("KEY"),
            key_alt_name=document_env.get("KEY_ALT_NAME"),
            source=document_env.get("SOURCE"),
            key_vault=document_env.get("KEY_VAULT"),
        )
        return cls(
            flow=env.get("FLOW"),
            type=env.get("TYPE"),
            cloud=cloud if cloud != CloudOptions() else None,
            document=document if document != DocumentOptions() else None,
        )

    @classmethod
    def from_file(cls, path: Path | str) -> Self:
        """Create options from a JSON or YAML file.

        Raises:
            ConfigurationError: If the file is missing or cannot be parsed.
        """
        return cls.from_dict(load_config_file(Path(path)))

    @classmethod
    def load(
        cls,
        config_file: Path | str | None = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
        search_config: bool = True,
    ) -> Self:
        """Load options with automatic discovery and merging.

        Precedence (highest to lowest):
            1. Environment variables
            2. Specified config file
            3. Auto-discovered config file
            4. Default values (``type`` = ``aws``)

        Args:
            config_file: Explicit config file path.
            env_prefix: Environment variable prefix.
            search_config: Whether to search for a config file when none is given.

        Returns:
            Merged SecretManagerOptions instance.
        """
        options = cls(type=DEFAULT_BACKEND_TYPE)

        file_path: Path | None = None
        if config_file:
            file_path = Path(config_file)
        elif search_config:
            file_path = find_config_file()

        if file_path is not None:
            options = merge_options(options, cls.from_file(file_path))

        return merge_options(options, cls.from_env(env_prefix))


def _merge_dataclass(base: Any, override: Any) -> Any:
    if base is None:
        return override
    if override is None:
        return base

    values: dict[str, Any] = {}
    for item in fields(base):
        base_value = getattr(base, item.name)
        override_value = getattr(override, item.name)
        if is_dataclass(base_value) or is_dataclass(override_value):
            values[item.name] = _merge_dataclass(base_value, override_value)
        elif override_value is not None:
            values[item.name] = override_value
        else:
            values[item.name] = base_value
    return type(base)(**values)


def merge_options(
    base: SecretManagerOptions | None,
    override: SecretManagerOptions | Mapping[str, Any] | None,
) -> SecretManagerOptions:
    """Merge an override into base options, field by field.

    Per-field semantics:
        - A leaf value in ``override`` replaces the base value unless it is ``None``.
        - ``cloud`` and ``document`` are merged recursively, key by key.
        - A ``None`` nested group in ``override`` keeps the base group intact.

    The merge is pure and idempotent: ``merge_options(a, a) == a``.

    Args:
        base: Stored options, or None for empty options.
        override: Per-call options, as options or a plain mapping.

    Returns:
        New merged SecretManagerOptions.

    Example:
        >>> merge_options(
        ...     SecretManagerOptions.from_dict({"document": {"uri": "A", "database": "D"}}),
        ...     {"document": {"uri": "B"}},
        ... ).document.database
        'D'
    """
    if override is not None and not isinstance(override, SecretManagerOptions):
        override = SecretManagerOptions.from_dict(override)
    merged = _merge_dataclass(base, override)
    return merged if merged is not None else SecretManagerOptions()
