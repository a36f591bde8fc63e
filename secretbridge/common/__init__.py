"""Shared building blocks for secretbridge.

Logging:
    >>> from secretbridge.common import get_logger, LogContext
    >>> logger = get_logger(__name__)
    >>> with LogContext(flow="deploy-42", operation="resolve"):
    ...     logger.info("Resolving secret", key="db/password")

Configuration:
    >>> from secretbridge.common import EnvReader
    >>> EnvReader("SECRET_BRIDGE").get("TYPE", "aws")
"""

from secretbridge.common.config import (
    CONFIG_FILE_NAMES,
    DEFAULT_ENV_PREFIX,
    EnvReader,
    find_config_file,
    load_config_file,
)
from secretbridge.common.exceptions import BridgeError, ConfigurationError
from secretbridge.common.logging import (
    BridgeLogger,
    BufferingHandler,
    JSONFormatter,
    LogContext,
    LogContextData,
    LogLevel,
    LogRecord,
    PerformanceLogger,
    SensitiveDataMasker,
    StdlibLoggerAdapter,
    StreamHandler,
    TextFormatter,
    configure_logging,
    get_current_context,
    get_logger,
    get_performance_logger,
    reset_logging,
)


__all__ = [
    # Config
    "CONFIG_FILE_NAMES",
    "DEFAULT_ENV_PREFIX",
    "EnvReader",
    "find_config_file",
    "load_config_file",
    # Exceptions
    "BridgeError",
    "ConfigurationError",
    # Logging
    "BridgeLogger",
    "BufferingHandler",
    "JSONFormatter",
    "LogContext",
    "LogContextData",
    "LogLevel",
    "LogRecord",
    "PerformanceLogger",
    "SensitiveDataMasker",
    "StdlibLoggerAdapter",
    "StreamHandler",
    "TextFormatter",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "get_performance_logger",
    "reset_logging",
]
