# =============================================================================
# dart_core/errors/__init__.py
# Centralized Error Handling for the DART sync core
# =============================================================================

from .exceptions import (
    DartError,
    StorageUnavailable,
    QueryError,
    PayloadValidationError,
    DuplicateRecordError,
    RemoteError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    error_boundary,
)

__all__ = [
    # Exceptions
    "DartError",
    "StorageUnavailable",
    "QueryError",
    "PayloadValidationError",
    "DuplicateRecordError",
    "RemoteError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "error_boundary",
]
