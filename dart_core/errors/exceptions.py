# =============================================================================
# dart_core/errors/exceptions.py
# Custom Exception Hierarchy for the DART sync core
# =============================================================================

from typing import Optional, Dict, Any


class DartError(Exception):
    """
    Base exception for all DART sync core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "DART_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# LOCAL STORE EXCEPTIONS
# =============================================================================

class StorageUnavailable(DartError):
    """Raised when the local database file cannot be created or opened"""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class QueryError(DartError):
    """Raised on malformed SQL or a constraint violation in the local store"""

    def __init__(
        self,
        message: str,
        sql: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if sql:
            details["sql"] = " ".join(sql.split())

        super().__init__(
            message=message,
            code="STORE_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# QUEUE / DATA EXCEPTIONS
# =============================================================================

class PayloadValidationError(DartError):
    """Raised when a queued payload does not match its table schema"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        columns: Optional[list] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if columns:
            details["columns"] = columns

        super().__init__(
            message=message,
            code="QUEUE_001",
            details=details,
            **kwargs,
        )


class DuplicateRecordError(DartError):
    """Raised when a local pre-check finds an equivalent record"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        existing_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if existing_id:
            details["existing_id"] = existing_id

        super().__init__(
            message=message,
            code="DATA_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# REMOTE STORE EXCEPTIONS
# =============================================================================

class RemoteError(DartError):
    """Raised when a remote read fails and the caller cannot continue"""

    def __init__(
        self,
        message: str,
        kind: Optional[Any] = None,
        table: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if kind is not None:
            details["kind"] = getattr(kind, "value", kind)
        if table:
            details["table"] = table

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )
        self.kind = kind


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(DartError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
