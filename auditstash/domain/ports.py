"""Domain Ports - Abstract Contracts for Audit Persistence.

This module defines the Port interfaces (abstract contracts) that persisters and
backing-store adapters must implement. The domain core defines what it needs from
a store (a row write, a bulk submission); adapters decide how it is provided.

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Persisters (table, search index) implement PersisterPort
    - Backing stores (DuckDB, PostgreSQL, Elasticsearch) implement the store ports
    - Row-level rejections travel as Result values, transport faults as exceptions
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar, Union

from auditstash.domain.audit_events import AuditEvent

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Table stores use this to report that a specific row was rejected (a
    validation failure) without aborting the batch it belongs to.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (ValidationError, StorageError, etc.)
        error_details: Additional error context (field errors, row index, etc.)

    Example:
        ```python
        result = table.save(row)
        if result.is_failure():
            logger.error(result.error, extra={"extra_fields": result.error_details})
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "ValidationError")
            error_details: Additional context (field errors, etc.)

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class AuditStashError(Exception):
    """Base exception for all audit persistence errors."""
    pass


class ConfigurationError(AuditStashError):
    """Raised when a persister is configured with a missing or unknown option value.

    Configuration errors are raised eagerly, when the persister is built or
    reconfigured, and never from the middle of a batch.

    Attributes:
        option: Name of the offending option (if known)
    """

    def __init__(self, message: str, option: Optional[str] = None):
        super().__init__(message)
        self.option = option


class InvalidArgumentError(AuditStashError, ValueError):
    """Raised when an argument does not satisfy the expected contract.

    The message always names the contract that was expected, e.g. which
    types a table reference may take.
    """
    pass


class TransportError(AuditStashError):
    """Raised when talking to a backing store fails at the connection/protocol level.

    Transport errors are always fatal to the batch being written.

    Attributes:
        operation: The store operation that failed (connect, save, bulk, ...)
        details: Additional error details
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}


class BulkSubmissionError(TransportError):
    """Raised when a bulk submission is rejected by the index store.

    Attributes:
        failures: Per-document failure payloads returned by the store
    """

    def __init__(self, message: str, failures: Optional[List[dict]] = None, details: Optional[dict] = None):
        super().__init__(message, operation="bulk", details=details)
        self.failures = failures or []


# ============================================================================
# Backing Store Ports
# ============================================================================

class AuditTablePort(ABC):
    """Abstract contract for a tabular audit store.

    A table store accepts one named-field row per call and commits it in its
    own unit of work. It reports rejected rows through Result and raises
    TransportError for connectivity faults.

    Example Usage:
        ```python
        result = table.save({"transaction": "...", "type": "create", ...})
        if result.is_failure():
            print(result.error_details["errors"])
        ```
    """

    #: Columns that must be present and non-null in every row
    required_columns = ("transaction", "type", "source", "created")

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the underlying table."""
        pass

    @abstractmethod
    def describe_columns(self) -> Dict[str, str]:
        """Return the table columns mapped to their (upper-cased) store types.

        Raises:
            TransportError: If the schema cannot be read from the store
        """
        pass

    @abstractmethod
    def save(self, row: Dict[str, Any]) -> Result[Dict[str, Any]]:
        """Persist a row as a new record.

        Parameters:
            row: Mapping of column name to value

        Returns:
            Result[dict]: The stored row on success, or a failure with
            error_type "ValidationError" and error_details["errors"] holding
            a mapping of field name to messages

        Raises:
            TransportError: If the store cannot be reached
        """
        pass

    def supports_native_temporal(self, column: str) -> bool:
        """Check whether a column stores rich datetime values.

        Parameters:
            column: Column name

        Returns:
            bool: True when the column type is a timestamp/date type
        """
        column_type = self.describe_columns().get(column, "")
        return column_type.startswith("TIMESTAMP") or column_type in ("DATE", "DATETIME")

    def supports_native_json(self, column: str) -> bool:
        """Check whether a column stores structured (JSON) values natively."""
        return self.describe_columns().get(column, "") in ("JSON", "JSONB")

    def validate_row(self, row: Dict[str, Any]) -> Dict[str, List[str]]:
        """Validate a row against the table schema before writing it.

        Parameters:
            row: Row about to be written

        Returns:
            Dict[str, List[str]]: Field name to error messages (empty when valid)
        """
        columns = self.describe_columns()
        errors: Dict[str, List[str]] = {}

        for column in self.required_columns:
            if column in columns and row.get(column) is None:
                errors.setdefault(column, []).append("This field cannot be left empty")

        for column in row:
            if column not in columns:
                errors.setdefault(column, []).append(
                    f"Unknown column for table '{self.name}'"
                )

        return errors


@dataclass(frozen=True)
class IndexDocument:
    """A single document destined for a search index bulk write.

    Attributes:
        data: Document body
        index: Resolved index name
        category: Mapping type / category of the document
        id: Document id, or None to let the store assign one
    """
    data: Dict[str, Any]
    index: str
    category: str
    id: Optional[str] = None


class SearchIndexPort(ABC):
    """Abstract contract for a search/index store accepting bulk writes."""

    @abstractmethod
    def bulk_index(self, documents: Sequence[IndexDocument]) -> int:
        """Submit all documents in one bulk operation.

        Parameters:
            documents: Documents to submit

        Returns:
            int: Number of documents accepted

        Raises:
            TransportError: If the submission fails
        """
        pass


# ============================================================================
# Persister Port
# ============================================================================

class PersisterPort(ABC):
    """Abstract contract for persisting a transaction's audit events.

    This is the sole entry point orchestration code calls to flush the
    queued events of a committed transaction.
    """

    @abstractmethod
    def log_events(self, events: Sequence[AuditEvent]) -> None:
        """Persist all the audit events that are provided.

        Parameters:
            events: Events of one transaction, in enqueue order

        Raises:
            TransportError: If the backing store cannot be reached
        """
        pass

