"""DuckDB Audit Table Adapter.

This adapter implements the AuditTablePort contract on top of DuckDB, an
in-process database, writing one audit row per call.

Security Impact:
    - Audit rows are append-only; the adapter never updates or deletes
    - Column names are checked against the table schema before any SQL is built
    - Values are always bound as parameters

Architecture:
    - Implements AuditTablePort (Hexagonal Architecture)
    - Every row is committed in its own transaction on its own cursor, so
      concurrent callers never share transaction state
    - Row rejections are returned as Result failures, I/O faults raised
"""

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import duckdb

from auditstash.domain.ports import AuditTablePort, Result, TransportError
from auditstash.infrastructure.config_manager import DatabaseConfig

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "audit_logs"


def quote_identifier(name: str) -> str:
    """Quote a SQL identifier (table or column name)."""
    return '"' + name.replace('"', '""') + '"'


class DuckDBAuditTable(AuditTablePort):
    """DuckDB implementation of AuditTablePort.

    Parameters:
        db_config: DatabaseConfig from configuration manager (preferred)
        db_path: Path to DuckDB database file (or ':memory:' for in-memory)
        table_name: Name of the audit table
        connection: Existing DuckDB connection to reuse

    Example Usage:
        ```python
        table = DuckDBAuditTable(db_path="data/audit.duckdb")
        table.initialize_schema()
        result = table.save(row)
        ```
    """

    def __init__(
        self,
        db_config: Optional[DatabaseConfig] = None,
        db_path: Optional[str] = None,
        table_name: str = DEFAULT_TABLE_NAME,
        connection: Optional[duckdb.DuckDBPyConnection] = None
    ):
        """Initialize DuckDB audit table.

        Raises:
            TransportError: If the configuration is not a DuckDB one or the
                database directory does not exist
        """
        if db_config:
            if db_config.db_type != "duckdb":
                raise TransportError(
                    f"DatabaseConfig type '{db_config.db_type}' does not match DuckDB adapter",
                    operation="__init__"
                )
            self.db_path = db_config.db_path or ":memory:"
        else:
            self.db_path = db_path or ":memory:"

        if self.db_path != ":memory:" and not Path(self.db_path).parent.exists():
            raise TransportError(
                f"Database directory does not exist: {Path(self.db_path).parent}",
                operation="__init__"
            )

        self._table_name = table_name
        self._connection = connection
        self._columns: Optional[Dict[str, str]] = None
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        return self._table_name

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        with self._lock:
            if self._connection is None:
                try:
                    self._connection = duckdb.connect(self.db_path)
                    logger.info(f"Connected to DuckDB database: {self.db_path}")
                except duckdb.Error as e:
                    raise TransportError(
                        f"Failed to connect to DuckDB: {str(e)}",
                        operation="connect",
                        details={"db_path": self.db_path}
                    ) from e
            return self._connection

    def _cursor(self) -> duckdb.DuckDBPyConnection:
        """Open a cursor with its own transaction state on the shared database."""
        with self._lock:
            try:
                return self._get_connection().cursor()
            except duckdb.Error as e:
                raise TransportError(
                    f"Failed to open DuckDB cursor: {str(e)}",
                    operation="connect",
                    details={"db_path": self.db_path}
                ) from e

    def initialize_schema(self) -> Result[None]:
        """Create the canonical audit table when it does not exist yet.

        Returns:
            Result[None]: Success or failure result
        """
        table = quote_identifier(self._table_name)
        with self._lock:
            try:
                cursor = self._cursor()
                try:
                    cursor.execute(f"""
                        CREATE TABLE IF NOT EXISTS {table} (
                            id VARCHAR PRIMARY KEY,
                            "transaction" VARCHAR NOT NULL,
                            type VARCHAR NOT NULL,
                            primary_key VARCHAR,
                            display_value VARCHAR,
                            source VARCHAR NOT NULL,
                            parent_source VARCHAR,
                            original VARCHAR,
                            changed VARCHAR,
                            meta VARCHAR,
                            created TIMESTAMP NOT NULL
                        )
                    """)
                finally:
                    cursor.close()
                self._columns = None
                logger.info(f"Audit table '{self._table_name}' initialized")
                return Result.success_result(None)
            except (duckdb.Error, TransportError) as e:
                error_msg = f"Failed to initialize schema: {str(e)}"
                logger.error(error_msg, exc_info=True)
                return Result.failure_result(
                    TransportError(error_msg, operation="initialize_schema"),
                    error_type="TransportError"
                )

    def describe_columns(self) -> Dict[str, str]:
        """Return the audit table columns mapped to their DuckDB types.

        The canonical table is created on first use if it is missing.
        """
        with self._lock:
            if self._columns is None:
                columns = self._read_columns()
                if not columns:
                    init_result = self.initialize_schema()
                    if init_result.is_failure():
                        raise TransportError(init_result.error, operation="initialize_schema")
                    columns = self._read_columns()
                if not columns:
                    raise TransportError(
                        f"Audit table '{self._table_name}' has no columns",
                        operation="describe_columns"
                    )
                self._columns = columns
            return self._columns

    def _read_columns(self) -> Dict[str, str]:
        try:
            cursor = self._cursor()
            try:
                rows = cursor.execute(
                    "SELECT column_name, data_type FROM information_schema.columns "
                    "WHERE table_name = ? ORDER BY ordinal_position",
                    [self._table_name]
                ).fetchall()
            finally:
                cursor.close()
        except duckdb.Error as e:
            raise TransportError(
                f"Failed to read schema of '{self._table_name}': {str(e)}",
                operation="describe_columns"
            ) from e
        return {column: data_type.upper() for column, data_type in rows}

    def _prepare_value(self, column_type: str, value: Any) -> Any:
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value, separators=(",", ":"), default=str)
        if isinstance(value, datetime) and value.tzinfo is not None and column_type == "TIMESTAMP":
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        if column_type == "VARCHAR" and isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def save(self, row: Dict[str, Any]) -> Result[Dict[str, Any]]:
        """Insert a row as a new audit record in its own transaction.

        Safe to call from several threads at once; each call writes through
        its own cursor.

        Parameters:
            row: Mapping of column name to value

        Returns:
            Result[dict]: Stored row (with generated id) or validation failure

        Raises:
            TransportError: On I/O or connection faults, or when the table
                no longer exists
        """
        columns = self.describe_columns()
        errors = self.validate_row(row)
        if errors:
            return Result.failure_result(
                f"Row rejected by table '{self._table_name}'",
                error_type="ValidationError",
                error_details={"errors": errors, "table": self._table_name}
            )

        record = dict(row)
        if "id" in columns and record.get("id") is None:
            record["id"] = str(uuid.uuid4())

        names = list(record)
        insert_sql = (
            f"INSERT INTO {quote_identifier(self._table_name)} "
            f"({', '.join(quote_identifier(name) for name in names)}) "
            f"VALUES ({', '.join('?' for _ in names)})"
        )
        values = [self._prepare_value(columns[name], record[name]) for name in names]

        cursor = self._cursor()
        try:
            cursor.execute("BEGIN TRANSACTION")
            cursor.execute(insert_sql, values)
            cursor.execute("COMMIT")
        except duckdb.CatalogException as e:
            # Table dropped or altered underneath us
            self._rollback(cursor)
            with self._lock:
                self._columns = None
            raise TransportError(
                f"Audit table '{self._table_name}' is unavailable: {str(e)}",
                operation="save",
                details={"table": self._table_name}
            ) from e
        except (duckdb.IntegrityError, duckdb.DataError, duckdb.ProgrammingError) as e:
            self._rollback(cursor)
            return Result.failure_result(
                f"Row rejected by table '{self._table_name}': {str(e)}",
                error_type="ValidationError",
                error_details={"errors": {"_row": [str(e)]}, "table": self._table_name}
            )
        except duckdb.Error as e:
            self._rollback(cursor)
            raise TransportError(
                f"Failed to write audit row: {str(e)}",
                operation="save",
                details={"table": self._table_name}
            ) from e
        finally:
            cursor.close()

        logger.debug(f"Saved audit row {record['id'] if 'id' in record else ''} to '{self._table_name}'")
        return Result.success_result(record)

    def _rollback(self, cursor: duckdb.DuckDBPyConnection) -> None:
        try:
            cursor.execute("ROLLBACK")
        except duckdb.Error as e:
            logger.warning(f"Error rolling back audit row: {str(e)}")

    def close(self) -> None:
        """Close the DuckDB connection."""
        with self._lock:
            if self._connection is not None:
                try:
                    self._connection.close()
                    logger.info("Closed DuckDB connection")
                except duckdb.Error as e:
                    logger.warning(f"Error closing connection: {str(e)}")
                finally:
                    self._connection = None
                    self._columns = None
