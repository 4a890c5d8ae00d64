"""PostgreSQL Audit Table Adapter.

This adapter implements the AuditTablePort contract on top of PostgreSQL using
a psycopg2 connection pool.

Security Impact:
    - Connection credentials are never logged
    - Identifiers are composed with psycopg2.sql, values always bound
    - Audit rows are append-only

Architecture:
    - Implements AuditTablePort (Hexagonal Architecture)
    - Connection pool is created lazily on first use
    - The audit table is created on first use when it is missing
    - Constraint and type rejections become Result failures, connection faults
      raise TransportError
"""

import json
import logging
import threading
import uuid
from typing import Any, Dict, Optional

import psycopg2
from psycopg2 import pool, sql
from psycopg2.errors import UndefinedColumn, UndefinedTable
from psycopg2.extras import Json

from auditstash.domain.ports import AuditTablePort, Result, TransportError
from auditstash.infrastructure.config_manager import DatabaseConfig

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "audit_logs"


class PostgreSQLAuditTable(AuditTablePort):
    """PostgreSQL implementation of AuditTablePort.

    Parameters:
        db_config: DatabaseConfig from configuration manager (preferred)
        connection_string: Full PostgreSQL connection string
        table_name: Name of the audit table
        pool_size: Maximum number of pooled connections

    Example Usage:
        ```python
        from auditstash.infrastructure.config_manager import get_database_config

        table = PostgreSQLAuditTable(db_config=get_database_config())
        table.initialize_schema()
        ```
    """

    def __init__(
        self,
        db_config: Optional[DatabaseConfig] = None,
        connection_string: Optional[str] = None,
        table_name: str = DEFAULT_TABLE_NAME,
        pool_size: int = 5
    ):
        """Initialize PostgreSQL audit table.

        Security Impact:
            - Connection is established lazily (on first operation)
            - SSL mode defaults to 'prefer'

        Raises:
            TransportError: If neither a usable db_config nor a connection string is given
        """
        self._connection_pool: Optional[pool.ThreadedConnectionPool] = None
        self._table_name = table_name
        self._columns: Optional[Dict[str, str]] = None
        self._lock = threading.RLock()

        if db_config:
            if db_config.db_type != "postgresql":
                raise TransportError(
                    f"DatabaseConfig type '{db_config.db_type}' does not match PostgreSQL adapter",
                    operation="__init__"
                )
            if db_config.connection_string:
                self.connection_params = {"dsn": db_config.connection_string.get_secret_value()}
            else:
                if not all([db_config.host, db_config.database]):
                    raise TransportError(
                        "PostgreSQL DatabaseConfig requires host and database",
                        operation="__init__"
                    )
                self.connection_params = {
                    "host": db_config.host,
                    "port": db_config.port or 5432,
                    "database": db_config.database,
                    "user": db_config.username,
                    "sslmode": db_config.ssl_mode or "prefer",
                }
                if db_config.password:
                    self.connection_params["password"] = db_config.password.get_secret_value()
            self.pool_size = db_config.pool_size
        elif connection_string:
            self.connection_params = {"dsn": connection_string}
            self.pool_size = pool_size
        else:
            raise TransportError(
                "PostgreSQL audit table requires either db_config or connection_string",
                operation="__init__"
            )

    @property
    def name(self) -> str:
        return self._table_name

    def _get_connection_pool(self) -> pool.ThreadedConnectionPool:
        with self._lock:
            if self._connection_pool is None:
                try:
                    self._connection_pool = pool.ThreadedConnectionPool(
                        minconn=1,
                        maxconn=self.pool_size,
                        **self.connection_params
                    )
                    logger.info("Created PostgreSQL connection pool")
                except psycopg2.Error as e:
                    raise TransportError(
                        f"Failed to create PostgreSQL connection pool: {str(e)}",
                        operation="connect",
                        details={"host": self.connection_params.get("host", "N/A")}
                    ) from e
            return self._connection_pool

    def _get_connection(self):
        """Get a connection from the pool.

        Raises:
            TransportError: If connection cannot be obtained
        """
        try:
            return self._get_connection_pool().getconn()
        except (psycopg2.Error, pool.PoolError) as e:
            raise TransportError(
                f"Failed to get connection from pool: {str(e)}",
                operation="get_connection"
            ) from e

    def _return_connection(self, conn) -> None:
        try:
            self._get_connection_pool().putconn(conn)
        except (psycopg2.Error, pool.PoolError) as e:
            logger.warning(f"Error returning connection to pool: {str(e)}")

    def initialize_schema(self) -> Result[None]:
        """Create the canonical audit table when it does not exist yet.

        Returns:
            Result[None]: Success or failure result
        """
        conn = None
        try:
            conn = self._get_connection()
            cursor = conn.cursor()
            cursor.execute(sql.SQL("""
                CREATE TABLE IF NOT EXISTS {table} (
                    id UUID PRIMARY KEY,
                    "transaction" VARCHAR(255) NOT NULL,
                    type VARCHAR(7) NOT NULL,
                    primary_key TEXT,
                    display_value TEXT,
                    source VARCHAR(255) NOT NULL,
                    parent_source VARCHAR(255),
                    original JSONB,
                    changed JSONB,
                    meta JSONB,
                    created TIMESTAMP WITH TIME ZONE NOT NULL
                )
            """).format(table=sql.Identifier(self._table_name)))
            cursor.execute(sql.SQL(
                'CREATE INDEX IF NOT EXISTS {index} ON {table} ("transaction")'
            ).format(
                index=sql.Identifier(f"idx_{self._table_name}_transaction"),
                table=sql.Identifier(self._table_name),
            ))
            conn.commit()
            cursor.close()
            self._columns = None
            logger.info(f"Audit table '{self._table_name}' initialized")
            return Result.success_result(None)
        except psycopg2.Error as e:
            if conn:
                conn.rollback()
            error_msg = f"Failed to initialize schema: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                TransportError(error_msg, operation="initialize_schema"),
                error_type="TransportError"
            )
        finally:
            if conn:
                self._return_connection(conn)

    def describe_columns(self) -> Dict[str, str]:
        """Return the audit table columns mapped to their PostgreSQL types.

        The canonical table is created on first use if it is missing.

        Raises:
            TransportError: If the schema cannot be read or created
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
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT column_name, data_type FROM information_schema.columns "
                "WHERE table_name = %s ORDER BY ordinal_position",
                [self._table_name]
            )
            rows = cursor.fetchall()
            cursor.close()
        except psycopg2.Error as e:
            raise TransportError(
                f"Failed to read schema of '{self._table_name}': {str(e)}",
                operation="describe_columns"
            ) from e
        finally:
            self._return_connection(conn)
        return {column: data_type.upper() for column, data_type in rows}

    def _prepare_value(self, column: str, value: Any) -> Any:
        if self.supports_native_json(column):
            if isinstance(value, str):
                return value
            return Json(value) if value is not None else None
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value, separators=(",", ":"), default=str)
        return value

    def save(self, row: Dict[str, Any]) -> Result[Dict[str, Any]]:
        """Insert a row as a new audit record in its own transaction.

        Parameters:
            row: Mapping of column name to value

        Returns:
            Result[dict]: Stored row (with generated id) or validation failure

        Raises:
            TransportError: On connection or server faults, or when the table
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
        insert_sql = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({values})").format(
            table=sql.Identifier(self._table_name),
            columns=sql.SQL(", ").join(sql.Identifier(name) for name in names),
            values=sql.SQL(", ").join(sql.Placeholder() for _ in names),
        )
        values = [self._prepare_value(name, record[name]) for name in names]

        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(insert_sql, values)
            conn.commit()
            cursor.close()
        except (UndefinedTable, UndefinedColumn) as e:
            # Table dropped or altered underneath us
            self._rollback(conn)
            with self._lock:
                self._columns = None
            raise TransportError(
                f"Audit table '{self._table_name}' is unavailable: {str(e)}",
                operation="save",
                details={"table": self._table_name}
            ) from e
        except (psycopg2.IntegrityError, psycopg2.DataError, psycopg2.ProgrammingError) as e:
            self._rollback(conn)
            return Result.failure_result(
                f"Row rejected by table '{self._table_name}': {str(e)}",
                error_type="ValidationError",
                error_details={"errors": {"_row": [str(e).strip()]}, "table": self._table_name}
            )
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            raise TransportError(
                f"Failed to write audit row: {str(e)}",
                operation="save",
                details={"table": self._table_name}
            ) from e
        except psycopg2.Error as e:
            self._rollback(conn)
            raise TransportError(
                f"Failed to write audit row: {str(e)}",
                operation="save",
                details={"table": self._table_name}
            ) from e
        finally:
            self._return_connection(conn)

        logger.debug(f"Saved audit row {record.get('id')} to '{self._table_name}'")
        return Result.success_result(record)

    def _rollback(self, conn) -> None:
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Error rolling back audit row: {str(e)}")

    def close(self) -> None:
        """Close the connection pool and release resources."""
        if self._connection_pool is not None:
            try:
                self._connection_pool.closeall()
                logger.info("Closed PostgreSQL connection pool")
            except psycopg2.Error as e:
                logger.warning(f"Error closing connection pool: {str(e)}")
            finally:
                self._connection_pool = None
