"""Audit Table Registry.

Resolves table aliases such as ``"AuditLogs"`` into bound AuditTablePort
instances for the configured database type.

Architecture:
    - Factory for storage adapters, keyed by alias
    - Resolved tables are cached so every persister bound to the same alias
      shares one connection (pool)
"""

import logging
import re
from typing import Callable, Dict, Optional

from auditstash.adapters.storage.duckdb_table import DuckDBAuditTable
from auditstash.adapters.storage.postgresql_table import PostgreSQLAuditTable
from auditstash.domain.ports import AuditTablePort, ConfigurationError
from auditstash.infrastructure.config_manager import DatabaseConfig

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def table_name_for_alias(alias: str) -> str:
    """Convert a table alias into its table name.

    Example:
        >>> table_name_for_alias("AuditLogs")
        'audit_logs'
    """
    return _CAMEL_BOUNDARY.sub("_", alias).replace("-", "_").lower()


class TableRegistry:
    """Registry of audit tables by alias.

    Parameters:
        db_config: Database configuration; loaded from settings on first use
            when not given

    Example Usage:
        ```python
        registry = TableRegistry(DatabaseConfig(db_type="duckdb", db_path=":memory:"))
        table = registry.get("AuditLogs")
        ```
    """

    def __init__(self, db_config: Optional[DatabaseConfig] = None):
        self._db_config = db_config
        self._tables: Dict[str, AuditTablePort] = {}
        self._factories: Dict[str, Callable[[DatabaseConfig, str], AuditTablePort]] = {
            "duckdb": lambda config, name: DuckDBAuditTable(db_config=config, table_name=name),
            "postgresql": lambda config, name: PostgreSQLAuditTable(db_config=config, table_name=name),
        }

    @property
    def db_config(self) -> DatabaseConfig:
        if self._db_config is None:
            from auditstash.infrastructure.settings import settings
            self._db_config = settings.db_config
        return self._db_config

    def register(self, alias: str, table: AuditTablePort) -> None:
        """Bind an alias to an existing table instance."""
        self._tables[alias] = table

    def has(self, alias: str) -> bool:
        return alias in self._tables

    def get(self, alias: str) -> AuditTablePort:
        """Resolve an alias, creating the table adapter on first use.

        Raises:
            ConfigurationError: If the configured database type has no adapter
        """
        if alias not in self._tables:
            db_type = self.db_config.db_type
            factory = self._factories.get(db_type)
            if factory is None:
                raise ConfigurationError(
                    f"No audit table adapter for database type '{db_type}'",
                    option="db_type"
                )
            table_name = table_name_for_alias(alias)
            self._tables[alias] = factory(self.db_config, table_name)
            logger.info(f"Resolved table alias '{alias}' to {db_type} table '{table_name}'")
        return self._tables[alias]

    def close(self) -> None:
        """Close every resolved table that holds a connection."""
        for table in self._tables.values():
            close = getattr(table, "close", None)
            if close is not None:
                close()
        self._tables.clear()
