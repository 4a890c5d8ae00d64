"""Storage adapters for AuditStash.

This module contains table adapters that implement the AuditTablePort
interface for writing audit rows.
"""

from auditstash.adapters.storage.duckdb_table import DuckDBAuditTable
from auditstash.adapters.storage.postgresql_table import PostgreSQLAuditTable
from auditstash.adapters.storage.registry import TableRegistry

__all__ = ["DuckDBAuditTable", "PostgreSQLAuditTable", "TableRegistry"]
