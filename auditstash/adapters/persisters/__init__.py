"""Persisters for AuditStash.

This module contains the PersisterPort implementations that flush the audit
events of a committed transaction to a backing store.
"""

from auditstash.adapters.persisters.config import ElasticSearchPersisterConfig, TablePersisterConfig
from auditstash.adapters.persisters.elasticsearch_persister import ElasticSearchPersister
from auditstash.adapters.persisters.table_persister import TablePersister

__all__ = [
    "ElasticSearchPersister",
    "ElasticSearchPersisterConfig",
    "TablePersister",
    "TablePersisterConfig",
]
