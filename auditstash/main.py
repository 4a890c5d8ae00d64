"""Audit pipeline wiring.

Builds the configured persister and dispatcher from application settings.

Security Impact:
    - Backing-store credentials come from ConfigManager and are never logged

Example Usage:
    ```python
    from auditstash.main import bootstrap

    dispatcher = bootstrap()
    with dispatcher.transaction() as transaction_id:
        dispatcher.enqueue(event)
    ```
"""

import logging
from typing import Any, Dict, Optional

from auditstash.adapters.persisters.elasticsearch_persister import ElasticSearchPersister
from auditstash.adapters.persisters.table_persister import TablePersister
from auditstash.adapters.search.elasticsearch_index import ElasticsearchIndex
from auditstash.adapters.storage.registry import TableRegistry
from auditstash.domain.ports import ConfigurationError, PersisterPort
from auditstash.infrastructure.audit.audit_dispatcher import AuditDispatcher
from auditstash.infrastructure.logging_config import setup_logging
from auditstash.infrastructure.settings import settings

logger = logging.getLogger(__name__)

SUPPORTED_PERSISTERS = ["table", "elasticsearch"]


def create_persister(kind: Optional[str] = None) -> PersisterPort:
    """Create the persister selected by configuration.

    Parameters:
        kind: 'table' or 'elasticsearch' (defaults to AUDITSTASH_PERSISTER)

    Returns:
        PersisterPort: Configured persister instance

    Raises:
        ConfigurationError: If the persister kind is unsupported
    """
    kind = (kind or settings.persister).lower()

    if kind == "table":
        db_config = settings.db_config
        logger.info(f"Initializing table persister on {db_config.db_type} table alias '{settings.table_alias}'")
        return TablePersister(table=settings.table_alias, registry=TableRegistry(db_config))
    elif kind == "elasticsearch":
        logger.info(f"Initializing Elasticsearch persister with index pattern '{settings.es_index}'")
        return ElasticSearchPersister(
            index=settings.es_index,
            type=settings.es_type,
            use_transaction_id=settings.use_transaction_id,
            connection=ElasticsearchIndex(config=settings.search_index_config),
        )
    else:
        raise ConfigurationError(
            f"Unsupported persister: {kind}. Supported: {SUPPORTED_PERSISTERS}",
            option="persister"
        )


def create_dispatcher(
    persister: Optional[PersisterPort] = None,
    default_meta: Optional[Dict[str, Any]] = None
) -> AuditDispatcher:
    """Create a dispatcher flushing to the given (or configured) persister."""
    return AuditDispatcher(persister or create_persister(), default_meta=default_meta)


def bootstrap(default_meta: Optional[Dict[str, Any]] = None) -> AuditDispatcher:
    """Configure logging from settings and return a ready dispatcher."""
    setup_logging(use_json=settings.log_json, log_level=settings.log_level)
    logger.info(f"Starting {settings.app_name}")
    return create_dispatcher(default_meta=default_meta)
