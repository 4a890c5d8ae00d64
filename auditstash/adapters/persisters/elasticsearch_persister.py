"""Elasticsearch Persister.

Submits the audit events of a batch as documents of a search index in a
single bulk write.

Architecture:
    - Implements PersisterPort
    - Structured fields are sent as nested objects, never serialized
    - The index name may embed the current UTC date for daily rollover
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from auditstash.adapters.persisters.config import ElasticSearchPersisterConfig, build_config
from auditstash.domain.audit_events import AuditEvent, EventType
from auditstash.domain.ports import IndexDocument, PersisterPort, SearchIndexPort

logger = logging.getLogger(__name__)

INDEX_DATE_FORMAT = "%Y.%m.%d"


class ElasticSearchPersister(PersisterPort):
    """Persists audit events as Elasticsearch documents.

    Parameters:
        config: Persister options; index and type are required
        connection: Search index store to write to (built from settings when omitted)
        **options: Option overrides applied on top of config

    Raises:
        ConfigurationError: If index or type is not configured

    Example Usage:
        ```python
        persister = ElasticSearchPersister(index="audits%s", type="audit")
        persister.log_events(events)  # writes to e.g. "audits-2024.05.01"
        ```
    """

    def __init__(
        self,
        config: Optional[ElasticSearchPersisterConfig] = None,
        connection: Optional[SearchIndexPort] = None,
        **options: Any
    ):
        base = dict(config) if config is not None else {}
        self._config = build_config(ElasticSearchPersisterConfig, {**base, **options})
        self._connection = connection

    def get_index(self, now: Optional[datetime] = None) -> str:
        """Resolve the index pattern for the current UTC date.

        A "%s" placeholder receives "-YYYY.MM.DD", a "{date}" placeholder the
        bare "YYYY.MM.DD". Patterns without a placeholder are used verbatim.
        """
        pattern = self._config.index
        date = (now or datetime.now(timezone.utc)).strftime(INDEX_DATE_FORMAT)
        if "%s" in pattern:
            return pattern.replace("%s", f"-{date}")
        if "{date}" in pattern:
            return pattern.replace("{date}", date)
        return pattern

    def set_index(self, index: str) -> 'ElasticSearchPersister':
        self._config = build_config(ElasticSearchPersisterConfig, {**dict(self._config), "index": index})
        return self

    def get_type(self) -> str:
        return self._config.type

    def set_type(self, type: str) -> 'ElasticSearchPersister':
        self._config = build_config(ElasticSearchPersisterConfig, {**dict(self._config), "type": type})
        return self

    def reuse_transaction_id(self, use: bool = True) -> 'ElasticSearchPersister':
        """Use the transaction id of each event as its document id.

        Only enable this when every transaction holds a single event; later
        events of a transaction otherwise replace the earlier ones.
        """
        self._config = self._config.model_copy(update={"use_transaction_id": bool(use)})
        return self

    def set_connection(self, connection: SearchIndexPort) -> 'ElasticSearchPersister':
        self._connection = connection
        return self

    def get_connection(self) -> SearchIndexPort:
        """Return the index store, creating one from settings if none was set."""
        if self._connection is None:
            from auditstash.adapters.search.elasticsearch_index import ElasticsearchIndex
            from auditstash.infrastructure.settings import settings
            self._connection = ElasticsearchIndex(config=settings.search_index_config)
        return self._connection

    def build_document(self, event: AuditEvent, index: str) -> IndexDocument:
        """Map an event to the document submitted for it."""
        primary_key = event.get_id()
        if isinstance(primary_key, Mapping):
            primary_key = list(primary_key.values())
        elif isinstance(primary_key, (list, tuple)):
            primary_key = list(primary_key)

        is_delete = event.get_event_type() == EventType.DELETE.value
        data: Dict[str, Any] = {
            "@timestamp": event.get_timestamp(),
            "transaction": event.get_transaction_id(),
            "type": event.get_event_type(),
            "primary_key": primary_key,
            "source": event.get_source_name(),
            "parent_source": event.get_parent_source_name(),
            "original": None if is_delete else event.get_original(),
            "changed": None if is_delete else event.get_changed(),
            "meta": event.get_meta_info(),
        }
        document_id = event.get_transaction_id() if self._config.use_transaction_id else None
        return IndexDocument(data=data, index=index, category=self.get_type(), id=document_id)

    def log_events(self, events: Sequence[AuditEvent]) -> None:
        """Persist all the audit events that are provided in one bulk write.

        Raises:
            TransportError: If the bulk submission fails
        """
        index = self.get_index()
        documents = [self.build_document(event, index) for event in events]
        self.get_connection().bulk_index(documents)
        logger.debug(f"Submitted {len(documents)} audit documents to '{index}'")
