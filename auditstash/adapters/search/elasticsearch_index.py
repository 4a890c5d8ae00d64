"""Elasticsearch Audit Index Adapter.

This adapter implements the SearchIndexPort contract with the official
``elasticsearch`` client, submitting audit documents through the bulk API.

Security Impact:
    - Credentials come from SearchIndexConfig and are never logged
    - Per-document rejections are surfaced, never silently dropped

Architecture:
    - Implements SearchIndexPort (Hexagonal Architecture)
    - Client is created lazily on first use
    - Any failure of the bulk call raises TransportError
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from elasticsearch import ApiError, Elasticsearch
from elasticsearch import TransportError as ElasticsearchTransportError
from elasticsearch.helpers import BulkIndexError, bulk

from auditstash.domain.ports import (
    BulkSubmissionError,
    IndexDocument,
    SearchIndexPort,
    TransportError,
)
from auditstash.infrastructure.config_manager import SearchIndexConfig

logger = logging.getLogger(__name__)


class ElasticsearchIndex(SearchIndexPort):
    """Elasticsearch implementation of SearchIndexPort.

    Parameters:
        client: Existing Elasticsearch client to use
        config: Connection settings used to build a client when none is given
        refresh: Refresh policy passed to the bulk call (False, True or "wait_for")
    """

    def __init__(
        self,
        client: Optional[Elasticsearch] = None,
        config: Optional[SearchIndexConfig] = None,
        refresh: Any = False
    ):
        self._client = client
        self._config = config or SearchIndexConfig()
        self.refresh = refresh

    @property
    def client(self) -> Elasticsearch:
        if self._client is None:
            self._client = Elasticsearch(**self._config.client_kwargs())
            logger.info(f"Created Elasticsearch client for {', '.join(self._config.hosts)}")
        return self._client

    def _action(self, document: IndexDocument) -> Dict[str, Any]:
        action: Dict[str, Any] = {
            "_op_type": "index",
            "_index": document.index,
            "_source": document.data,
        }
        if document.id is not None:
            action["_id"] = document.id
        if self._config.legacy_mapping_types:
            action["_type"] = document.category
        return action

    def bulk_index(self, documents: Sequence[IndexDocument]) -> int:
        """Submit all documents in one bulk request.

        Parameters:
            documents: Documents to submit

        Returns:
            int: Number of documents accepted

        Raises:
            BulkSubmissionError: If the cluster rejected any document
            TransportError: If the request itself failed
        """
        if not documents:
            return 0

        actions: List[Dict[str, Any]] = [self._action(document) for document in documents]
        try:
            accepted, _ = bulk(self.client, actions, refresh=self.refresh)
        except BulkIndexError as e:
            raise BulkSubmissionError(
                f"{len(e.errors)} of {len(actions)} audit documents were rejected",
                failures=e.errors,
                details={"indices": sorted({a["_index"] for a in actions})}
            ) from e
        except (ApiError, ElasticsearchTransportError) as e:
            raise TransportError(
                f"Bulk submission to Elasticsearch failed: {str(e)}",
                operation="bulk",
                details={"documents": len(actions)}
            ) from e

        logger.debug(f"Bulk indexed {accepted} audit documents")
        return accepted

    def close(self) -> None:
        """Close the client transport."""
        if self._client is not None:
            self._client.close()
            self._client = None
