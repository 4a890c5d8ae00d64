"""Unit tests for ElasticSearchPersister and ElasticsearchIndex.

The Elasticsearch client and the bulk helper are mocked.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from elasticsearch.helpers import BulkIndexError

from auditstash.adapters.persisters import ElasticSearchPersister, ElasticSearchPersisterConfig
from auditstash.adapters.search.elasticsearch_index import ElasticsearchIndex
from auditstash.domain.audit_events import AuditCreateEvent, AuditDeleteEvent, AuditUpdateEvent
from auditstash.domain.ports import (
    BulkSubmissionError,
    ConfigurationError,
    IndexDocument,
    SearchIndexPort,
    TransportError,
)
from auditstash.infrastructure.config_manager import SearchIndexConfig


@pytest.fixture
def connection():
    """Mocked search index store."""
    store = MagicMock(spec=SearchIndexPort)
    store.bulk_index.return_value = 0
    return store


@pytest.fixture
def persister(connection):
    return ElasticSearchPersister(index="audits%s", type="audit", connection=connection)


def submitted_documents(connection):
    return connection.bulk_index.call_args.args[0]


class TestElasticSearchPersisterConfig:
    """Test required options."""

    def test_missing_index(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ElasticSearchPersister(type="audit")
        assert exc_info.value.option == "index"

    def test_missing_type(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ElasticSearchPersister(index="audits")
        assert exc_info.value.option == "type"

    def test_config_object(self, connection):
        config = ElasticSearchPersisterConfig(index="audits", type="audit", use_transaction_id=True)
        persister = ElasticSearchPersister(config, connection=connection)

        persister.log_events([AuditCreateEvent("tx-1", 1, "articles")])

        assert submitted_documents(connection)[0].id == "tx-1"

    def test_set_index_and_type(self, persister):
        persister.set_index("other").set_type("change")
        assert persister.get_index() == "other"
        assert persister.get_type() == "change"

    def test_set_empty_index(self, persister):
        with pytest.raises(ConfigurationError):
            persister.set_index("")


class TestElasticSearchPersisterIndex:
    """Test daily index resolution."""

    def test_percent_placeholder(self, persister):
        now = datetime(2024, 5, 1, 23, 59, tzinfo=timezone.utc)
        assert persister.get_index(now) == "audits-2024.05.01"

    def test_date_placeholder(self, persister):
        persister.set_index("audits-{date}")
        now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        assert persister.get_index(now) == "audits-2024.05.01"

    def test_verbatim_index(self, persister):
        persister.set_index("audits")
        assert persister.get_index() == "audits"

    def test_current_utc_date(self, persister):
        today = datetime.now(timezone.utc).strftime("%Y.%m.%d")
        assert persister.get_index() == f"audits-{today}"


class TestElasticSearchPersisterLogEvents:
    """Test document mapping and bulk submission."""

    def test_single_bulk_call(self, persister, connection):
        events = [AuditCreateEvent("tx-1", i, "articles") for i in range(3)]

        persister.log_events(events)

        connection.bulk_index.assert_called_once()
        documents = submitted_documents(connection)
        assert len(documents) == 3
        assert all(isinstance(document, IndexDocument) for document in documents)

    def test_document_shape(self, persister, connection):
        event = AuditUpdateEvent("tx-1", 4, "articles", "authors", {"title": "B"}, {"title": "A"})
        event.set_meta_info({"user": 7})

        persister.log_events([event])

        document = submitted_documents(connection)[0]
        assert document.category == "audit"
        assert document.index.startswith("audits-")
        assert document.id is None
        assert document.data == {
            "@timestamp": event.get_timestamp(),
            "transaction": "tx-1",
            "type": "update",
            "primary_key": 4,
            "source": "articles",
            "parent_source": "authors",
            "original": {"title": "A"},
            "changed": {"title": "B"},
            "meta": {"user": 7},
        }

    def test_delete_nulls_original_and_changed(self, persister, connection):
        event = AuditDeleteEvent("tx-1", 4, "articles", None, {"title": "stale"}, {"title": "A"})

        persister.log_events([event])

        data = submitted_documents(connection)[0].data
        assert data["original"] is None
        assert data["changed"] is None

    def test_compound_primary_key_values(self, persister, connection):
        persister.log_events([
            AuditCreateEvent("tx-1", (1, 2), "article_tags"),
            AuditCreateEvent("tx-1", {"article_id": 1, "tag_id": 3}, "article_tags"),
        ])

        documents = submitted_documents(connection)
        assert documents[0].data["primary_key"] == [1, 2]
        assert documents[1].data["primary_key"] == [1, 3]

    def test_reuse_transaction_id(self, persister, connection):
        persister.reuse_transaction_id()
        persister.log_events([AuditCreateEvent("tx-7", 1, "articles")])

        assert submitted_documents(connection)[0].id == "tx-7"

    def test_transport_error_propagates(self, persister, connection):
        connection.bulk_index.side_effect = TransportError("cluster unavailable", operation="bulk")

        with pytest.raises(TransportError):
            persister.log_events([AuditCreateEvent("tx-1", 1, "articles")])

    def test_set_connection(self, persister):
        other = MagicMock(spec=SearchIndexPort)
        persister.set_connection(other)
        assert persister.get_connection() is other


class TestElasticsearchIndex:
    """Test the bulk adapter over a mocked client."""

    def make_documents(self):
        return [
            IndexDocument(data={"transaction": "tx-1"}, index="audits-2024.05.01", category="audit", id="tx-1"),
            IndexDocument(data={"transaction": "tx-2"}, index="audits-2024.05.01", category="audit"),
        ]

    def test_bulk_actions(self):
        client = MagicMock()
        with patch("auditstash.adapters.search.elasticsearch_index.bulk", return_value=(2, [])) as mock_bulk:
            accepted = ElasticsearchIndex(client=client).bulk_index(self.make_documents())

        assert accepted == 2
        actions = mock_bulk.call_args.args[1]
        assert actions[0] == {
            "_op_type": "index",
            "_index": "audits-2024.05.01",
            "_source": {"transaction": "tx-1"},
            "_id": "tx-1",
        }
        assert "_id" not in actions[1]
        assert "_type" not in actions[1]

    def test_legacy_mapping_types(self):
        index = ElasticsearchIndex(client=MagicMock(), config=SearchIndexConfig(legacy_mapping_types=True))
        with patch("auditstash.adapters.search.elasticsearch_index.bulk", return_value=(2, [])) as mock_bulk:
            index.bulk_index(self.make_documents())

        assert mock_bulk.call_args.args[1][0]["_type"] == "audit"

    def test_empty_batch_skips_request(self):
        with patch("auditstash.adapters.search.elasticsearch_index.bulk") as mock_bulk:
            assert ElasticsearchIndex(client=MagicMock()).bulk_index([]) == 0
        mock_bulk.assert_not_called()

    def test_rejected_documents(self):
        failures = [{"index": {"_id": "tx-1", "status": 400, "error": {"type": "mapper_parsing_exception"}}}]
        error = BulkIndexError("1 document(s) failed to index.", failures)
        with patch("auditstash.adapters.search.elasticsearch_index.bulk", side_effect=error):
            with pytest.raises(BulkSubmissionError) as exc_info:
                ElasticsearchIndex(client=MagicMock()).bulk_index(self.make_documents())

        assert exc_info.value.failures == failures
        assert exc_info.value.operation == "bulk"
        assert isinstance(exc_info.value, TransportError)

    def test_client_built_from_config(self):
        config = SearchIndexConfig(hosts="http://es1:9200,http://es2:9200", api_key="key")
        with patch("auditstash.adapters.search.elasticsearch_index.Elasticsearch") as client_class:
            client = ElasticsearchIndex(config=config).client

        assert client is client_class.return_value
        kwargs = client_class.call_args.kwargs
        assert kwargs["hosts"] == ["http://es1:9200", "http://es2:9200"]
        assert kwargs["api_key"] == "key"
