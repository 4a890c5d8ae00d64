"""Tests for persister and dispatcher wiring."""

from unittest.mock import patch

import pytest

from auditstash.adapters.persisters import ElasticSearchPersister, TablePersister
from auditstash.adapters.search.elasticsearch_index import ElasticsearchIndex
from auditstash.domain.ports import ConfigurationError
from auditstash.infrastructure.audit import AuditDispatcher
from auditstash.infrastructure.config_manager import ConfigManager
from auditstash.infrastructure.settings import Settings
from auditstash.main import bootstrap, create_dispatcher, create_persister


@pytest.fixture
def test_settings():
    """Settings backed by an in-memory DuckDB configuration."""
    settings = Settings()
    settings._config_manager = ConfigManager({"database": {"db_type": "duckdb", "db_path": ":memory:"}})
    with patch("auditstash.main.settings", settings):
        yield settings


class TestCreatePersister:
    """Test persister selection."""

    def test_table_persister(self, test_settings):
        persister = create_persister("table")

        assert isinstance(persister, TablePersister)
        assert persister.get_config("table") == "AuditLogs"
        assert persister.get_table().name == "audit_logs"

    def test_custom_table_alias(self, test_settings):
        test_settings.table_alias = "ChangeLogs"
        assert create_persister("table").get_table().name == "change_logs"

    def test_elasticsearch_persister(self, test_settings):
        test_settings.es_index = "audits-{date}"
        test_settings.use_transaction_id = True

        persister = create_persister("elasticsearch")

        assert isinstance(persister, ElasticSearchPersister)
        assert persister.get_type() == "audit"
        assert persister.get_index().startswith("audits-")
        assert isinstance(persister.get_connection(), ElasticsearchIndex)

    def test_default_kind_from_settings(self, test_settings):
        test_settings.persister = "elasticsearch"
        assert isinstance(create_persister(), ElasticSearchPersister)

    def test_unsupported_kind(self, test_settings):
        with pytest.raises(ConfigurationError) as exc_info:
            create_persister("mongodb")
        assert exc_info.value.option == "persister"


class TestCreateDispatcher:
    """Test dispatcher wiring."""

    def test_dispatcher_with_configured_persister(self, test_settings):
        dispatcher = create_dispatcher(default_meta={"app": "billing"})

        assert isinstance(dispatcher, AuditDispatcher)
        assert isinstance(dispatcher.persister, TablePersister)
        assert dispatcher.default_meta == {"app": "billing"}

    def test_bootstrap_configures_logging(self, test_settings):
        with patch("auditstash.main.setup_logging") as mock_setup:
            dispatcher = bootstrap()

        mock_setup.assert_called_once_with(use_json=test_settings.log_json, log_level=test_settings.log_level)
        assert isinstance(dispatcher, AuditDispatcher)
