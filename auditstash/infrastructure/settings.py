"""Application Settings and Configuration.

This module combines the backing-store configuration from the configuration
manager with the audit pipeline defaults read from the environment.

Security Impact:
    - Store credentials are managed via ConfigManager (never logged)
    - Defaults are provided for development convenience
"""

import os
from typing import Optional

from auditstash.infrastructure.config_manager import (
    ConfigManager,
    DatabaseConfig,
    SearchIndexConfig,
)

# Application metadata
APP_NAME = "AuditStash"
APP_VERSION = "1.0.0"

# Conventional alias of the audit table
DEFAULT_TABLE_ALIAS = "AuditLogs"

# Index naming pattern; %s receives "-YYYY.MM.DD" for daily rollover
DEFAULT_INDEX_PATTERN = "audits%s"
DEFAULT_INDEX_TYPE = "audit"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Application settings loaded from configuration manager and environment.

    Attributes:
        app_name: Application name (AUDITSTASH_APP_NAME)
        log_level: Logging level (AUDITSTASH_LOG_LEVEL)
        log_json: Emit JSON log lines (AUDITSTASH_LOG_JSON)
        persister: Default persister kind, 'table' or 'elasticsearch' (AUDITSTASH_PERSISTER)
        table_alias: Alias of the audit table (AUDITSTASH_TABLE)
        es_index: Index naming pattern (AUDITSTASH_ES_INDEX)
        es_type: Document mapping type (AUDITSTASH_ES_TYPE)
        use_transaction_id: Use transaction ids as document ids (AUDITSTASH_ES_USE_TRANSACTION_ID)
    """

    def __init__(self):
        """Initialize settings from the environment."""
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("AUDITSTASH_APP_NAME", APP_NAME)
        self.log_level = os.getenv("AUDITSTASH_LOG_LEVEL", "INFO")
        self.log_json = _env_bool("AUDITSTASH_LOG_JSON", "false")

        self.persister = os.getenv("AUDITSTASH_PERSISTER", "table").lower()
        self.table_alias = os.getenv("AUDITSTASH_TABLE", DEFAULT_TABLE_ALIAS)

        self.es_index = os.getenv("AUDITSTASH_ES_INDEX", DEFAULT_INDEX_PATTERN)
        self.es_type = os.getenv("AUDITSTASH_ES_TYPE", DEFAULT_INDEX_TYPE)
        self.use_transaction_id = _env_bool("AUDITSTASH_ES_USE_TRANSACTION_ID", "false")

    @property
    def config_manager(self) -> ConfigManager:
        """Configuration manager, loaded lazily on first access."""
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def db_config(self) -> DatabaseConfig:
        return self.config_manager.get_database_config()

    @property
    def search_index_config(self) -> SearchIndexConfig:
        return self.config_manager.get_search_index_config()


# Global settings instance
settings = Settings()
