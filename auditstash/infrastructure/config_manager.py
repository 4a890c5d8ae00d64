"""Configuration Manager for Backing-Store Connections.

This module loads the connection settings of the audit backing stores (the
relational audit table and the search index) from environment variables or a
JSON file, with secrets kept out of logs and error messages.

Security Impact:
    - Passwords, API keys and connection strings are held as SecretStr
    - Credentials are never logged
    - Configuration is validated before any connection is attempted

Architecture:
    - Infrastructure layer, isolated from the domain
    - Type-safe configuration using Pydantic models
    - Fail-fast validation prevents runtime errors mid-batch
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, quote_plus, unquote, urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "AUDITSTASH_"

SUPPORTED_DB_TYPES = ["duckdb", "postgresql"]


class DatabaseConfig(BaseModel):
    """Connection settings for the relational audit table store.

    Parameters:
        db_type: Type of database ('duckdb' or 'postgresql')
        db_path: Path to database file (DuckDB only, ':memory:' for in-memory)
        host: Database host
        port: Database port
        database: Database name
        username: Database username
        password: Database password (secret)
        connection_string: Full connection string (secret)
        ssl_mode: SSL mode for network connections
        pool_size: Maximum number of pooled connections
    """

    db_type: str = Field("duckdb", description="Database type (duckdb, postgresql)")
    db_path: Optional[str] = Field(None, description="Path to database file (for DuckDB)")
    host: Optional[str] = Field(None, description="Database host")
    port: Optional[int] = Field(None, description="Database port")
    database: Optional[str] = Field(None, description="Database name")
    username: Optional[str] = Field(None, description="Database username")
    password: Optional[SecretStr] = Field(None, description="Database password (secret)")
    connection_string: Optional[SecretStr] = Field(None, description="Full connection string (secret)")
    ssl_mode: Optional[str] = Field(None, description="SSL mode (require, prefer, disable)")
    pool_size: int = Field(default=5, ge=1, description="Connection pool size")

    @field_validator("db_type")
    @classmethod
    def validate_db_type(cls, v: str) -> str:
        """Validate database type."""
        if v.lower() not in SUPPORTED_DB_TYPES:
            raise ValueError(f"Unsupported database type: {v}. Supported: {SUPPORTED_DB_TYPES}")
        return v.lower()

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: Optional[str]) -> Optional[str]:
        """Validate the database directory exists (the file may not exist yet)."""
        if v is None or v == ":memory:":
            return v

        db_path_obj = Path(v)
        if not db_path_obj.parent.exists():
            raise ValueError(f"Database directory does not exist: {db_path_obj.parent}")
        return str(db_path_obj)

    @staticmethod
    def _parse_postgresql_connection_string(conn_str: str) -> Dict[str, Any]:
        """Parse a postgresql:// (or postgres://) URL into its components.

        Parameters:
            conn_str: PostgreSQL connection string

        Returns:
            Dictionary with host, port, database, username, password, ssl_mode
        """
        parsed = urlparse(conn_str)
        if parsed.scheme not in ('postgresql', 'postgres'):
            raise ValueError(f"Unsupported connection string scheme: {parsed.scheme}")

        result: Dict[str, Any] = {
            'host': parsed.hostname,
            'port': parsed.port,
            'database': parsed.path.lstrip('/') or None,
            'username': unquote(parsed.username) if parsed.username else None,
            'password': unquote(parsed.password) if parsed.password else None,
        }

        query_params = parse_qs(parsed.query)
        if 'sslmode' in query_params:
            result['ssl_mode'] = query_params['sslmode'][0]

        return result

    @model_validator(mode='after')
    def sync_connection_string_and_fields(self) -> 'DatabaseConfig':
        """Keep the connection string and the individual fields in sync.

        The connection string always takes precedence over individual fields.
        """
        if self.db_type != "postgresql":
            return self

        if self.connection_string:
            parsed = self._parse_postgresql_connection_string(self.connection_string.get_secret_value())
            for key in ('host', 'port', 'database', 'username', 'ssl_mode'):
                if parsed.get(key):
                    setattr(self, key, parsed[key])
            if parsed.get('password'):
                self.password = SecretStr(parsed['password'])
        elif self.host and self.database:
            self.connection_string = SecretStr(self._build_postgresql_url())

        return self

    def _build_postgresql_url(self) -> str:
        password_part = ""
        if self.password:
            password_part = f":{quote_plus(self.password.get_secret_value())}"
        username_part = quote_plus(self.username) if self.username else ""
        ssl_part = f"?sslmode={self.ssl_mode}" if self.ssl_mode else ""
        return (
            f"postgresql://{username_part}{password_part}@{self.host}:{self.port or 5432}"
            f"/{self.database}{ssl_part}"
        )

    def get_connection_string(self) -> str:
        """Get the connection string (or DuckDB path) for the database.

        Raises:
            ValueError: If a PostgreSQL configuration lacks host or database
        """
        if self.db_type == "duckdb":
            return self.db_path or ":memory:"

        if self.connection_string:
            return self.connection_string.get_secret_value()
        if not (self.host and self.database):
            raise ValueError("postgresql requires host and database")
        return self._build_postgresql_url()


class SearchIndexConfig(BaseModel):
    """Connection settings for the Elasticsearch audit index.

    Parameters:
        hosts: Node URLs of the cluster
        api_key: API key (secret), preferred over basic auth
        username: Basic auth username
        password: Basic auth password (secret)
        verify_certs: Whether TLS certificates are verified
        request_timeout: Per-request timeout in seconds
        legacy_mapping_types: Send mapping types with documents (pre-7.x clusters)
    """

    hosts: List[str] = Field(default_factory=lambda: ["http://localhost:9200"], description="Cluster node URLs")
    api_key: Optional[SecretStr] = Field(None, description="API key (secret)")
    username: Optional[str] = Field(None, description="Basic auth username")
    password: Optional[SecretStr] = Field(None, description="Basic auth password (secret)")
    verify_certs: bool = Field(True, description="Verify TLS certificates")
    request_timeout: float = Field(10.0, gt=0, description="Request timeout in seconds")
    legacy_mapping_types: bool = Field(False, description="Send mapping types with documents")

    @field_validator("hosts", mode="before")
    @classmethod
    def split_hosts(cls, v: Any) -> Any:
        """Accept a comma-separated host list."""
        if isinstance(v, str):
            return [host.strip() for host in v.split(",") if host.strip()]
        return v

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for building an ``elasticsearch.Elasticsearch`` client.

        Security Impact:
            - Secrets are unwrapped only here, at client construction
        """
        kwargs: Dict[str, Any] = {
            "hosts": self.hosts,
            "verify_certs": self.verify_certs,
            "request_timeout": self.request_timeout,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key.get_secret_value()
        elif self.username and self.password:
            kwargs["basic_auth"] = (self.username, self.password.get_secret_value())
        return kwargs


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _drop_unset(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


class ConfigManager:
    """Configuration manager for the audit backing stores.

    Example Usage:
        ```python
        config = ConfigManager.from_environment()
        db_config = config.get_database_config()

        config = ConfigManager.from_file("auditstash.json")
        es_config = config.get_search_index_config()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary with optional 'database',
                'search_index' and 'persister' sections
        """
        self._config_data = config_data
        self._database_config: Optional[DatabaseConfig] = None
        self._search_index_config: Optional[SearchIndexConfig] = None

    @classmethod
    def from_environment(cls, env_file: Optional[str] = None) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - AUDITSTASH_DB_TYPE: Database type (duckdb, postgresql)
            - AUDITSTASH_DB_PATH: Path to database file (for DuckDB)
            - AUDITSTASH_DB_HOST / _DB_PORT / _DB_NAME / _DB_USER / _DB_SSL_MODE
            - AUDITSTASH_DB_PASSWORD: Database password (secret)
            - AUDITSTASH_DB_CONNECTION_STRING: Full connection string (secret)
            - AUDITSTASH_ES_HOSTS: Comma-separated Elasticsearch node URLs
            - AUDITSTASH_ES_API_KEY: Elasticsearch API key (secret)
            - AUDITSTASH_ES_USER / AUDITSTASH_ES_PASSWORD: Basic auth
            - AUDITSTASH_ES_VERIFY_CERTS: "true" or "false"

        Parameters:
            env_file: Optional .env file to load first (defaults to ./.env)

        Returns:
            ConfigManager instance
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        port = _env("DB_PORT")
        verify_certs = _env("ES_VERIFY_CERTS")

        config_data = {
            "database": _drop_unset({
                "db_type": _env("DB_TYPE", "duckdb"),
                "db_path": _env("DB_PATH"),
                "host": _env("DB_HOST"),
                "port": int(port) if port else None,
                "database": _env("DB_NAME"),
                "username": _env("DB_USER"),
                "password": _env("DB_PASSWORD"),
                "connection_string": _env("DB_CONNECTION_STRING"),
                "ssl_mode": _env("DB_SSL_MODE"),
            }),
            "search_index": _drop_unset({
                "hosts": _env("ES_HOSTS"),
                "api_key": _env("ES_API_KEY"),
                "username": _env("ES_USER"),
                "password": _env("ES_PASSWORD"),
                "verify_certs": verify_certs.lower() == "true" if verify_certs else None,
            }),
        }

        return cls(config_data)

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        Parameters:
            config_path: Path to configuration file

        Returns:
            ConfigManager instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is not valid JSON
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_file.stat().st_mode & 0o077 != 0:
            logger.warning(
                f"Configuration file has overly permissive permissions: {config_path}. "
                "Consider setting to 600 for credential files."
            )

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        return cls(config_data)

    def get_database_config(self) -> DatabaseConfig:
        """Get the (validated, cached) database configuration."""
        if self._database_config is None:
            self._database_config = DatabaseConfig(**self._config_data.get("database", {}))
        return self._database_config

    def get_search_index_config(self) -> SearchIndexConfig:
        """Get the (validated, cached) search index configuration."""
        if self._search_index_config is None:
            self._search_index_config = SearchIndexConfig(**self._config_data.get("search_index", {}))
        return self._search_index_config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dotted key, e.g. "database.host".

        Parameters:
            key: Configuration key
            default: Default value if key not found
        """
        value: Any = self._config_data
        for k in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(k)

        return value if value is not None else default


# ============================================================================
# Convenience Functions
# ============================================================================

def get_database_config() -> DatabaseConfig:
    """Load the database configuration from the environment.

    Defaults to an in-memory DuckDB database if nothing is configured.
    """
    return ConfigManager.from_environment().get_database_config()


def get_search_index_config() -> SearchIndexConfig:
    """Load the Elasticsearch configuration from the environment."""
    return ConfigManager.from_environment().get_search_index_config()
