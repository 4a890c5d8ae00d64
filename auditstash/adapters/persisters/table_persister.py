"""Table Persister.

Writes each audit event of a batch as one row of a tabular audit store.

Security Impact:
    - Every row is committed in its own unit of work, so a rejected row never
      rolls back the rows written before it
    - Rejected rows are reported with their error map when log_errors is on

Architecture:
    - Implements PersisterPort
    - Field extraction is delegated to auditstash.domain.extraction
    - The table is resolved lazily from its alias through a TableRegistry
"""

import logging
from typing import Any, Dict, Optional, Sequence, Union

from auditstash.adapters.persisters.config import TablePersisterConfig, build_config
from auditstash.adapters.storage.registry import TableRegistry
from auditstash.domain.audit_events import AuditEvent
from auditstash.domain.extraction import (
    extract_basic_fields,
    extract_meta_fields,
    extract_primary_key_fields,
)
from auditstash.domain.ports import (
    AuditTablePort,
    InvalidArgumentError,
    PersisterPort,
    Result,
)

logger = logging.getLogger(__name__)


class TablePersister(PersisterPort):
    """Persists audit events as rows of an audit table.

    Parameters:
        config: Persister options (defaults used when omitted)
        registry: Registry used to resolve table aliases
        **options: Option overrides applied on top of config

    Example Usage:
        ```python
        persister = TablePersister(
            table="AuditLogs",
            extract_meta_fields={"user.id": "user_id"},
            primary_key_extraction_strategy="properties",
        )
        persister.log_events(events)
        ```
    """

    def __init__(
        self,
        config: Optional[TablePersisterConfig] = None,
        registry: Optional[TableRegistry] = None,
        **options: Any
    ):
        base = dict(config) if config is not None else {}
        self._config = build_config(TablePersisterConfig, {**base, **options})
        self._registry = registry
        self._table: Optional[AuditTablePort] = None
        self._native_temporal: Optional[bool] = None
        self.set_table(self._config.table)

    @property
    def registry(self) -> TableRegistry:
        if self._registry is None:
            self._registry = TableRegistry()
        return self._registry

    def get_config(self, key: Optional[str] = None) -> Any:
        """Return the effective options, or a single option by name."""
        if key is None:
            return self._config
        return getattr(self._config, key)

    def set_config(self, **overrides: Any) -> 'TablePersister':
        """Replace some options, validating the resulting option set.

        Raises:
            ConfigurationError: If an option value is invalid
        """
        self._config = build_config(TablePersisterConfig, {**dict(self._config), **overrides})
        if "table" in overrides:
            self.set_table(overrides["table"])
        return self

    def get_table(self) -> AuditTablePort:
        """Return the bound table, resolving the configured alias on first use."""
        if self._table is None:
            self._table = self.registry.get(self._config.table)
        return self._table

    def set_table(self, table: Union[str, AuditTablePort]) -> 'TablePersister':
        """Bind the table rows are written to.

        Parameters:
            table: Table alias or AuditTablePort instance

        Raises:
            InvalidArgumentError: If table is neither an alias nor an AuditTablePort
        """
        if isinstance(table, AuditTablePort):
            self._table = table
        elif isinstance(table, str) and table:
            self._table = None
        else:
            raise InvalidArgumentError(
                "The `table` argument must be either a table alias, or an instance of `AuditTablePort`."
            )

        self._native_temporal = None
        self._config = self._config.model_copy(update={"table": table})
        return self

    def supports_native_temporal(self) -> bool:
        """Whether the bound table stores `created` as a rich datetime type."""
        if self._native_temporal is None:
            self._native_temporal = self.get_table().supports_native_temporal("created")
        return self._native_temporal

    def build_row(self, event: AuditEvent) -> Dict[str, Any]:
        """Flatten an event into the row written to the table."""
        config = self._config
        row: Dict[str, Any] = {}
        row.update(extract_basic_fields(event, config.serialize_fields, self.supports_native_temporal()))
        row.update(extract_primary_key_fields(event, config.primary_key_extraction_strategy))
        row.update(extract_meta_fields(
            event,
            config.extract_meta_fields,
            config.unset_extracted_meta_fields,
            config.serialize_fields,
        ))
        return row

    def log_events(self, events: Sequence[AuditEvent]) -> None:
        """Persist all the audit events that are provided, one row each.

        Rejected rows do not stop the batch.

        Parameters:
            events: Events of one transaction, in enqueue order

        Raises:
            TransportError: If the table cannot be reached; remaining events
                are not attempted
        """
        table = self.get_table()
        saved = 0
        rejected = 0

        for event in events:
            result = table.save(self.build_row(event))
            if result.is_success():
                saved += 1
                continue

            rejected += 1
            if self._config.log_errors:
                self._log_rejection(event, result)

        if rejected:
            logger.info(f"Persisted {saved} of {saved + rejected} audit events to '{table.name}' ({rejected} rejected)")
        else:
            logger.debug(f"Persisted {saved} audit events to '{table.name}'")

    def _log_rejection(self, event: AuditEvent, result: Result) -> None:
        errors = (result.error_details or {}).get("errors", {})
        logger.error(
            f"Persisting audit log failed for {event.get_event_type()} on '{event.get_source_name()}' "
            f"(transaction {event.get_transaction_id()}): {result.error}. Errors: {errors}",
            extra={
                "transaction_id": event.get_transaction_id(),
                "extra_fields": {"source": event.get_source_name(), "errors": errors},
            }
        )
