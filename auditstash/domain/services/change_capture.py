"""Change Capture Service.

This service turns a detected change on a record (its values before and after a
save or delete) into the AuditEvent that describes it, applying the field
selection rules of the audited source.

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Receives plain mappings from the data-access layer that detected the change
    - Returns domain models (AuditEvent) for queueing by the dispatcher
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from auditstash.domain.audit_events import (
    AuditCreateEvent,
    AuditDeleteEvent,
    AuditEvent,
    AuditUpdateEvent,
)

logger = logging.getLogger(__name__)


class ChangeCapture:
    """Service for building audit events from record snapshots.

    Field selection works the same for every event type: when a whitelist is
    given only those fields are kept; with ``whitelist=False`` the source's
    schema fields act as the whitelist. Blacklisted fields are always dropped.

    Parameters:
        source: Name of the audited source (table)
        primary_key: Key field name, or ordered key field names for compound keys
        whitelist: Field names to audit, or False to use schema_fields
        blacklist: Field names never audited
        schema_fields: Column names of the source (used when whitelist is False)
        display_field: Field holding the human-readable label of a record

    Example Usage:
        ```python
        capture = ChangeCapture("articles", whitelist=["id", "title", "body"])
        event = capture.capture_save(
            transaction_id, {"id": 13, "title": "Another Title"},
            original={"id": 13, "title": "The Title"}, is_new=False,
        )
        ```
    """

    def __init__(
        self,
        source: str,
        primary_key: Union[str, Sequence[str]] = "id",
        whitelist: Union[Sequence[str], bool] = False,
        blacklist: Optional[Sequence[str]] = None,
        schema_fields: Optional[Sequence[str]] = None,
        display_field: Optional[str] = None,
    ):
        self.source = source
        self.primary_key = primary_key
        self.whitelist = whitelist
        self.blacklist = list(blacklist or [])
        self.schema_fields = list(schema_fields) if schema_fields is not None else None
        self.display_field = display_field

    def _audited_fields(self, candidates: Iterable[str]) -> List[str]:
        if self.whitelist:
            allowed = set(self.whitelist)
        elif self.schema_fields is not None:
            allowed = set(self.schema_fields)
        else:
            allowed = None

        return [
            name for name in candidates
            if (allowed is None or name in allowed) and name not in self.blacklist
        ]

    def _record_id(self, record: Dict[str, Any]) -> Any:
        if isinstance(self.primary_key, str):
            return record.get(self.primary_key)
        return [record.get(name) for name in self.primary_key]

    def _display_value(self, record: Dict[str, Any]) -> Any:
        if self.display_field is None:
            return None
        return record.get(self.display_field)

    def capture_save(
        self,
        transaction_id: str,
        record: Dict[str, Any],
        original: Optional[Dict[str, Any]] = None,
        is_new: bool = False,
        parent_source: Optional[str] = None,
    ) -> Optional[AuditEvent]:
        """Build the event for a saved record.

        Parameters:
            transaction_id: Id of the enclosing transaction
            record: Field values after the save
            original: Field values before the save (ignored for new records)
            is_new: Whether the record was inserted rather than updated
            parent_source: Source whose save cascaded into this one

        Returns:
            AuditCreateEvent for new records, AuditUpdateEvent when at least one
            audited field differs, or None when no audited field changed
        """
        if is_new:
            changed = {name: record[name] for name in self._audited_fields(record)}
            return AuditCreateEvent(
                transaction_id,
                self._record_id(record),
                self.source,
                parent_source,
                changed,
                None,
                self._display_value(record),
            )

        original = original or {}
        dirty = [
            name for name in self._audited_fields(record)
            if name not in original or original[name] != record[name]
        ]
        if not dirty:
            logger.debug(f"No audited field changed on {self.source} record {self._record_id(record)}")
            return None

        return AuditUpdateEvent(
            transaction_id,
            self._record_id(record),
            self.source,
            parent_source,
            {name: record[name] for name in dirty},
            {name: original.get(name) for name in dirty},
            self._display_value(record),
        )

    def capture_delete(
        self,
        transaction_id: str,
        record: Dict[str, Any],
        parent_source: Optional[str] = None,
    ) -> AuditDeleteEvent:
        """Build the event for a deleted record.

        Parameters:
            transaction_id: Id of the enclosing transaction
            record: Field values the record had when it was deleted
            parent_source: Source whose delete cascaded into this one

        Returns:
            AuditDeleteEvent carrying the audited fields as original
        """
        return AuditDeleteEvent(
            transaction_id,
            self._record_id(record),
            self.source,
            parent_source,
            None,
            {name: record[name] for name in self._audited_fields(record)},
            self._display_value(record),
        )
