"""Audit Event Models.

This module defines the immutable records that describe a single change to a
persisted record. One event is built per detected change, queued with the other
events of its transaction and consumed once by a persister.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Closed set of variants (create, update, delete) discriminated by event_type
    - Every field is frozen after construction except the metadata mapping
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, PrivateAttr, TypeAdapter


class EventType(str, Enum):
    """Enumeration of audit event types."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class AuditEvent(BaseModel):
    """Represents a change to a record in a source (table, collection, ...).

    The changed and original mappings carry only the fields the capture hook
    selected. Concrete variants fix the event type; see AuditCreateEvent,
    AuditUpdateEvent and AuditDeleteEvent.

    Parameters:
        transaction_id: Id correlating the events committed together
        id: Primary key of the affected record (scalar, sequence or mapping)
        source: Name of the record's container (e.g. table name)
        parent_source: Container that triggered a cascading change, if any
        changed: Field values after the change (None for deletes)
        original: Field values before the change (None for creates)
        display_value: Human-readable label for the record

    Example Usage:
        ```python
        event = AuditUpdateEvent(
            "62ba2e1e-1524-4d4e-bb34-9bf0e03b6a96", 13, "articles", None,
            {"title": "Another Title"}, {"title": "The Title"}, "The Title",
        )
        event.set_meta_info({"user": 7})
        ```
    """

    event_type: str
    transaction_id: str = Field(..., min_length=1, description="Global transaction id")
    id: Any = Field(..., description="Primary key of the record")
    source: str = Field(..., description="Name of the source (table)")
    parent_source: Optional[str] = Field(None, description="Name of the parent source for associated records")
    display_value: Union[str, int, float, None] = Field(None, description="Human-readable label")
    original: Optional[Dict[str, Any]] = Field(None, description="Values before the change")
    changed: Optional[Dict[str, Any]] = Field(None, description="Values after the change")
    timestamp: str = Field(default_factory=_utc_timestamp, description="ISO-8601 instant of the change")

    _meta: Dict[str, Any] = PrivateAttr(default_factory=dict)

    model_config = {
        'frozen': True,
    }

    def __init__(
        self,
        transaction_id: str,
        id: Any,
        source: str,
        parent_source: Optional[str] = None,
        changed: Optional[Dict[str, Any]] = None,
        original: Optional[Dict[str, Any]] = None,
        display_value: Union[str, int, float, None] = None,
        **data: Any
    ):
        super().__init__(
            transaction_id=transaction_id,
            id=id,
            source=source,
            parent_source=parent_source,
            changed=changed,
            original=original,
            display_value=display_value,
            **data
        )

    def get_event_type(self) -> str:
        """Returns the name of this event type."""
        return self.event_type

    def get_transaction_id(self) -> str:
        return self.transaction_id

    def get_id(self) -> Any:
        """Returns the primary key exactly as it was supplied."""
        return self.id

    def get_source_name(self) -> str:
        return self.source

    def get_parent_source_name(self) -> Optional[str]:
        return self.parent_source

    def get_display_value(self) -> Union[str, int, float, None]:
        return self.display_value

    def get_timestamp(self) -> str:
        return self.timestamp

    def get_original(self) -> Optional[Dict[str, Any]]:
        """Returns the field values before they got changed."""
        return self.original

    def get_changed(self) -> Optional[Dict[str, Any]]:
        """Returns the field values as they were changed."""
        return self.changed

    def get_meta_info(self) -> Dict[str, Any]:
        """Returns the meta information attached to this event."""
        return self._meta

    def set_meta_info(self, meta: Optional[Dict[str, Any]]) -> None:
        """Replaces the meta information attached to this event.

        Parameters:
            meta: New metadata mapping (None resets it to an empty mapping)
        """
        self._meta = dict(meta or {})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary, metadata included."""
        data = self.model_dump(mode="json")
        data["meta"] = self._meta
        return data

    def to_json(self) -> str:
        """Encode this event (metadata included) as a JSON string."""
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        """Rebuild an event of the right variant from to_dict() output.

        Parameters:
            data: Mapping holding event_type and the event fields

        Returns:
            AuditEvent: Create, update or delete event with its original
            timestamp and metadata

        Raises:
            pydantic.ValidationError: If the mapping does not describe an event
        """
        payload = dict(data)
        meta = payload.pop("meta", None)
        event = _EVENT_ADAPTER.validate_python(payload)
        event.set_meta_info(meta)
        return event

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> 'AuditEvent':
        """Rebuild an event from a JSON string produced by to_json()."""
        return cls.from_dict(json.loads(raw))


class AuditCreateEvent(AuditEvent):
    """Represents an audit log event for a newly created record.

    A create event has no original data; extraction always stores it as null.
    """
    event_type: Literal["create"] = EventType.CREATE.value


class AuditUpdateEvent(AuditEvent):
    """Represents an audit log event for an existing record that was modified.

    Both original and changed hold only the fields that differ.
    """
    event_type: Literal["update"] = EventType.UPDATE.value


class AuditDeleteEvent(AuditEvent):
    """Represents an audit log event for a deleted record.

    A delete event has no remaining data; extraction always stores changed as null.
    """
    event_type: Literal["delete"] = EventType.DELETE.value


AnyAuditEvent = Annotated[
    Union[AuditCreateEvent, AuditUpdateEvent, AuditDeleteEvent],
    Field(discriminator="event_type"),
]

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(AnyAuditEvent)
