"""Unit tests for the audit event models."""

import json
from datetime import datetime

import pytest
from pydantic import ValidationError

from auditstash.domain.audit_events import (
    AuditCreateEvent,
    AuditDeleteEvent,
    AuditEvent,
    AuditUpdateEvent,
    EventType,
)


TRANSACTION_ID = "62ba2e1e-1524-4d4e-bb34-9bf0e03b6a96"


class TestAuditEventVariants:
    """Test the fixed event type of each variant."""

    def test_create_event_type(self):
        event = AuditCreateEvent(TRANSACTION_ID, 1, "articles", None, {"title": "A"}, None)
        assert event.get_event_type() == "create"
        assert event.get_event_type() == EventType.CREATE.value

    def test_update_event_type(self):
        event = AuditUpdateEvent(TRANSACTION_ID, 1, "articles", None, {"title": "B"}, {"title": "A"})
        assert event.get_event_type() == "update"

    def test_delete_event_type(self):
        event = AuditDeleteEvent(TRANSACTION_ID, 1, "articles", None, None, {"title": "A"})
        assert event.get_event_type() == "delete"

    def test_event_type_cannot_be_overridden(self):
        """A variant only accepts its own event type."""
        with pytest.raises(ValidationError):
            AuditCreateEvent(TRANSACTION_ID, 1, "articles", event_type="delete")


class TestAuditEventFields:
    """Test the accessors and immutability of events."""

    def test_getters_return_constructor_values(self):
        event = AuditUpdateEvent(
            TRANSACTION_ID, 13, "articles", "authors",
            {"title": "Another Title"}, {"title": "The Title"}, "The Title",
        )

        assert event.get_transaction_id() == TRANSACTION_ID
        assert event.get_id() == 13
        assert event.get_source_name() == "articles"
        assert event.get_parent_source_name() == "authors"
        assert event.get_changed() == {"title": "Another Title"}
        assert event.get_original() == {"title": "The Title"}
        assert event.get_display_value() == "The Title"

    def test_compound_id_is_not_coerced(self):
        event = AuditCreateEvent(TRANSACTION_ID, [1, "a", 3], "article_tags")
        assert event.get_id() == [1, "a", 3]

    def test_missing_halves_are_not_synthesized(self):
        """Stored mappings are returned as supplied, even if absent."""
        event = AuditCreateEvent(TRANSACTION_ID, 1, "articles")
        assert event.get_original() is None
        assert event.get_changed() is None

    def test_timestamp_is_set_at_construction(self):
        event = AuditCreateEvent(TRANSACTION_ID, 1, "articles")
        parsed = datetime.fromisoformat(event.get_timestamp())
        assert parsed.utcoffset().total_seconds() == 0

    def test_empty_transaction_id_rejected(self):
        with pytest.raises(ValidationError):
            AuditCreateEvent("", 1, "articles")

    def test_fields_are_frozen(self):
        event = AuditCreateEvent(TRANSACTION_ID, 1, "articles")
        with pytest.raises(ValidationError):
            event.source = "comments"


class TestAuditEventMeta:
    """Test the mutable metadata mapping."""

    def test_meta_defaults_to_empty(self):
        event = AuditCreateEvent(TRANSACTION_ID, 1, "articles")
        assert event.get_meta_info() == {}

    def test_set_meta_info_replaces_mapping(self):
        event = AuditCreateEvent(TRANSACTION_ID, 1, "articles")
        event.set_meta_info({"user": 7})
        event.set_meta_info({"ip": "127.0.0.1"})
        assert event.get_meta_info() == {"ip": "127.0.0.1"}

    def test_set_meta_info_none_resets(self):
        event = AuditCreateEvent(TRANSACTION_ID, 1, "articles")
        event.set_meta_info({"user": 7})
        event.set_meta_info(None)
        assert event.get_meta_info() == {}

    def test_meta_is_per_event(self):
        first = AuditCreateEvent(TRANSACTION_ID, 1, "articles")
        second = AuditCreateEvent(TRANSACTION_ID, 2, "articles")
        first.set_meta_info({"user": 7})
        assert second.get_meta_info() == {}


class TestAuditEventSerialization:
    """Test conversion to and from JSON."""

    def test_to_dict_includes_meta_and_type(self):
        event = AuditDeleteEvent(TRANSACTION_ID, 5, "comments", "articles", None, {"body": "x"})
        event.set_meta_info({"user": 7})

        data = event.to_dict()

        assert data["event_type"] == "delete"
        assert data["meta"] == {"user": 7}
        assert data["original"] == {"body": "x"}
        assert data["timestamp"] == event.get_timestamp()

    def test_from_json_rebuilds_variant(self):
        event = AuditUpdateEvent(TRANSACTION_ID, [1, 2], "article_tags", None, {"a": 2}, {"a": 1})
        event.set_meta_info({"user": 7})

        rebuilt = AuditEvent.from_json(event.to_json())

        assert isinstance(rebuilt, AuditUpdateEvent)
        assert rebuilt.get_id() == [1, 2]
        assert rebuilt.get_timestamp() == event.get_timestamp()
        assert rebuilt.get_meta_info() == {"user": 7}
        assert rebuilt.get_changed() == {"a": 2}

    def test_to_json_is_valid_json(self):
        event = AuditCreateEvent(TRANSACTION_ID, 1, "articles", None, {"title": "A"})
        assert json.loads(event.to_json())["changed"] == {"title": "A"}

    def test_from_dict_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            AuditEvent.from_dict({
                "event_type": "truncate",
                "transaction_id": TRANSACTION_ID,
                "id": 1,
                "source": "articles",
            })
