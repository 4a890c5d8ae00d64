"""Unit tests for AuditDispatcher."""

from unittest.mock import Mock

import pytest

from auditstash.domain.audit_events import AuditCreateEvent, AuditUpdateEvent
from auditstash.domain.ports import PersisterPort, TransportError
from auditstash.infrastructure.audit import AuditDispatcher, current_transaction_id


@pytest.fixture
def persister():
    return Mock(spec=PersisterPort)


@pytest.fixture
def dispatcher(persister):
    return AuditDispatcher(persister)


class TestAuditDispatcherQueue:
    """Test per-transaction queueing."""

    def test_init(self, dispatcher):
        assert dispatcher.get_event_count() == 0
        assert not dispatcher.has_events()

    def test_begin_generates_id(self, dispatcher):
        first = dispatcher.begin()
        second = dispatcher.begin()
        assert first and second and first != second

    def test_begin_with_id(self, dispatcher):
        assert dispatcher.begin("tx-1") == "tx-1"

    def test_enqueue_keeps_order(self, dispatcher):
        events = [AuditCreateEvent("tx-1", i, "articles") for i in range(3)]
        for event in events:
            dispatcher.enqueue(event)

        assert dispatcher.get_events("tx-1") == events
        assert dispatcher.get_event_count("tx-1") == 3

    def test_queues_are_separate(self, dispatcher):
        dispatcher.enqueue(AuditCreateEvent("tx-1", 1, "articles"))
        dispatcher.enqueue(AuditCreateEvent("tx-2", 2, "articles"))

        assert dispatcher.get_event_count("tx-1") == 1
        assert dispatcher.get_event_count() == 2

    def test_default_meta_merged(self, persister):
        dispatcher = AuditDispatcher(persister, default_meta={"app": "billing", "user": 1})
        event = AuditCreateEvent("tx-1", 1, "articles")
        event.set_meta_info({"user": 7})

        dispatcher.enqueue(event)

        assert event.get_meta_info() == {"app": "billing", "user": 7}


class TestAuditDispatcherCommit:
    """Test commit and rollback."""

    def test_commit_flushes_once(self, dispatcher, persister):
        events = [AuditCreateEvent("tx-1", 1, "articles"), AuditUpdateEvent("tx-1", 1, "articles")]
        for event in events:
            dispatcher.enqueue(event)

        assert dispatcher.commit("tx-1") == 2

        persister.log_events.assert_called_once_with(events)
        assert not dispatcher.has_events("tx-1")

    def test_empty_commit_skips_persister(self, dispatcher, persister):
        dispatcher.begin("tx-1")
        assert dispatcher.commit("tx-1") == 0
        persister.log_events.assert_not_called()

    def test_rollback_discards(self, dispatcher, persister):
        dispatcher.enqueue(AuditCreateEvent("tx-1", 1, "articles"))

        dispatcher.rollback("tx-1")

        assert not dispatcher.has_events()
        assert dispatcher.commit("tx-1") == 0
        persister.log_events.assert_not_called()

    def test_persister_failure_drops_queue(self, dispatcher, persister):
        persister.log_events.side_effect = TransportError("down")
        dispatcher.enqueue(AuditCreateEvent("tx-1", 1, "articles"))

        with pytest.raises(TransportError):
            dispatcher.commit("tx-1")

        assert not dispatcher.has_events("tx-1")


class TestAuditDispatcherTransaction:
    """Test the transaction context manager."""

    def test_commits_on_success(self, dispatcher, persister):
        with dispatcher.transaction() as transaction_id:
            assert current_transaction_id() == transaction_id
            dispatcher.enqueue(AuditCreateEvent(transaction_id, 1, "articles"))

        persister.log_events.assert_called_once()
        assert current_transaction_id() is None

    def test_rolls_back_on_error(self, dispatcher, persister):
        with pytest.raises(RuntimeError):
            with dispatcher.transaction("tx-1"):
                dispatcher.enqueue(AuditCreateEvent("tx-1", 1, "articles"))
                raise RuntimeError("save failed")

        persister.log_events.assert_not_called()
        assert not dispatcher.has_events()
        assert current_transaction_id() is None

    def test_nested_transactions(self, dispatcher):
        with dispatcher.transaction("outer"):
            with dispatcher.transaction("inner"):
                assert current_transaction_id() == "inner"
            assert current_transaction_id() == "outer"
