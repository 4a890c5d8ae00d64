"""Audit Dispatcher.

This module queues the audit events produced while a logical transaction is
running and hands the whole queue to the configured persister when the
transaction commits.

Security Impact:
    - Events of a rolled back transaction are discarded, never persisted
    - Each queue is consumed exactly once, so events cannot be written twice

Architecture:
    - Infrastructure layer component between the change-capture hook and a
      PersisterPort implementation
    - One ordered queue per transaction id; independent transactions may be
      committed concurrently from different threads
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Optional

from auditstash.domain.audit_events import AuditEvent
from auditstash.domain.ports import PersisterPort

logger = logging.getLogger(__name__)

_current_transaction: ContextVar[Optional[str]] = ContextVar("auditstash_transaction", default=None)


def current_transaction_id() -> Optional[str]:
    """Return the id of the transaction opened by the innermost
    ``AuditDispatcher.transaction()`` block, or None outside of one."""
    return _current_transaction.get()


class AuditDispatcher:
    """Per-transaction queue of audit events.

    Parameters:
        persister: Persister the queues are flushed to on commit
        default_meta: Metadata merged into every enqueued event (the event's own
            keys win)

    Example Usage:
        ```python
        dispatcher = AuditDispatcher(TablePersister(), default_meta={"app": "billing"})
        with dispatcher.transaction() as transaction_id:
            dispatcher.enqueue(capture.capture_save(transaction_id, record, is_new=True))
        # queue flushed to the persister here
        ```
    """

    def __init__(self, persister: PersisterPort, default_meta: Optional[Dict[str, Any]] = None):
        self.persister = persister
        self.default_meta = dict(default_meta or {})
        self._queues: Dict[str, List[AuditEvent]] = {}
        self._lock = threading.Lock()

    def begin(self, transaction_id: Optional[str] = None) -> str:
        """Open a queue for a transaction.

        Parameters:
            transaction_id: Id to use (a uuid4 is generated when omitted)

        Returns:
            The transaction id
        """
        transaction_id = transaction_id or str(uuid.uuid4())
        with self._lock:
            self._queues.setdefault(transaction_id, [])
        logger.debug(f"Began audit transaction {transaction_id}")
        return transaction_id

    def enqueue(self, event: AuditEvent) -> None:
        """Append an event to the queue of its transaction."""
        if self.default_meta:
            event.set_meta_info({**self.default_meta, **event.get_meta_info()})

        transaction_id = event.get_transaction_id()
        with self._lock:
            self._queues.setdefault(transaction_id, []).append(event)
        logger.debug(
            f"Queued {event.get_event_type()} event for "
            f"{event.get_source_name()}.{event.get_id()} in transaction {transaction_id}"
        )

    def commit(self, transaction_id: str) -> int:
        """Flush the queue of a transaction to the persister.

        The queue is removed before the persister runs, so it is consumed
        once even if persisting fails.

        Returns:
            Number of events handed to the persister

        Raises:
            TransportError: Propagated from the persister
        """
        with self._lock:
            events = self._queues.pop(transaction_id, [])

        if not events:
            logger.debug(f"Nothing to persist for audit transaction {transaction_id}")
            return 0

        self.persister.log_events(events)
        logger.info(f"Flushed {len(events)} audit events for transaction {transaction_id}")
        return len(events)

    def rollback(self, transaction_id: str) -> None:
        """Discard the queue of a transaction without persisting it."""
        with self._lock:
            events = self._queues.pop(transaction_id, [])
        logger.debug(f"Discarded {len(events)} audit events for transaction {transaction_id}")

    @contextmanager
    def transaction(self, transaction_id: Optional[str] = None) -> Iterator[str]:
        """Run a block as one audit transaction.

        Commits on normal exit and rolls back when the block raises. The
        exception is re-raised.
        """
        transaction_id = self.begin(transaction_id)
        token = _current_transaction.set(transaction_id)
        try:
            yield transaction_id
        except BaseException:
            self.rollback(transaction_id)
            raise
        else:
            self.commit(transaction_id)
        finally:
            _current_transaction.reset(token)

    def get_events(self, transaction_id: str) -> List[AuditEvent]:
        """Return a copy of a transaction's queued events."""
        with self._lock:
            return list(self._queues.get(transaction_id, []))

    def get_event_count(self, transaction_id: Optional[str] = None) -> int:
        """Count queued events of one transaction, or of all transactions."""
        with self._lock:
            if transaction_id is not None:
                return len(self._queues.get(transaction_id, []))
            return sum(len(events) for events in self._queues.values())

    def has_events(self, transaction_id: Optional[str] = None) -> bool:
        return self.get_event_count(transaction_id) > 0
