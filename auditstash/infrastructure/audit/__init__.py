"""Audit infrastructure components.

This package provides the dispatcher that queues audit events per
transaction and flushes them to a persister.
"""

from auditstash.infrastructure.audit.audit_dispatcher import AuditDispatcher, current_transaction_id

__all__ = ['AuditDispatcher', 'current_transaction_id']
