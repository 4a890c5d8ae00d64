"""Domain layer for AuditStash.

This module contains the audit event models, the field extraction functions
and the ports that persisters and backing stores implement.
"""

from .audit_events import (
    AuditEvent,
    AuditCreateEvent,
    AuditUpdateEvent,
    AuditDeleteEvent,
    EventType,
)

__all__ = [
    "AuditEvent",
    "AuditCreateEvent",
    "AuditUpdateEvent",
    "AuditDeleteEvent",
    "EventType",
]
