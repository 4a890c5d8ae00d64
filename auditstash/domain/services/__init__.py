"""Domain services for AuditStash."""

from auditstash.domain.services.change_capture import ChangeCapture

__all__ = ["ChangeCapture"]
