"""AuditStash: durable audit trail for record changes."""

__version__ = "1.0.0"
