"""Infrastructure components for AuditStash: configuration, settings, logging
and the audit dispatcher."""
