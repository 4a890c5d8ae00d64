"""Adapters for AuditStash.

Backing-store adapters and the persisters that write audit events to them.
"""
