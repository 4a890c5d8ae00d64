"""Search index adapters for AuditStash."""

from auditstash.adapters.search.elasticsearch_index import ElasticsearchIndex

__all__ = ["ElasticsearchIndex"]
