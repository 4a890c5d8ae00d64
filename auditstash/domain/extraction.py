"""Field Extraction for Audit Events.

This module turns an AuditEvent into the flat field mapping a backing store
writes: the basic fields, the primary key fields under a selectable strategy,
and the metadata fields under extraction rules.

Architecture:
    - Pure functions with no I/O and no shared state
    - Used by every persister instead of being inherited by them
    - The event is never mutated; metadata is copied along the paths it edits
"""

import json
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from auditstash.domain.audit_events import AuditEvent, EventType
from auditstash.domain.ports import ConfigurationError

# Fallback representation for stores without a rich datetime column type
CREATED_STRING_FORMAT = "%Y-%m-%d %H:%M:%S"

MetaFieldSpec = Union[bool, Mapping, Sequence]


class PrimaryKeyStrategy(str, Enum):
    """Strategies for flattening a (possibly compound) primary key.

    - AUTOMATIC: scalar as is, compound keys serialized into primary_key
    - PROPERTIES: scalar as is, compound keys split into primary_key_<n>
    - RAW: the id exactly as supplied
    - SERIALIZED: the id always serialized, scalars included
    """
    AUTOMATIC = "automatic"
    PROPERTIES = "properties"
    RAW = "raw"
    SERIALIZED = "serialized"

    @classmethod
    def parse(cls, value: Union[str, 'PrimaryKeyStrategy']) -> 'PrimaryKeyStrategy':
        """Parse a strategy name.

        Raises:
            ConfigurationError: If the name is not a known strategy
        """
        try:
            return cls(value)
        except ValueError:
            supported = [strategy.value for strategy in cls]
            raise ConfigurationError(
                f"Unknown primary key extraction strategy: {value!r}. Supported: {supported}",
                option="primary_key_extraction_strategy"
            )


def serialize(value: Any) -> Optional[str]:
    """Serialize a value to compact JSON.

    None is returned as is rather than encoded, so a missing value stays
    null in the store instead of becoming the string "null".

    Parameters:
        value: Value to convert to JSON

    Returns:
        JSON string, or None
    """
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"), default=str)


def format_created(timestamp: str, native_temporal: bool = True) -> Union[datetime, str]:
    """Convert an event timestamp to the store's temporal representation.

    Parameters:
        timestamp: ISO-8601 timestamp of the event
        native_temporal: Whether the store column holds rich datetime values

    Returns:
        datetime when native_temporal, else a 'YYYY-MM-DD HH:MM:SS' string
    """
    if timestamp.endswith("Z"):
        timestamp = timestamp[:-1] + "+00:00"
    created = datetime.fromisoformat(timestamp)
    if native_temporal:
        return created
    return created.strftime(CREATED_STRING_FORMAT)


def extract_basic_fields(
    event: AuditEvent,
    serialize_fields: bool = True,
    native_temporal: bool = True
) -> Dict[str, Any]:
    """Extract the basic fields from the audit event object.

    By definition a create event has no original data and a delete event has
    no remaining data, so original and changed are nulled for those types
    whatever the event holds.

    Parameters:
        event: The event object from which to extract the fields
        serialize_fields: Whether to JSON-encode original and changed
        native_temporal: Whether 'created' may be stored as a datetime

    Returns:
        Dict with transaction, type, source, parent_source, display_value,
        original, changed and created
    """
    event_type = event.get_event_type()
    original = event.get_original()
    changed = event.get_changed()

    if serialize_fields:
        original = serialize(original)
        changed = serialize(changed)

    return {
        'transaction': event.get_transaction_id(),
        'type': event_type,
        'source': event.get_source_name(),
        'parent_source': event.get_parent_source_name(),
        'display_value': event.get_display_value(),
        'original': None if event_type == EventType.CREATE.value else original,
        'changed': None if event_type == EventType.DELETE.value else changed,
        'created': format_created(event.get_timestamp(), native_temporal),
    }


def _key_components(primary_key: Any) -> List[Tuple[Any, Any]]:
    if isinstance(primary_key, Mapping):
        return list(primary_key.items())
    if isinstance(primary_key, (list, tuple)):
        return list(enumerate(primary_key))
    return [(0, primary_key)]


def extract_primary_key_fields(
    event: AuditEvent,
    strategy: Union[str, PrimaryKeyStrategy] = PrimaryKeyStrategy.AUTOMATIC
) -> Dict[str, Any]:
    """Extract the primary key fields from the audit event object.

    Parameters:
        event: The event object from which to extract the primary key
        strategy: The strategy to use for extracting the primary key

    Returns:
        Dict with either 'primary_key' or one 'primary_key_<key>' per component

    Raises:
        ConfigurationError: If the strategy is unknown
    """
    strategy = PrimaryKeyStrategy.parse(strategy)
    primary_key = event.get_id()

    if strategy is PrimaryKeyStrategy.RAW:
        return {'primary_key': primary_key}

    if strategy is PrimaryKeyStrategy.SERIALIZED:
        return {'primary_key': serialize(primary_key)}

    components = _key_components(primary_key)
    if len(components) == 1:
        return {'primary_key': components[0][1]}

    if strategy is PrimaryKeyStrategy.AUTOMATIC:
        if isinstance(primary_key, tuple):
            primary_key = list(primary_key)
        return {'primary_key': serialize(primary_key)}

    return {f'primary_key_{key}': value for key, value in components}


def get_path(data: Any, path: str) -> Any:
    """Look up a dot-notation path in nested mappings/sequences.

    Parameters:
        data: Nested structure to search
        path: Dotted path, e.g. 'baz.nested' or 'items.0.id'

    Returns:
        The value found, or None if any segment is missing
    """
    current = data
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, (list, tuple)) and segment.isdigit() and int(segment) < len(current):
            current = current[int(segment)]
        else:
            return None
    return current


def remove_path(data: Dict[str, Any], path: str) -> Dict[str, Any]:
    """Return a copy of data with a dot-notation path removed.

    Only the containers along the path are copied; sibling keys and the
    input mapping are left untouched.

    Parameters:
        data: Mapping to remove the path from
        path: Dotted path

    Returns:
        New mapping without the path (equal to data if the path is missing)
    """
    head, _, rest = path.partition(".")
    if head not in data:
        return data

    result = dict(data)
    if not rest:
        del result[head]
    elif isinstance(result[head], Mapping):
        result[head] = remove_path(dict(result[head]), rest)
    return result


def _normalize_meta_spec(fields: Union[Mapping, Sequence]) -> List[Tuple[str, str]]:
    # (path, alias) pairs; a bare path is its own alias
    if isinstance(fields, Mapping):
        entries = list(fields.items())
    else:
        entries = []
        for entry in fields:
            if isinstance(entry, Mapping):
                entries.extend(entry.items())
            else:
                entries.append((entry, None))

    pairs = []
    for path, alias in entries:
        if not isinstance(path, str):
            path = alias
        pairs.append((path, alias or path))
    return pairs


def extract_meta_fields(
    event: AuditEvent,
    fields: MetaFieldSpec,
    unset_extracted: bool = True,
    serialize_fields: bool = True
) -> Dict[str, Any]:
    """Extract the metadata fields from the audit event object.

    Parameters:
        event: The event object from which to extract the metadata fields
        fields: False to keep meta as a single field, True to promote every
            top-level key, or a mapping/list of dotted paths (to aliases)
        unset_extracted: Whether promoted fields are removed from meta
        serialize_fields: Whether to JSON-encode the remaining meta

    Returns:
        Dict with 'meta' plus one entry per promoted field

    Example:
        ```python
        event.set_meta_info({"foo": "bar", "baz": {"nested": "value", "bar": "foo"}})
        extract_meta_fields(event, {"foo": None, "baz.nested": "nested"})
        # {'meta': '{"baz":{"bar":"foo"}}', 'foo': 'bar', 'nested': 'value'}
        ```
    """
    meta = event.get_meta_info()

    if not isinstance(meta, Mapping):
        return {'meta': meta}

    if not fields or not meta:
        return {'meta': serialize(meta) if serialize_fields else meta}

    extracted: Dict[str, Any] = {}

    if fields is True:
        extracted.update(meta)
        if unset_extracted:
            meta = {}
    else:
        for path, alias in _normalize_meta_spec(fields):
            extracted[alias] = get_path(meta, path)
            if unset_extracted:
                meta = remove_path(meta, path)

    extracted['meta'] = serialize(meta) if serialize_fields else meta
    return extracted
