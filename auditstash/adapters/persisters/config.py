"""Persister Configuration Models.

Typed option sets for the persisters, with documented defaults. Invalid
option values are reported as ConfigurationError when the persister is built,
never in the middle of a batch.
"""

from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from auditstash.domain.extraction import PrimaryKeyStrategy
from auditstash.domain.ports import ConfigurationError
from auditstash.infrastructure.settings import DEFAULT_TABLE_ALIAS

ConfigT = TypeVar("ConfigT", bound=BaseModel)

MetaFieldOption = Union[bool, Dict[str, Optional[str]], List[Union[str, Dict[str, Optional[str]]]]]


class TablePersisterConfig(BaseModel):
    """Options of the TablePersister.

    Attributes:
        table: Table alias or a bound AuditTablePort (default "AuditLogs")
        serialize_fields: JSON-encode original, changed and meta before storage
        extract_meta_fields: False, True (promote every meta key) or a
            path-to-alias mapping / list of paths
        unset_extracted_meta_fields: Remove promoted paths from meta
        primary_key_extraction_strategy: automatic, properties, raw or serialized
        log_errors: Report rejected rows through the logger
    """

    model_config = {"arbitrary_types_allowed": True, "extra": "forbid"}

    table: Any = Field(DEFAULT_TABLE_ALIAS, description="Table alias or AuditTablePort")
    serialize_fields: bool = Field(True, description="JSON-encode structured fields")
    extract_meta_fields: MetaFieldOption = Field(False, description="Meta fields promoted to columns")
    unset_extracted_meta_fields: bool = Field(True, description="Remove promoted fields from meta")
    primary_key_extraction_strategy: PrimaryKeyStrategy = Field(
        PrimaryKeyStrategy.AUTOMATIC, description="Primary key flattening strategy"
    )
    log_errors: bool = Field(True, description="Log rows rejected by the table")

    @field_validator("primary_key_extraction_strategy", mode="before")
    @classmethod
    def parse_strategy(cls, v: Any) -> PrimaryKeyStrategy:
        return PrimaryKeyStrategy.parse(v)


class ElasticSearchPersisterConfig(BaseModel):
    """Options of the ElasticSearchPersister.

    Attributes:
        index: Index name pattern; "%s" receives "-YYYY.MM.DD", "{date}" the bare date
        type: Mapping type (category) of the documents
        use_transaction_id: Use the transaction id as document id
    """

    model_config = {"extra": "forbid"}

    index: str = Field(..., min_length=1, description="Index name pattern")
    type: str = Field(..., min_length=1, description="Document mapping type")
    use_transaction_id: bool = Field(False, description="Use transaction ids as document ids")


def build_config(model: Type[ConfigT], options: Mapping[str, Any]) -> ConfigT:
    """Validate persister options into a config model.

    Raises:
        ConfigurationError: If an option is missing, unknown or invalid
    """
    try:
        return model(**options)
    except ValidationError as e:
        error = e.errors()[0]
        option = ".".join(str(part) for part in error["loc"]) if error["loc"] else None
        if error["type"] == "missing":
            message = f"You need to configure the '{option}' option of {model.__name__}"
        else:
            message = f"Invalid value for option '{option}' of {model.__name__}: {error['msg']}"
        raise ConfigurationError(message, option=option) from e
