"""
Value kinds and descriptor types shared by the mapping engine.

- ValueKind: closed set of coercion rules between Python values and SQL columns
- ColumnDescriptor: one field-to-column mapping
- EntityDescriptor: table name, persisted columns and identity column of a class
- BoundValue: a field value paired with its kind, ready for binding
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any

from miniorm.exceptions import MetadataError


class ValueKind(Enum):
    """Semantic coercion rule of a mapped column."""
    INT32 = 'int32'
    INT32_NULLABLE = 'int32_nullable'
    FLOAT64 = 'float64'
    FLOAT64_NULLABLE = 'float64_nullable'
    TEXT = 'text'
    BOOL_AS_INT = 'bool_as_int'
    TIMESTAMP = 'timestamp'
    DECIMAL_TEXT = 'decimal_text'


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Mapping of one object field onto one table column."""
    field_name: str
    column_name: str
    kind: ValueKind


@dataclass(frozen=True, slots=True)
class BoundValue:
    """Field value extracted from an instance, paired with its kind."""
    kind: ValueKind
    value: Any


@dataclass(frozen=True)
class EntityDescriptor:
    """Schema mapping for one composite type.

    `columns` holds the persisted non-identity columns in declared order.
    `declared_columns` holds every mapped column, identity included, in the
    order the class declares them.
    """
    entity: type
    table_name: str
    columns: tuple[ColumnDescriptor, ...]
    identity: ColumnDescriptor
    declared_columns: tuple[ColumnDescriptor, ...] = ()

    def __post_init__(self):
        if not self.declared_columns:
            object.__setattr__(self, 'declared_columns', (self.identity, *self.columns))

    @property
    def column_names(self) -> list[str]:
        """Non-identity column names in declared order."""
        return [c.column_name for c in self.columns]

    def bound_values(self, obj: Any) -> list[BoundValue]:
        """Extract the non-identity field values of `obj` in declared order.
        """
        return [BoundValue(c.kind, read_field(obj, c.field_name)) for c in self.columns]

    def identity_value(self, obj: Any) -> BoundValue:
        """Extract the identity field value of `obj`.
        """
        return BoundValue(self.identity.kind, read_field(obj, self.identity.field_name))


def read_field(obj: Any, field_name: str) -> Any:
    """Read a mapped field, reporting a missing attribute as a metadata error."""
    try:
        return getattr(obj, field_name)
    except AttributeError as err:
        raise MetadataError(f'{type(obj).__name__} has no field {field_name!r}') from err
