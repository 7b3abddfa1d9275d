"""
Entity metadata discovery.

Classes declare their mapping with the `table` decorator and `column()` field
specifiers:

    @table('person')
    @dataclass
    class Person:
        id: int | None = column(identity=True, default=None)
        name: str = column('full_name', default='')
        salary: Decimal | None = column(default=None)

Value kinds are inferred from the field annotations unless given explicitly.
Plain (non-dataclass) classes can be mapped through `RegistryMetadataProvider`.
"""
import dataclasses
import datetime
import logging
import types
import typing
from collections.abc import Iterable
from decimal import Decimal
from typing import Any, NamedTuple, Protocol

import cachetools
from miniorm.exceptions import MetadataError
from miniorm.sql import IDENTITY_COLUMN
from miniorm.types import ColumnDescriptor, EntityDescriptor, ValueKind

__all__ = [
    'table',
    'column',
    'infer_kind',
    'describe',
    'MetadataProvider',
    'DataclassMetadataProvider',
    'RegistryMetadataProvider',
    'CachedMetadataProvider',
]

logger = logging.getLogger(__name__)

TABLE_ATTRIBUTE = '__miniorm_table__'
COLUMN_METADATA_KEY = 'miniorm'

# annotation -> (kind when required, kind when Optional)
_KINDS_BY_TYPE: dict[type, tuple[ValueKind, ValueKind]] = {
    bool: (ValueKind.BOOL_AS_INT, ValueKind.BOOL_AS_INT),
    int: (ValueKind.INT32, ValueKind.INT32_NULLABLE),
    float: (ValueKind.FLOAT64, ValueKind.FLOAT64_NULLABLE),
    str: (ValueKind.TEXT, ValueKind.TEXT),
    datetime.datetime: (ValueKind.TIMESTAMP, ValueKind.TIMESTAMP),
    Decimal: (ValueKind.DECIMAL_TEXT, ValueKind.DECIMAL_TEXT),
}


class ColumnSpec(NamedTuple):
    """Column declaration stored in dataclass field metadata."""
    name: str | None
    kind: ValueKind | None
    identity: bool


def table(name: str):
    """Class decorator naming the table a class maps onto."""
    if not name:
        raise MetadataError('table name must not be empty')

    def decorator(cls):
        setattr(cls, TABLE_ATTRIBUTE, name)
        return cls

    return decorator


def column(name: str | None = None, kind: ValueKind | str | None = None,
           identity: bool = False, **kwargs: Any) -> Any:
    """Declare a mapped dataclass field.

    Args:
        name: Column name (defaults to the field name)
        kind: Value kind (inferred from the annotation when omitted)
        identity: Whether this field holds the generated identity
        **kwargs: Passed through to `dataclasses.field`

    Returns
        A dataclass field specifier
    """
    if kind is not None:
        kind = ValueKind(kind)
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[COLUMN_METADATA_KEY] = ColumnSpec(name, kind, identity)
    return dataclasses.field(metadata=metadata, **kwargs)


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    """Split `X | None` / `Optional[X]` into (X, True)."""
    if typing.get_origin(annotation) in {typing.Union, types.UnionType}:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0], True
    return annotation, False


def infer_kind(annotation: Any) -> ValueKind:
    """Resolve the value kind for a field annotation.
    """
    base, nullable = _unwrap_optional(annotation)
    try:
        required, optional = _KINDS_BY_TYPE[base]
    except (KeyError, TypeError):
        raise MetadataError(f'No value kind for annotation {annotation!r}') from None
    return optional if nullable else required


class MetadataProvider(Protocol):
    """Anything that can describe a mapped class."""

    def describe(self, entity: type) -> EntityDescriptor:
        ...


def build_descriptor(entity: type, table_name: str,
                     mapped: list[tuple[ColumnDescriptor, bool]]) -> EntityDescriptor:
    """Assemble and validate an entity descriptor.

    Args:
        entity: The described class
        table_name: Table name
        mapped: (column, is_identity) pairs in declared order

    Returns
        EntityDescriptor

    Raises
        MetadataError: On empty mapping, duplicate columns, or a missing,
        ambiguous or misnamed identity column
    """
    name = entity.__name__
    if not mapped:
        raise MetadataError(f'{name} declares no mapped columns')

    seen: set[str] = set()
    for col, _ in mapped:
        if col.column_name.lower() in seen:
            raise MetadataError(f'{name} maps column {col.column_name!r} twice')
        seen.add(col.column_name.lower())

    identities = [col for col, is_identity in mapped if is_identity]
    if not identities:
        identities = [col for col, _ in mapped if col.column_name == IDENTITY_COLUMN]
    if len(identities) != 1:
        raise MetadataError(f'{name} must declare exactly one identity column, found {len(identities)}')

    identity = identities[0]
    if identity.column_name != IDENTITY_COLUMN:
        raise MetadataError(
            f'{name} identity column must be named {IDENTITY_COLUMN!r}, '
            f'got {identity.column_name!r}')

    declared = tuple(col for col, _ in mapped)
    columns = tuple(col for col in declared if col is not identity)
    return EntityDescriptor(entity, table_name, columns, identity, declared)


class DataclassMetadataProvider:
    """Describes dataclasses decorated with `table` and fields declared via `column()`.

    Fields without a `column()` declaration are not persisted.
    """

    def describe(self, entity: type) -> EntityDescriptor:
        if not isinstance(entity, type):
            entity = type(entity)

        table_name = getattr(entity, TABLE_ATTRIBUTE, None)
        if not table_name:
            raise MetadataError(f'{entity.__name__} has no table metadata')
        if not dataclasses.is_dataclass(entity):
            raise MetadataError(f'{entity.__name__} is not a dataclass')

        try:
            hints = typing.get_type_hints(entity)
        except (NameError, TypeError) as err:
            raise MetadataError(f'Cannot resolve annotations of {entity.__name__}: {err}') from err

        mapped = []
        for field in dataclasses.fields(entity):
            spec = field.metadata.get(COLUMN_METADATA_KEY)
            if spec is None:
                continue
            kind = spec.kind or infer_kind(hints.get(field.name, field.type))
            mapped.append((ColumnDescriptor(field.name, spec.name or field.name, kind), spec.identity))

        descriptor = build_descriptor(entity, table_name, mapped)
        logger.debug(f'Described {entity.__name__} -> {table_name} ({len(descriptor.columns)} columns)')
        return descriptor


class RegistryMetadataProvider:
    """Explicit registration table for classes that carry no declarations.

    Example:
        registry = RegistryMetadataProvider()
        registry.register(Person, 'person', [
            ('id', 'id', ValueKind.INT32_NULLABLE),
            ('name', 'full_name', ValueKind.TEXT),
        ])
    """

    def __init__(self) -> None:
        self._descriptors: dict[type, EntityDescriptor] = {}

    def register(self, entity: type, table_name: str,
                 columns: Iterable[ColumnDescriptor | tuple[str, str, ValueKind | str]],
                 identity: str = IDENTITY_COLUMN) -> EntityDescriptor:
        """Register the mapping of `entity`; `identity` names the identity column.
        """
        if not table_name:
            raise MetadataError(f'{entity.__name__} needs a table name')
        mapped = []
        for col in columns:
            if not isinstance(col, ColumnDescriptor):
                field_name, column_name, kind = col
                col = ColumnDescriptor(field_name, column_name, ValueKind(kind))
            mapped.append((col, col.column_name == identity))
        descriptor = build_descriptor(entity, table_name, mapped)
        self._descriptors[entity] = descriptor
        return descriptor

    def describe(self, entity: type) -> EntityDescriptor:
        if not isinstance(entity, type):
            entity = type(entity)
        try:
            return self._descriptors[entity]
        except KeyError:
            raise MetadataError(f'{entity.__name__} is not registered') from None


class CachedMetadataProvider:
    """Memoizes descriptors of another provider.

    Descriptors are recomputed per operation by default; wrap the provider in
    this class when that cost matters.
    """

    def __init__(self, provider: MetadataProvider | None = None, maxsize: int = 128) -> None:
        self.provider = provider or DataclassMetadataProvider()
        self._cache: cachetools.LRUCache = cachetools.LRUCache(maxsize=maxsize)

    def describe(self, entity: type) -> EntityDescriptor:
        if not isinstance(entity, type):
            entity = type(entity)
        descriptor = self._cache.get(entity)
        if descriptor is None:
            descriptor = self.provider.describe(entity)
            self._cache[entity] = descriptor
        return descriptor

    def clear(self) -> None:
        self._cache.clear()


_default_provider = DataclassMetadataProvider()


def describe(entity: type, provider: MetadataProvider | None = None) -> EntityDescriptor:
    """Describe `entity` (a class or an instance) with the given or default provider.
    """
    return (provider or _default_provider).describe(entity)
