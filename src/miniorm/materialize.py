"""
Row materialization: turns query results into typed objects or scalars.

Composite mode builds one new instance of the target class per row, reading
every mapped column by name. Scalar mode (targets `int`, `Decimal`, `str`)
reads only the first column of each row and returns the raw values.
"""
import dataclasses
import logging
from decimal import Decimal
from functools import partial
from typing import Any

from miniorm.codec import fetch
from miniorm.exceptions import CoercionError, MetadataError
from miniorm.metadata import MetadataProvider, describe
from miniorm.options import RowErrorPolicy
from miniorm.statement import ResultCursor
from miniorm.types import EntityDescriptor, ValueKind

__all__ = [
    'SCALAR_KINDS',
    'is_scalar_target',
    'construct',
    'read_entity',
    'materialize',
]

logger = logging.getLogger(__name__)

SCALAR_KINDS: dict[type, ValueKind] = {
    int: ValueKind.INT32_NULLABLE,
    Decimal: ValueKind.DECIMAL_TEXT,
    str: ValueKind.TEXT,
}


def is_scalar_target(target: type) -> bool:
    return target in SCALAR_KINDS


def construct(entity: type, values: dict[str, Any]) -> Any:
    """Create a new instance of `entity` holding `values` (field name -> value).

    Dataclasses receive init fields as keyword arguments; other classes are
    built without arguments. Remaining values are assigned as attributes.
    """
    try:
        if dataclasses.is_dataclass(entity):
            init_fields = {f.name for f in dataclasses.fields(entity) if f.init}
            obj = entity(**{k: v for k, v in values.items() if k in init_fields})
            remaining = {k: v for k, v in values.items() if k not in init_fields}
        else:
            obj = entity()
            remaining = values
        for name, value in remaining.items():
            setattr(obj, name, value)
    except (TypeError, AttributeError) as err:
        raise MetadataError(f'Cannot construct {entity.__name__}: {err}') from err
    return obj


def read_entity(cursor: ResultCursor, descriptor: EntityDescriptor) -> Any:
    """Build one instance from the current row.
    """
    values = {
        col.field_name: fetch(cursor, col.column_name, col.kind)
        for col in descriptor.declared_columns
    }
    return construct(descriptor.entity, values)


def materialize(cursor: ResultCursor, target: type,
                provider: MetadataProvider | None = None,
                policy: RowErrorPolicy = RowErrorPolicy.SKIP) -> list[Any]:
    """Consume `cursor` into a list of `target` values in fetch order.

    Args:
        cursor: Result cursor positioned before the first row
        target: `int`, `Decimal` or `str` for scalar mode, else a mapped class
        provider: Metadata provider for composite mode
        policy: What to do with a row that fails to materialize

    Returns
        List of instances or scalar values, possibly empty

    Raises
        MetadataError: If the target class cannot be described
        CoercionError, MetadataError: For a bad row under RowErrorPolicy.RAISE
        ConnectionFailure: If fetching from the cursor fails
    """
    if is_scalar_target(target):
        read_row = partial(fetch, cursor, 1, SCALAR_KINDS[target])
        logger.debug(f'Scalar materialization of {target.__name__}')
    else:
        read_row = partial(read_entity, cursor, describe(target, provider))

    result = []
    while cursor.next():
        try:
            result.append(read_row())
        except (CoercionError, MetadataError) as err:
            if policy is RowErrorPolicy.RAISE:
                raise
            logger.warning(f'Skipping row {cursor.rownumber} for {target.__name__}: {err}')
    return result
