"""
Mapping engine facade.

`MiniORM` persists mapped objects and reads query results back:

    orm = MiniORM(miniorm.connect(drivername='sqlite', database=':memory:'))
    orm.execute('CREATE TABLE person (id INTEGER PRIMARY KEY, name TEXT)')
    person = Person(name='Ada')
    if orm.insert(person):
        print(person.id)
    people = orm.get(Person, 'SELECT * FROM person')
    count = orm.get(int, 'SELECT count(*) FROM person')[0]

`insert`, `update`, `delete` and `execute` never raise mapping errors: they
return a `Result` that is truthy on success and carries the error otherwise.
`get` raises on connection faults and, under `RowErrorPolicy.RAISE`, on bad rows.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

from miniorm.codec import bind, to_native
from miniorm.connection import Connection
from miniorm.exceptions import CoercionError, MappingError, MetadataError
from miniorm.materialize import materialize
from miniorm.metadata import DataclassMetadataProvider, MetadataProvider
from miniorm.options import EngineOptions, RowErrorPolicy
from miniorm.sql import IDENTITY_COLUMN, build_delete, build_insert, build_update
from miniorm.statement import Statement
from miniorm.types import BoundValue, EntityDescriptor, ValueKind

__all__ = ['MiniORM', 'Result']

T = TypeVar('T')


@dataclass(frozen=True)
class Result:
    """Outcome of a write operation. Truthy iff the operation happened."""
    ok: bool
    error: MappingError | None = None
    rowcount: int = 0
    generated_id: Any = None

    def __bool__(self) -> bool:
        return self.ok

    @property
    def kind(self) -> str | None:
        """Error class name of a failed operation."""
        return type(self.error).__name__ if self.error else None


def reports_result(func):
    """Turn mapping errors raised by a write operation into a failed Result."""
    @wraps(func)
    def wrapper(self: 'MiniORM', *args: Any, **kwargs: Any) -> Result:
        try:
            return func(self, *args, **kwargs)
        except MappingError as err:
            self.logger.error(f'{func.__name__} failed: {type(err).__name__}: {err}')
            return Result(False, err)
    return wrapper


def bind_values(statement: Statement, values: list[BoundValue]) -> None:
    """Bind values at consecutive positions starting at 1."""
    for position, value in enumerate(values, 1):
        bind(statement, position, value.kind, value.value)


class MiniORM:
    """Maps objects to table rows over one connection.

    Args:
        connection: miniorm Connection, SQLAlchemy connection, or DB-API
            connection (sqlite3, psycopg)
        options: Engine options (defaults to the connection's)
        provider: Metadata provider (defaults to dataclass declarations)
        logger: Logger for operation failures (defaults to this module's)
    """

    def __init__(self, connection: Any, options: EngineOptions | None = None,
                 provider: MetadataProvider | None = None,
                 logger: logging.Logger | None = None) -> None:
        if not isinstance(connection, Connection):
            connection = Connection(connection, options)
        self._connection = connection
        self.options = options or connection.options
        self.provider = provider or DataclassMetadataProvider()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def dialect(self) -> str:
        return self._connection.dialect

    def _describe(self, obj: Any) -> EntityDescriptor:
        return self.provider.describe(type(obj))

    def _identity(self, descriptor: EntityDescriptor, obj: Any) -> BoundValue:
        identity = descriptor.identity_value(obj)
        if identity.value is None:
            raise CoercionError(f'{type(obj).__name__} has no identity value')
        return BoundValue(ValueKind.INT32, identity.value)

    @reports_result
    def insert(self, obj: Any) -> Result:
        """Insert `obj` and store the generated identity in its identity field.

        The identity field changes only after the INSERT succeeded.
        """
        descriptor = self._describe(obj)
        returning = IDENTITY_COLUMN if self.dialect == 'postgresql' else None
        sql = build_insert(descriptor.table_name, descriptor.column_names, self.dialect, returning)

        with self._connection.prepare(sql) as statement:
            bind_values(statement, descriptor.bound_values(obj))
            outcome = statement.execute_update()

        if outcome.generated_id is None:
            self.logger.warning(f'No generated id returned for {descriptor.table_name}')
        else:
            try:
                setattr(obj, descriptor.identity.field_name, int(outcome.generated_id))
            except AttributeError as err:
                raise MetadataError(f'Cannot set identity of {type(obj).__name__}: {err}') from err
        return Result(True, rowcount=outcome.rowcount, generated_id=outcome.generated_id)

    @reports_result
    def update(self, obj: Any) -> Result:
        """Update the row of `obj`; the identity value is bound last.
        """
        descriptor = self._describe(obj)
        sql = build_update(descriptor.table_name, descriptor.column_names, self.dialect)

        with self._connection.prepare(sql) as statement:
            values = [*descriptor.bound_values(obj), self._identity(descriptor, obj)]
            bind_values(statement, values)
            outcome = statement.execute_update()
        return Result(True, rowcount=outcome.rowcount)

    @reports_result
    def delete(self, obj: Any) -> Result:
        """Delete the row of `obj` by identity.
        """
        descriptor = self._describe(obj)
        sql = build_delete(descriptor.table_name, self.dialect)

        with self._connection.prepare(sql) as statement:
            bind_values(statement, [self._identity(descriptor, obj)])
            outcome = statement.execute_update()
        return Result(True, rowcount=outcome.rowcount)

    def get(self, target: type[T], sql: str, *args: Any,
            on_row_error: RowErrorPolicy | str | None = None) -> list[T]:
        """Run a query verbatim and materialize its rows as `target`.

        Args:
            target: `int`, `Decimal` or `str` for the first column of each row,
                or a mapped class for whole rows
            sql: Query text
            *args: Positional parameters for placeholders in `sql`
            on_row_error: Overrides the configured RowErrorPolicy

        Returns
            List of results in fetch order
        """
        policy = self.options.row_error_policy if on_row_error is None else RowErrorPolicy(on_row_error)

        with self._connection.prepare(sql) as statement:
            for position, value in enumerate(args, 1):
                statement.bind_at(position, to_native(value))
            with statement.execute_query() as cursor:
                result = materialize(cursor, target, self.provider, policy)

        self.logger.debug(f'get returned {len(result)} {target.__name__} value(s)')
        return result

    @reports_result
    def execute(self, sql: str, *args: Any) -> Result:
        """Execute a statement without reading results (DDL, bulk DML).
        """
        with self._connection.prepare(sql) as statement:
            for position, value in enumerate(args, 1):
                statement.bind_at(position, to_native(value))
            outcome = statement.execute_update()
        return Result(True, rowcount=outcome.rowcount)
