"""
Prepared statements and result cursors over a DB-API connection.

A `Statement` collects 1-based positional bindings and executes once per
`execute_update()` / `execute_query()` call. A `ResultCursor` walks the rows of
a query one at a time and exposes typed-getter style access with a was-null
indicator. Both are context managers and release the driver cursor on every
exit path.

Driver exceptions are translated into `ConnectionFailure`.
"""
import logging
import time
from collections.abc import Callable, Sequence
from functools import wraps
from typing import TYPE_CHECKING, Any, NamedTuple, Self

from miniorm.exceptions import ConnectionFailure, DriverError, MetadataError
from miniorm.exceptions import ResourceError

if TYPE_CHECKING:
    from miniorm.connection import Connection

__all__ = ['Statement', 'ResultCursor', 'UpdateResult']

logger = logging.getLogger(__name__)


class UpdateResult(NamedTuple):
    """Outcome of a data-modifying statement."""
    rowcount: int
    generated_id: Any = None


def dumpsql(func: Callable) -> Callable:
    """Decorator for logging statement SQL, parameter count and timing."""
    @wraps(func)
    def wrapper(self: 'Statement', *args: Any, **kwargs: Any) -> Any:
        start = time.time()
        logger.debug(f'SQL:\n{self.sql}\nparams: {len(self._params)} (nulls: {self.null_types})')
        try:
            return func(self, *args, **kwargs)
        except Exception:
            logger.error(f'Error with statement:\nSQL:\n{self.sql}')
            raise
        finally:
            elapsed = time.time() - start
            self.connection.addcall(elapsed)
            logger.debug(f'Statement time: {elapsed:.4f}s')
    return wrapper


def _execute(cursor: Any, sql: str, params: Sequence[Any]) -> None:
    if params:
        cursor.execute(sql, tuple(params))
    else:
        cursor.execute(sql)


class ResultCursor:
    """Forward-only cursor over a query result.

    Columns are addressed by name (case-insensitive) or by 1-based position.
    """

    def __init__(self, cursor: Any) -> None:
        self.dbapi_cursor = cursor
        self.column_names: list[str] = [d[0] for d in (cursor.description or [])]
        self._index_by_name: dict[str, int] = {}
        for i, name in enumerate(self.column_names):
            self._index_by_name.setdefault(name.lower(), i)
        self._row: Sequence[Any] | None = None
        self._was_null = False
        self.rownumber = 0
        self.closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except ConnectionFailure as err:
            logger.warning(f'Close failed while handling {exc_type.__name__}: {err}')

    def _check_open(self) -> None:
        if self.closed:
            raise ResourceError('Result cursor is closed')

    def next(self) -> bool:
        """Advance to the next row; False once the result is exhausted.
        """
        self._check_open()
        try:
            self._row = self.dbapi_cursor.fetchone()
        except DriverError as err:
            raise ConnectionFailure(f'Fetch failed: {err}') from err
        self._was_null = False
        if self._row is None:
            return False
        self.rownumber += 1
        return True

    def _index(self, column_ref: str | int) -> int:
        if isinstance(column_ref, int) and not isinstance(column_ref, bool):
            if not 1 <= column_ref <= len(self._row):
                raise MetadataError(f'Column position {column_ref} out of range 1..{len(self._row)}')
            return column_ref - 1
        try:
            return self._index_by_name[str(column_ref).lower()]
        except KeyError:
            raise MetadataError(f'Column {column_ref!r} not in result {self.column_names}') from None

    def get(self, column_ref: str | int) -> Any:
        """Read the raw value of a column of the current row.
        """
        self._check_open()
        if self._row is None:
            raise ResourceError('Result cursor is not positioned on a row')
        value = self._row[self._index(column_ref)]
        self._was_null = value is None
        return value

    def was_null(self) -> bool:
        """Whether the last value read by `get` was SQL NULL."""
        return self._was_null

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._row = None
        try:
            self.dbapi_cursor.close()
        except DriverError as err:
            raise ConnectionFailure(f'Closing cursor failed: {err}') from err


class Statement:
    """A SQL statement with positional parameter bindings.

    Positions are 1-based and must be contiguous when the statement executes.
    """

    def __init__(self, connection: 'Connection', sql: str) -> None:
        self.connection = connection
        self.sql = sql
        self._params: dict[int, Any] = {}
        self.null_types: dict[int, str] = {}
        self._result: ResultCursor | None = None
        self.closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except ConnectionFailure as err:
            logger.warning(f'Close failed while handling {exc_type.__name__}: {err}')

    def _check_open(self) -> None:
        if self.closed:
            raise ResourceError('Statement is closed')

    def bind_at(self, position: int, value: Any) -> None:
        """Bind `value` at a 1-based parameter position.
        """
        self._check_open()
        if position < 1:
            raise ConnectionFailure(f'Parameter positions start at 1, got {position}')
        self._params[position] = value
        self.null_types.pop(position, None)

    def bind_null(self, position: int, sql_type: str) -> None:
        """Bind SQL NULL, recording the SQL type it stands for.

        The type is kept in `null_types` for diagnostics only; DB-API NULLs are
        untyped, so the driver receives a plain None.
        """
        self.bind_at(position, None)
        self.null_types[position] = sql_type

    @property
    def parameters(self) -> tuple[Any, ...]:
        """Bound values in position order."""
        count = len(self._params)
        missing = [p for p in range(1, count + 1) if p not in self._params]
        if missing:
            raise ConnectionFailure(f'Parameters {missing} are not bound')
        return tuple(self._params[p] for p in range(1, count + 1))

    def _open_cursor(self) -> Any:
        self._check_open()
        if self._result is not None:
            self._result.close()
            self._result = None
        try:
            return self.connection.cursor()
        except DriverError as err:
            raise ConnectionFailure(f'Could not open cursor: {err}') from err

    @property
    def is_insert(self) -> bool:
        return self.sql.lstrip().upper().startswith('INSERT')

    @dumpsql
    def execute_update(self) -> UpdateResult:
        """Execute a data-modifying statement.

        Returns
            UpdateResult with the affected row count and, for INSERT, the
            generated identity (from RETURNING when present, else lastrowid)
        """
        params = self.parameters
        cursor = self._open_cursor()
        try:
            _execute(cursor, self.sql, params)
            generated_id = None
            if self.is_insert:
                if cursor.description:
                    row = cursor.fetchone()
                    generated_id = row[0] if row else None
                else:
                    generated_id = getattr(cursor, 'lastrowid', None)
            return UpdateResult(cursor.rowcount, generated_id)
        except DriverError as err:
            raise ConnectionFailure(str(err)) from err
        finally:
            cursor.close()

    @dumpsql
    def execute_query(self) -> ResultCursor:
        """Execute a query and return a cursor positioned before the first row.

        The cursor is closed with the statement if the caller does not close it.
        """
        params = self.parameters
        cursor = self._open_cursor()
        try:
            _execute(cursor, self.sql, params)
        except DriverError as err:
            cursor.close()
            raise ConnectionFailure(str(err)) from err
        self._result = ResultCursor(cursor)
        return self._result

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._result is not None:
            self._result.close()
            self._result = None
