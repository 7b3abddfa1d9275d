"""
Database connection handling.

This module provides:
1. The `connect()` function creating a connection through a SQLAlchemy engine
2. The `Connection` class wrapping a DB-API connection with `prepare()`
3. Engine creation and disposal through a thread-safe registry
4. Dialect detection for SQLAlchemy and raw DB-API connections

`Connection` also accepts an existing sqlite3 or psycopg connection, or a
SQLAlchemy `Connection`, so the mapping engine can run on whatever the caller
already holds.
"""
import atexit
import dataclasses
import logging
import threading
from collections.abc import Callable
from typing import Any, Self

import sqlalchemy as sa
from miniorm.exceptions import ConnectionFailure, DriverError
from miniorm.options import EngineOptions
from miniorm.statement import Statement
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'Connection',
    'connect',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
    'get_dialect_name',
    'enable_autocommit',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def get_dialect_name(obj: Any) -> str:
    """Get dialect name for a database connection or engine.

    Returns
        'postgresql' or 'sqlite'

    Raises
        AttributeError: If dialect cannot be determined
    """
    if hasattr(obj, 'dialect'):
        dialect = obj.dialect
        if isinstance(dialect, str):
            return dialect.lower()
        return str(dialect.name).lower()

    if hasattr(obj, 'engine') and hasattr(obj.engine, 'dialect'):
        return str(obj.engine.dialect.name).lower()

    if hasattr(obj, 'driver_connection'):
        return get_dialect_name(obj.driver_connection)

    type_name = f'{type(obj).__module__}.{type(obj).__name__}'
    if 'psycopg' in type_name:
        return 'postgresql'
    if 'sqlite3' in type_name:
        return 'sqlite'

    raise AttributeError(f'Cannot determine dialect for {type(obj)}')


def enable_autocommit(raw_conn: Any) -> None:
    """Put a driver connection in autocommit mode.

    sqlite3 uses `isolation_level = None`, psycopg uses `autocommit = True`.
    """
    dialect = get_dialect_name(raw_conn)
    if dialect == 'sqlite':
        raw_conn.isolation_level = None
    elif hasattr(raw_conn, 'autocommit'):
        raw_conn.autocommit = True
    logger.debug(f'Enabled autocommit on {dialect} connection')


def create_url_from_options(options: EngineOptions,
                            url_creator: Callable[..., sa.URL] = sa.URL.create) -> sa.URL:
    """Convert EngineOptions to SQLAlchemy URL.
    """
    if options.drivername == 'sqlite':
        if not options.database:
            raise ValueError('SQLite requires a database path (or :memory:)')
        return url_creator(
            drivername='sqlite',
            database=options.database
        )

    if options.drivername == 'postgresql':
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)

        return url_creator(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query
        )

    raise ValueError(f'Unsupported database type: {options.drivername}')


def get_engine_for_options(options: EngineOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.

    Engines never pool: each `connect()` gets its own driver connection.
    """
    url = create_url_from_options(options)
    key = url.render_as_string(hide_password=False)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)
        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')
        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class Connection:
    """Wraps a database connection and prepares statements on it.

    Tracks the number of executed statements and their total time.
    Not safe for concurrent use: share one instance per thread.
    """

    def __init__(self, connection: Any, options: EngineOptions | None = None) -> None:
        if isinstance(connection, sa.engine.Connection):
            self.sa_connection = connection
            self.dbapi_connection = connection.connection.driver_connection
        else:
            self.sa_connection = None
            self.dbapi_connection = connection
        self._dialect = get_dialect_name(connection)
        self.options = options or EngineOptions(drivername=self._dialect)
        self.calls = 0
        self.time = 0.0
        self.closed = False
        if self.options.autocommit:
            enable_autocommit(self.dbapi_connection)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self._dialect

    def prepare(self, sql: str) -> Statement:
        """Create a statement for `sql` on this connection.
        """
        if self.closed:
            raise ConnectionFailure('Connection is closed')
        return Statement(self, sql)

    def cursor(self) -> Any:
        """Open a raw driver cursor."""
        return self.dbapi_connection.cursor()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def commit(self) -> None:
        """Commit pending work (only needed with autocommit disabled)."""
        try:
            self.dbapi_connection.commit()
        except DriverError as err:
            raise ConnectionFailure(f'Commit failed: {err}') from err

    def close(self) -> None:
        """Close the underlying connection.
        """
        if self.closed:
            return
        self.closed = True
        if self.sa_connection is not None:
            self.sa_connection.close()
        else:
            self.dbapi_connection.close()
        logger.debug(f'Connection closed: {self.calls} statements in {self.time:.2f}s '
                     f'(avg: {self.time/max(1, self.calls):.3f}s per statement)')


def connect(options: EngineOptions | dict[str, Any] | None = None, **kw: Any) -> Connection:
    """Connect to a database using SQLAlchemy for connection management

    Args:
        options: EngineOptions object or dictionary of options
        **kw: Options given as keyword arguments, overriding `options`

    Returns
        Connection
    """
    if options is None:
        options = EngineOptions(**kw)
    elif isinstance(options, dict):
        options = EngineOptions(**{**options, **kw})
    elif kw:
        options = dataclasses.replace(options, **kw)

    engine = get_engine_for_options(options)
    try:
        sa_connection = engine.connect()
    except sa.exc.DBAPIError as err:
        raise ConnectionFailure(f'Could not connect to {options.drivername}: {err}') from err

    return Connection(sa_connection, options)
