"""
Minimal object-relational mapping over SQLite and PostgreSQL connections.

Declare a mapping on a dataclass, then insert, update, delete and read it
through a `MiniORM` engine:

    import miniorm

    @miniorm.table('person')
    @dataclass
    class Person:
        id: int | None = miniorm.column(identity=True, default=None)
        name: str = miniorm.column(default='')

    orm = miniorm.MiniORM(miniorm.connect(drivername='sqlite', database='app.db'))
    orm.insert(Person(name='Ada'))
    people = orm.get(Person, 'select * from person')
"""
__version__ = '0.1.0'

from miniorm.codec import TIMESTAMP_FORMAT
from miniorm.connection import Connection, connect
from miniorm.engine import MiniORM, Result
from miniorm.exceptions import CoercionError, ConnectionFailure, MappingError
from miniorm.exceptions import MetadataError, ResourceError
from miniorm.metadata import CachedMetadataProvider, DataclassMetadataProvider
from miniorm.metadata import MetadataProvider, RegistryMetadataProvider
from miniorm.metadata import column, describe, table
from miniorm.options import EngineOptions, RowErrorPolicy
from miniorm.types import ColumnDescriptor, EntityDescriptor, ValueKind

__all__ = [
    'connect',
    'Connection',
    'MiniORM',
    'Result',
    'EngineOptions',
    'RowErrorPolicy',
    'table',
    'column',
    'describe',
    'MetadataProvider',
    'DataclassMetadataProvider',
    'RegistryMetadataProvider',
    'CachedMetadataProvider',
    'ValueKind',
    'ColumnDescriptor',
    'EntityDescriptor',
    'TIMESTAMP_FORMAT',
    'MappingError',
    'MetadataError',
    'CoercionError',
    'ConnectionFailure',
    'ResourceError',
]
