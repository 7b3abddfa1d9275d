"""
Mapping-engine exception classes.
"""
import sqlite3

import psycopg
import sqlalchemy as sa


class MappingError(Exception):
    """Base class for all miniorm errors.
    """


class MetadataError(MappingError):
    """Missing or invalid entity metadata.
    """


class CoercionError(MappingError):
    """Error converting a value between Python and a SQL column.
    """


class ConnectionFailure(MappingError):
    """Error preparing, executing or fetching from a statement.
    """


class ResourceError(MappingError):
    """Use of a closed or unpositioned statement or cursor.
    """


DriverError = (
    sqlite3.Error,
    psycopg.Error,
    sa.exc.DBAPIError,
    )
