"""
SQL statement synthesis from entity metadata.

Identifiers are emitted as given, without quoting or escaping; callers are
responsible for name safety. Values are always bound through placeholders.
"""
import logging
from collections.abc import Sequence

logger = logging.getLogger(__name__)

__all__ = [
    'IDENTITY_COLUMN',
    'get_placeholder',
    'make_placeholders',
    'build_insert',
    'build_update',
    'build_delete',
]

# UPDATE and DELETE predicates always address this column.
IDENTITY_COLUMN = 'id'

_PLACEHOLDERS = {
    'sqlite': '?',
    'postgresql': '%s',
}


def get_placeholder(dialect: str) -> str:
    """Return the positional placeholder for a dialect."""
    try:
        return _PLACEHOLDERS[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}') from None


def make_placeholders(count: int, dialect: str = 'sqlite') -> str:
    """Return `count` comma-separated placeholders for the dialect.
    """
    return ', '.join([get_placeholder(dialect)] * count)


def build_insert(table: str, columns: Sequence[str], dialect: str = 'sqlite',
                 returning: str | None = None) -> str:
    """Generate an INSERT statement.

    Args:
        table: Table name
        columns: Non-identity column names in declared order
        dialect: 'sqlite' or 'postgresql'
        returning: Column to return (for drivers without lastrowid)

    Returns
        SQL with one placeholder per column. An empty column list yields
        `INSERT INTO t () VALUES ()`.
    """
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({make_placeholders(len(columns), dialect)})"
    if returning:
        sql += f' RETURNING {returning}'
    return sql


def build_update(table: str, columns: Sequence[str], dialect: str = 'sqlite') -> str:
    """Generate an UPDATE statement keyed on the `id` column.

    The identity value is the last parameter.
    """
    placeholder = get_placeholder(dialect)
    assignments = ', '.join(f'{col} = {placeholder}' for col in columns)
    return f'UPDATE {table} SET {assignments} WHERE {IDENTITY_COLUMN} = {placeholder}'


def build_delete(table: str, dialect: str = 'sqlite') -> str:
    """Generate a DELETE statement keyed on the `id` column.
    """
    return f'DELETE FROM {table} WHERE {IDENTITY_COLUMN} = {get_placeholder(dialect)}'
