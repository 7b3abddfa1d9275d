"""
Tests for value coercion between Python values and SQL columns.
"""
import datetime
from decimal import Decimal

import numpy as np
import pandas as pd
import pytest
from miniorm import codec
from miniorm.codec import NULL_SQL_TYPES, bind, fetch, to_native
from miniorm.exceptions import CoercionError
from miniorm.statement import Statement
from miniorm.types import ValueKind


@pytest.fixture
def statement():
    """Unexecuted statement used as a bind target"""
    return Statement(None, 'select 1')


def test_every_kind_has_binder_fetcher_and_null_type():
    """Coercion tables cover the whole ValueKind enum"""
    kinds = set(ValueKind)
    assert set(codec._BINDERS) == kinds
    assert set(codec._FETCHERS) == kinds
    assert set(NULL_SQL_TYPES) == kinds


class TestBind:

    @pytest.mark.parametrize(('kind', 'sql_type'), [
        (ValueKind.INT32, 'INTEGER'),
        (ValueKind.INT32_NULLABLE, 'INTEGER'),
        (ValueKind.FLOAT64_NULLABLE, 'DOUBLE'),
        (ValueKind.TEXT, 'VARCHAR'),
        (ValueKind.BOOL_AS_INT, 'INTEGER'),
        (ValueKind.TIMESTAMP, 'VARCHAR'),
        (ValueKind.DECIMAL_TEXT, 'NUMERIC'),
    ])
    def test_null_is_typed(self, statement, kind, sql_type):
        """None binds SQL NULL with the kind's SQL type"""
        bind(statement, 1, kind, None)
        assert statement.parameters == (None,)
        assert statement.null_types == {1: sql_type}

    def test_null_float64_rejected(self, statement):
        with pytest.raises(CoercionError):
            bind(statement, 1, ValueKind.FLOAT64, None)

    def test_timestamp_bound_as_text(self, statement):
        """Timestamps bind as fixed-format text, dropping sub-second precision"""
        bind(statement, 1, ValueKind.TIMESTAMP, datetime.datetime(2024, 3, 9, 14, 30, 45, 999))
        assert statement.parameters == ('2024-03-09 14:30:45',)

    def test_timestamp_year_zero_padded(self, statement):
        """Years before 1000 keep four digits so they parse back"""
        bind(statement, 1, ValueKind.TIMESTAMP, datetime.datetime(999, 1, 2, 3, 4, 5))
        assert statement.parameters == ('0999-01-02 03:04:05',)

    def test_decimal_bound_as_exact_text(self, statement):
        bind(statement, 1, ValueKind.DECIMAL_TEXT, Decimal('12.345'))
        bind(statement, 2, ValueKind.DECIMAL_TEXT, Decimal('0.10000000000000000001'))
        assert statement.parameters == ('12.345', '0.10000000000000000001')

    def test_bool_bound_directly(self, statement):
        bind(statement, 1, ValueKind.BOOL_AS_INT, False)
        assert statement.parameters[0] is False

    def test_native_scalars(self, statement):
        bind(statement, 1, ValueKind.INT32, 7)
        bind(statement, 2, ValueKind.FLOAT64, 2)
        bind(statement, 3, ValueKind.TEXT, 'x')
        assert statement.parameters == (7, 2.0, 'x')
        assert isinstance(statement.parameters[1], float)

    def test_binding_replaces_null_marker(self, statement):
        bind(statement, 1, ValueKind.TEXT, None)
        bind(statement, 1, ValueKind.TEXT, 'set')
        assert statement.null_types == {}
        assert statement.parameters == ('set',)

    @pytest.mark.parametrize(('kind', 'value'), [
        (ValueKind.INT32, 'seven'),
        (ValueKind.INT32, True),
        (ValueKind.INT32, 2**31),
        (ValueKind.INT32_NULLABLE, 1.5),
        (ValueKind.FLOAT64, '1.5'),
        (ValueKind.TEXT, 42),
        (ValueKind.BOOL_AS_INT, 1),
        (ValueKind.TIMESTAMP, '2024-01-01 00:00:00'),
        (ValueKind.TIMESTAMP, datetime.date(2024, 1, 1)),
        (ValueKind.DECIMAL_TEXT, 12.345),
    ])
    def test_type_mismatch(self, statement, kind, value):
        """Values of the wrong Python type are rejected"""
        with pytest.raises(CoercionError):
            bind(statement, 1, kind, value)

    def test_numpy_and_pandas_values(self, statement):
        """NumPy/pandas values bind as their Python equivalents"""
        bind(statement, 1, ValueKind.INT32, np.int64(5))
        bind(statement, 2, ValueKind.FLOAT64_NULLABLE, np.float64('nan'))
        bind(statement, 3, ValueKind.TIMESTAMP, pd.NaT)
        bind(statement, 4, ValueKind.TIMESTAMP, np.datetime64('2024-01-02T03:04:05'))
        bind(statement, 5, ValueKind.BOOL_AS_INT, np.bool_(True))
        assert statement.parameters == (5, None, None, '2024-01-02 03:04:05', True)
        assert type(statement.parameters[0]) is int


def test_to_native():
    assert to_native(None) is None
    assert to_native(float('nan')) is None
    assert to_native(pd.NA) is None
    assert to_native(np.float32(1.5)) == 1.5
    assert to_native('text') == 'text'
    assert to_native(pd.Timestamp('2024-01-02 03:04:05')) == datetime.datetime(2024, 1, 2, 3, 4, 5)


class TestFetch:

    def test_bool_as_int(self, result_cursor):
        """Any positive integer reads as True; zero and NULL read as False"""
        cursor = result_cursor(['flag'], [(2,), (1,), (0,), (None,), ('3',)])
        values = []
        while cursor.next():
            values.append(fetch(cursor, 'flag', ValueKind.BOOL_AS_INT))
        assert values == [True, True, False, False, True]

    def test_int32_null_reads_zero(self, result_cursor):
        cursor = result_cursor(['n'], [(None,)])
        cursor.next()
        assert fetch(cursor, 'n', ValueKind.INT32) == 0
        assert fetch(cursor, 'n', ValueKind.INT32_NULLABLE) is None

    def test_float64_null(self, result_cursor):
        cursor = result_cursor(['f'], [(None,)])
        cursor.next()
        assert fetch(cursor, 'f', ValueKind.FLOAT64) == 0.0
        assert fetch(cursor, 'f', ValueKind.FLOAT64_NULLABLE) is None

    def test_int_from_numeric_text(self, result_cursor):
        cursor = result_cursor(['n'], [(' 42 ',)])
        cursor.next()
        assert fetch(cursor, 'n', ValueKind.INT32_NULLABLE) == 42

    def test_int_from_fraction_rejected(self, result_cursor):
        cursor = result_cursor(['n'], [(2.5,)])
        cursor.next()
        with pytest.raises(CoercionError):
            fetch(cursor, 'n', ValueKind.INT32)

    def test_text(self, result_cursor):
        cursor = result_cursor(['t'], [('', ), (None,), (b'bytes',), (12,)])
        values = []
        while cursor.next():
            values.append(fetch(cursor, 't', ValueKind.TEXT))
        assert values == ['', None, 'bytes', '12']

    def test_timestamp(self, result_cursor):
        stored = datetime.datetime(2024, 3, 9, 14, 30, 45, 500)
        cursor = result_cursor(['ts'], [('2024-03-09 14:30:45',), (None,), (stored,)])
        values = []
        while cursor.next():
            values.append(fetch(cursor, 'ts', ValueKind.TIMESTAMP))
        expected = datetime.datetime(2024, 3, 9, 14, 30, 45)
        assert values == [expected, None, expected]

    def test_timestamp_early_year(self, result_cursor):
        cursor = result_cursor(['ts'], [('0999-01-02 03:04:05',)])
        cursor.next()
        assert fetch(cursor, 'ts', ValueKind.TIMESTAMP) == datetime.datetime(999, 1, 2, 3, 4, 5)

    @pytest.mark.parametrize('text', ['2024-03-09', '09/03/2024 14:30:45', 'garbage'])
    def test_timestamp_parse_failure_raises(self, result_cursor, text):
        cursor = result_cursor(['ts'], [(text,)])
        cursor.next()
        with pytest.raises(CoercionError):
            fetch(cursor, 'ts', ValueKind.TIMESTAMP)

    def test_decimal_exact(self, result_cursor):
        """Decimal text reads back without binary floating-point drift"""
        cursor = result_cursor(['d'], [('12.345',), (12.345,), (Decimal('1.10'),), (7,), (None,)])
        values = []
        while cursor.next():
            values.append(fetch(cursor, 'd', ValueKind.DECIMAL_TEXT))
        assert values == [Decimal('12.345'), Decimal('12.345'), Decimal('1.10'), Decimal(7), None]
        assert str(values[0]) == '12.345'

    def test_decimal_parse_failure_raises(self, result_cursor):
        cursor = result_cursor(['d'], [('twelve',)])
        cursor.next()
        with pytest.raises(CoercionError):
            fetch(cursor, 'd', ValueKind.DECIMAL_TEXT)

    def test_fetch_by_position(self, result_cursor):
        cursor = result_cursor(['a', 'b'], [(1, 'x')])
        cursor.next()
        assert fetch(cursor, 1, ValueKind.INT32) == 1
        assert fetch(cursor, 2, ValueKind.TEXT) == 'x'
