"""
Integration tests for the mapping engine on SQLite.
"""
import dataclasses
import datetime
import sqlite3
from decimal import Decimal

import pytest
from miniorm import MiniORM, RowErrorPolicy
from miniorm.exceptions import CoercionError, ConnectionFailure

from tests.fixtures.models import PERSON_DDL, Marker, Person, Tag

pytestmark = pytest.mark.sqlite


def test_insert_then_get_roundtrip(orm, saved_person):
    """A stored object reads back equal, with the timestamp truncated to seconds"""
    assert saved_person.id == 1

    fetched = orm.get(Person, f'select * from person where id = {saved_person.id}')

    expected = dataclasses.replace(saved_person, created=saved_person.created.replace(microsecond=0))
    assert fetched == [expected]


def test_generated_ids_increase(orm):
    first, second = Person(name='a'), Person(name='b')
    assert orm.insert(first)
    assert orm.insert(second)
    assert second.id == first.id + 1


def test_nullable_kinds_read_back_null(orm):
    person = Person(name=None, score=None, weight=None, created=None, balance=None)
    assert orm.insert(person)

    [fetched] = orm.get(Person, 'select * from person where id = ?', person.id)
    assert fetched.name is None
    assert fetched.score is None
    assert fetched.weight is None
    assert fetched.created is None
    assert fetched.balance is None


def test_non_nullable_kinds_read_null_as_zero(orm):
    """NULLs in INT32, FLOAT64 and BOOL_AS_INT columns read as zero values"""
    assert orm.execute("insert into person (name) values ('bare')")

    [fetched] = orm.get(Person, "select * from person where name = 'bare'")
    assert fetched.age == 0
    assert fetched.height == 0.0
    assert fetched.active is False


def test_bool_as_int(orm):
    assert orm.execute("insert into person (name, active) values ('two', 2), ('zero', 0)")

    people = orm.get(Person, 'select * from person order by id')
    assert [(p.name, p.active) for p in people] == [('two', True), ('zero', False)]


def test_stored_text_formats(orm, saved_person):
    """Timestamps and decimals are stored as canonical text"""
    assert orm.get(str, 'select created from person') == ['2024-03-09 14:30:45']
    assert orm.get(str, 'select balance from person') == ['12.345']
    assert orm.get(str, 'select typeof(balance) from person') == ['text']


def test_decimal_exact(orm):
    person = Person(name='rich', balance=Decimal('12345678901234567890.000000001'))
    assert orm.insert(person)

    assert orm.get(Decimal, 'select balance from person') == [Decimal('12345678901234567890.000000001')]


def test_scalar_projection(orm, saved_person):
    """Scalar targets return raw values rather than objects"""
    assert orm.insert(Person(name='second'))

    assert orm.get(int, 'select count(*) from person') == [2]
    assert orm.get(str, 'select name from person order by id') == ['Ada Lovelace', 'second']
    assert orm.get(int, 'select score from person') == [None, None]
    assert orm.get(Decimal, 'select balance from person where id = ?', saved_person.id) == [Decimal('12.345')]


def test_update(orm, saved_person):
    saved_person.name = 'Countess'
    saved_person.score = 99
    saved_person.active = False

    result = orm.update(saved_person)

    assert result
    assert result.rowcount == 1
    [fetched] = orm.get(Person, 'select * from person where id = ?', saved_person.id)
    assert (fetched.name, fetched.score, fetched.active) == ('Countess', 99, False)


def test_update_missing_row_succeeds_with_zero_rows(orm):
    result = orm.update(Person(id=404, name='ghost'))
    assert result
    assert result.rowcount == 0


def test_delete(orm, saved_person):
    result = orm.delete(saved_person)

    assert result
    assert result.rowcount == 1
    assert orm.get(int, 'select count(*) from person') == [0]


def test_delete_without_identity_fails(orm):
    result = orm.delete(Person(name='never saved'))
    assert not result
    assert result.kind == 'CoercionError'


def test_renamed_column(orm):
    tag = Tag(label='blue')
    assert orm.insert(tag)
    assert orm.get(str, 'select tag_label from tag') == ['blue']
    assert orm.get(Tag, 'select * from tag') == [Tag(id=tag.id, label='blue')]


def test_insert_without_columns_reports_failure(orm):
    """The degenerate INSERT is produced but SQLite rejects it"""
    marker = Marker()
    result = orm.insert(marker)

    assert not result
    assert result.kind == 'ConnectionFailure'
    assert marker.id is None


def test_execute_failure(orm):
    result = orm.execute('create tabel broken (id integer)')
    assert not result
    assert isinstance(result.error, ConnectionFailure)
    assert orm.execute("insert into person (name) values ('after')")
    assert orm.get(int, 'select count(*) from person') == [1]


def test_get_connection_fault_raises(orm):
    with pytest.raises(ConnectionFailure):
        orm.get(Person, 'select * from no_such_table')


def test_bad_row_skipped_or_raised(orm, saved_person):
    assert orm.execute("insert into person (name, created) values ('bad', 'last tuesday')")

    assert [p.id for p in orm.get(Person, 'select * from person order by id')] == [saved_person.id]

    with pytest.raises(CoercionError):
        orm.get(Person, 'select * from person order by id', on_row_error='raise')


def test_raise_policy_from_options(sqlite_conn):
    sqlite_conn.options.row_error_policy = RowErrorPolicy.RAISE
    orm = MiniORM(sqlite_conn)
    assert orm.execute("insert into person (name, created) values ('bad', 'soon')")

    with pytest.raises(CoercionError):
        orm.get(Person, 'select * from person')


def test_raw_sqlite3_connection(person_values):
    """The engine runs directly on a DB-API connection"""
    raw = sqlite3.connect(':memory:')
    orm = MiniORM(raw)
    assert orm.execute(PERSON_DDL)

    person = Person(**person_values)
    assert orm.insert(person)
    assert orm.get(int, 'select count(*) from person') == [1]
    assert orm.get(str, 'select created from person') == ['2024-03-09 14:30:45']
    orm.connection.close()


def test_timestamp_before_year_1000_roundtrip(orm):
    person = Person(name='old', created=datetime.datetime(999, 1, 2, 3, 4, 5))
    assert orm.insert(person)

    assert orm.get(str, 'select created from person') == ['0999-01-02 03:04:05']
    [fetched] = orm.get(Person, 'select * from person', on_row_error='raise')
    assert fetched.created == datetime.datetime(999, 1, 2, 3, 4, 5)
