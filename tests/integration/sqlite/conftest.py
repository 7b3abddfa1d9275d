"""
Fixtures for SQLite integration tests.
"""
import pytest

from tests.fixtures.models import Person


@pytest.fixture
def saved_person(orm, person_values):
    """A Person inserted into the database"""
    person = Person(**person_values)
    assert orm.insert(person)
    return person
