import pytest
from miniorm.connection import create_url_from_options
from miniorm.options import EngineOptions, RowErrorPolicy


def test_init_defaults():
    """Test default initialization"""
    options = EngineOptions(database=':memory:')

    assert options.drivername == 'sqlite'
    assert options.autocommit is True
    assert options.row_error_policy is RowErrorPolicy.SKIP


def test_policy_from_string():
    options = EngineOptions(database='x.db', row_error_policy='raise')
    assert options.row_error_policy is RowErrorPolicy.RAISE


@pytest.mark.parametrize('kwargs', [
    {'drivername': 'oracle'},
    {'row_error_policy': 'ignore'},
    {'port': -1},
])
def test_validation(kwargs):
    """Test validation rules"""
    with pytest.raises(ValueError):
        EngineOptions(**kwargs)


def test_sqlite_url():
    url = create_url_from_options(EngineOptions(database=':memory:'))
    assert url.drivername == 'sqlite'
    assert url.database == ':memory:'


def test_sqlite_url_requires_database():
    with pytest.raises(ValueError):
        create_url_from_options(EngineOptions())


def test_postgresql_url():
    options = EngineOptions(
        drivername='postgresql',
        hostname='testhost',
        username='testuser',
        password='testpass',
        database='testdb',
        port=5432,
        timeout=30,
    )
    url = create_url_from_options(options)

    assert url.drivername == 'postgresql+psycopg'
    assert url.host == 'testhost'
    assert url.port == 5432
    assert url.query['connect_timeout'] == '30'
