import logging

pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.values',
    'tests.fixtures.sqlite',
]

logging.getLogger('miniorm').setLevel(logging.DEBUG)
