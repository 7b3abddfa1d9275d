from dataclasses import dataclass
from enum import Enum

__all__ = [
    'EngineOptions',
    'RowErrorPolicy',
    'SUPPORTED_DIALECTS',
]

SUPPORTED_DIALECTS = ('sqlite', 'postgresql')


class RowErrorPolicy(Enum):
    """What a read does with a row that cannot be materialized.

    SKIP logs the failure and drops the row. RAISE fails the whole call.
    """
    SKIP = 'skip'
    RAISE = 'raise'


@dataclass
class EngineOptions:
    """Options

    supported driver names: `postgresql`, `sqlite`

    - autocommit: put the driver connection in autocommit mode (default: True).
      When False the caller commits through `Connection.commit()`.
    - row_error_policy: `skip` (default) or `raise`, see `RowErrorPolicy`
    """
    drivername: str = 'sqlite'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    autocommit: bool = True
    row_error_policy: RowErrorPolicy | str = RowErrorPolicy.SKIP

    def __post_init__(self):
        if self.drivername not in SUPPORTED_DIALECTS:
            raise ValueError(f'drivername must be one of: {list(SUPPORTED_DIALECTS)}')
        if self.port < 0 or self.timeout < 0:
            raise ValueError('port and timeout must not be negative')
        try:
            self.row_error_policy = RowErrorPolicy(self.row_error_policy)
        except ValueError:
            choices = [p.value for p in RowErrorPolicy]
            raise ValueError(f'row_error_policy must be one of: {choices}') from None
