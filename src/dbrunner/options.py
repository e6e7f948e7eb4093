from dataclasses import dataclass, fields
from enum import IntEnum

from dbrunner.strategy import get_available_dialects, get_strategy_class
from dbrunner.strategy import is_supported_dialect

from libb import ConfigOptions

__all__ = [
    'DatabaseOptions',
    'FetchDirection',
    'StatementConfig',
]


class FetchDirection(IntEnum):
    """Fetch direction hints (JDBC ResultSet constants)."""
    FORWARD = 1000
    REVERSE = 1001
    UNKNOWN = 1002


@dataclass(frozen=True)
class StatementConfig:
    """Tuning options applied to every statement a runner creates.

    ``None`` leaves the driver default alone; ``0`` is passed through as a
    real value (for sizes and timeouts it means "no limit").
    """
    fetch_direction: FetchDirection | None = None
    fetch_size: int | None = None
    max_field_size: int | None = None
    max_rows: int | None = None
    query_timeout: int | float | None = None

    def __post_init__(self):
        for name in ('fetch_size', 'max_field_size', 'max_rows', 'query_timeout'):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f'{name} must be >= 0, got {value}')
        if self.fetch_direction is not None:
            object.__setattr__(self, 'fetch_direction', FetchDirection(self.fetch_direction))

    def is_empty(self) -> bool:
        """True when no option would be applied."""
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass
class DatabaseOptions(ConfigOptions):
    """Where an `EngineConnectionSource` connects to.

    ``drivername`` names a registered dialect (``postgresql`` or ``sqlite``);
    the dialect decides which of the other fields are required. ``timeout``
    is the connect timeout in seconds. ``autocommit`` applies to every
    connection the source hands out.

    Pooling is off by default; with ``use_pool`` the engine keeps up to
    ``pool_max_connections`` connections, recycles them after
    ``pool_max_idle_time`` seconds and waits at most ``pool_wait_timeout``
    seconds for a free one.

    Sources accept these options as an instance, a dict, or the name of a
    setting in a config module (loaded with libb's ``load_options``).
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    autocommit: bool = True
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            raise ValueError(f'drivername must be one of: {get_available_dialects()}')
        get_strategy_class(self.drivername).validate_options(self)
