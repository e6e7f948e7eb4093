"""
Per-dialect statement behavior.

The DB-API adapter asks a strategy for what PEP-249 leaves to each driver:
placeholder style, switching autocommit, enforcing query timeouts and
reporting generated keys. `DatabaseOptions` also asks it for engine URLs and
which options a dialect requires.
"""
import logging
import sys
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

if TYPE_CHECKING:
    from dbrunner.options import DatabaseOptions

logger = logging.getLogger(__name__)

# dialect name -> strategy class, filled by @register_strategy
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Class decorator adding a strategy to the registry under ``dialect``."""
    def register(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return register


class DatabaseStrategy(ABC):
    """What the DB-API adapter needs to know about one dialect.

    Methods taking ``raw_conn`` accept the driver connection or a SQLAlchemy
    pool proxy wrapping it.
    """

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Registry name of the dialect."""

    @property
    @abstractmethod
    def paramstyle(self) -> str:
        """DB-API paramstyle the driver expects (``qmark``, ``format``, ...)."""

    @abstractmethod
    def enable_autocommit(self, raw_conn: Any) -> None:
        """Commit each statement as it runs."""

    @abstractmethod
    def disable_autocommit(self, raw_conn: Any) -> None:
        """Leave statements in a transaction until the caller commits."""

    @abstractmethod
    def set_query_timeout(self, raw_conn: Any, cursor: Any, seconds: float) -> None:
        """Limit how long statements on ``cursor`` may run.

        Args:
            raw_conn: The raw DBAPI connection
            cursor: The DBAPI cursor the limit applies to
            seconds: Limit in seconds; 0 means no limit
        """

    @abstractmethod
    def clear_query_timeout(self, raw_conn: Any, cursor: Any) -> None:
        """Undo `set_query_timeout` when the statement is closed."""

    def generated_keys(self, cursor: Any) -> list[tuple]:
        """Return generated keys for the last statement executed on ``cursor``.

        The default reads ``cursor.lastrowid``; drivers that do not report
        one produce no keys.
        """
        lastrowid = getattr(cursor, 'lastrowid', None)
        if lastrowid is None:
            return []
        return [(lastrowid,)]

    def create_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL."""
        raise ValueError(f'Unsupported database type: {options.drivername}')

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Extra ``create_engine`` arguments for this dialect."""
        return {}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Names of DatabaseOptions fields that must be set (non-empty, non-zero)."""
        return []

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Raise ValueError naming every required option left unset."""
        missing = [name for name in cls.get_required_options() if not getattr(options, name)]
        if missing:
            raise ValueError(f'{options.drivername} connections require: {", ".join(missing)}')


class GenericStrategy(DatabaseStrategy):
    """Fallback for DB-API drivers without a registered strategy.

    Reads the paramstyle from the driver module and switches autocommit
    through whichever attribute the connection exposes.
    """

    def __init__(self, raw_conn: Any = None) -> None:
        self._paramstyle = _driver_paramstyle(raw_conn)

    @property
    def dialect_name(self) -> str:
        return 'generic'

    @property
    def paramstyle(self) -> str:
        return self._paramstyle

    def enable_autocommit(self, raw_conn: Any) -> None:
        if hasattr(raw_conn, 'autocommit'):
            raw_conn.autocommit = True
        elif hasattr(raw_conn, 'isolation_level'):
            raw_conn.isolation_level = None
        else:
            logger.debug(f'Cannot enable autocommit on {type(raw_conn).__name__}')

    def disable_autocommit(self, raw_conn: Any) -> None:
        if hasattr(raw_conn, 'autocommit'):
            raw_conn.autocommit = False
        elif hasattr(raw_conn, 'isolation_level'):
            raw_conn.isolation_level = 'DEFERRED'

    def set_query_timeout(self, raw_conn: Any, cursor: Any, seconds: float) -> None:
        logger.debug(f'Query timeout of {seconds}s not enforced for {type(raw_conn).__name__}')

    def clear_query_timeout(self, raw_conn: Any, cursor: Any) -> None:
        pass


def _driver_paramstyle(raw_conn: Any) -> str:
    """Look up ``paramstyle`` on the module that defines the connection class."""
    if raw_conn is None:
        return 'qmark'
    package = type(raw_conn).__module__.split('.')[0]
    module = sys.modules.get(package)
    return getattr(module, 'paramstyle', 'qmark')
