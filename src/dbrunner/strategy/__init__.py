"""
Dialect strategies and their registry.

Importing this package registers the built-in strategies (postgresql,
sqlite). Drivers without one are handled by `GenericStrategy`.
"""
from functools import lru_cache
from typing import Any

from dbrunner.strategy.base import _STRATEGY_REGISTRY
from dbrunner.strategy.base import DatabaseStrategy as DatabaseStrategy
from dbrunner.strategy.base import GenericStrategy as GenericStrategy
from dbrunner.strategy.base import register_strategy as register_strategy
from dbrunner.strategy.postgres import PostgresStrategy as PostgresStrategy
from dbrunner.strategy.sqlite import SQLiteStrategy as SQLiteStrategy


def get_strategy_class(dialect: str) -> type[DatabaseStrategy]:
    """Registered strategy class for ``dialect``."""
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(
            f'Unsupported dialect: {dialect}. Available: {get_available_dialects()}') from None


@lru_cache(maxsize=8)
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Shared strategy instance for a registered dialect name."""
    return get_strategy_class(dialect)()


def get_dialect_name(obj: Any) -> str:
    """Get dialect name for a raw DB-API connection.

    Args:
        obj: DBAPI connection, SQLAlchemy pool proxy, or anything with a
            string ``dialect`` attribute

    Returns
        str: Dialect name ('postgresql', 'sqlite' or 'generic')
    """
    dialect = getattr(obj, 'dialect', None)
    if isinstance(dialect, str):
        return dialect.lower()

    # SQLAlchemy pool proxy (_ConnectionFairy) - unwrap to the driver connection
    driver_connection = getattr(obj, 'driver_connection', None)
    if driver_connection is not None:
        obj = driver_connection

    type_name = f'{type(obj).__module__}.{type(obj).__name__}'
    if 'psycopg' in type_name:
        return 'postgresql'
    if 'sqlite3' in type_name:
        return 'sqlite'
    return 'generic'


def get_db_strategy(raw_conn: Any) -> DatabaseStrategy:
    """Strategy for a raw connection.

    Unknown drivers get a GenericStrategy built from the driver module.
    """
    dialect = get_dialect_name(raw_conn)
    if dialect in _STRATEGY_REGISTRY:
        return get_strategy(dialect)
    return GenericStrategy(raw_conn)


def get_available_dialects() -> list[str]:
    return sorted(_STRATEGY_REGISTRY)


def is_supported_dialect(dialect: str) -> bool:
    return dialect in _STRATEGY_REGISTRY
