"""
Connection sources used when a runner call does not supply a connection.

This module provides:
1. `FactoryConnectionSource` wrapping any DB-API ``connect`` callable
2. `EngineConnectionSource` checking connections out of SQLAlchemy engines
3. A lock-guarded registry sharing SQLAlchemy engines between sources
4. The `check_connection` retry decorator

Connections handed out are driver contract connections; the runner closes
them after each call.
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from functools import wraps
from typing import Any, TypeVar

import sqlalchemy as sa
from dbrunner.dbapi import DbapiConnection
from dbrunner.exceptions import DbConnectionError, is_retryable_error
from dbrunner.options import DatabaseOptions
from dbrunner.strategy import get_db_strategy, get_strategy
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from libb import load_options

__all__ = [
    'EngineConnectionSource',
    'FactoryConnectionSource',
    'check_connection',
    'create_url_from_options',
    'dispose_all_engines',
    'get_engine_for_options',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Engines shared by every EngineConnectionSource, keyed by str(options)
_engines: dict[str, Engine] = {}
_engines_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions) -> sa.URL:
    return get_strategy(options.drivername).create_url(options)


def check_connection(func: Callable[..., T] | None = None, *, attempts: int = 3,
                     delay: float = 1, backoff: float = 1.5,
                     errors: type | tuple[type, ...] = DbConnectionError,
                     sleep: Callable[[float], None] = time.sleep) -> Callable[..., T]:
    """Retry a connection acquisition that fails with a transient error.

    An error is transient when it is one of ``errors`` and its message reads
    like a dropped, refused or timed out connection (`is_retryable_error`).
    The first retry waits ``delay`` seconds, each later one ``backoff``
    times longer. Usable bare or with arguments.
    """
    def decorate(acquire: Callable[..., T]) -> Callable[..., T]:
        @wraps(acquire)
        def retrying(*args: Any, **kwargs: Any) -> T:
            wait = delay
            for attempt in range(1, attempts + 1):
                try:
                    return acquire(*args, **kwargs)
                except errors as err:
                    if attempt >= attempts or not is_retryable_error(err):
                        logger.error(f'Connection failed after {attempt} attempt(s): {err}')
                        raise
                    logger.warning(f'Connection attempt {attempt}/{attempts} failed, '
                                   f'retrying in {wait:g}s: {err}')
                    sleep(wait)
                    wait *= backoff
        return retrying

    if attempts < 1:
        raise ValueError(f'attempts must be >= 1, got {attempts}')
    return decorate if func is None else decorate(func)


def _engine_kwargs(options: DatabaseOptions, overrides: dict[str, Any]) -> dict[str, Any]:
    """create_engine arguments: dialect defaults, then pooling, then overrides."""
    settings: dict[str, Any] = {'echo': False}
    settings.update(get_strategy(options.drivername).get_engine_kwargs(options))
    if options.use_pool:
        settings.update(
            pool_size=options.pool_max_connections,
            max_overflow=10,
            pool_recycle=options.pool_max_idle_time,
            pool_timeout=options.pool_wait_timeout,
            pool_pre_ping=True,
            pool_reset_on_return='rollback',
        )
    else:
        settings['poolclass'] = NullPool
    settings.update(overrides)
    return settings


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Engine for ``options``, created on first use and shared afterwards.

    Connections are not pooled (NullPool) unless ``options.use_pool``.
    Extra keyword arguments go to ``engine_factory`` when the engine is
    created and are ignored for an engine already registered.
    """
    key = str(options)
    with _engines_lock:
        engine = _engines.get(key)
        if engine is None:
            engine = engine_factory(create_url_from_options(options), **_engine_kwargs(options, kwargs))
            _engines[key] = engine
            logger.debug(f'Registered {options.drivername} engine ({len(_engines)} total)')
        return engine


def dispose_all_engines() -> None:
    """Dispose and forget every registered engine."""
    with _engines_lock:
        engines = list(_engines.values())
        _engines.clear()
    for engine in engines:
        engine.dispose()
    if engines:
        logger.debug(f'Disposed {len(engines)} engine(s)')


atexit.register(dispose_all_engines)


class FactoryConnectionSource:
    """Connection source calling a DB-API ``connect`` function.

    Example:
        source = FactoryConnectionSource(lambda: sqlite3.connect('app.db'))
    """

    def __init__(self, factory: Callable[[], Any], *, autocommit: bool = True,
                 dialect: str | None = None) -> None:
        self.factory = factory
        self.autocommit = autocommit
        self.dialect = dialect

    def acquire(self) -> DbapiConnection:
        raw = self.factory()
        conn = DbapiConnection(raw, self.dialect)
        if self.autocommit:
            conn.strategy.enable_autocommit(raw)
        logger.debug(f'Acquired {conn.dialect} connection from factory')
        return conn


class EngineConnectionSource:
    """Connection source backed by a SQLAlchemy engine.

    Each acquire checks out ``engine.raw_connection()``; closing the returned
    connection returns it to the engine's pool.

    Args:
        options: DatabaseOptions, a dict of options, or the name of a
            setting in ``config``
        config: config module holding named settings
        engine: engine to use instead of the shared one for ``options``
        **kw: option fields overriding those in ``options``
    """

    def __init__(self, options: DatabaseOptions | dict[str, Any] | str,
                 config: Any | None = None, *, engine: Engine | None = None,
                 **kw: Any) -> None:
        if isinstance(options, DatabaseOptions):
            if kw:
                options = replace(options, **kw)
        else:
            options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
            options = options_func(options, config, **kw)
        self.options = options
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine_for_options(self.options)
        return self._engine

    @check_connection
    def acquire(self) -> DbapiConnection:
        raw = self.engine.raw_connection()
        strategy = get_db_strategy(raw)
        if self.options.autocommit:
            strategy.enable_autocommit(raw)
        else:
            strategy.disable_autocommit(raw)
        logger.debug(f'Acquired {self.options.drivername} connection from engine')
        return DbapiConnection(raw, self.options.drivername)

    def dispose(self) -> None:
        """Dispose the engine's pooled connections."""
        self.engine.dispose()
