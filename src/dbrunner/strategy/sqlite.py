"""
SQLite through the standard library sqlite3 module.

Handles SQLite's statement behavior:
- qmark placeholders (no rewriting needed)
- Autocommit through ``isolation_level``
- Query timeouts enforced with a progress handler
- Generated keys from ``lastrowid``
"""
import logging
import sqlite3
import time
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbrunner.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbrunner.options import DatabaseOptions

logger = logging.getLogger(__name__)

# Number of SQLite VM instructions between timeout checks
PROGRESS_STEPS = 1000


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """sqlite3 connections and SQLAlchemy proxies wrapping them."""

    @property
    def dialect_name(self) -> str:
        return 'sqlite'

    @property
    def paramstyle(self) -> str:
        return 'qmark'

    def create_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Parse declared DATE/TIMESTAMP columns into Python values."""
        return {
            'connect_args': {
                'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
            }
        }

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['database']

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Commit any open transaction, then stop opening implicit ones."""
        raw_conn = _unwrap(raw_conn)
        if raw_conn.in_transaction:
            raw_conn.commit()
        raw_conn.isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Restore implicit DEFERRED transactions."""
        _unwrap(raw_conn).isolation_level = 'DEFERRED'

    def set_query_timeout(self, raw_conn: Any, cursor: Any, seconds: float) -> None:
        """Interrupt statements that run past ``seconds``.

        SQLite has no statement timeout; a progress handler returning true
        aborts the running statement with ``OperationalError: interrupted``.
        """
        raw_conn = _unwrap(raw_conn)
        if not seconds:
            raw_conn.set_progress_handler(None, PROGRESS_STEPS)
            return
        deadline = time.monotonic() + seconds
        raw_conn.set_progress_handler(lambda: time.monotonic() > deadline, PROGRESS_STEPS)
        logger.debug(f'SQLite query timeout set to {seconds}s')

    def clear_query_timeout(self, raw_conn: Any, cursor: Any) -> None:
        _unwrap(raw_conn).set_progress_handler(None, PROGRESS_STEPS)


def _unwrap(raw_conn: Any) -> Any:
    """Return the sqlite3 connection behind a SQLAlchemy pool proxy."""
    return getattr(raw_conn, 'driver_connection', None) or raw_conn
