"""
PostgreSQL through psycopg 3.

Handles PostgreSQL's statement behavior with psycopg:
- format (%s) placeholders
- Autocommit through ``connection.autocommit``
- Query timeouts through ``statement_timeout``
- No ``lastrowid``: generated keys come from RETURNING clauses only
"""
import logging
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbrunner.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbrunner.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """psycopg connections and SQLAlchemy proxies wrapping them."""

    @property
    def dialect_name(self) -> str:
        return 'postgresql'

    @property
    def paramstyle(self) -> str:
        return 'format'

    def create_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL (psycopg driver)."""
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port or None,
            database=options.database,
            query=query
        )

    @classmethod
    def get_required_options(cls) -> list[str]:
        return ['hostname', 'username', 'password', 'database', 'port']

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Set ``autocommit`` on the psycopg connection."""
        _unwrap(raw_conn).autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Clear ``autocommit`` on the psycopg connection."""
        _unwrap(raw_conn).autocommit = False

    def set_query_timeout(self, raw_conn: Any, cursor: Any, seconds: float) -> None:
        """Set ``statement_timeout`` for the session (0 disables it)."""
        millis = int(seconds * 1000)
        cursor.execute(f'SET statement_timeout = {millis}')
        logger.debug(f'PostgreSQL statement_timeout set to {millis}ms')

    def clear_query_timeout(self, raw_conn: Any, cursor: Any) -> None:
        cursor.execute('RESET statement_timeout')

    def generated_keys(self, cursor: Any) -> list[tuple]:
        """psycopg reports no usable ``lastrowid``; use RETURNING instead."""
        return []


def _unwrap(raw_conn: Any) -> Any:
    """Return the psycopg connection behind a SQLAlchemy pool proxy."""
    return getattr(raw_conn, 'driver_connection', None) or raw_conn
