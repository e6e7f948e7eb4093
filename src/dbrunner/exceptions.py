"""
Exceptions raised by dbrunner, and the driver exception groups it handles.

`QueryError` is what runner operations raise for a failed statement. The
driver's own exception stays reachable as its ``__cause__``.
"""
import re
import sqlite3
from typing import Any

import psycopg
import sqlalchemy.exc

# Message fragments of connection failures that may succeed on retry
_TRANSIENT_MESSAGE = re.compile(
    r'ssl|tls|timeout|timed out|broken pipe|server closed'
    r'|connection.*(closed|reset|refused|lost|terminated|broken)'
    r'|could not connect|no route to host|network.*(unreachable|error)'
    r'|database.*unavailable|too many connections',
    re.IGNORECASE)


def is_retryable_error(exc: BaseException) -> bool:
    """True when ``exc`` reads like a transient connection failure."""
    return _TRANSIENT_MESSAGE.search(str(exc)) is not None


class DatabaseError(Exception):
    """Base class for all dbrunner errors.
    """


class NullArgumentError(DatabaseError, ValueError):
    """A required argument (connection, SQL, handler, parameter rows) was None.

    Raised before any driver call is made.
    """


class ConnectionFailure(DatabaseError):
    """A connection could not be acquired or was lost.
    """


class BindingError(DatabaseError):
    """Parameter values do not fit the statement placeholders.
    """


class ExecutionError(DatabaseError):
    """Driver-level failure during execute or fetch.
    """


class NotSupportedError(ExecutionError):
    """The driver does not implement the requested feature.
    """


class TypeConversionError(DatabaseError):
    """A value could not be converted to the requested Python or SQL type.
    """


class QueryError(DatabaseError):
    """Failure of a runner operation, with the SQL and parameters attached.

    The original error is kept as ``__cause__``.
    """

    def __init__(self, message: str, sql: str | None = None,
                 params: Any = None, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql
        self.params = params
        self.sqlstate = sqlstate


# Errors that the runner contextualizes into QueryError
DriverError = (
    DatabaseError,
    sqlite3.Error,
    psycopg.Error,
    sqlalchemy.exc.DBAPIError,
    )

DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    sqlalchemy.exc.OperationalError,
    ConnectionFailure,
    )

# Raised by drivers that lack a feature
FeatureNotSupported = (
    NotSupportedError,
    sqlite3.NotSupportedError,
    psycopg.NotSupportedError,
    )
