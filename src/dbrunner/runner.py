"""
Statement execution with guaranteed resource release.

`QueryRunner` prepares a statement, binds positional parameters, executes
it, hands results to a result handler and closes everything it opened:
result cursor first, then the statement, then the connection when the
runner acquired it itself.

Usage:
    runner = QueryRunner(FactoryConnectionSource(lambda: sqlite3.connect('app.db')))
    runner.update('insert into person (name, age) values (?, ?)', 'Alice', 30)
    rows = runner.query('select * from person where age > ?', MapListHandler(), 20)

    with sqlite3.connect('app.db') as cn:
        runner.update('delete from person', conn=cn)   # cn is left open

Driver failures are re-raised as `QueryError` carrying the SQL text and the
parameters, after cleanup.
"""
import logging
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from functools import wraps
from typing import Any, NoReturn, TypeVar

from dbrunner.binder import ParameterBinder, ParameterMetadataCache
from dbrunner.cursor import ResultCursor
from dbrunner.dbapi import as_connection
from dbrunner.driver import CallableStatement, Connection, ConnectionSource
from dbrunner.driver import ParameterMetadata, PreparedStatement, ResultSet
from dbrunner.driver import Statement, StatementBase
from dbrunner.exceptions import DriverError, NullArgumentError, QueryError
from dbrunner.handlers import ResultHandler
from dbrunner.options import StatementConfig
from dbrunner.types import OutParameter

__all__ = ['QueryRunner']

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Marks an omitted ``conn`` argument; None is a null connection
_ACQUIRE = object()


def dumpsql(func):
    """Decorator for logging runner operations with their SQL and arguments."""
    @wraps(func)
    def wrapper(self, sql: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'{func.__name__} SQL:\n{sql}\nargs: {args}')
        try:
            return func(self, sql, *args, **kwargs)
        except Exception:
            logger.error(f'Error with {func.__name__}:\nSQL:\n{sql}\nargs: {args}')
            raise
        finally:
            elapsed = time.time() - start
            logger.debug(f'{func.__name__} time: {elapsed:.4f}s')
    return wrapper


def _close_quietly(resource: Any) -> None:
    """Close ``resource`` while another error is propagating."""
    try:
        resource.close()
    except Exception as err:
        logger.debug(f'Suppressed error closing {type(resource).__name__}: {err}')


@contextmanager
def _released(resource: Any, owned: bool = True) -> Iterator[Any]:
    """Close ``resource`` on exit when ``owned``.

    A close failure after an error is logged and dropped so the original
    error propagates; a close failure after success propagates itself.
    """
    try:
        yield resource
    except BaseException:
        if owned:
            _close_quietly(resource)
        raise
    if owned:
        resource.close()


def _require(value: Any, what: str) -> None:
    if value is None:
        raise NullArgumentError(f'Null {what}')


class QueryRunner:
    """Executes SQL with pluggable result handling.

    Every operation takes its connection as the keyword-only ``conn``. When
    omitted, a connection is acquired from ``source`` and closed after the
    call. A supplied connection (driver contract or raw DB-API) is never
    closed. ``conn=None`` is rejected.

    Args:
        source: connection source for calls made without ``conn``
        metadata_known_broken: never request parameter metadata; set for
            drivers that cannot report placeholder types
        statement_config: tuning applied to every statement created
    """

    def __init__(self, source: ConnectionSource | None = None, *,
                 metadata_known_broken: bool = False,
                 statement_config: StatementConfig | None = None) -> None:
        self._source = source
        self._metadata = ParameterMetadataCache(metadata_known_broken)
        self._binder = ParameterBinder(self._metadata)
        self._statement_config = statement_config

    def __repr__(self) -> str:
        return (f'QueryRunner(source={self._source!r}, '
                f'metadata_known_broken={self.metadata_known_broken})')

    @property
    def source(self) -> ConnectionSource | None:
        return self._source

    @property
    def metadata_known_broken(self) -> bool:
        return self._metadata.known_broken

    @property
    def statement_config(self) -> StatementConfig | None:
        return self._statement_config

    #
    # Hooks
    #

    def prepare_connection(self) -> Connection:
        """Acquire a connection from the runner's source."""
        if self._source is None:
            raise NullArgumentError(
                'QueryRunner requires a connection source to be given to use '
                'this method, or a connection passed as conn=')
        return as_connection(self._source.acquire())

    def prepare_statement(self, conn: Connection, sql: str,
                          return_generated_keys: bool = False) -> PreparedStatement:
        """Prepare and configure a statement; closed again if configuring fails."""
        stmt = conn.prepare_statement(sql, return_generated_keys)
        self._configure_or_close(stmt)
        return stmt

    def prepare_call(self, conn: Connection, sql: str) -> CallableStatement:
        stmt = conn.prepare_call(sql)
        self._configure_or_close(stmt)
        return stmt

    def create_statement(self, conn: Connection) -> Statement:
        stmt = conn.create_statement()
        self._configure_or_close(stmt)
        return stmt

    def configure_statement(self, stmt: StatementBase) -> None:
        """Apply the runner's StatementConfig to ``stmt``."""
        config = self._statement_config
        if config is None:
            return
        if config.fetch_direction is not None:
            stmt.set_fetch_direction(config.fetch_direction)
        if config.fetch_size is not None:
            stmt.set_fetch_size(config.fetch_size)
        if config.max_field_size is not None:
            stmt.set_max_field_size(config.max_field_size)
        if config.max_rows is not None:
            stmt.set_max_rows(config.max_rows)
        if config.query_timeout is not None:
            stmt.set_query_timeout(config.query_timeout)

    def fill_statement(self, stmt: PreparedStatement, params: Sequence[Any] | None,
                       metadata: ParameterMetadata | None = None) -> None:
        """Bind ``params`` to the placeholders of ``stmt``."""
        self._binder.fill(stmt, params, metadata)

    def wrap(self, result_set: ResultSet) -> ResultCursor:
        """Wrap a driver result set for a result handler."""
        return ResultCursor(result_set)

    def rethrow(self, cause: Exception, sql: str, params: Any) -> NoReturn:
        """Raise ``cause`` as a QueryError carrying the SQL and parameters."""
        if isinstance(cause, NullArgumentError | QueryError):
            raise cause
        shown = [] if params is None else list(params)
        message = f'{cause} Query: {sql} Parameters: {shown}'
        raise QueryError(message, sql=sql, params=params,
                         sqlstate=getattr(cause, 'sqlstate', None)) from cause

    def _configure_or_close(self, stmt: StatementBase) -> None:
        try:
            self.configure_statement(stmt)
        except Exception:
            _close_quietly(stmt)
            raise

    def _connection(self, conn: Any) -> tuple[Connection, bool]:
        """Resolve the ``conn`` argument to (connection, owned)."""
        if conn is _ACQUIRE:
            return self.prepare_connection(), True
        return as_connection(conn), False

    def _retrieve_out_parameters(self, stmt: CallableStatement, params: Sequence[Any]) -> None:
        """Copy OUT values from ``stmt`` into the OutParameter arguments."""
        for index, param in enumerate(params, 1):
            if isinstance(param, OutParameter):
                param.set_value(stmt, index)

    @staticmethod
    def _check_rows(rows: Sequence[Sequence[Any]] | None) -> list[Sequence[Any]]:
        if rows is None:
            raise NullArgumentError("Null parameters. If parameters aren't needed, pass an empty list.")
        rows = list(rows)
        for i, row in enumerate(rows):
            if row is None:
                raise NullArgumentError(f'Null parameter row at position {i}')
        return rows

    #
    # Operations
    #

    @dumpsql
    def query(self, sql: str, handler: ResultHandler[T], *params: Any, conn: Any = _ACQUIRE) -> T:
        """Execute a SELECT and return what ``handler`` makes of the result.

        Without parameters the SQL is executed as a plain statement.
        """
        _require(conn, 'connection')
        _require(sql, 'SQL statement')
        _require(handler, 'result handler')
        conn, owned = self._connection(conn)
        try:
            with _released(conn, owned):
                if not params:
                    with _released(self.create_statement(conn)) as stmt:
                        with _released(self.wrap(stmt.execute_query(sql))) as cursor:
                            return handler.handle(cursor)
                with _released(self.prepare_statement(conn, sql)) as stmt:
                    self.fill_statement(stmt, params)
                    with _released(self.wrap(stmt.execute_query())) as cursor:
                        return handler.handle(cursor)
        except DriverError as err:
            self.rethrow(err, sql, params)

    @dumpsql
    def update(self, sql: str, *params: Any, conn: Any = _ACQUIRE) -> int:
        """Execute an INSERT, UPDATE or DELETE; return the number of rows affected."""
        _require(conn, 'connection')
        _require(sql, 'SQL statement')
        conn, owned = self._connection(conn)
        try:
            with _released(conn, owned):
                if not params:
                    with _released(self.create_statement(conn)) as stmt:
                        return stmt.execute_update(sql)
                with _released(self.prepare_statement(conn, sql)) as stmt:
                    self.fill_statement(stmt, params)
                    return stmt.execute_update()
        except DriverError as err:
            self.rethrow(err, sql, params)

    @dumpsql
    def batch(self, sql: str, rows: Sequence[Sequence[Any]], *, conn: Any = _ACQUIRE) -> list[int]:
        """Execute ``sql`` once per parameter row in one batch.

        Returns one update count per row, in row order. Parameter metadata is
        fetched once for the whole batch.
        """
        _require(conn, 'connection')
        _require(sql, 'SQL statement')
        rows = self._check_rows(rows)
        conn, owned = self._connection(conn)
        try:
            with _released(conn, owned):
                with _released(self.prepare_statement(conn, sql)) as stmt:
                    metadata = self._binder.metadata(stmt)
                    for row in rows:
                        self.fill_statement(stmt, row, metadata)
                        stmt.add_batch()
                    return list(stmt.execute_batch())
        except DriverError as err:
            self.rethrow(err, sql, rows)

    @dumpsql
    def execute(self, sql: str, *params: Any, conn: Any = _ACQUIRE) -> int:
        """Call a stored procedure that returns no result sets.

        Returns the update count; OUT parameters are filled in afterwards.
        """
        _require(conn, 'connection')
        _require(sql, 'SQL statement')
        conn, owned = self._connection(conn)
        try:
            with _released(conn, owned):
                with _released(self.prepare_call(conn, sql)) as stmt:
                    self.fill_statement(stmt, params)
                    stmt.execute()
                    rows = stmt.get_update_count()
                    self._retrieve_out_parameters(stmt, params)
                    return rows
        except DriverError as err:
            self.rethrow(err, sql, params)

    @dumpsql
    def execute_with_handler(self, sql: str, handler: ResultHandler[T], *params: Any,
                             conn: Any = _ACQUIRE) -> list[T]:
        """Call a stored procedure; return one handler result per result set.

        Result sets are handled in the order the driver reports them, each
        closed before moving on to the next. OUT parameters are filled in
        after the last one.
        """
        _require(conn, 'connection')
        _require(sql, 'SQL statement')
        _require(handler, 'result handler')
        conn, owned = self._connection(conn)
        try:
            with _released(conn, owned):
                with _released(self.prepare_call(conn, sql)) as stmt:
                    self.fill_statement(stmt, params)
                    results = []
                    more = stmt.execute()
                    while more:
                        with _released(self.wrap(stmt.get_result_set())) as cursor:
                            results.append(handler.handle(cursor))
                        more = stmt.get_more_results()
                    self._retrieve_out_parameters(stmt, params)
                    return results
        except DriverError as err:
            self.rethrow(err, sql, params)

    @dumpsql
    def insert(self, sql: str, handler: ResultHandler[T], *params: Any, conn: Any = _ACQUIRE) -> T:
        """Execute an INSERT; return what ``handler`` makes of the generated keys.

        The handler is called even when the driver reports no keys.
        """
        _require(conn, 'connection')
        _require(sql, 'SQL statement')
        _require(handler, 'result handler')
        conn, owned = self._connection(conn)
        try:
            with _released(conn, owned):
                if not params:
                    with _released(self.create_statement(conn)) as stmt:
                        stmt.execute_update(sql, return_generated_keys=True)
                        with _released(self.wrap(stmt.get_generated_keys())) as cursor:
                            return handler.handle(cursor)
                with _released(self.prepare_statement(conn, sql, return_generated_keys=True)) as stmt:
                    self.fill_statement(stmt, params)
                    stmt.execute_update()
                    with _released(self.wrap(stmt.get_generated_keys())) as cursor:
                        return handler.handle(cursor)
        except DriverError as err:
            self.rethrow(err, sql, params)

    @dumpsql
    def insert_batch(self, sql: str, handler: ResultHandler[T], rows: Sequence[Sequence[Any]], *,
                     conn: Any = _ACQUIRE) -> T:
        """Execute a batch of INSERTs; ``handler`` receives the keys of every row."""
        _require(conn, 'connection')
        _require(sql, 'SQL statement')
        _require(handler, 'result handler')
        rows = self._check_rows(rows)
        conn, owned = self._connection(conn)
        try:
            with _released(conn, owned):
                with _released(self.prepare_statement(conn, sql, return_generated_keys=True)) as stmt:
                    metadata = self._binder.metadata(stmt)
                    for row in rows:
                        self.fill_statement(stmt, row, metadata)
                        stmt.add_batch()
                    stmt.execute_batch()
                    with _released(self.wrap(stmt.get_generated_keys())) as cursor:
                        return handler.handle(cursor)
        except DriverError as err:
            self.rethrow(err, sql, rows)
