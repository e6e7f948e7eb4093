"""
Driver contract implemented over PEP-249 (DB-API 2.0) connections.

Works with sqlite3, psycopg, SQLAlchemy pool proxies and other DB-API
drivers. What PEP-249 does not offer is emulated:

- Prepared statements buffer bindings by index and run ``cursor.execute``
  with the driver's paramstyle (`?` is rewritten through the strategy)
- Parameter metadata reports the placeholder count; parameter types are not
  available and raise NotSupportedError
- Batches run each queued row on one cursor so every row reports its count
- Generated keys come from a RETURNING clause, else from ``lastrowid``
- Callable statements use ``cursor.callproc`` when the driver has it,
  otherwise the call escape is rewritten and OUT values are read from the
  row the call returns
"""
import logging
from collections.abc import Iterator, Sequence
from typing import Any, Self

from dbrunner.exceptions import BindingError, ExecutionError
from dbrunner.exceptions import FeatureNotSupported, NotSupportedError
from dbrunner.options import FetchDirection
from dbrunner.sql import count_placeholders, is_insert, parse_call, rewrite_call
from dbrunner.sql import standardize_placeholders
from dbrunner.strategy import DatabaseStrategy, get_db_strategy, get_strategy

__all__ = [
    'DbapiCallableStatement',
    'DbapiConnection',
    'DbapiPreparedStatement',
    'DbapiResultSet',
    'DbapiStatement',
    'PlaceholderMetadata',
    'as_connection',
    'iter_chunks',
]

logger = logging.getLogger(__name__)

GENERATED_KEY_COLUMN = 'GENERATED_KEY'


def iter_chunks(cursor: Any, size: int = 5000) -> Iterator[tuple]:
    """Iterate through cursor results in chunks."""
    while True:
        chunked = cursor.fetchmany(size)
        if not chunked:
            break
        yield from chunked


def _as_tuple(row: Any) -> tuple:
    """Normalize a driver row (tuple, sqlite3.Row, dict row) to a tuple."""
    if isinstance(row, dict):
        return tuple(row.values())
    return tuple(row)


def _driver_text(sql: str, strategy: DatabaseStrategy) -> str:
    """SQL as sent to the driver; placeholder-free SQL is sent unchanged."""
    if not count_placeholders(sql):
        return sql
    return standardize_placeholders(sql, strategy.paramstyle)


def _truncate(value: Any, size: int) -> Any:
    """Apply a max field size to character and binary values."""
    if size and isinstance(value, str | bytes | bytearray) and len(value) > size:
        return value[:size]
    return value


class DbapiResultSet:
    """Forward-only result set over DB-API rows.

    Closing it does not close the cursor it reads from; the statement owns
    the cursor.
    """

    def __init__(self, columns: Sequence[str], rows: Iterator[Any],
                 max_rows: int = 0, max_field_size: int = 0) -> None:
        self._columns = list(columns)
        self._rows = rows
        self._row: tuple | None = None
        self._count = 0
        self._max_rows = max_rows
        self._max_field_size = max_field_size
        self._closed = False

    @classmethod
    def from_cursor(cls, cursor: Any, max_rows: int = 0, max_field_size: int = 0) -> Self:
        columns = [desc[0] for desc in cursor.description or ()]
        size = getattr(cursor, 'arraysize', 1) or 1
        return cls(columns, iter_chunks(cursor, size), max_rows, max_field_size)

    @classmethod
    def from_rows(cls, columns: Sequence[str], rows: Sequence[Any]) -> Self:
        return cls(columns, iter(list(rows)))

    @property
    def columns(self) -> list[str]:
        return self._columns

    @property
    def closed(self) -> bool:
        return self._closed

    def next(self) -> bool:
        if self._closed:
            raise ExecutionError('Result set is closed')
        if self._max_rows and self._count >= self._max_rows:
            self._row = None
            return False
        row = next(self._rows, None)
        if row is None:
            self._row = None
            return False
        self._row = tuple(_truncate(v, self._max_field_size) for v in _as_tuple(row))
        self._count += 1
        return True

    def get_object(self, index: int) -> Any:
        if self._closed:
            raise ExecutionError('Result set is closed')
        if self._row is None:
            raise ExecutionError('No current row')
        if not 1 <= index <= len(self._row):
            raise ExecutionError(f'Invalid column index: {index}')
        return self._row[index - 1]

    def close(self) -> None:
        self._closed = True
        self._row = None
        self._rows = iter(())


class PlaceholderMetadata:
    """Parameter metadata derived from the SQL text.

    PEP-249 has no way to ask a driver for placeholder types.
    """

    def __init__(self, count: int) -> None:
        self._count = count

    @property
    def parameter_count(self) -> int:
        return self._count

    def parameter_type(self, index: int) -> int:
        raise NotSupportedError('DB-API drivers do not report parameter types')


class DbapiStatement:
    """Statement executing literal SQL on its own cursor."""

    def __init__(self, connection: 'DbapiConnection') -> None:
        self._connection = connection
        self._cursor = connection.raw.cursor()
        self._max_rows = 0
        self._max_field_size = 0
        self._timeout_set = False
        self._result: DbapiResultSet | None = None
        self._key_columns: list[str] = [GENERATED_KEY_COLUMN]
        self._keys: list[tuple] = []
        self._closed = False

    @property
    def strategy(self) -> DatabaseStrategy:
        return self._connection.strategy

    @property
    def cursor(self) -> Any:
        """The underlying DB-API cursor."""
        return self._cursor

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ExecutionError('Statement is closed')

    def _close_result(self) -> None:
        if self._result is not None:
            self._result.close()
            self._result = None

    def _run(self, sql: str, params: tuple | None = None) -> None:
        self._check_open()
        self._close_result()
        if params is None:
            self._cursor.execute(sql)
        else:
            self._cursor.execute(sql, params)

    def _open_result(self) -> DbapiResultSet | None:
        if self._cursor.description is None:
            return None
        self._result = DbapiResultSet.from_cursor(self._cursor, self._max_rows, self._max_field_size)
        return self._result

    def _require_result(self) -> DbapiResultSet:
        result = self._open_result()
        if result is None:
            raise ExecutionError('Statement did not return a result set')
        return result

    def _collect_keys(self, sql: str) -> None:
        if self._cursor.description is not None:
            self._key_columns = [desc[0] for desc in self._cursor.description]
            self._keys.extend(_as_tuple(row) for row in self._cursor.fetchall())
        elif is_insert(sql) and self._cursor.rowcount != 0:
            # lastrowid keeps the connection's last insert across other statements
            self._keys.extend(self.strategy.generated_keys(self._cursor))

    def _update_count(self) -> int:
        rowcount = self._cursor.rowcount
        return rowcount if rowcount is not None and rowcount >= 0 else 0

    def execute_query(self, sql: str) -> DbapiResultSet:
        self._run(sql)
        return self._require_result()

    def execute_update(self, sql: str, return_generated_keys: bool = False) -> int:
        self._keys = []
        self._run(sql)
        if return_generated_keys:
            self._collect_keys(sql)
        return self._update_count()

    def get_generated_keys(self) -> DbapiResultSet:
        self._check_open()
        return DbapiResultSet.from_rows(self._key_columns, self._keys)

    def set_fetch_direction(self, direction: int) -> None:
        if direction != FetchDirection.FORWARD:
            raise NotSupportedError(f'DB-API cursors are forward only, got fetch direction {direction}')

    def set_fetch_size(self, rows: int) -> None:
        if rows:
            self._cursor.arraysize = rows

    def set_max_field_size(self, size: int) -> None:
        self._max_field_size = size

    def set_max_rows(self, rows: int) -> None:
        self._max_rows = rows

    def set_query_timeout(self, seconds: float) -> None:
        self.strategy.set_query_timeout(self._connection.raw, self._cursor, seconds)
        self._timeout_set = True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._close_result()
            if self._timeout_set:
                self.strategy.clear_query_timeout(self._connection.raw, self._cursor)
        finally:
            self._cursor.close()


class DbapiPreparedStatement(DbapiStatement):
    """Prepared statement emulated with buffered positional bindings."""

    def __init__(self, connection: 'DbapiConnection', sql: str,
                 return_generated_keys: bool = False) -> None:
        self._driver_sql = _driver_text(sql, connection.strategy)
        super().__init__(connection)
        self.sql = sql
        self._count = count_placeholders(sql)
        self._return_keys = return_generated_keys
        self._params: dict[int, Any] = {}
        self._batch: list[tuple | None] = []

    def _check_index(self, index: int) -> None:
        if not 1 <= index <= self._count:
            raise BindingError(
                f'Parameter index out of range: {index} '
                f'(statement has {self._count} placeholders)')

    def _bound_value(self, index: int) -> Any:
        if index not in self._params:
            raise BindingError(f'No value specified for parameter {index}')
        return self._params[index]

    def _bound_params(self) -> tuple | None:
        if not self._count:
            return None
        return tuple(self._bound_value(i) for i in range(1, self._count + 1))

    def _execute_bound(self, params: tuple | None) -> bool:
        self._run(self._driver_sql, params)
        if self._return_keys:
            self._collect_keys(self.sql)
            return False
        return self._open_result() is not None

    def get_parameter_metadata(self) -> PlaceholderMetadata:
        self._check_open()
        return PlaceholderMetadata(self._count)

    def set_object(self, index: int, value: Any, sql_type: int | None = None) -> None:
        self._check_index(index)
        self._params[index] = value

    def set_null(self, index: int, sql_type: int) -> None:
        self._check_index(index)
        self._params[index] = None

    def clear_parameters(self) -> None:
        self._params.clear()

    def execute(self) -> bool:
        self._keys = []
        return self._execute_bound(self._bound_params())

    def execute_query(self) -> DbapiResultSet:
        self._run(self._driver_sql, self._bound_params())
        return self._require_result()

    def execute_update(self) -> int:
        self._keys = []
        self._execute_bound(self._bound_params())
        return self._update_count()

    def add_batch(self) -> None:
        self._check_open()
        self._batch.append(self._bound_params())

    def execute_batch(self) -> list[int]:
        self._keys = []
        batch, self._batch = self._batch, []
        counts = []
        for params in batch:
            self._execute_bound(params)
            counts.append(self._update_count())
        logger.debug(f'Executed batch of {len(counts)} rows')
        return counts

    def get_result_set(self) -> DbapiResultSet | None:
        self._check_open()
        return self._result

    def get_more_results(self) -> bool:
        self._check_open()
        self._close_result()
        nextset = getattr(self._cursor, 'nextset', None)
        if nextset is None:
            return False
        try:
            more = nextset()
        except FeatureNotSupported:
            return False
        if not more:
            return False
        return self._open_result() is not None

    def get_update_count(self) -> int:
        self._check_open()
        if self._cursor.description is not None:
            return -1
        return self._cursor.rowcount


class DbapiCallableStatement(DbapiPreparedStatement):
    """Stored procedure call with OUT parameter support.

    Recognizes ``{call name(?, ...)}`` and ``{? = call name(?, ...)}``; any
    other SQL is executed as written.
    """

    def __init__(self, connection: 'DbapiConnection', sql: str) -> None:
        super().__init__(connection, sql)
        self._call = parse_call(sql)
        self._use_callproc = (
            self._call is not None
            and not self._call.has_return
            and hasattr(self._cursor, 'callproc'))
        if self._call is not None and not self._use_callproc:
            self._driver_sql = _driver_text(rewrite_call(self._call), self.strategy)
        self._out: dict[int, int] = {}
        self._out_values: dict[int, Any] = {}

    def _bound_value(self, index: int) -> Any:
        if index not in self._params and index in self._out:
            return None
        return super()._bound_value(index)

    def _execute_bound(self, params: tuple | None) -> bool:
        self._out_values = {}
        if self._use_callproc:
            self._check_open()
            self._close_result()
            returned = self._cursor.callproc(self._call.name, list(params or ()))
            if returned is not None:
                self._out_values = {i: returned[i - 1] for i in self._out if i <= len(returned)}
            return self._open_result() is not None

        if self._call is not None and self._call.has_return and params:
            params = params[1:] or None
        self._run(self._driver_sql, params)
        if self._out and self._cursor.description is not None:
            self._read_out_row()
            return False
        return self._open_result() is not None

    def _read_out_row(self) -> None:
        row = self._cursor.fetchone()
        values = _as_tuple(row) if row is not None else ()
        for column, index in enumerate(sorted(self._out)):
            self._out_values[index] = values[column] if column < len(values) else None

    def register_out_parameter(self, index: int, sql_type: int) -> None:
        self._check_index(index)
        self._out[index] = sql_type

    def get_object(self, index: int) -> Any:
        self._check_open()
        if index not in self._out:
            raise ExecutionError(f'Parameter {index} is not registered as an OUT parameter')
        return self._out_values.get(index)


class DbapiConnection:
    """Driver contract connection over a raw DB-API connection.

    Attribute access not defined here (commit, rollback, ...) is delegated
    to the raw connection.
    """

    def __init__(self, raw: Any, dialect: str | None = None) -> None:
        self.raw = raw
        self.strategy = get_strategy(dialect) if dialect else get_db_strategy(raw)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self.raw, name)

    @property
    def dialect(self) -> str:
        return self.strategy.dialect_name

    def create_statement(self) -> DbapiStatement:
        return DbapiStatement(self)

    def prepare_statement(self, sql: str, return_generated_keys: bool = False) -> DbapiPreparedStatement:
        return DbapiPreparedStatement(self, sql, return_generated_keys)

    def prepare_call(self, sql: str) -> DbapiCallableStatement:
        return DbapiCallableStatement(self, sql)

    def close(self) -> None:
        self.raw.close()
        logger.debug(f'Closed {self.dialect} connection')


def as_connection(conn: Any) -> Any:
    """Return ``conn`` as a driver contract connection.

    Raw DB-API connections are adapted; objects that already implement the
    contract are returned unchanged.
    """
    if all(hasattr(conn, name) for name in ('create_statement', 'prepare_statement', 'prepare_call')):
        return conn
    if hasattr(conn, 'cursor'):
        return DbapiConnection(conn)
    raise TypeError(f'Not a database connection: {type(conn).__name__}')
