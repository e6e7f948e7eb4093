"""
Result handlers: convert a ResultCursor into a caller-defined value.

Each handler is an independent implementation of the one-method
`ResultHandler` protocol; any callable object with a ``handle(cursor)``
method works with the runner, and plain functions can be adapted with
`handler_from`.
"""
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

import pandas as pd
import pyarrow as pa
from dbrunner.cursor import ResultCursor

__all__ = [
    'ArrayHandler',
    'ArrayListHandler',
    'ArrowDataFrameHandler',
    'ColumnListHandler',
    'DataFrameHandler',
    'KeyedHandler',
    'MapHandler',
    'MapListHandler',
    'ResultHandler',
    'ScalarHandler',
    'handler_from',
]

T = TypeVar('T', covariant=True)


class ResultHandler(Protocol[T]):
    """Converts one result set into a value.

    Called exactly once per result set; must not keep the cursor after
    returning.
    """

    def handle(self, cursor: ResultCursor) -> T:
        ...


class _FunctionHandler:

    def __init__(self, func: Callable[[ResultCursor], Any]) -> None:
        self.func = func

    def handle(self, cursor: ResultCursor) -> Any:
        return self.func(cursor)

    def __repr__(self) -> str:
        return f'handler_from({self.func!r})'


def handler_from(func: Callable[[ResultCursor], Any]) -> ResultHandler:
    """Adapt a plain function of one cursor argument to a ResultHandler."""
    return _FunctionHandler(func)


def _row_dict(cursor: ResultCursor, row: tuple, case_insensitive: bool) -> dict[str, Any]:
    columns = cursor.columns
    if case_insensitive:
        columns = [c.lower() for c in columns]
    return dict(zip(columns, row))


class ArrayHandler:
    """First row as a tuple, or None when there are no rows."""

    def handle(self, cursor: ResultCursor) -> tuple | None:
        return cursor.get_row() if cursor.next() else None


class ArrayListHandler:
    """All rows as a list of tuples."""

    def handle(self, cursor: ResultCursor) -> list[tuple]:
        return list(cursor)


class MapHandler:
    """First row as a dict keyed by column label, or None.

    With ``case_insensitive`` the keys are lowercased labels.
    """

    def __init__(self, case_insensitive: bool = False) -> None:
        self.case_insensitive = case_insensitive

    def handle(self, cursor: ResultCursor) -> dict[str, Any] | None:
        if not cursor.next():
            return None
        return _row_dict(cursor, cursor.get_row(), self.case_insensitive)


class MapListHandler:
    """All rows as dicts keyed by column label."""

    def __init__(self, case_insensitive: bool = False) -> None:
        self.case_insensitive = case_insensitive

    def handle(self, cursor: ResultCursor) -> list[dict[str, Any]]:
        return [_row_dict(cursor, row, self.case_insensitive) for row in cursor]


class ScalarHandler:
    """One column of the first row, or None when there are no rows.

    Example:
        count = runner.query('select count(*) from t', ScalarHandler())
        key = runner.insert(sql, ScalarHandler('id'), 'name')
    """

    def __init__(self, column: int | str = 1) -> None:
        self.column = column

    def handle(self, cursor: ResultCursor) -> Any:
        if not cursor.next():
            return None
        return cursor.get(self.column)


class ColumnListHandler:
    """One column of every row as a list."""

    def __init__(self, column: int | str = 1) -> None:
        self.column = column

    def handle(self, cursor: ResultCursor) -> list[Any]:
        values = []
        while cursor.next():
            values.append(cursor.get(self.column))
        return values


class KeyedHandler:
    """Rows as dicts, keyed by the value of one column.

    Later rows with a repeated key replace earlier ones.
    """

    def __init__(self, column: int | str = 1, case_insensitive: bool = False) -> None:
        self.column = column
        self.case_insensitive = case_insensitive

    def handle(self, cursor: ResultCursor) -> dict[Any, dict[str, Any]]:
        rows = {}
        while cursor.next():
            key = cursor.get(self.column)
            rows[key] = _row_dict(cursor, cursor.get_row(), self.case_insensitive)
        return rows


class DataFrameHandler:
    """All rows as a NumPy-backed pandas DataFrame.

    Always returns a DataFrame; empty results keep their columns.
    """

    def handle(self, cursor: ResultCursor) -> pd.DataFrame:
        data = list(cursor)
        if not data:
            return pd.DataFrame(columns=list(cursor.columns))
        return pd.DataFrame.from_records(data, columns=list(cursor.columns))


class ArrowDataFrameHandler:
    """All rows as a pandas DataFrame with PyArrow dtypes.

    Always returns a DataFrame; empty results keep their columns.
    """

    def handle(self, cursor: ResultCursor) -> pd.DataFrame:
        column_names = list(cursor.columns)
        data = list(cursor)
        if not data:
            return pd.DataFrame(columns=column_names)
        columns_data = [list(values) for values in zip(*data)]
        return pa.table(columns_data, names=column_names).to_pandas(types_mapper=pd.ArrowDtype)
