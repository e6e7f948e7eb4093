"""
Result cursor handed to result handlers.
"""
from collections.abc import Iterator
from typing import Any, Self

from dbrunner.driver import ResultSet

__all__ = ['ResultCursor']


class ResultCursor:
    """Forward-only view over a driver result set.

    Columns are addressed by 1-based index or by label (case-insensitive).
    Once closed the cursor stops touching the result set: ``next()`` returns
    False, ``get()`` returns None, ``get_row()`` returns an empty tuple and
    iteration ends. The cursor owns no resources; closing it closes the
    wrapped result set, never the statement.
    """

    def __init__(self, result_set: ResultSet) -> None:
        self._rs = result_set
        self._columns = tuple(result_set.columns)
        self._labels = {c.lower(): i for i, c in enumerate(self._columns, 1)}
        self._on_row = False
        self._closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __iter__(self) -> Iterator[tuple]:
        while self.next():
            yield self.get_row()

    def __repr__(self) -> str:
        state = 'closed' if self._closed else 'open'
        return f'<ResultCursor {state} columns={list(self._columns)}>'

    @property
    def columns(self) -> tuple[str, ...]:
        """Column labels in result order."""
        return self._columns

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def result_set(self) -> ResultSet:
        """The wrapped driver result set."""
        return self._rs

    def column_index(self, column: int | str) -> int:
        """Resolve a column label or 1-based index to a 1-based index.
        """
        if isinstance(column, str):
            try:
                return self._labels[column.lower()]
            except KeyError:
                raise KeyError(f'No column named {column!r}; columns are {list(self._columns)}') from None
        if not 1 <= column <= len(self._columns):
            raise IndexError(f'Column index {column} out of range 1..{len(self._columns)}')
        return column

    def next(self) -> bool:
        """Advance to the next row."""
        if self._closed:
            return False
        self._on_row = self._rs.next()
        return self._on_row

    def get(self, column: int | str) -> Any:
        """Value of ``column`` in the current row."""
        if self._closed:
            return None
        return self._rs.get_object(self.column_index(column))

    def get_row(self) -> tuple:
        """Current row as a tuple; empty when there is no current row."""
        if self._closed or not self._on_row:
            return ()
        return tuple(self._rs.get_object(i) for i in range(1, len(self._columns) + 1))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._on_row = False
        self._rs.close()
