"""
Statement-level driver contract.

The runner talks to databases through these protocols rather than to PEP-249
cursors directly: PEP-249 has no prepared statement, parameter metadata, OUT
parameter registration or generated-key retrieval, and the runner needs all
of them. `dbrunner.dbapi` implements the contract over any DB-API driver;
other implementations (or test doubles) only need the same methods.

Indexes are 1-based throughout, both for placeholders and for columns.
"""
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

__all__ = [
    'CallableStatement',
    'Connection',
    'ConnectionSource',
    'ParameterMetadata',
    'PreparedStatement',
    'ResultSet',
    'Statement',
    'StatementBase',
]


@runtime_checkable
class ResultSet(Protocol):
    """Forward-only view over the rows of one result."""

    @property
    def columns(self) -> Sequence[str]:
        """Column labels in result order."""
        ...

    def next(self) -> bool:
        """Advance to the next row; False when there is none."""
        ...

    def get_object(self, index: int) -> Any:
        """Value of column ``index`` in the current row."""
        ...

    def close(self) -> None:
        ...


class ParameterMetadata(Protocol):
    """Placeholder information for a prepared statement."""

    @property
    def parameter_count(self) -> int:
        ...

    def parameter_type(self, index: int) -> int:
        """Declared SQL type code of placeholder ``index``."""
        ...


class StatementBase(Protocol):
    """Tuning and lifecycle shared by every statement kind."""

    def get_generated_keys(self) -> ResultSet:
        ...

    def set_fetch_direction(self, direction: int) -> None:
        ...

    def set_fetch_size(self, rows: int) -> None:
        ...

    def set_max_field_size(self, size: int) -> None:
        ...

    def set_max_rows(self, rows: int) -> None:
        ...

    def set_query_timeout(self, seconds: float) -> None:
        ...

    def close(self) -> None:
        ...


class Statement(StatementBase, Protocol):
    """Statement executing literal SQL."""

    def execute_query(self, sql: str) -> ResultSet:
        ...

    def execute_update(self, sql: str, return_generated_keys: bool = False) -> int:
        ...


class PreparedStatement(StatementBase, Protocol):
    """Statement with positional placeholders bound before execution."""

    def get_parameter_metadata(self) -> ParameterMetadata | None:
        ...

    def set_object(self, index: int, value: Any, sql_type: int | None = None) -> None:
        ...

    def set_null(self, index: int, sql_type: int) -> None:
        ...

    def clear_parameters(self) -> None:
        ...

    def execute(self) -> bool:
        """Execute; True when the first result is a result set."""
        ...

    def execute_query(self) -> ResultSet:
        ...

    def execute_update(self) -> int:
        ...

    def add_batch(self) -> None:
        """Queue the current bindings as one batch entry."""
        ...

    def execute_batch(self) -> list[int]:
        """Execute every queued entry; one update count per entry."""
        ...

    def get_result_set(self) -> ResultSet | None:
        ...

    def get_more_results(self) -> bool:
        """Close the current result set and move to the next one."""
        ...

    def get_update_count(self) -> int:
        ...


class CallableStatement(PreparedStatement, Protocol):
    """Prepared stored procedure call with OUT parameters."""

    def register_out_parameter(self, index: int, sql_type: int) -> None:
        ...

    def get_object(self, index: int) -> Any:
        """OUT value of placeholder ``index`` after execution."""
        ...


class Connection(Protocol):
    """Connection producing statements."""

    def create_statement(self) -> Statement:
        ...

    def prepare_statement(self, sql: str, return_generated_keys: bool = False) -> PreparedStatement:
        ...

    def prepare_call(self, sql: str) -> CallableStatement:
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class ConnectionSource(Protocol):
    """Source of connections for calls made without an explicit one."""

    def acquire(self) -> Connection:
        ...
