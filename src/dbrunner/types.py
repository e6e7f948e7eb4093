"""
Type handling for statement parameters.

This module provides:
- SqlType: Integer SQL type codes used for typed and null binding
- TypeConverter: Convert NumPy/Pandas/PyArrow values to plain Python values
- OutParameter: Marker for OUT and INOUT stored procedure parameters
"""
import decimal
import math
from enum import IntEnum
from typing import Any

import numpy as np
import pandas as pd
import pyarrow as pa
from dbrunner.exceptions import TypeConversionError


class SqlType(IntEnum):
    """SQL type codes (same numeric values as the JDBC constants)."""
    BIT = -7
    TINYINT = -6
    SMALLINT = 5
    INTEGER = 4
    BIGINT = -5
    FLOAT = 6
    REAL = 7
    DOUBLE = 8
    NUMERIC = 2
    DECIMAL = 3
    CHAR = 1
    VARCHAR = 12
    LONGVARCHAR = -1
    DATE = 91
    TIME = 92
    TIMESTAMP = 93
    BINARY = -2
    VARBINARY = -3
    LONGVARBINARY = -4
    NULL = 0
    OTHER = 1111
    BOOLEAN = 16


# Python type an OUT value is coerced to for its declared SQL type
_SQL_PYTHON_TYPES: dict[SqlType, type] = {
    SqlType.BIT: bool,
    SqlType.BOOLEAN: bool,
    SqlType.TINYINT: int,
    SqlType.SMALLINT: int,
    SqlType.INTEGER: int,
    SqlType.BIGINT: int,
    SqlType.FLOAT: float,
    SqlType.REAL: float,
    SqlType.DOUBLE: float,
    SqlType.NUMERIC: decimal.Decimal,
    SqlType.DECIMAL: decimal.Decimal,
    SqlType.CHAR: str,
    SqlType.VARCHAR: str,
    SqlType.LONGVARCHAR: str,
}


def _convert_numpy_value(val: Any) -> Any:
    """Native Python value for a NumPy scalar; NaN, infinity and NaT become None."""
    if isinstance(val, np.floating) and not np.isfinite(val):
        return None

    if isinstance(val, np.datetime64):
        if np.isnat(val):
            return None
        return pd.Timestamp(val).to_pydatetime()

    if isinstance(val, np.timedelta64):
        if np.isnat(val):
            return None
        return pd.Timedelta(val).to_pytimedelta()

    if isinstance(val, (np.bool_, np.floating, np.integer, np.str_, np.bytes_)):
        return val.item()

    return val


class TypeConverter:
    """Value conversion between bound parameters and SQL types.

    `convert_value` runs on every IN value before binding: NumPy scalars,
    pandas timestamps and PyArrow scalars become plain Python values, while
    NaN, infinity, NaT and NA become None (bound as SQL NULL). `coerce` turns
    an OUT value into the Python type of its declared SQL type.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Plain Python value for ``value``, or None for a missing value."""
        if value is None:
            return None

        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None

        if isinstance(value, np.generic):
            return _convert_numpy_value(value)

        # pd.NA, pd.NaT, Decimal('NaN') and the missing values of nullable dtypes
        if pd.api.types.is_scalar(value) and pd.isna(value):
            return None

        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()

        if isinstance(value, pd.Timedelta):
            return value.to_pytimedelta()

        if isinstance(value, pa.Scalar):
            return TypeConverter.convert_value(value.as_py()) if value.is_valid else None

        return value

    @staticmethod
    def coerce(value: Any, sql_type: int) -> Any:
        """Coerce a non-null value to the Python type of a declared SQL type.

        Values whose target type is unknown are returned unchanged.
        """
        try:
            target = _SQL_PYTHON_TYPES.get(SqlType(sql_type))
        except ValueError:
            return value
        if target is None or isinstance(value, target):
            return value
        if target is bool:
            # drivers commonly report BIT and BOOLEAN as 0/1
            if isinstance(value, int | decimal.Decimal) and value in {0, 1}:
                return bool(value)
            return value
        if isinstance(value, bool):
            return value
        try:
            if target is decimal.Decimal and isinstance(value, float):
                return decimal.Decimal(str(value))
            return target(value)
        except (TypeError, ValueError, decimal.InvalidOperation) as err:
            raise TypeConversionError(
                f'Cannot convert {value!r} to {SqlType(sql_type).name}') from err


class OutParameter:
    """Stored procedure OUT (or INOUT) parameter.

    Pass an instance in place of a value when calling a stored procedure.
    After a successful call ``value`` holds what the database reported for
    that position.

    Examples
        total = OutParameter(SqlType.INTEGER, int)
        runner.execute('{call count_orders(?, ?)}', 'ACME', total)
        total.value
    """

    def __init__(self, sql_type: int, python_type: type | None = None,
                 value: Any = None) -> None:
        self.sql_type = sql_type
        self.python_type = python_type
        self.value = value

    def register(self, stmt: Any, index: int) -> None:
        """Register the OUT type at ``index`` and bind the IN value, if any."""
        stmt.register_out_parameter(index, self.sql_type)
        if self.value is not None:
            stmt.set_object(index, self.value)

    def set_value(self, stmt: Any, index: int) -> None:
        """Read the OUT value at ``index`` from an executed callable statement.

        Without a ``python_type`` the value is coerced by its SQL type.
        """
        value = stmt.get_object(index)
        if value is None:
            self.value = None
            return
        if self.python_type is None:
            self.value = TypeConverter.coerce(value, self.sql_type)
            return
        if not isinstance(value, self.python_type):
            try:
                value = self.python_type(value)
            except (TypeError, ValueError) as err:
                raise TypeConversionError(
                    f'OUT parameter {index}: cannot convert {value!r} '
                    f'to {self.python_type.__name__}') from err
        self.value = value

    def __repr__(self) -> str:
        type_name = self.python_type.__name__ if self.python_type else None
        return (f'OutParameter(sql_type={self.sql_type!r}, '
                f'python_type={type_name}, value={self.value!r})')
