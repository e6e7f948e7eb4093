"""
Unit tests for the result handler variants.
"""
import pandas as pd
import pytest
from dbrunner import ArrayHandler, ArrayListHandler, ArrowDataFrameHandler
from dbrunner import ColumnListHandler, DataFrameHandler, KeyedHandler
from dbrunner import MapHandler, MapListHandler, ResultCursor, ScalarHandler
from dbrunner import handler_from
from dbrunner.dbapi import DbapiResultSet

ROWS = [(1, 'Alice', 10), (2, 'Bob', 20), (3, 'Charlie', None)]


def make_cursor(rows=ROWS, columns=('id', 'Name', 'value')):
    return ResultCursor(DbapiResultSet.from_rows(columns, rows))


def test_array_handler():
    assert ArrayHandler().handle(make_cursor()) == (1, 'Alice', 10)
    assert ArrayHandler().handle(make_cursor([])) is None


def test_array_list_handler():
    assert ArrayListHandler().handle(make_cursor()) == ROWS
    assert ArrayListHandler().handle(make_cursor([])) == []


def test_map_handler():
    assert MapHandler().handle(make_cursor()) == {'id': 1, 'Name': 'Alice', 'value': 10}
    assert MapHandler().handle(make_cursor([])) is None


def test_map_handler_case_insensitive():
    row = MapHandler(case_insensitive=True).handle(make_cursor())
    assert row['name'] == 'Alice'


def test_map_list_handler():
    rows = MapListHandler().handle(make_cursor())
    assert [r['Name'] for r in rows] == ['Alice', 'Bob', 'Charlie']
    assert rows[2]['value'] is None


@pytest.mark.parametrize(('column', 'expected'), [(1, 1), (2, 'Alice'), ('value', 10), ('NAME', 'Alice')])
def test_scalar_handler(column, expected):
    assert ScalarHandler(column).handle(make_cursor()) == expected


def test_scalar_handler_no_rows():
    assert ScalarHandler().handle(make_cursor([])) is None


def test_column_list_handler():
    assert ColumnListHandler('name').handle(make_cursor()) == ['Alice', 'Bob', 'Charlie']
    assert ColumnListHandler().handle(make_cursor()) == [1, 2, 3]


def test_keyed_handler():
    rows = KeyedHandler('name').handle(make_cursor())
    assert list(rows) == ['Alice', 'Bob', 'Charlie']
    assert rows['Bob'] == {'id': 2, 'Name': 'Bob', 'value': 20}


def test_dataframe_handler():
    df = DataFrameHandler().handle(make_cursor())
    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == ['id', 'Name', 'value']
    assert df['Name'].tolist() == ['Alice', 'Bob', 'Charlie']


def test_dataframe_handler_empty_keeps_columns():
    df = DataFrameHandler().handle(make_cursor([]))
    assert df.empty
    assert list(df.columns) == ['id', 'Name', 'value']


def test_arrow_dataframe_handler():
    df = ArrowDataFrameHandler().handle(make_cursor())
    assert isinstance(df['id'].dtype, pd.ArrowDtype)
    assert df['id'].tolist() == [1, 2, 3]
    assert df['value'].isna().tolist() == [False, False, True]


def test_arrow_dataframe_handler_empty():
    df = ArrowDataFrameHandler().handle(make_cursor([]))
    assert list(df.columns) == ['id', 'Name', 'value']


def test_handler_from_function():
    handler = handler_from(lambda cursor: len(list(cursor)))
    assert handler.handle(make_cursor()) == 3
