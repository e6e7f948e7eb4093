"""
Unit tests for QueryRunner.insert.
"""
import pytest
from dbrunner import NullArgumentError, QueryError, ScalarHandler
from dbrunner.dbapi import DbapiResultSet


def test_insert_with_params(runner, conn, prep_stmt, meta, results, handler):
    """Test insert prepares with generated keys and hands them to the handler"""
    meta.parameter_count = 2

    assert runner.insert('INSERT INTO t (a, b) VALUES (?, ?)', handler, 'unit', 'test') == 'handled'

    conn.prepare_statement.assert_called_once_with('INSERT INTO t (a, b) VALUES (?, ?)', True)
    prep_stmt.execute_update.assert_called_once()
    prep_stmt.get_generated_keys.assert_called_once()
    handler.handle.assert_called_once()
    results.close.assert_called_once()
    prep_stmt.close.assert_called_once()
    conn.close.assert_called_once()


def test_insert_without_params(runner, conn, stmt, results, handler):
    """Test insert without params runs the literal SQL requesting keys"""
    runner.insert('INSERT INTO t (a) VALUES (1)', handler)

    conn.prepare_statement.assert_not_called()
    stmt.execute_update.assert_called_once_with('INSERT INTO t (a) VALUES (1)', return_generated_keys=True)
    stmt.get_generated_keys.assert_called_once()
    results.close.assert_called_once()
    stmt.close.assert_called_once()
    conn.close.assert_called_once()


def test_insert_empty_keys_still_handled(runner, stmt):
    """Test the handler is invoked once on an empty key set"""
    stmt.get_generated_keys.return_value = DbapiResultSet.from_rows(['GENERATED_KEY'], [])
    assert runner.insert('INSERT INTO t (a) VALUES (1)', ScalarHandler()) is None


def test_insert_returns_generated_key(runner, prep_stmt, meta):
    meta.parameter_count = 1
    prep_stmt.get_generated_keys.return_value = DbapiResultSet.from_rows(['id'], [(42,)])
    assert runner.insert('INSERT INTO t (a) VALUES (?)', ScalarHandler('id'), 'x') == 42


def test_insert_supplied_connection(runner, source, conn, prep_stmt, meta, handler):
    meta.parameter_count = 1
    runner.insert('INSERT INTO t (a) VALUES (?)', handler, 'x', conn=conn)
    source.acquire.assert_not_called()
    prep_stmt.close.assert_called_once()
    conn.close.assert_not_called()


@pytest.mark.parametrize(('args', 'kwargs'), [
    ((None, 'handler'), {}),
    (('INSERT INTO t VALUES (1)', None), {}),
    (('INSERT INTO t VALUES (1)', 'handler'), {'conn': None}),
])
def test_insert_null_arguments(runner, source, args, kwargs):
    with pytest.raises(NullArgumentError):
        runner.insert(*args, **kwargs)
    source.acquire.assert_not_called()


def test_insert_wrong_param_count(runner, conn, prep_stmt, meta, handler):
    meta.parameter_count = 2
    with pytest.raises(QueryError, match='Wrong number of parameters'):
        runner.insert('INSERT INTO t (a, b) VALUES (?, ?)', handler, 'unit')
    handler.handle.assert_not_called()
    prep_stmt.close.assert_called_once()
    conn.close.assert_called_once()
