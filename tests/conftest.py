"""
Shared fixtures.

Driver contract mocks are spec'd against the protocols in `dbrunner.driver`,
so a runner calling a method the contract does not define fails the test.

Usage:
    def test_update(runner, conn, prep_stmt, meta):
        meta.parameter_count = 2
        runner.update('update t set x = ? where id = ?', 'v', 1)
        prep_stmt.close.assert_called_once()
"""
import sqlite3

import pytest
from dbrunner import FactoryConnectionSource, QueryRunner
from dbrunner.driver import CallableStatement, Connection, ConnectionSource
from dbrunner.driver import ParameterMetadata, PreparedStatement, ResultSet
from dbrunner.driver import Statement


@pytest.fixture
def meta(mocker):
    """Parameter metadata reporting no placeholders until a test sets a count"""
    meta = mocker.Mock(spec=ParameterMetadata)
    meta.parameter_count = 0
    return meta


@pytest.fixture
def results(mocker):
    """Empty two-column result set"""
    rs = mocker.Mock(spec=ResultSet)
    rs.columns = ['id', 'name']
    rs.next.return_value = False
    return rs


@pytest.fixture
def stmt(mocker, results):
    stmt = mocker.Mock(spec=Statement)
    stmt.execute_query.return_value = results
    stmt.execute_update.return_value = 3
    stmt.get_generated_keys.return_value = results
    return stmt


@pytest.fixture
def prep_stmt(mocker, meta, results):
    stmt = mocker.Mock(spec=PreparedStatement)
    stmt.get_parameter_metadata.return_value = meta
    stmt.execute_query.return_value = results
    stmt.execute_update.return_value = 3
    stmt.get_generated_keys.return_value = results
    stmt.get_result_set.return_value = results
    return stmt


@pytest.fixture
def call(mocker, meta, results):
    stmt = mocker.Mock(spec=CallableStatement)
    stmt.get_parameter_metadata.return_value = meta
    stmt.get_result_set.return_value = results
    stmt.execute.return_value = False
    stmt.get_update_count.return_value = 3
    stmt.get_more_results.return_value = False
    return stmt


@pytest.fixture
def conn(mocker, stmt, prep_stmt, call):
    conn = mocker.Mock(spec=Connection)
    conn.create_statement.return_value = stmt
    conn.prepare_statement.return_value = prep_stmt
    conn.prepare_call.return_value = call
    return conn


@pytest.fixture
def source(mocker, conn):
    source = mocker.Mock(spec=ConnectionSource)
    source.acquire.return_value = conn
    return source


@pytest.fixture
def runner(source):
    """Runner acquiring the mocked connection from a source"""
    return QueryRunner(source)


@pytest.fixture
def handler(mocker):
    handler = mocker.Mock(spec=['handle'])
    handler.handle.return_value = 'handled'
    return handler


@pytest.fixture
def sqlite_path(tmp_path):
    """SQLite database file with a populated test_table"""
    path = tmp_path / 'runner.db'
    cn = sqlite3.connect(path)
    cn.executescript("""
    CREATE TABLE test_table (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        value INTEGER
    );
    INSERT INTO test_table (name, value) VALUES
    ('Alice', 10),
    ('Bob', 20),
    ('Charlie', 30);
    """)
    cn.commit()
    cn.close()
    return path


@pytest.fixture
def sqlite_runner(sqlite_path):
    """Runner acquiring a fresh autocommit sqlite3 connection per call"""
    return QueryRunner(FactoryConnectionSource(lambda: sqlite3.connect(sqlite_path)))


@pytest.fixture
def sqlite_conn(sqlite_path):
    """Raw sqlite3 connection on the test database"""
    cn = sqlite3.connect(sqlite_path)
    yield cn
    cn.close()
