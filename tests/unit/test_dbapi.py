"""
Unit tests for the DB-API adapter against a mocked format-style driver.
"""
import psycopg
import pytest
from dbrunner import BindingError, ExecutionError, FetchDirection
from dbrunner import NotSupportedError, as_connection
from dbrunner.dbapi import DbapiConnection, DbapiResultSet, iter_chunks
from dbrunner.strategy import PostgresStrategy

CURSOR_API = ['execute', 'fetchmany', 'fetchall', 'fetchone', 'close', 'description',
              'rowcount', 'arraysize', 'lastrowid', 'nextset']


@pytest.fixture
def pg_cursor(mocker):
    """DB-API cursor without callproc"""
    cursor = mocker.Mock(spec=CURSOR_API)
    cursor.description = None
    cursor.rowcount = 1
    cursor.arraysize = 1
    cursor.lastrowid = None
    return cursor


@pytest.fixture
def raw_conn(mocker, pg_cursor):
    raw = mocker.Mock(spec=['cursor', 'close', 'commit', 'rollback', 'autocommit'])
    raw.cursor.return_value = pg_cursor
    return raw


@pytest.fixture
def pg_conn(raw_conn):
    return DbapiConnection(raw_conn, 'postgresql')


class TestConnection:

    def test_dialect(self, pg_conn):
        assert pg_conn.dialect == 'postgresql'
        assert isinstance(pg_conn.strategy, PostgresStrategy)

    def test_delegates_to_raw(self, pg_conn, raw_conn):
        pg_conn.commit()
        raw_conn.commit.assert_called_once()

    def test_close(self, pg_conn, raw_conn):
        with pg_conn:
            pass
        raw_conn.close.assert_called_once()

    def test_as_connection(self, pg_conn, raw_conn, conn):
        assert as_connection(conn) is conn
        assert as_connection(pg_conn) is pg_conn
        assert isinstance(as_connection(raw_conn), DbapiConnection)
        with pytest.raises(TypeError):
            as_connection(object())


class TestPreparedStatement:

    def test_placeholders_converted(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement("select * from t where a = ? and b like 'x%'")
        stmt.set_object(1, 5)
        stmt.execute_update()
        pg_cursor.execute.assert_called_once_with("select * from t where a = %s and b like 'x%%'", (5,))

    def test_no_placeholders_sent_unchanged(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement("select * from t where b like 'x%'")
        stmt.execute_update()
        pg_cursor.execute.assert_called_once_with("select * from t where b like 'x%'")

    def test_metadata_reports_count(self, pg_conn):
        metadata = pg_conn.prepare_statement('select ?, ?').get_parameter_metadata()
        assert metadata.parameter_count == 2
        with pytest.raises(NotSupportedError):
            metadata.parameter_type(1)

    def test_missing_binding(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement('select ?, ?')
        stmt.set_object(1, 'a')
        with pytest.raises(BindingError, match='No value specified for parameter 2'):
            stmt.execute_query()
        pg_cursor.execute.assert_not_called()

    def test_index_out_of_range(self, pg_conn):
        stmt = pg_conn.prepare_statement('select ?')
        with pytest.raises(BindingError, match='out of range'):
            stmt.set_object(2, 'a')

    def test_set_null(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement('update t set x = ?')
        stmt.set_null(1, 12)
        stmt.execute_update()
        pg_cursor.execute.assert_called_once_with('update t set x = %s', (None,))

    def test_execute_reports_result_set(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement('select 1')
        pg_cursor.description = [('one',)]
        assert stmt.execute() is True
        assert stmt.get_result_set().columns == ['one']
        assert stmt.get_update_count() == -1

    def test_execute_query_requires_rows(self, pg_conn):
        stmt = pg_conn.prepare_statement('delete from t')
        with pytest.raises(ExecutionError, match='did not return a result set'):
            stmt.execute_query()

    def test_batch_runs_each_row(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement('insert into t values (?)')
        for value in ('a', 'b'):
            stmt.set_object(1, value)
            stmt.add_batch()

        assert stmt.execute_batch() == [1, 1]
        assert pg_cursor.execute.call_args_list == [
            (('insert into t values (%s)', ('a',)),), (('insert into t values (%s)', ('b',)),)]
        assert stmt.execute_batch() == []

    def test_generated_keys_from_returning(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement('insert into t (a) values (?) returning id', True)
        pg_cursor.description = [('id',)]
        pg_cursor.fetchall.return_value = [(7,)]
        stmt.set_object(1, 'x')
        stmt.execute_update()

        keys = stmt.get_generated_keys()
        assert keys.columns == ['id']
        assert keys.next()
        assert keys.get_object(1) == 7

    def test_no_generated_keys_without_returning(self, pg_conn):
        stmt = pg_conn.prepare_statement('insert into t (a) values (?)', True)
        stmt.set_object(1, 'x')
        stmt.execute_update()
        assert not stmt.get_generated_keys().next()

    @pytest.mark.parametrize(('sql', 'rowcount', 'expected'), [
        ('insert into t (a) values (?)', 1, [(9,)]),
        ('/* load */ REPLACE into t (a) values (?)', 1, [(9,)]),
        ('insert or ignore into t (a) values (?)', 0, []),
        ('update t set a = ?', 1, []),
        ('delete from t where a = ?', 2, []),
    ])
    def test_lastrowid_only_for_inserts(self, raw_conn, pg_cursor, sql, rowcount, expected):
        pg_cursor.lastrowid = 9
        pg_cursor.rowcount = rowcount
        stmt = DbapiConnection(raw_conn, 'sqlite').prepare_statement(sql, True)
        stmt.set_object(1, 'x')
        stmt.execute_update()

        keys = stmt.get_generated_keys()
        rows = []
        while keys.next():
            rows.append((keys.get_object(1),))
        assert rows == expected

    def test_more_results(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement('select 1; select 2')
        pg_cursor.description = [('x',)]
        pg_cursor.nextset.side_effect = [True, None]
        stmt.execute()
        assert stmt.get_more_results() is True
        assert stmt.get_more_results() is False

    def test_more_results_not_supported(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_statement('select 1')
        pg_cursor.nextset.side_effect = psycopg.NotSupportedError('nextset')
        assert stmt.get_more_results() is False


class TestStatementTuning:

    def test_fetch_direction(self, pg_conn):
        stmt = pg_conn.create_statement()
        stmt.set_fetch_direction(FetchDirection.FORWARD)
        with pytest.raises(NotSupportedError):
            stmt.set_fetch_direction(FetchDirection.REVERSE)

    def test_fetch_size(self, pg_conn, pg_cursor):
        pg_conn.create_statement().set_fetch_size(500)
        assert pg_cursor.arraysize == 500

    def test_max_rows_and_field_size(self, pg_conn, pg_cursor):
        pg_cursor.description = [('id',), ('name',)]
        pg_cursor.fetchmany.side_effect = [[(1, 'abcdef')], [(2, 'b')], [(3, 'c')], []]
        stmt = pg_conn.create_statement()
        stmt.set_max_rows(2)
        stmt.set_max_field_size(3)

        rs = stmt.execute_query('select id, name from t')
        rows = []
        while rs.next():
            rows.append((rs.get_object(1), rs.get_object(2)))
        assert rows == [(1, 'abc'), (2, 'b')]

    def test_query_timeout_set_and_reset(self, pg_conn, pg_cursor):
        stmt = pg_conn.create_statement()
        stmt.set_query_timeout(5)
        stmt.close()
        assert pg_cursor.execute.call_args_list == [
            (('SET statement_timeout = 5000',),), (('RESET statement_timeout',),)]
        pg_cursor.close.assert_called_once()

    def test_close_is_idempotent(self, pg_conn, pg_cursor):
        stmt = pg_conn.create_statement()
        stmt.close()
        stmt.close()
        pg_cursor.close.assert_called_once()
        with pytest.raises(ExecutionError, match='closed'):
            stmt.execute_query('select 1')


class TestCallableStatement:

    def test_rewritten_call_reads_out_row(self, pg_conn, pg_cursor):
        """Test OUT values come from the row returned by CALL"""
        stmt = pg_conn.prepare_call('{call add_one(?, ?)}')
        pg_cursor.description = [('result',)]
        pg_cursor.fetchone.return_value = (99,)
        stmt.set_object(1, 98)
        stmt.register_out_parameter(2, 4)

        assert stmt.execute() is False
        pg_cursor.execute.assert_called_once_with('CALL add_one(%s, %s)', (98, None))
        assert stmt.get_object(2) == 99

    def test_function_call(self, pg_conn, pg_cursor):
        stmt = pg_conn.prepare_call('{? = call lower(?)}')
        pg_cursor.description = [('lower',)]
        pg_cursor.fetchone.return_value = ('abc',)
        stmt.register_out_parameter(1, 12)
        stmt.set_object(2, 'ABC')

        stmt.execute()

        pg_cursor.execute.assert_called_once_with('SELECT lower(%s)', ('ABC',))
        assert stmt.get_object(1) == 'abc'

    def test_callproc_used_when_available(self, mocker, raw_conn):
        cursor = mocker.Mock(spec=[*CURSOR_API, 'callproc'])
        cursor.description = None
        cursor.callproc.return_value = [1, 42]
        raw_conn.cursor.return_value = cursor
        stmt = DbapiConnection(raw_conn, 'postgresql').prepare_call('{call proc(?, ?)}')
        stmt.set_object(1, 1)
        stmt.register_out_parameter(2, 4)

        stmt.execute()

        cursor.callproc.assert_called_once_with('proc', [1, None])
        cursor.execute.assert_not_called()
        assert stmt.get_object(2) == 42

    def test_unregistered_out_parameter(self, pg_conn):
        stmt = pg_conn.prepare_call('{call proc(?)}')
        with pytest.raises(ExecutionError, match='not registered'):
            stmt.get_object(1)


class TestResultSet:

    def test_iter_chunks(self, mocker):
        cursor = mocker.Mock()
        cursor.fetchmany.side_effect = [[(1,), (2,)], [(3,)], []]
        assert list(iter_chunks(cursor, 2)) == [(1,), (2,), (3,)]

    def test_iter_chunks_propagates_errors(self, mocker):
        cursor = mocker.Mock()
        cursor.fetchmany.side_effect = psycopg.OperationalError('lost')
        with pytest.raises(psycopg.OperationalError):
            list(iter_chunks(cursor))

    def test_access_errors(self):
        rs = DbapiResultSet.from_rows(['a'], [(1,)])
        with pytest.raises(ExecutionError, match='No current row'):
            rs.get_object(1)
        rs.next()
        with pytest.raises(ExecutionError, match='Invalid column index'):
            rs.get_object(2)
        rs.close()
        with pytest.raises(ExecutionError, match='closed'):
            rs.next()

    def test_dict_rows(self):
        rs = DbapiResultSet.from_rows(['a', 'b'], [{'a': 1, 'b': 2}])
        rs.next()
        assert rs.get_object(2) == 2
