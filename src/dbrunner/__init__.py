"""
SQL execution helper for PostgreSQL, SQLite and other DB-API drivers.

A `QueryRunner` prepares statements, binds positional `?` parameters,
runs them and turns results into caller-chosen shapes through result
handlers, closing every resource it opened:

    runner = QueryRunner(FactoryConnectionSource(lambda: sqlite3.connect('app.db')))
    runner.update('insert into person (name) values (?)', 'Alice')
    names = runner.query('select name from person', ColumnListHandler())
"""
__version__ = '0.1.0'

from typing import Any

from dbrunner.asyncrunner import AsyncQueryRunner
from dbrunner.cursor import ResultCursor
from dbrunner.dbapi import DbapiConnection, as_connection
from dbrunner.exceptions import BindingError, ConnectionFailure, DatabaseError
from dbrunner.exceptions import DbConnectionError, ExecutionError
from dbrunner.exceptions import NotSupportedError, NullArgumentError
from dbrunner.exceptions import QueryError, TypeConversionError
from dbrunner.handlers import ArrayHandler, ArrayListHandler
from dbrunner.handlers import ArrowDataFrameHandler, ColumnListHandler
from dbrunner.handlers import DataFrameHandler, KeyedHandler, MapHandler
from dbrunner.handlers import MapListHandler, ResultHandler, ScalarHandler
from dbrunner.handlers import handler_from
from dbrunner.options import DatabaseOptions, FetchDirection, StatementConfig
from dbrunner.runner import QueryRunner
from dbrunner.source import EngineConnectionSource, FactoryConnectionSource
from dbrunner.source import dispose_all_engines
from dbrunner.types import OutParameter, SqlType


def runner_for(options: DatabaseOptions | dict[str, Any] | str,
               config: Any | None = None, *,
               metadata_known_broken: bool = False,
               statement_config: StatementConfig | None = None,
               **kw: Any) -> QueryRunner:
    """Create a QueryRunner acquiring connections from a SQLAlchemy engine.

    ``options``, ``config`` and ``kw`` are loaded as for `EngineConnectionSource`:

        runner = runner_for('postgresql', config=config, timeout=5)
    """
    source = EngineConnectionSource(options, config, **kw)
    return QueryRunner(source, metadata_known_broken=metadata_known_broken,
                       statement_config=statement_config)


__all__ = [
    'QueryRunner',
    'AsyncQueryRunner',
    'runner_for',
    'ResultCursor',
    'ResultHandler',
    'handler_from',
    'ArrayHandler',
    'ArrayListHandler',
    'MapHandler',
    'MapListHandler',
    'ScalarHandler',
    'ColumnListHandler',
    'KeyedHandler',
    'DataFrameHandler',
    'ArrowDataFrameHandler',
    'OutParameter',
    'SqlType',
    'StatementConfig',
    'FetchDirection',
    'DatabaseOptions',
    'FactoryConnectionSource',
    'EngineConnectionSource',
    'dispose_all_engines',
    'DbapiConnection',
    'as_connection',
    'DatabaseError',
    'NullArgumentError',
    'BindingError',
    'ExecutionError',
    'NotSupportedError',
    'ConnectionFailure',
    'DbConnectionError',
    'QueryError',
    'TypeConversionError',
]
