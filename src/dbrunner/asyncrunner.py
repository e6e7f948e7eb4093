"""
Asynchronous facade over QueryRunner.
"""
import logging
from collections.abc import Sequence
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Self

from dbrunner.handlers import ResultHandler
from dbrunner.runner import QueryRunner

__all__ = ['AsyncQueryRunner']

logger = logging.getLogger(__name__)


class AsyncQueryRunner:
    """Runs QueryRunner operations on an executor and returns futures.

    Each method submits the identical synchronous call, so results, errors
    and connection handling are those of the wrapped runner. An executor
    passed in is left running by `close`; one created here is shut down.

    Example:
        with AsyncQueryRunner(QueryRunner(source)) as arunner:
            future = arunner.query('select * from person', MapListHandler())
            rows = future.result()
    """

    def __init__(self, runner: QueryRunner, executor: Executor | None = None, *,
                 max_workers: int = 4) -> None:
        self.runner = runner
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix='dbrunner')

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def close(self, wait: bool = True) -> None:
        """Shut down the executor if this instance created it."""
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
            logger.debug('Async runner executor shut down')

    def query(self, sql: str, handler: ResultHandler, *params: Any, **kwargs: Any) -> Future:
        return self.executor.submit(self.runner.query, sql, handler, *params, **kwargs)

    def update(self, sql: str, *params: Any, **kwargs: Any) -> Future:
        return self.executor.submit(self.runner.update, sql, *params, **kwargs)

    def batch(self, sql: str, rows: Sequence[Sequence[Any]], **kwargs: Any) -> Future:
        return self.executor.submit(self.runner.batch, sql, rows, **kwargs)

    def execute(self, sql: str, *params: Any, **kwargs: Any) -> Future:
        return self.executor.submit(self.runner.execute, sql, *params, **kwargs)

    def execute_with_handler(self, sql: str, handler: ResultHandler, *params: Any,
                             **kwargs: Any) -> Future:
        return self.executor.submit(self.runner.execute_with_handler, sql, handler, *params, **kwargs)

    def insert(self, sql: str, handler: ResultHandler, *params: Any, **kwargs: Any) -> Future:
        return self.executor.submit(self.runner.insert, sql, handler, *params, **kwargs)

    def insert_batch(self, sql: str, handler: ResultHandler, rows: Sequence[Sequence[Any]],
                     **kwargs: Any) -> Future:
        return self.executor.submit(self.runner.insert_batch, sql, handler, rows, **kwargs)
