"""
Parameter binding for prepared and callable statements.
"""
import logging
from collections.abc import Sequence
from typing import Any

from dbrunner.driver import ParameterMetadata, PreparedStatement
from dbrunner.exceptions import BindingError, DriverError
from dbrunner.types import OutParameter, SqlType, TypeConverter

__all__ = ['ParameterBinder', 'ParameterMetadataCache']

logger = logging.getLogger(__name__)


class ParameterMetadataCache:
    """Decides whether parameter metadata is requested from statements.

    Starts out trying metadata; the first time a driver fails to provide it
    (or fails to report a placeholder type) the cache is marked known-broken
    and metadata is never requested again by this instance.

    The flag is read and written without a lock. It only ever moves from
    "try" to "broken", so threads racing on it cost at most one extra failed
    metadata call.
    """

    def __init__(self, known_broken: bool = False) -> None:
        self._known_broken = known_broken

    @property
    def known_broken(self) -> bool:
        return self._known_broken

    def mark_broken(self, reason: Any) -> None:
        if not self._known_broken:
            logger.warning(f'Parameter metadata unavailable, binding untyped from now on: {reason}')
        self._known_broken = True

    def fetch(self, stmt: PreparedStatement) -> ParameterMetadata | None:
        """Metadata for ``stmt``, or None when metadata is known-broken."""
        if self._known_broken:
            return None
        try:
            metadata = stmt.get_parameter_metadata()
        except DriverError as err:
            self.mark_broken(err)
            return None
        if metadata is None:
            self.mark_broken('driver returned no metadata')
        return metadata

    def parameter_type(self, metadata: ParameterMetadata | None, index: int) -> int:
        """Declared type of placeholder ``index``, VARCHAR when unknown."""
        if metadata is None or self._known_broken:
            return SqlType.VARCHAR
        try:
            return metadata.parameter_type(index)
        except DriverError as err:
            self.mark_broken(err)
            return SqlType.VARCHAR


class ParameterBinder:
    """Binds positional values to a statement's placeholders (1-based).

    - `OutParameter` values are registered for output and their IN value bound
    - None (and values that convert to None, such as NaN or pandas NA) is bound
      as a typed null using the placeholder's declared type, else VARCHAR
    - Everything else is bound untyped after NumPy/pandas normalization
    """

    def __init__(self, cache: ParameterMetadataCache) -> None:
        self.cache = cache

    def metadata(self, stmt: PreparedStatement) -> ParameterMetadata | None:
        return self.cache.fetch(stmt)

    def fill(self, stmt: PreparedStatement, params: Sequence[Any] | None,
             metadata: ParameterMetadata | None = None) -> None:
        """Bind ``params`` to ``stmt``.

        Raises BindingError when metadata reports a different placeholder
        count than the number of values given.
        """
        params = () if params is None else params
        if metadata is None:
            metadata = self.metadata(stmt)
        if metadata is not None and not self.cache.known_broken:
            expected = metadata.parameter_count
            if expected != len(params):
                raise BindingError(
                    f'Wrong number of parameters: expected {expected}, was given {len(params)}')

        # values left from a previous batch row must not fill a short row
        stmt.clear_parameters()
        for index, value in enumerate(params, 1):
            if isinstance(value, OutParameter):
                if not hasattr(stmt, 'register_out_parameter'):
                    raise BindingError(
                        f'OutParameter at position {index} requires a callable statement')
                value.register(stmt, index)
                continue
            value = TypeConverter.convert_value(value)
            if value is not None:
                stmt.set_object(index, value)
            else:
                stmt.set_null(index, self.cache.parameter_type(metadata, index))
