# taskpool/core/collections.py
from typing import Callable, Generic, Iterator, TypeVar

from sqlalchemy.orm import Query

from taskpool.core.errors import ScopeMismatch

T = TypeVar("T")


class Collection(Generic[T]):
    """
    Lazy, restartable view over stored rows. The source query is rebuilt on
    every iteration so a view always reflects the latest committed state.
    """

    def __init__(self, storage, source: Callable[[], Query]):
        self.storage = storage
        self._source = source

    def __iter__(self) -> Iterator[T]:
        return iter(self._source())

    def __len__(self) -> int:
        return self._source().count()

    def _check_scope(self, expected: tuple, given: tuple, what: str):
        if tuple(expected) != tuple(given):
            raise ScopeMismatch(f"These are the {what} of {expected}, not of {given}.")
        return self
