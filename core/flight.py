from contextlib import contextmanager
from typing import Iterator, Set

from .errors import OperationInProgress


class SingleFlight:
    """
    Не больше одного выполнения операции на ключ.

    Проверка и захват ключа происходят без await между ними, поэтому в одном
    event loop два корутинных вызова не могут захватить один ключ одновременно.
    """

    def __init__(self):
        self._pending: Set[str] = set()

    def in_flight(self, key: str) -> bool:
        return key in self._pending

    def try_acquire(self, key: str) -> bool:
        if key in self._pending:
            return False
        self._pending.add(key)
        return True

    def release(self, key: str) -> None:
        self._pending.discard(key)

    @contextmanager
    def guard(self, key: str) -> Iterator[None]:
        """Захватывает ключ на время блока; занятый ключ -> OperationInProgress"""
        if not self.try_acquire(key):
            raise OperationInProgress(key)
        try:
            yield
        finally:
            self.release(key)
