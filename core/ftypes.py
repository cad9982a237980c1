# core/ftypes.py
# Maybe / Either: результаты поиска и валидации без исключений.

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")
L = TypeVar("L")
R = TypeVar("R")


@dataclass(frozen=True)
class Maybe(Generic[T]):
    """
    Опциональное значение: Maybe.some(x) или Maybe.nothing().
    Используется для поиска ваучера, партнёра, способа оплаты.
    """

    value: Optional[T]

    @staticmethod
    def some(value: T) -> "Maybe[T]":
        return Maybe(value)

    @staticmethod
    def nothing() -> "Maybe[None]":
        return Maybe(None)

    @staticmethod
    def from_optional(value: Optional[T]) -> "Maybe[T]":
        return Maybe(value)

    def __init__(self, value: Optional[T]):
        object.__setattr__(self, "value", value)

    def is_some(self) -> bool:
        return self.value is not None

    def is_none(self) -> bool:
        return self.value is None

    def map(self, fn: Callable[[T], U]) -> "Maybe[U]":
        return Maybe.some(fn(self.value)) if self.is_some() else Maybe.nothing()

    def bind(self, fn: Callable[[T], "Maybe[U]"]) -> "Maybe[U]":
        return fn(self.value) if self.is_some() else Maybe.nothing()

    def filter(self, predicate: Callable[[T], bool]) -> "Maybe[T]":
        """Nothing, если значение не проходит предикат"""
        return self if self.is_some() and predicate(self.value) else Maybe.nothing()

    def get_or_else(self, default: U) -> T | U:
        return self.value if self.is_some() else default

    def __repr__(self) -> str:
        return f"Some({self.value})" if self.is_some() else "Nothing"


@dataclass(frozen=True)
class Either(Generic[L, R]):
    """
    Left — ошибка валидации ({"error": "..."}), Right — результат.
    Ошибки Left не мутируют состояние: вызывающий код просто показывает сообщение.
    """

    is_left: bool
    value: Union[L, R]

    @staticmethod
    def left(value: L) -> "Either[L, R]":
        return Either(True, value)

    @staticmethod
    def right(value: R) -> "Either[L, R]":
        return Either(False, value)

    @staticmethod
    def from_maybe(maybe: Maybe[R], error: L) -> "Either[L, R]":
        return Either.right(maybe.value) if maybe.is_some() else Either.left(error)

    def __init__(self, is_left: bool, value: Union[L, R]):
        object.__setattr__(self, "is_left", is_left)
        object.__setattr__(self, "value", value)

    @property
    def is_right(self) -> bool:
        return not self.is_left

    def map(self, fn: Callable[[R], U]) -> "Either[L, U]":
        return Either.right(fn(self.value)) if not self.is_left else self  # type: ignore[return-value]

    def bind(self, fn: Callable[[R], "Either[L, U]"]) -> "Either[L, U]":
        return fn(self.value) if not self.is_left else self  # type: ignore[return-value]

    def fold(self, on_left: Callable[[L], U], on_right: Callable[[R], U]) -> U:
        return on_left(self.value) if self.is_left else on_right(self.value)  # type: ignore[arg-type]

    def get_or_else(self, default: U) -> R | U:
        return self.value if not self.is_left else default  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"Left({self.value})" if self.is_left else f"Right({self.value})"


def first(predicate: Callable[[T], bool], items: Iterable[T]) -> Maybe[T]:
    """Первый элемент, удовлетворяющий предикату"""
    return Maybe.from_optional(next((x for x in items if predicate(x)), None))


def validate(*checks: Callable[[], Optional[str]]) -> Either[dict, None]:
    """
    Прогоняет проверки по порядку; первая вернувшая текст ошибки даёт Left.
    Проверка это функция без аргументов, None если всё в порядке.
    """
    for check in checks:
        message = check()
        if message:
            return Either.left({"error": message})
    return Either.right(None)
