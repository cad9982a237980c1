import re
import uuid
from dataclasses import replace
from typing import Tuple, TypeVar

T = TypeVar("T")

CANONICAL_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def new_id() -> str:
    """Новый канонический идентификатор (UUID4, 36 символов)"""
    return str(uuid.uuid4())


def is_canonical_id(value) -> bool:
    return isinstance(value, str) and CANONICAL_ID_RE.match(value) is not None


def ensure_canonical(record: T) -> T:
    """
    Запись с каноническим id.
    Уже канонический id не трогаем (тот же объект), старые id вида "1" заменяются.
    """
    if is_canonical_id(record.id):
        return record
    return replace(record, id=new_id())


def normalize_ids(records: Tuple[T, ...]) -> Tuple[Tuple[T, ...], bool]:
    """
    Нормализует id всей коллекции.
    Возвращает (новая коллекция, были ли изменения); без изменений возвращается исходный кортеж.
    """
    fixed = tuple(map(ensure_canonical, records))
    changed = any(a is not b for a, b in zip(fixed, records))
    return (fixed if changed else records), changed
