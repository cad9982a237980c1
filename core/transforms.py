import json
from dataclasses import replace
from typing import Callable, Dict, Tuple, TypeVar

from .codec import (
    AFFILIATE,
    PAYMENT_METHOD,
    PRODUCT,
    SETTINGS,
    VOUCHER,
    parse_record,
    parse_records,
)
from .domain import CartItem, Product

T = TypeVar("T")


def load_seed(path: str) -> Dict[str, object]:
    """
    Загружает seed.json (начальный каталог магазина).
    Возвращает словарь коллекций с иммутабельными сущностями.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    products, _ = parse_records(PRODUCT, data.get("products", []))
    vouchers, _ = parse_records(VOUCHER, data.get("vouchers", []))
    affiliates, _ = parse_records(AFFILIATE, data.get("affiliates", []))
    payment_methods, _ = parse_records(PAYMENT_METHOD, data.get("payment_methods", []))
    settings = parse_record(SETTINGS, data.get("settings", {})).get_or_else(None)

    return {
        "settings": settings,
        "products": products,
        "payment_methods": payment_methods,
        "vouchers": vouchers,
        "affiliates": affiliates,
        "orders": (),
    }


# ============ Корзина (чистые функции) ============


def add_to_cart(cart: Tuple[CartItem, ...], product: Product, qty: int = 1) -> Tuple[CartItem, ...]:
    """Новая корзина с товаром; повторное добавление увеличивает количество"""
    if qty <= 0:
        return cart

    if any(item.product.id == product.id for item in cart):
        return tuple(
            replace(item, quantity=item.quantity + qty) if item.product.id == product.id else item
            for item in cart
        )

    return cart + (CartItem(product=product, quantity=qty),)


def remove_from_cart(cart: Tuple[CartItem, ...], product_id: str) -> Tuple[CartItem, ...]:
    return tuple(filter(lambda item: item.product.id != product_id, cart))


def set_quantity(cart: Tuple[CartItem, ...], product_id: str, qty: int) -> Tuple[CartItem, ...]:
    """Количество <= 0 убирает позицию"""
    if qty <= 0:
        return remove_from_cart(cart, product_id)
    return tuple(
        replace(item, quantity=qty) if item.product.id == product_id else item for item in cart
    )


def cart_count(cart: Tuple[CartItem, ...]) -> int:
    return sum(item.quantity for item in cart)


# ============ Коллекции (CRUD без мутаций) ============


def upsert_record(records: Tuple[T, ...], record: T) -> Tuple[T, ...]:
    """Заменяет запись с тем же id или добавляет в конец"""
    if any(r.id == record.id for r in records):
        return tuple(record if r.id == record.id else r for r in records)
    return records + (record,)


def delete_record(records: Tuple[T, ...], record_id: str) -> Tuple[T, ...]:
    return tuple(filter(lambda r: r.id != record_id, records))


# ============ Фильтры каталога (HOF) ============


def by_category(category: str) -> Callable[[Product], bool]:
    return lambda p: category in (None, "", "All") or p.category == category


def popular_only() -> Callable[[Product], bool]:
    return lambda p: p.is_popular


def categories_of(products: Tuple[Product, ...]) -> Tuple[str, ...]:
    """Категории в порядке первого появления, с "All" в начале"""
    seen = tuple(dict.fromkeys(p.category for p in products if p.category))
    return ("All",) + seen
