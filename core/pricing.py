from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from functools import reduce
from typing import Iterable, Optional, Tuple

from .domain import CartItem, Product, Voucher, FIXED, PERCENT, Number
from .ftypes import Maybe, first


@dataclass(frozen=True)
class CheckoutQuote:
    subtotal: int
    discount: int
    total: int
    voucher: Optional[Voucher] = None
    voucher_invalid: bool = False


# ============ Округление ============


def round_half_up(value) -> int:
    """
    Округление до целой единицы валюты, половина вверх.
    Через Decimal(str(x)), чтобы 0.5 всегда давало 1, а не банковское 0.
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: Number) -> int:
    """amount * percent / 100 с одним округлением в конце"""
    exact = Decimal(int(amount)) * Decimal(str(percent)) / Decimal(100)
    return round_half_up(exact)


def canonical_code(code: Optional[str]) -> str:
    """Каноническая форма кода ваучера/партнёра: без пробелов по краям, в верхнем регистре"""
    return (code or "").strip().upper()


# ============ Корзина ============


def unit_price(product: Product) -> int:
    return product.discount_price if product.discount_price is not None else product.price


def line_total(item: CartItem) -> int:
    return unit_price(item.product) * item.quantity


def subtotal(items: Iterable[CartItem]) -> int:
    return reduce(lambda acc, item: acc + line_total(item), items, 0)


# ============ Ваучеры ============


def resolve_voucher(code: Optional[str], vouchers: Tuple[Voucher, ...]) -> Maybe[Voucher]:
    """Активный ваучер с точным совпадением канонического кода"""
    wanted = canonical_code(code)
    if not wanted:
        return Maybe.nothing()
    return first(lambda v: v.is_active and canonical_code(v.code) == wanted, vouchers)


def voucher_discount(amount: int, voucher: Voucher) -> int:
    if voucher.type == PERCENT:
        return percent_of(amount, voucher.value)
    if voucher.type == FIXED:
        return round_half_up(voucher.value)
    return 0


def compute_checkout(
    items: Tuple[CartItem, ...],
    voucher_code: Optional[str],
    vouchers: Tuple[Voucher, ...],
) -> CheckoutQuote:
    """
    Итог корзины: подытог, скидка по ваучеру, финальная сумма.
    Неизвестный или неактивный код не ошибка: скидка 0 и voucher_invalid=True.
    Итог никогда не бывает отрицательным.
    """
    amount = subtotal(items)
    found = resolve_voucher(voucher_code, vouchers)

    if found.is_none():
        return CheckoutQuote(
            subtotal=amount,
            discount=0,
            total=amount,
            voucher=None,
            voucher_invalid=bool(canonical_code(voucher_code)),
        )

    voucher = found.get_or_else(None)
    discount = voucher_discount(amount, voucher)
    return CheckoutQuote(
        subtotal=amount,
        discount=discount,
        total=max(0, amount - discount),
        voucher=voucher,
    )
