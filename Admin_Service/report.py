from typing import Tuple, Dict, List
from functools import reduce
from core.domain import Affiliate, Order, Product
from core.frp import AppState


# ============ Отчёты по заказам ============


def orders_by_status(orders: Tuple[Order, ...]) -> Dict[str, int]:
    """Количество заказов по статусам (иммутабельная агрегация через reduce)"""

    def accumulate(acc: dict, order: Order) -> dict:
        return {**acc, order.status: acc.get(order.status, 0) + 1}

    return reduce(accumulate, orders, {})


def order_revenue(orders: Tuple[Order, ...]) -> int:
    """Сумма итогов всех заказов (после скидок)"""
    return reduce(lambda acc, o: acc + o.total, orders, 0)


def voucher_usage(orders: Tuple[Order, ...]) -> Dict[str, dict]:
    """
    Использование ваучеров: сколько заказов и какая сумма скидок по каждому коду
    """

    def accumulate(acc: dict, order: Order) -> dict:
        if not order.voucher_code:
            return acc
        current = acc.get(order.voucher_code, {"orders": 0, "discount": 0})
        return {
            **acc,
            order.voucher_code: {
                "orders": current["orders"] + 1,
                "discount": current["discount"] + order.discount,
            },
        }

    return reduce(accumulate, orders, {})


# ============ Партнёры ============


def affiliate_leaderboard(affiliates: Tuple[Affiliate, ...], k: int = 10) -> List[dict]:
    """Топ-K партнёров по начисленной комиссии"""
    ranked = sorted(affiliates, key=lambda a: a.total_earnings, reverse=True)[:k]
    return [
        {
            "name": a.name,
            "code": a.code,
            "commission_rate": a.commission_rate,
            "total_earnings": a.total_earnings,
            "is_active": a.is_active,
        }
        for a in ranked
    ]


def total_commission(affiliates: Tuple[Affiliate, ...]) -> int:
    return reduce(lambda acc, a: acc + a.total_earnings, affiliates, 0)


# ============ Каталог ============


def category_counts(products: Tuple[Product, ...]) -> Dict[str, int]:
    def accumulate(acc: dict, product: Product) -> dict:
        key = product.category or "-"
        return {**acc, key: acc.get(key, 0) + 1}

    return reduce(accumulate, products, {})


# ============ Сводка для главной страницы админки ============


def dashboard_summary(state: AppState) -> dict:
    return {
        "products": len(state.products),
        "active_vouchers": len(tuple(filter(lambda v: v.is_active, state.vouchers))),
        "active_affiliates": len(tuple(filter(lambda a: a.is_active, state.affiliates))),
        "total_commission": total_commission(state.affiliates),
        "orders": len(state.orders),
        "revenue": order_revenue(state.orders),
        "sync_status": state.sync_status.value,
        "sync_error": state.sync_error,
    }
