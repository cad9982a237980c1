"""
Преобразование сущностей в JSON (локальный кэш) и в строки удалённых таблиц, и обратно.

Любые входящие данные (localStorage-подобный кэш, строки Supabase) не считаются
доверенными: каждая запись проходит через схему, запись без обязательных полей
или с неверным типом отбрасывается целиком, частичные объекты не создаются.
"""

import logging
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .domain import (
    Affiliate,
    CartItem,
    Order,
    PaymentMethod,
    Product,
    StoreSettings,
    Voucher,
    PAYMENT_TYPES,
    PENDING,
    PERCENT,
    VOUCHER_TYPES,
)
from .ftypes import Either
from .pricing import canonical_code, round_half_up

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = "settings_01"


# ============ Парсеры полей ============


def as_str(value: Any) -> str:
    return "" if value is None else str(value)


def as_opt_str(value: Any) -> Optional[str]:
    return None if value in (None, "") else str(value)


def as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"expected number, got {value!r}")
    try:
        return round_half_up(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        raise ValueError(f"expected number, got {value!r}")


def as_opt_int(value: Any) -> Optional[int]:
    # 0 и пустое значение означают "нет скидочной цены"
    if value in (None, "", 0, "0"):
        return None
    return as_int(value)


def as_number(value: Any):
    if isinstance(value, bool):
        raise ValueError(f"expected number, got {value!r}")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"expected number, got {value!r}")
    return int(number) if number == number.to_integral_value() else float(number)


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "t")
    return bool(value)


def one_of(choices: Tuple[str, ...]) -> Callable[[Any], str]:
    def parse(value: Any) -> str:
        text = canonical_code(as_str(value))
        if text not in choices:
            raise ValueError(f"expected one of {', '.join(choices)}, got {value!r}")
        return text

    return parse


def as_code(value: Any) -> str:
    return canonical_code(as_str(value))


# ============ Схемы ============


@dataclass(frozen=True)
class Field:
    name: str
    parse: Callable[[Any], Any] = as_str
    required: bool = False
    default: Any = None
    remote: bool = True  # False: поле хранится только локально


@dataclass(frozen=True)
class Schema:
    entity: type
    fields: Tuple[Field, ...]
    check: Optional[Callable[[Any], Optional[str]]] = None  # инварианты собранной сущности


# ============ Инварианты сущностей ============


def check_product(p: Product) -> Optional[str]:
    if p.price <= 0:
        return "price must be positive"
    if p.discount_price is not None and not 0 < p.discount_price < p.price:
        return "discount_price must be positive and lower than price"
    return None


def check_voucher(v: Voucher) -> Optional[str]:
    if v.value <= 0:
        return "value must be positive"
    if v.type == PERCENT and v.value > 100:
        return "percent value must not exceed 100"
    return None


def check_affiliate(a: Affiliate) -> Optional[str]:
    if not 0 <= a.commission_rate <= 100:
        return "commission_rate must be within 0-100"
    if a.total_earnings < 0:
        return "total_earnings must not be negative"
    return None


PRODUCT = Schema(
    Product,
    (
        Field("id", required=True),
        Field("name", required=True),
        Field("category", default=""),
        Field("description", default=""),
        Field("price", as_int, required=True),
        Field("discount_price", as_opt_int),
        Field("image", default=""),
        Field("file_url", as_opt_str),
        Field("is_popular", as_bool, default=False),
    ),
    check_product,
)

VOUCHER = Schema(
    Voucher,
    (
        Field("id", required=True),
        Field("code", as_code, required=True),
        Field("type", one_of(VOUCHER_TYPES), required=True),
        Field("value", as_number, required=True),
        Field("is_active", as_bool, default=True),
    ),
    check_voucher,
)

AFFILIATE = Schema(
    Affiliate,
    (
        Field("id", required=True),
        Field("name", required=True),
        Field("code", as_code, required=True),
        Field("password", required=True),
        Field("commission_rate", as_number, required=True),
        Field("total_earnings", as_int, default=0),
        Field("bank_details", default=""),
        Field("is_active", as_bool, default=True),
    ),
    check_affiliate,
)

PAYMENT_METHOD = Schema(
    PaymentMethod,
    (
        Field("id", required=True),
        Field("type", one_of(PAYMENT_TYPES), required=True),
        Field("name", required=True),
        Field("account_number", default=""),
        Field("account_name", default=""),
        Field("description", default=""),
        Field("logo", default=""),
        Field("is_active", as_bool, default=True),
    ),
)

SETTINGS = Schema(
    StoreSettings,
    (
        Field("store_name", default=""),
        Field("address", default=""),
        Field("whatsapp", default=""),
        Field("email", default=""),
        Field("description", default=""),
        Field("logo_url", default=""),
        Field("supabase_url", default="", remote=False),
        Field("supabase_key", default="", remote=False),
        Field("tripay_api_key", default=""),
        Field("tripay_private_key", default=""),
        Field("tripay_merchant_code", default=""),
    ),
)


def as_cart_items(value: Any) -> Tuple[CartItem, ...]:
    def to_item(raw: Dict) -> CartItem:
        if not isinstance(raw, dict):
            raise ValueError(f"expected cart item object, got {type(raw).__name__}")
        product = parse_record(PRODUCT, raw.get("product") or {})
        if product.is_left:
            raise ValueError(product.value["error"])
        quantity = as_int(raw.get("quantity", 1))
        if quantity <= 0:
            raise ValueError(f"bad quantity {quantity}")
        return CartItem(product=product.value, quantity=quantity)

    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected list of items, got {type(value).__name__}")
    return tuple(map(to_item, value))


ORDER = Schema(
    Order,
    (
        Field("id", required=True),
        Field("items", as_cart_items, default=()),
        Field("subtotal", as_int, default=0),
        Field("discount", as_int, default=0),
        Field("total", as_int, required=True),
        Field("payment_method", default=""),
        Field("ts", default=""),
        Field("status", default=PENDING),
        Field("voucher_code", as_opt_str),
        Field("referral_code", as_opt_str),
        Field("commission", as_int, default=0),
        Field("customer_name", default=""),
        Field("customer_whatsapp", default=""),
    ),
)


# ============ Разбор ============


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_record(schema: Schema, data: Any) -> Either[dict, Any]:
    """Словарь -> сущность; Left с описанием первой проблемы"""
    if not isinstance(data, dict):
        return Either.left({"error": f"{schema.entity.__name__}: expected object, got {type(data).__name__}"})

    kwargs = {}
    for field in schema.fields:
        raw = data.get(field.name)
        if _missing(raw):
            if field.required:
                return Either.left({"error": f"{schema.entity.__name__}: missing '{field.name}'"})
            kwargs[field.name] = field.default
            continue
        try:
            kwargs[field.name] = field.parse(raw)
        except (ValueError, TypeError, AttributeError) as e:
            return Either.left({"error": f"{schema.entity.__name__}.{field.name}: {e}"})

    entity = schema.entity(**kwargs)
    problem = schema.check(entity) if schema.check else None
    if problem:
        return Either.left({"error": f"{schema.entity.__name__}: {problem}"})
    return Either.right(entity)


def parse_records(schema: Schema, rows: Iterable[Any]) -> Tuple[Tuple[Any, ...], Tuple[dict, ...]]:
    """
    Разбирает набор строк.
    Возвращает (принятые сущности, отклонённые строки с причиной).
    """
    results = [(row, parse_record(schema, row)) for row in rows or ()]
    accepted = tuple(r.value for _, r in results if r.is_right)
    rejected = tuple({"row": row, "error": r.value["error"]} for row, r in results if r.is_left)
    for item in rejected:
        logger.warning("Quarantined %s row: %s", schema.entity.__name__, item["error"])
    return accepted, rejected


# ============ Сериализация ============


def to_local(entity: Any) -> dict:
    """Сущность -> JSON-совместимый словарь для локального кэша"""
    data = asdict(entity)
    if isinstance(entity, Order):
        data["items"] = [asdict(i) for i in entity.items]
    return data


def to_row(schema: Schema, entity: Any) -> dict:
    """Сущность -> строка удалённой таблицы (без локальных полей)"""
    return {f.name: getattr(entity, f.name) for f in schema.fields if f.remote}


def settings_to_row(settings: StoreSettings) -> dict:
    return {"id": SETTINGS_ROW_ID, **to_row(SETTINGS, settings)}


def merge_remote_settings(local: StoreSettings, row: dict) -> Either[dict, StoreSettings]:
    """
    Настройки из удалённой строки поверх локальных.
    Строка не содержит учётных данных подключения, они сохраняются из локальных настроек.
    """
    remote_only = {f.name: row.get(f.name) for f in SETTINGS.fields if f.remote}
    remote_only["supabase_url"] = local.supabase_url
    remote_only["supabase_key"] = local.supabase_key
    return parse_record(SETTINGS, remote_only)
