import logging
import random
from dataclasses import asdict
from typing import Optional, Tuple
from urllib.parse import urlencode

from .codec import AFFILIATE, PAYMENT_METHOD, PRODUCT, VOUCHER, Schema, parse_record
from .config import Config
from .domain import (
    ADMIN,
    AFFILIATE as AFFILIATE_ROLE,
    CUSTOMER,
    FIXED,
    PAYMENT_TYPES,
    PERCENT,
    Affiliate,
    StoreSettings,
    User,
)
from .frp import AppContext, LOGIN, LOGOUT, REFERRAL_SET, CART_ADD, CART_REMOVE, CART_SET_QTY, CART_CLEAR
from .ftypes import Either, first, validate
from .ids import new_id
from .pricing import canonical_code
from .referral import find_affiliate
from .transforms import delete_record, upsert_record

logger = logging.getLogger(__name__)


# ============ Формы админки (чистые функции) ============


def _merge_draft(records: Tuple, draft: dict, schema: Schema, defaults: dict) -> Either[dict, object]:
    """
    Черновик формы -> сущность.
    С id: поля черновика поверх существующей записи. Без id: новая запись с каноническим id.
    """
    found = first(lambda r: r.id == draft.get("id"), records)
    base = asdict(found.value) if found.is_some() else {**defaults, "id": new_id()}
    merged = {**base, **{k: v for k, v in draft.items() if k != "id"}}
    return parse_record(schema, merged)


def _with_existing(records: Tuple, draft: dict) -> dict:
    """Правка существующей записи: недостающие поля черновика берутся из неё"""
    found = first(lambda r: r.id == draft.get("id"), records)
    return {**asdict(found.value), **draft} if found.is_some() else draft


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _number(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def save_product(products: Tuple, draft: dict) -> Either[dict, Tuple]:
    draft = _with_existing(products, draft)
    price = _number(draft.get("price"))
    discount = _number(draft.get("discount_price")) if draft.get("discount_price") else None
    checks = validate(
        lambda: "Nama dan Harga wajib diisi" if _blank(draft.get("name")) or price is None else None,
        lambda: "Harga harus lebih dari 0" if price <= 0 else None,
        lambda: (
            "Harga diskon harus lebih kecil dari harga normal"
            if discount is not None and discount >= price
            else None
        ),
    )
    defaults = {
        "category": "",
        "description": "",
        "image": f"https://picsum.photos/400/400?random={random.randint(1, 10**6)}",
        "is_popular": False,
    }
    return checks.bind(lambda _: _merge_draft(products, draft, PRODUCT, defaults)).map(
        lambda product: upsert_record(products, product)
    )


def save_voucher(vouchers: Tuple, draft: dict) -> Either[dict, Tuple]:
    draft = _with_existing(vouchers, draft)
    draft = {**draft, "code": canonical_code(draft.get("code")), "type": canonical_code(draft.get("type")) or FIXED}
    value = _number(draft.get("value"))
    active = draft.get("is_active", True)

    def duplicate() -> Optional[str]:
        clash = first(lambda v: v.is_active and v.code == draft["code"] and v.id != draft.get("id"), vouchers)
        return "Kode voucher sudah dipakai" if active and clash.is_some() else None

    checks = validate(
        lambda: "Kode dan Nilai Diskon wajib diisi" if not draft["code"] or not value else None,
        lambda: "Nilai diskon harus lebih dari 0" if value <= 0 else None,
        lambda: "Diskon persen maksimal 100" if draft["type"] == PERCENT and value > 100 else None,
        duplicate,
    )
    return checks.bind(lambda _: _merge_draft(vouchers, draft, VOUCHER, {"is_active": True})).map(
        lambda voucher: upsert_record(vouchers, voucher)
    )


def save_affiliate(affiliates: Tuple, draft: dict) -> Either[dict, Tuple]:
    draft = _with_existing(affiliates, draft)
    draft = {**draft, "code": canonical_code(draft.get("code"))}
    if not draft.get("id"):
        # новый партнёр начинает с нуля
        draft = {**draft, "total_earnings": 0}
    rate = _number(draft.get("commission_rate", 10))

    def duplicate() -> Optional[str]:
        clash = first(lambda a: a.code == draft["code"] and a.id != draft.get("id"), affiliates)
        return "Kode partner sudah dipakai" if clash.is_some() else None

    checks = validate(
        lambda: (
            "Data wajib diisi"
            if _blank(draft.get("name")) or not draft["code"] or _blank(draft.get("password"))
            else None
        ),
        lambda: "Komisi harus 0-100%" if rate is None or not 0 <= rate <= 100 else None,
        duplicate,
    )
    defaults = {"commission_rate": 10, "total_earnings": 0, "bank_details": "", "is_active": True}
    return checks.bind(lambda _: _merge_draft(affiliates, draft, AFFILIATE, defaults)).map(
        lambda affiliate: upsert_record(affiliates, affiliate)
    )


def save_payment_method(methods: Tuple, draft: dict) -> Either[dict, Tuple]:
    draft = _with_existing(methods, draft)
    checks = validate(
        lambda: "Nama dan tipe pembayaran wajib diisi" if _blank(draft.get("name")) or not draft.get("type") else None,
        lambda: "Tipe pembayaran tidak dikenal" if canonical_code(draft.get("type")) not in PAYMENT_TYPES else None,
    )
    return checks.bind(lambda _: _merge_draft(methods, draft, PAYMENT_METHOD, {"is_active": True})).map(
        lambda method: upsert_record(methods, method)
    )


SAVERS = {
    "products": save_product,
    "vouchers": save_voucher,
    "affiliates": save_affiliate,
    "payment_methods": save_payment_method,
}


# ============ Фасады ============


class CatalogService:
    """CRUD коллекций магазина поверх AppContext (каждое изменение сразу в кэше)"""

    def __init__(self, context: AppContext):
        self.context = context

    def list(self, collection: str) -> Tuple:
        if collection not in SAVERS:
            raise KeyError(f"Unknown collection {collection!r}")
        return getattr(self.context.state, collection)

    def upsert(self, collection: str, draft: dict) -> Either[dict, Tuple]:
        result = SAVERS[collection](self.list(collection), draft)
        if result.is_right:
            self.context.replace_collection(collection, result.value)
            logger.info("Saved %s record %s", collection, draft.get("id") or "(new)")
        return result

    def delete(self, collection: str, record_id: str) -> Tuple:
        records = delete_record(self.list(collection), record_id)
        self.context.replace_collection(collection, records)
        logger.info("Deleted %s record %s", collection, record_id)
        return records

    def save_settings(self, settings: StoreSettings) -> StoreSettings:
        self.context.replace_settings(settings)
        return settings

    def reset_local_data(self) -> None:
        logger.warning("Local data reset to seed")
        self.context.reset()


class SessionService:
    """Корзина, вход и реферальный код текущей сессии"""

    def __init__(self, context: AppContext, config: Optional[Config] = None):
        self.context = context
        self.config = config or Config()

    # корзина

    def add_to_cart(self, product, qty: int = 1) -> None:
        self.context.publish(CART_ADD, {"product": product, "qty": qty})

    def remove_from_cart(self, product_id: str) -> None:
        self.context.publish(CART_REMOVE, {"product_id": product_id})

    def set_quantity(self, product_id: str, qty: int) -> None:
        self.context.publish(CART_SET_QTY, {"product_id": product_id, "qty": qty})

    def clear_cart(self) -> None:
        self.context.publish(CART_CLEAR)

    # реферальный код

    def capture_referral(self, query_params) -> Optional[str]:
        """Код из параметра ?ref= запоминается до конца сессии"""
        code = canonical_code((query_params or {}).get("ref"))
        if code and code != self.context.state.referral_code:
            self.context.publish(REFERRAL_SET, {"code": code})
        return self.context.state.referral_code

    def referral_link(self, affiliate: Affiliate) -> str:
        return f"{self.config.base_url}/?{urlencode({'ref': affiliate.code})}"

    # вход (простое сравнение, без защиты)

    def login(self, username: str, password: str) -> Either[dict, User]:
        if username == self.config.admin_username and password == self.config.admin_password:
            return self._login(User(role=ADMIN, name="Admin User"))

        found = find_affiliate(username, self.context.state.affiliates).filter(lambda a: a.password == password)
        if found.is_some():
            affiliate = found.get_or_else(None)
            if not affiliate.is_active:
                return Either.left({"error": "Akun affiliate non-aktif."})
            return self._login(User(role=AFFILIATE_ROLE, name=affiliate.name, id=affiliate.id))

        if username and password:
            return self._login(User(role=CUSTOMER, name=username))
        return Either.left({"error": "Login Gagal. Cek username/password."})

    def _login(self, user: User) -> Either[dict, User]:
        self.context.publish(LOGIN, {"user": user})
        return Either.right(user)

    def logout(self) -> None:
        self.context.publish(LOGOUT)

    def current_affiliate(self) -> Optional[Affiliate]:
        user = self.context.state.user
        if user is None or user.role != AFFILIATE_ROLE:
            return None
        return first(lambda a: a.id == user.id, self.context.state.affiliates).get_or_else(None)
