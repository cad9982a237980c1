import json
import logging
import os
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .codec import (
    AFFILIATE,
    ORDER,
    PAYMENT_METHOD,
    PRODUCT,
    SETTINGS,
    VOUCHER,
    Schema,
    parse_record,
    parse_records,
    to_local,
)
from .config import Config
from .domain import Affiliate, Order, PaymentMethod, Product, StoreSettings, Voucher

logger = logging.getLogger(__name__)

# Ключи коллекций в локальном хранилище
SETTINGS_KEY = "ds_settings"
PRODUCTS_KEY = "ds_products"
PAYMENTS_KEY = "ds_payments"
ORDERS_KEY = "ds_orders"
VOUCHERS_KEY = "ds_vouchers"
AFFILIATES_KEY = "ds_affiliates"

ALL_KEYS = (SETTINGS_KEY, PRODUCTS_KEY, PAYMENTS_KEY, ORDERS_KEY, VOUCHERS_KEY, AFFILIATES_KEY)


# ============ Хранилища ключ -> JSON ============


class MemoryStore:
    """Хранилище в памяти; значения хранятся сериализованными, как в localStorage"""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def read(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def write(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value, ensure_ascii=False)

    def clear(self) -> None:
        self._data = {}


class JsonFileStore:
    """
    Долговременный кэш: один файл <key>.json на коллекцию.
    Запись атомарная (временный файл + os.replace), битый файл читается как отсутствующий.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable local collection %s: %s", key, e)
            return None

    def write(self, key: str, value: Any) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self._path(key))
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def clear(self) -> None:
        for key in ALL_KEYS:
            path = self._path(key)
            if path.exists():
                path.unlink()


# ============ Типизированный репозиторий ============


class LocalRepository:
    """
    Типизированный доступ к локальному кэшу.
    Отсутствующий ключ -> данные из seed; записи, не прошедшие схему, пропускаются.
    """

    def __init__(self, store, seed: Dict[str, Any], config: Optional[Config] = None):
        self.store = store
        self.seed = seed
        self.config = config or Config()

    def _get_collection(self, key: str, schema: Schema, default: Tuple) -> Tuple:
        raw = self.store.read(key)
        if raw is None:
            return default
        if not isinstance(raw, list):
            logger.warning("Local collection %s is not a list, using defaults", key)
            return default
        records, _ = parse_records(schema, raw)
        return records

    def _save_collection(self, key: str, records: Tuple) -> None:
        self.store.write(key, [to_local(r) for r in records])

    def get_settings(self) -> StoreSettings:
        raw = self.store.read(SETTINGS_KEY)
        settings = self.seed["settings"]
        if raw is not None:
            settings = parse_record(SETTINGS, raw).get_or_else(settings)

        # учётные данные из окружения, если в сохранённых настройках их нет
        if not (settings.supabase_url and settings.supabase_key):
            settings = replace(
                settings,
                supabase_url=settings.supabase_url or self.config.supabase_url,
                supabase_key=settings.supabase_key or self.config.supabase_key,
            )
        return settings

    def save_settings(self, settings: StoreSettings) -> None:
        self.store.write(SETTINGS_KEY, to_local(settings))

    def get_products(self) -> Tuple[Product, ...]:
        return self._get_collection(PRODUCTS_KEY, PRODUCT, self.seed["products"])

    def save_products(self, products: Tuple[Product, ...]) -> None:
        self._save_collection(PRODUCTS_KEY, products)

    def get_payments(self) -> Tuple[PaymentMethod, ...]:
        return self._get_collection(PAYMENTS_KEY, PAYMENT_METHOD, self.seed["payment_methods"])

    def save_payments(self, methods: Tuple[PaymentMethod, ...]) -> None:
        self._save_collection(PAYMENTS_KEY, methods)

    def get_vouchers(self) -> Tuple[Voucher, ...]:
        return self._get_collection(VOUCHERS_KEY, VOUCHER, self.seed["vouchers"])

    def save_vouchers(self, vouchers: Tuple[Voucher, ...]) -> None:
        self._save_collection(VOUCHERS_KEY, vouchers)

    def get_affiliates(self) -> Tuple[Affiliate, ...]:
        return self._get_collection(AFFILIATES_KEY, AFFILIATE, self.seed["affiliates"])

    def save_affiliates(self, affiliates: Tuple[Affiliate, ...]) -> None:
        self._save_collection(AFFILIATES_KEY, affiliates)

    def get_orders(self) -> Tuple[Order, ...]:
        return self._get_collection(ORDERS_KEY, ORDER, ())

    def save_orders(self, orders: Tuple[Order, ...]) -> None:
        self._save_collection(ORDERS_KEY, orders)

    def save_order(self, order: Order) -> None:
        """Новый заказ идёт в начало списка"""
        self.save_orders((order,) + self.get_orders())

    def clear(self) -> None:
        self.store.clear()
