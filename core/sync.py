"""
Синхронизация локального кэша с удалённой базой.

Pull (при подключении): удалённая база является источником истины, каждая коллекция
полностью заменяет локальную и сразу пишется в кэш. Первая ошибка
останавливает цикл; уже загруженные коллекции не откатываются.

Push (только по команде оператора): коллекции выгружаются строго по порядку,
перед выгрузкой id приводятся к каноническому виду и исправленная коллекция
записывается обратно локально. Первая ошибка останавливает выгрузку, уже
выполненные upsert остаются в удалённой базе.

Каждое подключение получает новый номер эпохи; результаты операций, начатых
в старой эпохе (до смены учётных данных), отбрасываются.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .codec import (
    AFFILIATE,
    PAYMENT_METHOD,
    PRODUCT,
    SETTINGS_ROW_ID,
    VOUCHER,
    merge_remote_settings,
    parse_records,
    settings_to_row,
    to_row,
)
from .domain import SyncStatus
from .errors import OperationInProgress, RemoteError
from .flight import SingleFlight
from .frp import AppContext
from .ids import normalize_ids
from .remote import (
    AFFILIATES_TABLE,
    PAYMENTS_TABLE,
    PRODUCTS_TABLE,
    SETTINGS_TABLE,
    VOUCHERS_TABLE,
    RemoteStore,
    SupabaseStore,
)

logger = logging.getLogger(__name__)

# коллекция состояния -> (таблица, схема строк)
COLLECTIONS = {
    "products": (PRODUCTS_TABLE, PRODUCT),
    "vouchers": (VOUCHERS_TABLE, VOUCHER),
    "affiliates": (AFFILIATES_TABLE, AFFILIATE),
    "payment_methods": (PAYMENTS_TABLE, PAYMENT_METHOD),
}

SYNC_ORDER = ("products", "vouchers", "affiliates", "settings", "payment_methods")


@dataclass(frozen=True)
class StepResult:
    collection: str
    ok: bool
    count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class PushReport:
    steps: Tuple[StepResult, ...]

    @property
    def ok(self) -> bool:
        return bool(self.steps) and all(s.ok for s in self.steps)

    @property
    def error(self) -> Optional[str]:
        return next((s.error for s in self.steps if not s.ok), None)


def _pick_settings_row(rows):
    if not rows:
        return None
    return next((r for r in rows if r.get("id") == SETTINGS_ROW_ID), rows[0])


class SyncEngine:
    def __init__(
        self,
        context: AppContext,
        client_factory: Optional[Callable[[str, str], RemoteStore]] = None,
        timeout: float = 15.0,
    ):
        self.context = context
        self.client_factory = client_factory or (lambda url, key: SupabaseStore(url, key, timeout=timeout))
        self.client: Optional[RemoteStore] = None
        self.epoch = 0
        self._flight = SingleFlight()

    @property
    def connected(self) -> bool:
        return self.client is not None

    def _is_current(self, epoch: int, client: RemoteStore) -> bool:
        return epoch == self.epoch and client is self.client

    # ============ Подключение ============

    async def connect(self, url: Optional[str] = None, key: Optional[str] = None) -> SyncStatus:
        """
        (Пере)подключение с учётными данными; по умолчанию из настроек магазина.
        Старый клиент не переиспользуется: всегда создаётся новый.
        """
        settings = self.context.state.settings
        url = settings.supabase_url if url is None else url
        key = settings.supabase_key if key is None else key

        self.epoch += 1
        self.client = None

        if not (url and key):
            self.context.set_sync_status(SyncStatus.DISCONNECTED)
            return SyncStatus.DISCONNECTED

        self.client = self.client_factory(url, key)
        self.context.set_sync_status(SyncStatus.CONNECTING)
        return await self.pull()

    def disconnect(self) -> None:
        self.epoch += 1
        self.client = None
        self.context.set_sync_status(SyncStatus.DISCONNECTED)

    # ============ Pull ============

    async def pull(self) -> SyncStatus:
        client, epoch = self.client, self.epoch
        if client is None:
            return self.context.state.sync_status

        logger.info("Pulling remote state (epoch %d)", epoch)
        for collection in SYNC_ORDER:
            table = SETTINGS_TABLE if collection == "settings" else COLLECTIONS[collection][0]
            try:
                rows = await client.select_all(table)
            except RemoteError as e:
                if not self._is_current(epoch, client):
                    logger.info("Discarding failure of superseded pull (epoch %d)", epoch)
                    return self.context.state.sync_status
                logger.error("Pull of %s failed: %s", table, e.message)
                self.context.set_sync_status(SyncStatus.ERROR, e.message)
                return SyncStatus.ERROR

            if not self._is_current(epoch, client):
                logger.info("Discarding %s from superseded pull (epoch %d)", table, epoch)
                return self.context.state.sync_status

            self._apply_pulled(collection, rows)

        self.context.set_sync_status(SyncStatus.SYNCED)
        logger.info("Remote state pulled (epoch %d)", epoch)
        return SyncStatus.SYNCED

    def _apply_pulled(self, collection: str, rows) -> None:
        if collection == "settings":
            row = _pick_settings_row(rows)
            if row is None:
                # пустая таблица настроек: оставляем локальные
                return
            merged = merge_remote_settings(self.context.state.settings, row)
            if merged.is_left:
                logger.warning("Quarantined store_settings row: %s", merged.value["error"])
                return
            self.context.replace_settings(merged.value)
            return

        _, schema = COLLECTIONS[collection]
        records, _ = parse_records(schema, rows)
        self.context.replace_collection(collection, records)

    # ============ Push ============

    async def push(self) -> PushReport:
        """Выгрузка всех коллекций; одновременно выполняется не больше одной"""
        if self.client is None:
            return PushReport((StepResult("connection", False, error="Remote store is not connected"),))
        try:
            with self._flight.guard("push"):
                return await self._push(self.epoch, self.client)
        except OperationInProgress as e:
            logger.warning("Push requested while another push is running")
            return PushReport((StepResult("push", False, error=e.message),))

    def _rows_for(self, collection: str):
        state = self.context.state
        if collection == "settings":
            return [settings_to_row(state.settings)]

        records = getattr(state, collection)
        if not records:
            return []
        fixed, changed = normalize_ids(records)
        if changed:
            # исправленные id записываем локально до выгрузки
            self.context.replace_collection(collection, fixed)
        _, schema = COLLECTIONS[collection]
        return [to_row(schema, r) for r in fixed]

    async def _push(self, epoch: int, client: RemoteStore) -> PushReport:
        steps = []
        for collection in SYNC_ORDER:
            if not self._is_current(epoch, client):
                steps.append(StepResult(collection, False, error="superseded by a newer connection"))
                break

            rows = self._rows_for(collection)
            if not rows:
                continue

            table = SETTINGS_TABLE if collection == "settings" else COLLECTIONS[collection][0]
            try:
                await client.upsert_many(table, rows)
            except RemoteError as e:
                logger.error("Push of %s failed: %s", table, e.message)
                steps.append(StepResult(collection, False, len(rows), e.message))
                break
            steps.append(StepResult(collection, True, len(rows)))

        report = PushReport(tuple(steps))
        if report.ok:
            logger.info("Pushed %s", ", ".join(f"{s.collection}={s.count}" for s in steps))
        return report
