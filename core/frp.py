import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from functools import reduce
from typing import Callable, Optional, Tuple

from .domain import (
    Affiliate,
    CartItem,
    Event,
    Order,
    PaymentMethod,
    Product,
    StoreSettings,
    SyncStatus,
    User,
    Voucher,
)
from .transforms import add_to_cart, remove_from_cart, set_quantity

# Имена событий
COLLECTION_REPLACED = "COLLECTION_REPLACED"
SETTINGS_REPLACED = "SETTINGS_REPLACED"
CART_ADD = "CART_ADD"
CART_REMOVE = "CART_REMOVE"
CART_SET_QTY = "CART_SET_QTY"
CART_CLEAR = "CART_CLEAR"
REFERRAL_SET = "REFERRAL_SET"
LOGIN = "LOGIN"
LOGOUT = "LOGOUT"
SYNC_STATUS = "SYNC_STATUS"
CHECKOUT_COMPLETED = "CHECKOUT_COMPLETED"
STATE_RESET = "STATE_RESET"

# Коллекции, которые можно заменить через COLLECTION_REPLACED
MANAGED_COLLECTIONS = ("products", "vouchers", "affiliates", "payment_methods")


@dataclass(frozen=True)
class AppState:
    """
    Всё состояние приложения в одном иммутабельном значении.
    Передаётся компонентам явно (через AppContext), глобальных переменных нет.
    """

    settings: StoreSettings
    products: Tuple[Product, ...] = ()
    payment_methods: Tuple[PaymentMethod, ...] = ()
    vouchers: Tuple[Voucher, ...] = ()
    affiliates: Tuple[Affiliate, ...] = ()
    orders: Tuple[Order, ...] = ()
    cart: Tuple[CartItem, ...] = ()
    user: Optional[User] = None
    referral_code: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.DISCONNECTED
    sync_error: Optional[str] = None
    last_event: Optional[str] = None


@dataclass(frozen=True)
class EventBus:
    """
    Иммутабельная шина событий.
    Подписчики — чистые функции (Event, AppState) -> AppState.
    """

    subscribers: Tuple[Tuple[str, Callable], ...] = ()

    def subscribe(self, event_name: str, handler: Callable[[Event, AppState], AppState]) -> "EventBus":
        return EventBus(subscribers=self.subscribers + ((event_name, handler),))

    def publish(self, event: Event, state: AppState) -> AppState:
        handlers = tuple(h for name, h in self.subscribers if name == event.name)
        new_state = reduce(lambda s, h: h(event, s), handlers, state)
        return replace(new_state, last_event=event.name) if handlers else new_state


def create_event(name: str, payload: dict) -> Event:
    return Event(id=str(uuid.uuid4()), ts=datetime.now().isoformat(), name=name, payload=payload)


# ============ Обработчики ============


def handle_collection_replaced(event: Event, state: AppState) -> AppState:
    collection = event.payload["collection"]
    if collection not in MANAGED_COLLECTIONS:
        raise KeyError(f"Unknown collection {collection!r}")
    return replace(state, **{collection: tuple(event.payload["records"])})


def handle_settings_replaced(event: Event, state: AppState) -> AppState:
    return replace(state, settings=event.payload["settings"])


def handle_cart_add(event: Event, state: AppState) -> AppState:
    return replace(state, cart=add_to_cart(state.cart, event.payload["product"], event.payload.get("qty", 1)))


def handle_cart_remove(event: Event, state: AppState) -> AppState:
    return replace(state, cart=remove_from_cart(state.cart, event.payload["product_id"]))


def handle_cart_set_qty(event: Event, state: AppState) -> AppState:
    return replace(state, cart=set_quantity(state.cart, event.payload["product_id"], event.payload["qty"]))


def handle_cart_clear(event: Event, state: AppState) -> AppState:
    return replace(state, cart=())


def handle_referral_set(event: Event, state: AppState) -> AppState:
    return replace(state, referral_code=event.payload.get("code") or None)


def handle_login(event: Event, state: AppState) -> AppState:
    return replace(state, user=event.payload["user"])


def handle_logout(event: Event, state: AppState) -> AppState:
    return replace(state, user=None)


def handle_sync_status(event: Event, state: AppState) -> AppState:
    return replace(state, sync_status=event.payload["status"], sync_error=event.payload.get("error"))


def handle_checkout_completed(event: Event, state: AppState) -> AppState:
    """
    Один переход состояния на весь checkout:
    партнёры с начисленной комиссией, новый заказ первым, пустая корзина.
    """
    return replace(
        state,
        affiliates=tuple(event.payload["affiliates"]),
        orders=(event.payload["order"],) + state.orders,
        cart=(),
    )


def handle_state_reset(event: Event, state: AppState) -> AppState:
    return event.payload["state"]


def create_store_event_bus() -> EventBus:
    bus = EventBus()
    bus = bus.subscribe(COLLECTION_REPLACED, handle_collection_replaced)
    bus = bus.subscribe(SETTINGS_REPLACED, handle_settings_replaced)
    bus = bus.subscribe(CART_ADD, handle_cart_add)
    bus = bus.subscribe(CART_REMOVE, handle_cart_remove)
    bus = bus.subscribe(CART_SET_QTY, handle_cart_set_qty)
    bus = bus.subscribe(CART_CLEAR, handle_cart_clear)
    bus = bus.subscribe(REFERRAL_SET, handle_referral_set)
    bus = bus.subscribe(LOGIN, handle_login)
    bus = bus.subscribe(LOGOUT, handle_logout)
    bus = bus.subscribe(SYNC_STATUS, handle_sync_status)
    bus = bus.subscribe(CHECKOUT_COMPLETED, handle_checkout_completed)
    bus = bus.subscribe(STATE_RESET, handle_state_reset)
    return bus


def initial_state(repository) -> AppState:
    """Состояние из локального кэша (или seed)"""
    return AppState(
        settings=repository.get_settings(),
        products=repository.get_products(),
        payment_methods=repository.get_payments(),
        vouchers=repository.get_vouchers(),
        affiliates=repository.get_affiliates(),
        orders=repository.get_orders(),
    )


def apply_events(bus: EventBus, events: Tuple[Event, ...], state: AppState) -> AppState:
    return reduce(lambda s, e: bus.publish(e, s), events, state)


# ============ Контекст приложения ============


class AppContext:
    """
    Единственный писатель состояния.

    publish() применяет событие и в том же вызове записывает в локальный кэш
    каждую изменившуюся коллекцию, так что после перезагрузки страницы кэш
    совпадает с тем, что видел пользователь.
    """

    # поле состояния -> метод сохранения репозитория
    PERSISTED = (
        ("settings", "save_settings"),
        ("products", "save_products"),
        ("payment_methods", "save_payments"),
        ("vouchers", "save_vouchers"),
        ("affiliates", "save_affiliates"),
        ("orders", "save_orders"),
    )

    def __init__(self, repository, bus: Optional[EventBus] = None, state: Optional[AppState] = None):
        self.repository = repository
        self.bus = bus or create_store_event_bus()
        self._state = state if state is not None else initial_state(repository)

    @property
    def state(self) -> AppState:
        return self._state

    def publish(self, name: str, payload: Optional[dict] = None) -> AppState:
        old = self._state
        new = self.bus.publish(create_event(name, payload or {}), old)
        self._state = new
        self._mirror(old, new)
        return new

    def _mirror(self, old: AppState, new: AppState) -> None:
        for field, saver in self.PERSISTED:
            value = getattr(new, field)
            if value is not getattr(old, field):
                getattr(self.repository, saver)(value)

    # короткие формы для частых событий

    def replace_collection(self, collection: str, records) -> AppState:
        return self.publish(COLLECTION_REPLACED, {"collection": collection, "records": tuple(records)})

    def replace_settings(self, settings: StoreSettings) -> AppState:
        return self.publish(SETTINGS_REPLACED, {"settings": settings})

    def set_sync_status(self, status: SyncStatus, error: Optional[str] = None) -> AppState:
        return self.publish(SYNC_STATUS, {"status": status, "error": error})

    def reset(self) -> AppState:
        """Очистить локальный кэш и вернуться к данным seed"""
        self.repository.clear()
        fresh = initial_state(self.repository)
        self._state = self.bus.publish(create_event(STATE_RESET, {"state": fresh}), self._state)
        return self._state
