import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple, Union
from urllib.parse import quote as url_quote

from .domain import CartItem, Order, PaymentMethod, StoreSettings, TRIPAY
from .flight import SingleFlight
from .frp import AppContext, CHECKOUT_COMPLETED
from .ftypes import Either, first
from .ids import new_id
from .pricing import CheckoutQuote, compute_checkout, unit_price
from .referral import apply_referral

logger = logging.getLogger(__name__)
sales_logger = logging.getLogger("sales")

CHECKOUT_KEY = "checkout"


@dataclass(frozen=True)
class MessageHandoff:
    """Заказ уходит продавцу сообщением в WhatsApp"""

    url: str
    message: str


@dataclass(frozen=True)
class GatewayRedirect:
    """Автоматический шлюз: сумма и референс для перенаправления"""

    total: int
    reference: str
    order_id: str


Handoff = Union[MessageHandoff, GatewayRedirect]


@dataclass(frozen=True)
class CheckoutResult:
    order: Order
    quote: CheckoutQuote
    handoff: Handoff
    commission: int = 0
    affiliate_name: str = ""


# ============ Сообщение для продавца ============


def rupiah(amount: int) -> str:
    return f"Rp {amount:,}"


def build_order_message(
    settings: StoreSettings,
    items: Tuple[CartItem, ...],
    quote: CheckoutQuote,
    payment_method: PaymentMethod,
    referral_code: Optional[str] = None,
) -> str:
    lines = [f"Halo *{settings.store_name}*, saya ingin memesan:", ""]
    lines += [
        f"{idx}. {item.product.name} x{item.quantity} - {rupiah(unit_price(item.product))}"
        for idx, item in enumerate(items, 1)
    ]
    lines += ["", f"Subtotal: {rupiah(quote.subtotal)}"]
    if quote.voucher is not None:
        lines.append(f"Voucher ({quote.voucher.code}): -{rupiah(quote.discount)}")
    lines.append(f"*Total Akhir: {rupiah(quote.total)}*")
    lines.append(f"Metode Pembayaran: {payment_method.name}")
    if referral_code:
        lines += ["", f"[Internal Info] Ref Code: {referral_code}"]
    lines += ["", "Mohon diproses, terima kasih."]
    return "\n".join(lines)


def whatsapp_link(phone: str, message: str) -> str:
    return f"https://wa.me/{phone}?text={url_quote(message, safe='')}"


def build_handoff(
    settings: StoreSettings,
    items: Tuple[CartItem, ...],
    quote: CheckoutQuote,
    payment_method: PaymentMethod,
    order_id: str,
    referral_code: Optional[str],
) -> Handoff:
    if payment_method.type == TRIPAY:
        return GatewayRedirect(total=quote.total, reference=referral_code or "-", order_id=order_id)
    message = build_order_message(settings, items, quote, payment_method, referral_code)
    return MessageHandoff(url=whatsapp_link(settings.whatsapp, message), message=message)


# ============ Оформление ============


class CheckoutService:
    """
    Оформление заказа.

    Сумма считается один раз, тот же подытог идёт в расчёт комиссии.
    Начисление комиссии, новый заказ и очистка корзины идут одним событием.
    Повторный submit, пока предыдущий ждёт передачи заказа, отклоняется.
    """

    def __init__(self, context: AppContext, flight: Optional[SingleFlight] = None):
        self.context = context
        self.flight = flight or SingleFlight()

    @property
    def busy(self) -> bool:
        return self.flight.in_flight(CHECKOUT_KEY)

    def prepare(self, voucher_code: Optional[str] = None) -> CheckoutQuote:
        state = self.context.state
        return compute_checkout(state.cart, voucher_code, state.vouchers)

    def _complete(
        self,
        payment_method_id: str,
        voucher_code: Optional[str],
        ts: str,
        customer_name: str,
        customer_whatsapp: str,
    ) -> Either[dict, CheckoutResult]:
        state = self.context.state
        if not payment_method_id:
            return Either.left({"error": "Pilih metode pembayaran"})
        if not state.cart:
            return Either.left({"error": "Keranjang kosong"})

        method = first(lambda p: p.id == payment_method_id, state.payment_methods)
        if method.is_none():
            return Either.left({"error": f"Metode pembayaran {payment_method_id} tidak ditemukan"})
        payment_method = method.get_or_else(None)

        items = state.cart
        quote = compute_checkout(items, voucher_code, state.vouchers)
        referral = apply_referral(quote.subtotal, state.referral_code, state.affiliates)

        order = Order(
            id=new_id(),
            items=items,
            subtotal=quote.subtotal,
            discount=quote.discount,
            total=quote.total,
            payment_method=payment_method.name,
            ts=ts,
            voucher_code=quote.voucher.code if quote.voucher else None,
            referral_code=state.referral_code if referral.affiliate else None,
            commission=referral.commission,
            customer_name=customer_name,
            customer_whatsapp=customer_whatsapp,
        )
        handoff = build_handoff(state.settings, items, quote, payment_method, order.id, state.referral_code)

        self.context.publish(CHECKOUT_COMPLETED, {"order": order, "affiliates": referral.affiliates})

        sales_logger.info("Order %s placed: total=%d via %s", order.id, order.total, payment_method.name)
        if referral.affiliate:
            sales_logger.info("Commission of %d added to %s", referral.commission, referral.affiliate_name)

        return Either.right(
            CheckoutResult(
                order=order,
                quote=quote,
                handoff=handoff,
                commission=referral.commission,
                affiliate_name=referral.affiliate_name,
            )
        )

    async def submit(
        self,
        payment_method_id: str,
        voucher_code: Optional[str] = None,
        notify: Optional[Callable[[Handoff], object]] = None,
        ts: Optional[str] = None,
        customer_name: str = "",
        customer_whatsapp: str = "",
    ) -> Either[dict, CheckoutResult]:
        """
        Оформляет заказ и передаёт его во внешний канал через notify.
        Ключ checkout удерживается до завершения notify.
        """
        if not self.flight.try_acquire(CHECKOUT_KEY):
            logger.warning("Checkout submitted while another one is in progress")
            return Either.left({"error": "Pesanan sedang diproses, tunggu sebentar"})
        try:
            result = self._complete(
                payment_method_id,
                voucher_code,
                ts or datetime.now().isoformat(timespec="seconds"),
                customer_name,
                customer_whatsapp,
            )
            if result.is_right and notify is not None:
                outcome = notify(result.value.handoff)
                if inspect.isawaitable(outcome):
                    await outcome
            return result
        finally:
            self.flight.release(CHECKOUT_KEY)
