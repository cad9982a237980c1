from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Dict, Union


Number = Union[int, float]

# Типы ваучеров
FIXED = "FIXED"
PERCENT = "PERCENT"
VOUCHER_TYPES = (FIXED, PERCENT)

# Типы способов оплаты
BANK = "BANK"
E_WALLET = "E-WALLET"
QRIS = "QRIS"
TRIPAY = "TRIPAY"
PAYMENT_TYPES = (BANK, E_WALLET, QRIS, TRIPAY)

# Статусы заказа (переходы вне ядра)
PENDING = "PENDING"
PAID = "PAID"
COMPLETED = "COMPLETED"

# Роли
ADMIN = "ADMIN"
CUSTOMER = "CUSTOMER"
AFFILIATE = "AFFILIATE"


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    category: str
    price: int  # рупии, целое
    description: str = ""
    image: str = ""
    discount_price: Optional[int] = None
    file_url: Optional[str] = None
    is_popular: bool = False


@dataclass(frozen=True)
class CartItem:
    product: Product  # снимок товара на момент добавления
    quantity: int


@dataclass(frozen=True)
class Voucher:
    id: str
    code: str
    type: str  # "FIXED" | "PERCENT"
    value: Number
    is_active: bool = True


@dataclass(frozen=True)
class Affiliate:
    id: str
    name: str
    code: str
    password: str
    commission_rate: Number  # проценты 0..100
    total_earnings: int = 0
    bank_details: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class PaymentMethod:
    id: str
    type: str  # "BANK" | "E-WALLET" | "QRIS" | "TRIPAY"
    name: str
    account_number: str = ""
    account_name: str = ""
    description: str = ""
    logo: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class StoreSettings:
    store_name: str
    address: str = ""
    whatsapp: str = ""
    email: str = ""
    description: str = ""
    logo_url: str = ""
    supabase_url: str = ""
    supabase_key: str = ""
    tripay_api_key: str = ""
    tripay_private_key: str = ""
    tripay_merchant_code: str = ""


@dataclass(frozen=True)
class Order:
    id: str
    items: Tuple[CartItem, ...]
    subtotal: int
    discount: int
    total: int
    payment_method: str
    ts: str
    status: str = PENDING
    voucher_code: Optional[str] = None
    referral_code: Optional[str] = None
    commission: int = 0
    customer_name: str = ""
    customer_whatsapp: str = ""


@dataclass(frozen=True)
class User:
    role: str  # "ADMIN" | "CUSTOMER" | "AFFILIATE"
    name: str
    id: Optional[str] = None


@dataclass(frozen=True)
class Event:
    id: str
    ts: str
    name: str
    payload: Dict


class SyncStatus(str, Enum):
    DISCONNECTED = "DISCONNECTED"  # нет учётных данных
    CONNECTING = "CONNECTING"  # клиент создан, идёт загрузка
    SYNCED = "SYNCED"
    ERROR = "ERROR"
