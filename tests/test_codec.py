import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import pytest
from core.codec import (
    AFFILIATE,
    ORDER,
    PAYMENT_METHOD,
    PRODUCT,
    SETTINGS,
    SETTINGS_ROW_ID,
    VOUCHER,
    merge_remote_settings,
    parse_record,
    parse_records,
    settings_to_row,
    to_local,
    to_row,
)
from core.domain import CartItem, Order, Product, StoreSettings
from core.pricing import compute_checkout


# ============ Разбор записей ============


def test_product_row_parsed():
    result = parse_record(
        PRODUCT,
        {"id": "p1", "name": "Kit", "price": "150000", "discount_price": 0, "is_popular": "true"},
    )
    assert result.is_right
    product = result.value
    assert product.price == 150000
    assert product.discount_price is None
    assert product.is_popular is True
    assert product.category == ""


@pytest.mark.parametrize(
    "row",
    [
        {"name": "no id", "price": 1},
        {"id": "p1", "price": 1},
        {"id": "p1", "name": "x", "price": "abc"},
        {"id": "p1", "name": "x", "price": True},
        "not a dict",
    ],
)
def test_bad_product_rows_rejected(row):
    assert parse_record(PRODUCT, row).is_left


def test_voucher_type_and_code_canonical():
    voucher = parse_record(VOUCHER, {"id": "v1", "code": " diskon10", "type": "percent", "value": "10"}).value
    assert voucher.code == "DISKON10"
    assert voucher.type == "PERCENT"
    assert voucher.value == 10
    assert parse_record(VOUCHER, {"id": "v1", "code": "X", "type": "HALF", "value": 1}).is_left


def test_payment_type_validated():
    assert parse_record(PAYMENT_METHOD, {"id": "1", "type": "e-wallet", "name": "DANA"}).value.type == "E-WALLET"
    assert parse_record(PAYMENT_METHOD, {"id": "1", "type": "CASH", "name": "Cash"}).is_left


def test_parse_records_quarantines_bad_rows():
    rows = [
        {"id": "p1", "name": "A", "price": 1000},
        {"id": "p2", "price": 1000},
        {"id": "p3", "name": "C", "price": 3000},
    ]
    accepted, rejected = parse_records(PRODUCT, rows)
    assert [p.id for p in accepted] == ["p1", "p3"]
    assert len(rejected) == 1
    assert rejected[0]["row"] == rows[1]
    assert "name" in rejected[0]["error"]


def test_parse_records_of_nothing():
    assert parse_records(PRODUCT, None) == ((), ())


# ============ Сериализация ============


def test_order_local_round_trip():
    product = Product(id="p1", name="Kit", category="Design", price=1000)
    order = Order(
        id="o1",
        items=(CartItem(product, 2),),
        subtotal=2000,
        discount=0,
        total=2000,
        payment_method="BCA",
        ts="2026-01-01T10:00:00",
        referral_code="PARTNER1",
        commission=200,
    )
    data = to_local(order)
    assert data["items"][0]["product"]["name"] == "Kit"
    assert parse_record(ORDER, data).value == order


def test_settings_row_excludes_credentials():
    settings = StoreSettings(store_name="Toko", supabase_url="https://x.supabase.co", supabase_key="secret")
    row = settings_to_row(settings)
    assert row["id"] == SETTINGS_ROW_ID
    assert row["store_name"] == "Toko"
    assert "supabase_url" not in row
    assert "supabase_key" not in row
    assert "supabase_key" in to_local(settings)


def test_merge_remote_settings_keeps_local_credentials():
    local = StoreSettings(store_name="Lokal", whatsapp="62811", supabase_url="u", supabase_key="k")
    merged = merge_remote_settings(local, {"id": SETTINGS_ROW_ID, "store_name": "Remote", "supabase_key": "evil"})
    assert merged.is_right
    settings = merged.value
    assert settings.store_name == "Remote"
    # удалённая строка без whatsapp перезаписывает локальное значение
    assert settings.whatsapp == ""
    assert settings.supabase_url == "u"
    assert settings.supabase_key == "k"


def test_to_row_for_product():
    product = Product(id="p1", name="Kit", category="Design", price=1000, discount_price=900)
    row = to_row(PRODUCT, product)
    assert row["discount_price"] == 900
    assert set(row) == {f.name for f in PRODUCT.fields}
    assert SETTINGS.fields[-1].remote


# ============ Инварианты сущностей ============


@pytest.mark.parametrize(
    "row",
    [
        {"id": "p1", "name": "Kit", "price": 0},
        {"id": "p1", "name": "Kit", "price": -1000},
        {"id": "p1", "name": "Kit", "price": 1000, "discount_price": 5000},
        {"id": "p1", "name": "Kit", "price": 1000, "discount_price": 1000},
        {"id": "p1", "name": "Kit", "price": 1000, "discount_price": -10},
    ],
)
def test_product_invariants(row):
    assert parse_record(PRODUCT, row).is_left


@pytest.mark.parametrize(
    "row",
    [
        {"id": "v1", "code": "MINUS", "type": "FIXED", "value": -500},
        {"id": "v1", "code": "NOL", "type": "FIXED", "value": "0"},
        {"id": "v1", "code": "BESAR", "type": "PERCENT", "value": 150},
    ],
)
def test_voucher_invariants(row):
    assert parse_record(VOUCHER, row).is_left


@pytest.mark.parametrize(
    "row",
    [
        {"id": "a1", "name": "A", "code": "A1", "password": "x", "commission_rate": 120},
        {"id": "a1", "name": "A", "code": "A1", "password": "x", "commission_rate": -1},
        {"id": "a1", "name": "A", "code": "A1", "password": "x", "commission_rate": 10, "total_earnings": -5},
    ],
)
def test_affiliate_invariants(row):
    assert parse_record(AFFILIATE, row).is_left


def test_invalid_remote_voucher_never_reaches_pricing():
    rows = [
        {"id": "v1", "code": "MINUS", "type": "FIXED", "value": -500},
        {"id": "v2", "code": "OK", "type": "PERCENT", "value": 100},
    ]
    vouchers, rejected = parse_records(VOUCHER, rows)
    assert [v.code for v in vouchers] == ["OK"]
    assert "value must be positive" in rejected[0]["error"]

    cart = (CartItem(Product(id="p1", name="Kit", category="", price=5000), 1),)
    quote = compute_checkout(cart, "MINUS", vouchers)
    assert (quote.discount, quote.total, quote.voucher_invalid) == (0, 5000, True)
    assert compute_checkout(cart, "OK", vouchers).total == 0
