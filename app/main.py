import sys
import os
import asyncio
from dataclasses import replace

import streamlit as st

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.checkout import CheckoutService, GatewayRedirect, MessageHandoff, rupiah
from core.config import Config
from core.domain import ADMIN, AFFILIATE, FIXED, PAYMENT_TYPES, PERCENT, TRIPAY, SyncStatus
from core.frp import AppContext
from core.logger import setup_logging
from core.pricing import unit_price
from core.service import CatalogService, SessionService
from core.storage import JsonFileStore, LocalRepository
from core.sync import SyncEngine
from core.transforms import by_category, cart_count, categories_of, load_seed, popular_only
from Admin_Service.report import (
    affiliate_leaderboard,
    category_counts,
    dashboard_summary,
    orders_by_status,
    voucher_usage,
)


# ============ Ресурсы процесса ============
@st.cache_resource
def get_config() -> Config:
    config = Config.from_env()
    setup_logging(config.log_dir, config.log_level)
    return config


@st.cache_data
def get_seed(path: str):
    return load_seed(path)


config = get_config()

st.set_page_config(page_title="DigiStore", page_icon="⚡", layout="wide")


# ============ Состояние сессии ============
if "ctx" not in st.session_state:
    repository = LocalRepository(JsonFileStore(config.data_dir), get_seed(config.seed_path), config)
    ctx = AppContext(repository)
    st.session_state.ctx = ctx
    st.session_state.engine = SyncEngine(ctx, timeout=config.remote_timeout)
    st.session_state.checkout = CheckoutService(ctx)
    st.session_state.catalog = CatalogService(ctx)
    st.session_state.session = SessionService(ctx, config)
    # первичная загрузка из удалённой базы (если заданы учётные данные)
    asyncio.run(st.session_state.engine.connect())

ctx: AppContext = st.session_state.ctx
engine: SyncEngine = st.session_state.engine
checkout: CheckoutService = st.session_state.checkout
catalog: CatalogService = st.session_state.catalog
session: SessionService = st.session_state.session

session.capture_referral(st.query_params)


def show_either(result, success: str) -> bool:
    if result.is_left:
        st.error(result.value["error"])
        return False
    st.success(success)
    return True


# ============ Витрина ============
def page_store():
    state = ctx.state
    st.title(f"⚡ {state.settings.store_name}")
    st.caption(state.settings.description)

    if state.referral_code:
        st.info(f"🤝 Referral Code aktif: **{state.referral_code}**")

    category = st.radio("Kategori", categories_of(state.products), horizontal=True)
    products = tuple(filter(by_category(category), state.products))
    if st.checkbox("🔥 Hanya produk populer"):
        products = tuple(filter(popular_only(), products))

    if not products:
        st.warning("Belum ada produk.")
        return

    for p in products:
        with st.container(border=True):
            cols = st.columns([1, 4, 2, 2])
            with cols[0]:
                if p.image:
                    st.image(p.image, width=90)
            with cols[1]:
                st.markdown(f"**{p.name}** {'🔥' if p.is_popular else ''}")
                st.caption(f"{p.category} · {p.description}")
            with cols[2]:
                if p.discount_price is not None:
                    st.markdown(f"~~{rupiah(p.price)}~~  \n**{rupiah(p.discount_price)}**")
                else:
                    st.markdown(f"**{rupiah(p.price)}**")
            with cols[3]:
                if st.button("➕ Keranjang", key=f"add_{p.id}"):
                    session.add_to_cart(p)
                    st.toast(f"✅ {p.name}")


# ============ Корзина и оформление ============
def page_cart():
    state = ctx.state
    st.header("🛒 Keranjang")

    if not state.cart:
        st.info("Keranjang kosong.")
        return

    for item in state.cart:
        cols = st.columns([5, 2, 2, 1])
        cols[0].write(f"**{item.product.name}**")
        qty = cols[1].number_input(
            "Qty", min_value=0, value=item.quantity, key=f"qty_{item.product.id}", label_visibility="collapsed"
        )
        if qty != item.quantity:
            session.set_quantity(item.product.id, int(qty))
            st.rerun()
        cols[2].write(rupiah(unit_price(item.product) * item.quantity))
        if cols[3].button("🗑️", key=f"rm_{item.product.id}"):
            session.remove_from_cart(item.product.id)
            st.rerun()

    st.divider()
    voucher_code = st.text_input("Kode voucher?", key="voucher_code").upper()
    quote = checkout.prepare(voucher_code)
    if quote.voucher_invalid:
        st.warning("Voucher tidak valid")
    elif quote.voucher is not None:
        st.success(f"Voucher {quote.voucher.code} digunakan!")

    st.write(f"Subtotal: {rupiah(quote.subtotal)}")
    if quote.voucher is not None:
        st.write(f"Diskon: -{rupiah(quote.discount)}")
    st.markdown(f"### Total: {rupiah(quote.total)}")

    methods = tuple(filter(lambda m: m.is_active, state.payment_methods))
    labels = {m.id: f"{m.name} ({m.type})" for m in methods}
    method_id = st.radio("Metode pembayaran", list(labels), format_func=labels.get, index=None)
    selected = next((m for m in methods if m.id == method_id), None)
    if selected is not None and selected.account_number:
        st.caption(f"{selected.account_number} a.n. {selected.account_name}")

    if state.referral_code:
        st.caption(f"🤝 Referral Code aktif: {state.referral_code}")

    label = "Bayar via Tripay" if selected is not None and selected.type == TRIPAY else "Konfirmasi via WhatsApp"
    if st.button(label, type="primary", use_container_width=True, disabled=checkout.busy):
        result = asyncio.run(checkout.submit(method_id or "", voucher_code))
        if result.is_left:
            st.error(result.value["error"])
            return
        handoff = result.value.handoff
        if isinstance(handoff, GatewayRedirect):
            st.info(f"[TRIPAY] Redirecting...  \nTotal: {rupiah(handoff.total)}  \nRef: {handoff.reference}")
        elif isinstance(handoff, MessageHandoff):
            st.link_button("📲 Buka WhatsApp", handoff.url)
            st.code(handoff.message)
        st.balloons()


# ============ Вход ============
def page_login():
    st.header("🔑 Login")
    with st.form("login"):
        username = st.text_input("Username / Kode Affiliate")
        password = st.text_input("Password", type="password")
        if st.form_submit_button("Masuk"):
            result = session.login(username, password)
            if show_either(result, "Login berhasil"):
                st.rerun()


# ============ Админка ============
def page_admin_dashboard():
    st.header("📊 Dashboard")
    summary = dashboard_summary(ctx.state)
    cols = st.columns(4)
    cols[0].metric("Produk", summary["products"])
    cols[1].metric("Voucher Aktif", summary["active_vouchers"])
    cols[2].metric("Partner Aktif", summary["active_affiliates"])
    cols[3].metric("Pesanan", summary["orders"])
    st.metric("Total Komisi Partner", rupiah(summary["total_commission"]))

    if summary["sync_status"] == SyncStatus.SYNCED.value:
        st.success("☁️ Terhubung ke database cloud")
    elif summary["sync_status"] == SyncStatus.ERROR.value:
        st.error(f"☁️ Gagal mengambil data cloud: {summary['sync_error']}")
    else:
        st.warning("💾 Mode lokal")

    st.subheader("🏆 Partner")
    st.table(affiliate_leaderboard(ctx.state.affiliates, k=10))

    cols = st.columns(3)
    with cols[0]:
        st.subheader("🧾 Pesanan")
        st.metric("Omzet", rupiah(summary["revenue"]))
        st.json(orders_by_status(ctx.state.orders))
    with cols[1]:
        st.subheader("🎟️ Pemakaian Voucher")
        st.json(voucher_usage(ctx.state.orders))
    with cols[2]:
        st.subheader("📦 Kategori")
        st.bar_chart({"jumlah": category_counts(ctx.state.products)})


def page_admin_products():
    st.header("📦 Produk")
    for p in ctx.state.products:
        cols = st.columns([5, 2, 1])
        cols[0].write(f"**{p.name}** · {p.category}")
        cols[1].write(rupiah(unit_price(p)))
        if cols[2].button("🗑️", key=f"del_p_{p.id}"):
            catalog.delete("products", p.id)
            st.rerun()

    with st.form("product_form", clear_on_submit=True):
        st.subheader("Tambah / Edit Produk")
        ids = {"": "(baru)", **{p.id: p.name for p in ctx.state.products}}
        product_id = st.selectbox("Produk", list(ids), format_func=ids.get)
        draft = {
            "id": product_id,
            "name": st.text_input("Nama"),
            "category": st.text_input("Kategori"),
            "description": st.text_area("Deskripsi"),
            "price": st.number_input("Harga", min_value=0, step=1000),
            "discount_price": st.number_input("Harga diskon (0 = tidak ada)", min_value=0, step=1000),
            "image": st.text_input("URL gambar"),
            "file_url": st.text_input("Link file digital"),
            "is_popular": st.checkbox("Populer"),
        }
        if st.form_submit_button("Simpan"):
            draft = {k: v for k, v in draft.items() if k in ("id", "is_popular") or v not in ("", None, 0)}
            show_either(catalog.upsert("products", draft), "Produk disimpan")


def page_admin_vouchers():
    st.header("🎟️ Voucher")
    for v in ctx.state.vouchers:
        cols = st.columns([3, 2, 2, 1])
        cols[0].write(f"**{v.code}**")
        cols[1].write(f"{v.value}%" if v.type == PERCENT else rupiah(int(v.value)))
        cols[2].write("✅ aktif" if v.is_active else "⛔ non-aktif")
        if cols[3].button("🗑️", key=f"del_v_{v.id}"):
            catalog.delete("vouchers", v.id)
            st.rerun()

    with st.form("voucher_form", clear_on_submit=True):
        st.subheader("Buat Voucher")
        draft = {
            "code": st.text_input("Kode (misal: DISC10)"),
            "type": st.selectbox("Tipe", [FIXED, PERCENT]),
            "value": st.number_input("Nilai", min_value=0.0),
            "is_active": st.checkbox("Aktif", value=True),
        }
        if st.form_submit_button("Simpan"):
            show_either(catalog.upsert("vouchers", draft), "Voucher disimpan")


def page_admin_affiliates():
    st.header("🤝 Affiliate")
    for a in ctx.state.affiliates:
        cols = st.columns([3, 2, 2, 2, 1])
        cols[0].write(f"**{a.name}** ({a.code})")
        cols[1].write(f"{a.commission_rate}%")
        cols[2].write(rupiah(a.total_earnings))
        cols[3].write(a.bank_details)
        if cols[4].button("🗑️", key=f"del_a_{a.id}"):
            catalog.delete("affiliates", a.id)
            st.rerun()

    with st.form("affiliate_form", clear_on_submit=True):
        st.subheader("Tambah Partner")
        draft = {
            "name": st.text_input("Nama"),
            "code": st.text_input("Kode"),
            "password": st.text_input("Password"),
            "commission_rate": st.number_input("Komisi (%)", min_value=0.0, max_value=100.0, value=10.0),
            "bank_details": st.text_input("Rekening"),
        }
        if st.form_submit_button("Simpan"):
            show_either(catalog.upsert("affiliates", draft), "Partner disimpan")


def page_admin_settings():
    st.header("⚙️ Pengaturan Toko")
    settings = ctx.state.settings
    with st.form("settings_form"):
        updated = replace(
            settings,
            store_name=st.text_input("Nama toko", settings.store_name),
            address=st.text_input("Alamat", settings.address),
            whatsapp=st.text_input("WhatsApp", settings.whatsapp),
            email=st.text_input("Email", settings.email),
            description=st.text_area("Deskripsi", settings.description),
            logo_url=st.text_input("Logo URL", settings.logo_url),
            tripay_api_key=st.text_input("Tripay API key", settings.tripay_api_key, type="password"),
            tripay_private_key=st.text_input("Tripay private key", settings.tripay_private_key, type="password"),
            tripay_merchant_code=st.text_input("Tripay merchant code", settings.tripay_merchant_code),
        )
        if st.form_submit_button("Simpan"):
            catalog.save_settings(updated)
            st.success("Pengaturan disimpan")

    st.subheader("💳 Metode Pembayaran")
    for m in ctx.state.payment_methods:
        cols = st.columns([3, 2, 3, 1])
        cols[0].write(f"**{m.name}**")
        cols[1].write(m.type)
        cols[2].write(m.account_number)
        if cols[3].button("🗑️", key=f"del_m_{m.id}"):
            catalog.delete("payment_methods", m.id)
            st.rerun()

    with st.form("payment_form", clear_on_submit=True):
        draft = {
            "type": st.selectbox("Tipe", PAYMENT_TYPES),
            "name": st.text_input("Nama"),
            "account_number": st.text_input("Nomor rekening"),
            "account_name": st.text_input("Atas nama"),
            "description": st.text_input("Keterangan"),
        }
        if st.form_submit_button("Tambah"):
            show_either(catalog.upsert("payment_methods", draft), "Metode pembayaran disimpan")


def page_admin_database():
    st.header("☁️ Database")
    state = ctx.state
    st.write(f"Status: **{state.sync_status.value}**")
    if state.sync_error:
        st.error(state.sync_error)

    with st.form("credentials"):
        url = st.text_input("Supabase URL", state.settings.supabase_url, type="password")
        key = st.text_input("Anon Key", state.settings.supabase_key, type="password")
        if st.form_submit_button("Simpan & Hubungkan"):
            catalog.save_settings(replace(state.settings, supabase_url=url, supabase_key=key))
            status = asyncio.run(engine.connect(url, key))
            st.info(f"Status: {status.value}")

    st.warning("Upload akan menimpa data produk, voucher, partner, pengaturan dan pembayaran di cloud.")
    if st.button("⬆️ Upload data lokal ke cloud", disabled=not engine.connected):
        with st.spinner("Mengupload..."):
            report = asyncio.run(engine.push())
        for step in report.steps:
            if step.ok:
                st.success(f"✅ {step.collection}: {step.count}")
            else:
                st.error(f"❌ Gagal upload {step.collection}: {step.error}")

    st.divider()
    if st.button("🧹 Reset data lokal"):
        catalog.reset_local_data()
        st.rerun()


# ============ Кабинет партнёра ============
def page_affiliate():
    affiliate = session.current_affiliate()
    if affiliate is None:
        st.warning("Data afiliasi tidak ditemukan.")
        return
    st.header(f"💼 {affiliate.name}")
    st.code(session.referral_link(affiliate))
    cols = st.columns(2)
    cols[0].metric("Total Komisi", rupiah(affiliate.total_earnings))
    cols[1].metric("Rate Komisi", f"{affiliate.commission_rate}%")
    st.caption(f"Rekening: {affiliate.bank_details}")


# ============ Навигация ============
PAGES = {"🏪 Toko": page_store, "🛒 Keranjang": page_cart}
user = ctx.state.user
if user is None:
    PAGES["🔑 Login"] = page_login
elif user.role == ADMIN:
    PAGES.update(
        {
            "📊 Dashboard": page_admin_dashboard,
            "📦 Produk": page_admin_products,
            "🎟️ Voucher": page_admin_vouchers,
            "🤝 Affiliate": page_admin_affiliates,
            "⚙️ Pengaturan": page_admin_settings,
            "☁️ Database": page_admin_database,
        }
    )
elif user.role == AFFILIATE:
    PAGES["💼 Akun Partner"] = page_affiliate

with st.sidebar:
    st.header(ctx.state.settings.store_name)
    page = st.radio("Menu", list(PAGES), label_visibility="collapsed")
    st.caption(f"🛒 {cart_count(ctx.state.cart)} item")
    if user is not None:
        st.caption(f"👤 {user.name} ({user.role})")
        if st.button("Logout"):
            session.logout()
            st.rerun()

PAGES[page]()
