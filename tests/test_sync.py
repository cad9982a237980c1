import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import asyncio
import copy
import httpx
import pytest
from dataclasses import replace
from core.codec import SETTINGS_ROW_ID
from core.config import ROOT_DIR
from core.domain import SyncStatus
from core.errors import RemoteError
from core.remote import SupabaseStore
from core.frp import AppContext
from core.ids import is_canonical_id
from core.storage import LocalRepository, MemoryStore
from core.sync import SyncEngine
from core.transforms import load_seed


class FakeRemote:
    """Удалённая база в памяти: таблица -> строки, с управляемыми сбоями"""

    def __init__(self, tables=None, fail_on=()):
        self.tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self.fail_on = set(fail_on)
        self.upserts = []

    async def select_all(self, table):
        if table in self.fail_on:
            raise RemoteError(f'relation "public.{table}" does not exist')
        return copy.deepcopy(self.tables.get(table, []))

    async def upsert_many(self, table, rows):
        if table in self.fail_on:
            raise RemoteError(f'new row violates row-level security policy for table "{table}"')
        self.upserts.append((table, copy.deepcopy(rows)))
        current = {r["id"]: r for r in self.tables.get(table, [])}
        current.update({r["id"]: r for r in rows})
        self.tables[table] = list(current.values())


class GatedRemote(FakeRemote):
    """Каждый вызов ждёт открытия gate"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()

    async def select_all(self, table):
        await self.gate.wait()
        return await super().select_all(table)

    async def upsert_many(self, table, rows):
        await self.gate.wait()
        await super().upsert_many(table, rows)


PRODUCT_ROW = {"id": "11111111-1111-4111-8111-111111111111", "name": "Remote Kit", "price": 50000}


@pytest.fixture
def seed():
    return load_seed(os.path.join(ROOT_DIR, "data", "seed.json"))


@pytest.fixture
def ctx(seed):
    context = AppContext(LocalRepository(MemoryStore(), seed))
    context.replace_settings(replace(context.state.settings, supabase_url="https://x.supabase.co", supabase_key="k"))
    return context


def engine_for(ctx, remote):
    return SyncEngine(ctx, client_factory=lambda url, key: remote)


# ============ Подключение ============


@pytest.mark.asyncio
async def test_no_credentials_means_local_mode(seed):
    ctx = AppContext(LocalRepository(MemoryStore(), seed))
    created = []
    engine = SyncEngine(ctx, client_factory=lambda url, key: created.append(url))

    status = await engine.connect()
    assert status == SyncStatus.DISCONNECTED
    assert created == []
    assert not engine.connected
    assert ctx.state.products == seed["products"]


@pytest.mark.asyncio
async def test_reconnect_builds_new_client(ctx):
    created = []

    def factory(url, key):
        created.append((url, key))
        return FakeRemote()

    engine = SyncEngine(ctx, client_factory=factory)
    await engine.connect()
    await engine.connect("https://other.supabase.co", "k2")
    assert created == [("https://x.supabase.co", "k"), ("https://other.supabase.co", "k2")]
    assert engine.epoch == 2


# ============ Pull ============


@pytest.mark.asyncio
async def test_pull_overwrites_local(ctx):
    remote = FakeRemote({"products": [PRODUCT_ROW]})
    status = await engine_for(ctx, remote).connect()

    assert status == SyncStatus.SYNCED
    assert [p.name for p in ctx.state.products] == ["Remote Kit"]
    assert ctx.repository.get_products() == ctx.state.products


@pytest.mark.asyncio
async def test_empty_remote_collection_empties_local(ctx):
    await engine_for(ctx, FakeRemote({})).connect()
    assert ctx.state.products == ()
    assert ctx.state.vouchers == ()
    assert ctx.state.payment_methods == ()
    assert ctx.repository.get_vouchers() == ()


@pytest.mark.asyncio
async def test_empty_settings_table_keeps_local(ctx):
    await engine_for(ctx, FakeRemote({})).connect()
    assert ctx.state.settings.store_name == "DigiStore Pro"


@pytest.mark.asyncio
async def test_remote_settings_keep_credentials(ctx):
    row = {"id": SETTINGS_ROW_ID, "store_name": "Cloud Store", "whatsapp": "62899"}
    await engine_for(ctx, FakeRemote({"store_settings": [row]})).connect()
    settings = ctx.state.settings
    assert settings.store_name == "Cloud Store"
    assert settings.whatsapp == "62899"
    assert settings.supabase_url == "https://x.supabase.co"
    assert settings.supabase_key == "k"


@pytest.mark.asyncio
async def test_bad_rows_quarantined(ctx):
    remote = FakeRemote({"products": [PRODUCT_ROW, {"id": "bad", "price": "x"}]})
    await engine_for(ctx, remote).connect()
    assert [p.id for p in ctx.state.products] == [PRODUCT_ROW["id"]]


@pytest.mark.asyncio
async def test_pull_failure_keeps_earlier_collections(ctx, seed):
    remote = FakeRemote({"products": [PRODUCT_ROW]}, fail_on={"affiliates"})
    status = await engine_for(ctx, remote).connect()

    assert status == SyncStatus.ERROR
    assert ctx.state.sync_error == 'relation "public.affiliates" does not exist'
    assert [p.name for p in ctx.state.products] == ["Remote Kit"]
    assert ctx.state.vouchers == ()
    # после сбоя дальше не идём
    assert ctx.state.affiliates == seed["affiliates"]
    assert ctx.state.payment_methods == seed["payment_methods"]


@pytest.mark.asyncio
async def test_stale_pull_is_discarded(ctx, seed):
    remote = GatedRemote({"products": [PRODUCT_ROW]})
    engine = engine_for(ctx, remote)

    task = asyncio.create_task(engine.connect())
    await asyncio.sleep(0)
    assert ctx.state.sync_status == SyncStatus.CONNECTING

    engine.disconnect()
    remote.gate.set()
    await task

    assert ctx.state.products == seed["products"]
    assert ctx.state.sync_status == SyncStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_non_json_reply_sets_error(ctx, seed):
    def handler(request):
        return httpx.Response(200, text="<html><body>app shell</body></html>")

    engine = SyncEngine(
        ctx, client_factory=lambda url, key: SupabaseStore(url, key, transport=httpx.MockTransport(handler))
    )
    status = await engine.connect()

    assert status == SyncStatus.ERROR
    assert ctx.state.sync_status == SyncStatus.ERROR
    assert ctx.state.sync_error == "products: invalid JSON response"
    assert ctx.state.products == seed["products"]


# ============ Push ============


@pytest.mark.asyncio
async def test_push_requires_connection(ctx):
    report = await SyncEngine(ctx).push()
    assert not report.ok
    assert report.error == "Remote store is not connected"


@pytest.mark.asyncio
async def test_push_normalizes_ids_and_writes_back(ctx, seed):
    remote = FakeRemote({})
    engine = engine_for(ctx, remote)
    await engine.connect()
    # после pull коллекции пусты, возвращаем локальный каталог
    for name in ("products", "vouchers", "affiliates", "payment_methods"):
        ctx.replace_collection(name, seed[name])

    report = await engine.push()
    assert report.ok
    assert [s.collection for s in report.steps] == [
        "products",
        "vouchers",
        "affiliates",
        "settings",
        "payment_methods",
    ]

    methods = ctx.state.payment_methods
    assert all(is_canonical_id(m.id) for m in methods)
    assert [m.name for m in methods] == [m.name for m in seed["payment_methods"]]
    assert ctx.repository.get_payments() == methods
    pushed_ids = [r["id"] for r in remote.tables["payment_methods"]]
    assert pushed_ids == [m.id for m in methods]

    settings_row = remote.tables["store_settings"][0]
    assert settings_row["id"] == SETTINGS_ROW_ID
    assert "supabase_key" not in settings_row


@pytest.mark.asyncio
async def test_push_twice_is_idempotent(ctx):
    remote = FakeRemote({"payment_methods": []})
    engine = engine_for(ctx, remote)
    engine.client = remote

    await engine.push()
    first_ids = [m.id for m in ctx.state.payment_methods]
    methods = ctx.state.payment_methods

    await engine.push()
    assert ctx.state.payment_methods is methods
    assert [r["id"] for r in remote.tables["payment_methods"]] == first_ids


@pytest.mark.asyncio
async def test_push_stops_at_first_failure(ctx):
    remote = FakeRemote(fail_on={"vouchers"})
    engine = engine_for(ctx, remote)
    engine.client = remote

    report = await engine.push()
    assert not report.ok
    assert [(s.collection, s.ok) for s in report.steps] == [("products", True), ("vouchers", False)]
    assert report.error == 'new row violates row-level security policy for table "vouchers"'
    assert [t for t, _ in remote.upserts] == ["products"]


@pytest.mark.asyncio
async def test_empty_collection_not_pushed(ctx):
    remote = FakeRemote()
    engine = engine_for(ctx, remote)
    engine.client = remote
    ctx.replace_collection("vouchers", ())

    report = await engine.push()
    assert report.ok
    assert "vouchers" not in [s.collection for s in report.steps]


@pytest.mark.asyncio
async def test_concurrent_push_rejected(ctx):
    remote = GatedRemote()
    engine = engine_for(ctx, remote)
    engine.client = remote

    first = asyncio.create_task(engine.push())
    await asyncio.sleep(0)
    second = await engine.push()
    assert second.error == "push already in progress"

    remote.gate.set()
    assert (await first).ok


@pytest.mark.asyncio
async def test_push_aborted_by_reconnect(ctx):
    remote = GatedRemote()
    engine = engine_for(ctx, remote)
    engine.client = remote

    task = asyncio.create_task(engine.push())
    await asyncio.sleep(0)
    engine.disconnect()
    remote.gate.set()
    report = await task

    assert report.steps[0].collection == "products" and report.steps[0].ok
    assert report.steps[-1].error == "superseded by a newer connection"
    assert [t for t, _ in remote.upserts] == ["products"]
