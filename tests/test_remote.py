import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import json
import httpx
import pytest
from core.errors import RemoteError
from core.remote import SupabaseStore


def make_store(handler):
    return SupabaseStore("https://demo.supabase.co/", "anon-key", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_select_all():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = request.url
        seen["apikey"] = request.headers["apikey"]
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json=[{"id": "p1"}])

    rows = await make_store(handler).select_all("products")
    assert rows == [{"id": "p1"}]
    assert seen["url"].path == "/rest/v1/products"
    assert seen["url"].params["select"] == "*"
    assert seen["apikey"] == "anon-key"
    assert seen["auth"] == "Bearer anon-key"


@pytest.mark.asyncio
async def test_upsert_many():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["params"] = dict(request.url.params)
        seen["prefer"] = request.headers["prefer"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201)

    await make_store(handler).upsert_many("vouchers", [{"id": "v1", "code": "X"}])
    assert seen["method"] == "POST"
    assert seen["params"] == {"on_conflict": "id"}
    assert "resolution=merge-duplicates" in seen["prefer"]
    assert seen["body"] == [{"id": "v1", "code": "X"}]


@pytest.mark.asyncio
async def test_error_message_passed_through():
    message = 'new row violates row-level security policy for table "products"'

    def handler(request):
        return httpx.Response(401, json={"message": message, "code": "42501"})

    with pytest.raises(RemoteError) as e:
        await make_store(handler).upsert_many("products", [{"id": "p1"}])
    assert e.value.message == message
    assert e.value.kind == "remote"


@pytest.mark.asyncio
async def test_missing_table():
    def handler(request):
        return httpx.Response(404, text="relation does not exist")

    with pytest.raises(RemoteError) as e:
        await make_store(handler).select_all("store_settings")
    assert "404" in e.value.message


@pytest.mark.asyncio
async def test_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RemoteError) as e:
        await make_store(handler).select_all("products")
    assert "connection refused" in e.value.message


@pytest.mark.asyncio
async def test_unexpected_shape():
    def handler(request):
        return httpx.Response(200, json={"rows": []})

    with pytest.raises(RemoteError):
        await make_store(handler).select_all("products")


@pytest.mark.asyncio
async def test_html_page_instead_of_json():
    def handler(request):
        return httpx.Response(200, text="<html><body>app shell</body></html>")

    with pytest.raises(RemoteError) as e:
        await make_store(handler).select_all("products")
    assert e.value.message == "products: invalid JSON response"
