import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from .errors import RemoteError

logger = logging.getLogger(__name__)

# Таблицы удалённой базы
PRODUCTS_TABLE = "products"
VOUCHERS_TABLE = "vouchers"
AFFILIATES_TABLE = "affiliates"
SETTINGS_TABLE = "store_settings"
PAYMENTS_TABLE = "payment_methods"


class RemoteStore(Protocol):
    async def select_all(self, table: str) -> List[Dict[str, Any]]:
        ...

    async def upsert_many(self, table: str, rows: List[Dict[str, Any]]) -> None:
        ...


def _describe(response: httpx.Response) -> str:
    """Текст ошибки PostgREST: поле message, иначе тело ответа"""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}: {response.text[:200]}"


class SupabaseStore:
    """
    Клиент таблиц Supabase (PostgREST) поверх httpx.
    Экземпляр привязан к одной паре учётных данных; при смене данных создаётся новый.
    """

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url.rstrip("/")
        self.key = key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1",
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "apikey": self.key,
                "Authorization": f"Bearer {self.key}",
                "Content-Type": "application/json",
            },
        )

    async def select_all(self, table: str) -> List[Dict[str, Any]]:
        try:
            async with self._client() as c:
                r = await c.get(f"/{table}", params={"select": "*"})
        except httpx.HTTPError as e:
            raise RemoteError(f"{table}: {e}") from e
        if r.is_error:
            raise RemoteError(_describe(r))
        try:
            data = r.json()
        except ValueError as e:
            raise RemoteError(f"{table}: invalid JSON response") from e
        if not isinstance(data, list):
            raise RemoteError(f"{table}: unexpected response shape")
        return data

    async def upsert_many(self, table: str, rows: List[Dict[str, Any]]) -> None:
        try:
            async with self._client() as c:
                r = await c.post(
                    f"/{table}",
                    params={"on_conflict": "id"},
                    json=rows,
                    headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
                )
        except httpx.HTTPError as e:
            raise RemoteError(f"{table}: {e}") from e
        if r.is_error:
            raise RemoteError(_describe(r))
        logger.info("Upserted %d rows into %s", len(rows), table)
