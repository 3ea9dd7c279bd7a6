from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from .errors import SupabaseError

Payload = Union[Dict[str, Any], List[Dict[str, Any]]]


async def _describe_response(resp: httpx.Response) -> str:
    try:
        return resp.text or "<empty response>"
    except Exception:
        return "<unable to read response>"


async def _raise_supabase_error(
    resp: httpx.Response,
    action: str,
    *,
    object_label: Optional[str] = None,
) -> None:
    detail = await _describe_response(resp)
    label = f" ({object_label})" if object_label else ""
    status = resp.status_code if resp.status_code >= 400 else 500
    raise SupabaseError(f"{action}{label}", status, detail)


def _content_range_total(resp: httpx.Response) -> int:
    # PostgREST answers count=exact with "Content-Range: 0-9/42" (or "*/0").
    header = resp.headers.get("content-range", "")
    _, _, total = header.partition("/")
    try:
        return int(total)
    except ValueError:
        return 0


@dataclass
class SupabaseClient:
    """Thin PostgREST client. Rows go in and come out snake_case keyed."""

    base_url: str
    anon_key: str
    access_token: Optional[str] = None
    token_source: Optional[Callable[[], Optional[str]]] = None
    transport: Optional[httpx.AsyncBaseTransport] = None

    def _bearer(self) -> str:
        token = self.token_source() if self.token_source else None
        return token or self.access_token or self.anon_key

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self._bearer()}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Payload] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            async with httpx.AsyncClient(timeout=15.0, transport=self.transport) as client:
                return await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(headers),
                )
        except httpx.HTTPError as exc:
            raise SupabaseError(f"{method} (table={table})", 503, str(exc)) from exc

    async def select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self.request("GET", table, params=params)
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "select", object_label=f"table={table}")
        return resp.json()

    async def select_one(self, table: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = await self.select(table, {**params, "limit": 1})
        return rows[0] if rows else None

    async def count(self, table: str, params: Dict[str, Any]) -> int:
        resp = await self.request(
            "HEAD",
            table,
            params=params,
            headers={"Prefer": "count=exact"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "count", object_label=f"table={table}")
        return _content_range_total(resp)

    async def insert(
        self,
        table: str,
        payload: Payload,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "POST",
            table,
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "insert", object_label=f"table={table}")
        return resp.json() if resp.content else []

    async def upsert(
        self,
        table: str,
        payload: Payload,
        *,
        on_conflict: str,
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=payload,
            headers={
                "Prefer": "resolution=merge-duplicates,return=representation",
            },
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "upsert", object_label=f"table={table}")
        return resp.json() if resp.content else []

    async def update(
        self,
        table: str,
        payload: Dict[str, Any],
        params: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        resp = await self.request(
            "PATCH",
            table,
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "update", object_label=f"table={table}")
        return resp.json() if resp.content else []

    async def delete(self, table: str, params: Dict[str, Any]) -> None:
        resp = await self.request("DELETE", table, params=params)
        if resp.status_code >= 400:
            await _raise_supabase_error(resp, "delete", object_label=f"table={table}")


def eq(value: Any) -> str:
    return f"eq.{value}"


def in_(values: List[Any]) -> str:
    return "in.(" + ",".join(str(value) for value in values) + ")"
