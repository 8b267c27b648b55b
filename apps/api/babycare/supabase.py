from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

import httpx
from fastapi import HTTPException

from .db import new_override_id
from .schemas import DayOverride, ScheduleItem

OVERRIDES_TABLE = "day_overrides"


@lru_cache
def _supabase_url() -> str:
    url = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
    if not url:
        raise RuntimeError("Missing SUPABASE_URL for API access.")
    return url.rstrip("/")


@lru_cache
def _service_role_key() -> str:
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if not key:
        raise RuntimeError("Missing SUPABASE_SERVICE_ROLE_KEY for admin access.")
    return key


def _describe_response(resp: httpx.Response) -> str:
    try:
        return resp.text or "<empty response>"
    except httpx.ResponseNotRead:
        return "<unable to read response>"


def _raise_supabase_error(
    resp: httpx.Response,
    action: str,
    *,
    object_label: Optional[str] = None,
) -> None:
    detail = _describe_response(resp)
    label = f" ({object_label})" if object_label else ""
    status = resp.status_code if resp.status_code >= 400 else 500
    raise HTTPException(
        status_code=status,
        detail=f"Supabase {action} failed{label}: status={resp.status_code}, body={detail}",
    )


@dataclass
class SupabaseClient:
    base_url: str
    anon_key: str
    access_token: str
    transport: Optional[httpx.BaseTransport] = None

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{table}"
        with httpx.Client(timeout=15.0, transport=self.transport) as client:
            return client.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(headers),
            )

    def select(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = self.request("GET", table, params=params)
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "select", object_label=f"table={table}")
        return resp.json()

    def upsert(
        self,
        table: str,
        payload: Dict[str, Any],
        *,
        on_conflict: str,
    ) -> List[Dict[str, Any]]:
        resp = self.request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=payload,
            headers={
                "Prefer": "resolution=merge-duplicates,return=representation",
            },
        )
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "upsert", object_label=f"table={table}")
        return resp.json() if resp.content else []

    def update(
        self,
        table: str,
        payload: Dict[str, Any],
        params: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        resp = self.request(
            "PATCH",
            table,
            params=params,
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "update", object_label=f"table={table}")
        return resp.json() if resp.content else []

    def delete(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = self.request("DELETE", table, params=params, headers={"Prefer": "return=representation"})
        if resp.status_code >= 400:
            _raise_supabase_error(resp, "delete", object_label=f"table={table}")
        return resp.json() if resp.content else []


@lru_cache
def get_admin_client() -> SupabaseClient:
    service_role = _service_role_key()
    return SupabaseClient(base_url=_supabase_url(), anon_key=service_role, access_token=service_role)


def _row_to_override(row: Dict[str, Any]) -> DayOverride:
    return DayOverride.model_validate(row)


class SupabaseOverrideStore:
    """Day override store backed by the remote PostgREST ``day_overrides`` table."""

    def __init__(self, client: Optional[SupabaseClient] = None) -> None:
        self._client = client

    @property
    def client(self) -> SupabaseClient:
        if self._client is None:
            self._client = get_admin_client()
        return self._client

    def get(self, baby_id: int, date: str) -> Optional[DayOverride]:
        rows = self.client.select(
            OVERRIDES_TABLE,
            params={
                "select": "id,baby_id,date,source_rule_id,schedule_items,created_at,updated_at",
                "baby_id": f"eq.{baby_id}",
                "date": f"eq.{date}",
                "limit": "1",
            },
        )
        return _row_to_override(rows[0]) if rows else None

    def save(self, baby_id: int, date: str, source_rule_id: str, items: Sequence[ScheduleItem]) -> DayOverride:
        now = datetime.now(tz=timezone.utc).isoformat()
        payload_items = [item.model_dump(mode="json") for item in items]
        existing = self.get(baby_id, date)
        if existing:
            rows = self.client.update(
                OVERRIDES_TABLE,
                {"source_rule_id": source_rule_id, "schedule_items": payload_items, "updated_at": now},
                params={"id": f"eq.{existing.id}"},
            )
        else:
            rows = self.client.upsert(
                OVERRIDES_TABLE,
                {
                    "id": new_override_id(baby_id, date),
                    "baby_id": baby_id,
                    "date": date,
                    "source_rule_id": source_rule_id,
                    "schedule_items": payload_items,
                    "created_at": now,
                    "updated_at": now,
                },
                on_conflict="baby_id,date",
            )
        if rows:
            return _row_to_override(rows[0])
        saved = self.get(baby_id, date)
        if saved is None:
            raise HTTPException(status_code=500, detail="Supabase save returned no day override.")
        return saved

    def delete(self, baby_id: int, date: str) -> bool:
        rows = self.client.delete(
            OVERRIDES_TABLE,
            params={"baby_id": f"eq.{baby_id}", "date": f"eq.{date}"},
        )
        return bool(rows)

    def delete_before(self, cutoff_date: str) -> int:
        rows = self.client.delete(OVERRIDES_TABLE, params={"date": f"lt.{cutoff_date}"})
        return len(rows)
