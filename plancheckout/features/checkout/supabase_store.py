"""
Supabase (PostgREST) user store.

Talks to {SUPABASE_URL}/rest/v1/users over httpx. One instance per API
key: the anon key is subject to row-level security, the service-role key
bypasses it.
"""
import logging
from datetime import datetime
from typing import Dict, Any, Optional, Sequence

import httpx

from plancheckout.features.checkout.store import StoreError

logger = logging.getLogger("plancheckout")

DEFAULT_TIMEOUT_SECONDS = 10.0
REPAIR_RPC = "admin_set_plan_type"


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class SupabaseUserStore:
    """UserStore over the Supabase REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        name: str = "standard",
        table: str = "users",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.name = name
        self.table = table
        self._client = client or httpx.Client(timeout=timeout)
        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def close(self) -> None:
        self._client.close()

    def _params(self, filters: Dict[str, str]) -> Dict[str, str]:
        return {column: f"eq.{value}" for column, value in filters.items()}

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        headers = dict(self._headers)
        headers.update(kwargs.pop("headers", {}))
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{self.name} client {method} {self.table} failed: {e}")
        if response.status_code >= 400:
            raise StoreError(
                f"{self.name} client {method} {self.table} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    def find_one(self, filters: Dict[str, str], columns: Sequence[str]) -> Optional[Dict[str, Any]]:
        params = self._params(filters)
        params["select"] = ",".join(columns)
        params["limit"] = "2"
        response = self._request("GET", f"{self._rest_url}/{self.table}", params=params)
        try:
            rows = response.json()
        except ValueError as e:
            raise StoreError(f"{self.name} client returned invalid JSON: {e}")
        if not isinstance(rows, list) or len(rows) != 1:
            return None
        if not isinstance(rows[0], dict):
            raise StoreError(f"{self.name} client returned a non-object row: {rows[0]!r:.200}")
        return rows[0]

    def update(self, filters: Dict[str, str], patch: Dict[str, Any]) -> None:
        if not filters:
            raise StoreError("refusing unfiltered update on users")
        body = {k: _serialize(v) for k, v in patch.items()}
        self._request(
            "PATCH",
            f"{self._rest_url}/{self.table}",
            params=self._params(filters),
            json=body,
            headers={"Prefer": "return=minimal"},
        )

    def repair_plan_type(self, user_id: str, plan_type: str) -> None:
        self._request(
            "POST",
            f"{self._rest_url}/rpc/{REPAIR_RPC}",
            json={"user_id": user_id, "new_plan_type": plan_type},
        )
