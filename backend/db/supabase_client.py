"""Minimal Supabase PostgREST client used by backend repositories only."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from shared.errors import BackendUnavailableError


logger = logging.getLogger(__name__)

Query = dict[str, str | int] | list[tuple[str, str | int]]


@dataclass(slots=True)
class SupabaseSettings:
    url: str
    service_role_key: str
    anon_key: str | None = None
    timeout_seconds: float = 10.0


class SupabaseClient:
    def __init__(self, settings: SupabaseSettings) -> None:
        self.settings = settings

    def _api_key(self, use_anon_key: bool) -> str:
        api_key = self.settings.anon_key if use_anon_key else self.settings.service_role_key
        if not api_key:
            raise ValueError("Missing Supabase API key for requested mode")
        return api_key

    def _send(
        self,
        *,
        table: str,
        method: str,
        query: Query | None,
        body: object | None,
        prefer: str,
        use_anon_key: bool,
    ) -> tuple[list[dict[str, Any]], str | None]:
        api_key = self._api_key(use_anon_key)
        url = f"{self.settings.url.rstrip('/')}/rest/v1/{table}"
        if query:
            url = f"{url}?{urlencode(query, doseq=True)}"

        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "Prefer": prefer,
        }
        data: bytes | None = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(body, default=str).encode("utf-8")

        request = Request(url=url, headers=headers, data=data, method=method)
        try:
            with urlopen(request, timeout=self.settings.timeout_seconds) as response:  # noqa: S310 - URL comes from trusted env config
                raw = response.read().decode("utf-8")
                rows = json.loads(raw) if raw.strip() else []
                return rows if isinstance(rows, list) else [rows], response.headers.get("content-range")
        except HTTPError as exc:
            body_text = exc.read().decode("utf-8", errors="replace")[:500] if exc.fp else ""
            if exc.code >= 500:
                logger.warning("supabase_unavailable table=%s method=%s status=%s", table, method, exc.code)
                raise BackendUnavailableError(
                    f"Supabase request failed with status {exc.code}: {body_text}"
                ) from exc
            raise RuntimeError(
                f"Supabase request failed with status {exc.code}: {body_text}"
            ) from exc
        except (URLError, TimeoutError, ConnectionError) as exc:
            logger.warning("supabase_unreachable table=%s method=%s error=%s", table, method, exc)
            raise BackendUnavailableError(f"Supabase is unreachable: {exc}") from exc

    def get_rows(
        self,
        *,
        table: str,
        query: Query,
        with_count: bool,
        use_anon_key: bool = False,
    ) -> tuple[list[dict[str, Any]], int | None]:
        """Fetch rows from PostgREST and optionally parse exact row count."""

        rows, content_range = self._send(
            table=table,
            method="GET",
            query=query,
            body=None,
            prefer="count=exact" if with_count else "return=representation",
            use_anon_key=use_anon_key,
        )
        total: int | None = None
        if with_count and content_range and "/" in content_range:
            _, total_str = content_range.split("/", maxsplit=1)
            if total_str.isdigit():
                total = int(total_str)
        return rows, total

    def post_rows(
        self,
        *,
        table: str,
        payload: dict[str, object] | list[dict[str, object]],
        use_anon_key: bool = False,
        prefer: str = "return=representation",
        query: Query | None = None,
    ) -> list[dict[str, Any]]:
        """Insert one or many rows and return the created representation."""

        rows, _ = self._send(
            table=table,
            method="POST",
            query=query,
            body=payload,
            prefer=prefer,
            use_anon_key=use_anon_key,
        )
        return rows

    def patch_rows(
        self,
        *,
        table: str,
        query: Query,
        payload: dict[str, object],
        use_anon_key: bool = False,
    ) -> list[dict[str, Any]]:
        """Merge ``payload`` into every row matching ``query``."""

        rows, _ = self._send(
            table=table,
            method="PATCH",
            query=query,
            body=payload,
            prefer="return=representation",
            use_anon_key=use_anon_key,
        )
        return rows

    def delete_rows(
        self,
        *,
        table: str,
        query: Query,
        use_anon_key: bool = False,
    ) -> list[dict[str, Any]]:
        """Delete every row matching ``query`` and return the deleted rows."""

        rows, _ = self._send(
            table=table,
            method="DELETE",
            query=query,
            body=None,
            prefer="return=representation",
            use_anon_key=use_anon_key,
        )
        return rows
