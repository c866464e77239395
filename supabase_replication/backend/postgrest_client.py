"""Async PostgREST client for the Supabase REST API."""

import json
from typing import Any

import httpx
import structlog

from supabase_replication.backend.filters import QueryParams, encode_query, primary_key_query
from supabase_replication.errors import BackendError, BackendUnavailableError
from supabase_replication.models.config import SupabaseConfig

log = structlog.stdlib.get_logger()


class PostgrestClient:
    """Thin wrapper around httpx issuing PostgREST requests for one Supabase project.

    The client is shared by the pull, push and realtime engines. It only knows
    how to send requests and classify failures; query semantics live in the
    engines.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize PostgREST client.

        Args:
            base_url: Supabase project URL
            api_key: API key sent as apikey header and bearer token
            timeout: Request timeout in seconds (ignored if http_client is given)
            http_client: Optional preconfigured httpx.AsyncClient
        """
        self._base_url = base_url.rstrip("/")
        self._rest_url = f"{self._base_url}/rest/v1"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        }
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.AsyncClient(timeout=timeout)
        log.info("postgrest_client_initialized", base_url=self._base_url)

    @classmethod
    def from_config(cls, config: SupabaseConfig) -> "PostgrestClient":
        return cls(base_url=str(config.url), api_key=config.key, timeout=config.timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "PostgrestClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def select(self, table: str, params: QueryParams) -> list[dict[str, Any]]:
        """
        Run a GET query against a table.

        Args:
            table: Table name
            params: PostgREST query parameters

        Returns:
            Rows in the order returned by the backend

        Raises:
            BackendError: If the backend returns an error response
            BackendUnavailableError: If the request could not be sent
        """
        response = await self._request("GET", table, params=params)
        rows = response.json()
        if not isinstance(rows, list):
            raise BackendError(f"Expected a list of rows from {table}", status_code=response.status_code)
        return rows

    async def insert(self, table: str, row: dict[str, Any]) -> None:
        """
        Insert a single row.

        Raises:
            BackendError: With the backend error code, e.g. a duplicate key violation
            BackendUnavailableError: If the request could not be sent
        """
        await self._request("POST", table, body=row, prefer="return=minimal")

    async def update(self, table: str, values: dict[str, Any], filters: QueryParams) -> int | None:
        """
        Update all rows matching the filters.

        Returns:
            Number of affected rows as reported by the backend, None if not reported
        """
        response = await self._request(
            "PATCH", table, params=filters, body=values, prefer="return=minimal,count=exact"
        )
        return parse_content_range_count(response.headers.get("content-range"))

    async def fetch_by_primary_key(
        self, table: str, primary_key: str, value: Any
    ) -> dict[str, Any] | None:
        rows = await self.select(table, primary_key_query(primary_key, value))
        return rows[0] if rows else None

    def table_url(self, table: str, params: QueryParams | None = None) -> str:
        url = f"{self._rest_url}/{table}"
        if params:
            url = f"{url}?{encode_query(params)}"
        return url

    async def _request(
        self,
        method: str,
        table: str,
        params: QueryParams | None = None,
        body: dict[str, Any] | None = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        url = self.table_url(table, params)
        headers = dict(self._headers)
        content: bytes | None = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            content = json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        if prefer:
            headers["Prefer"] = prefer

        log.debug("postgrest_request", method=method, table=table, url=url)

        try:
            response = await self._client.request(method, url, content=content, headers=headers)
        except httpx.TransportError as e:
            log.warning("postgrest_request_failed", method=method, table=table, error=str(e))
            raise BackendUnavailableError(f"{method} {table} failed: {e}") from e

        if response.status_code >= 400:
            error = _parse_error(response)
            log.warning(
                "postgrest_error_response",
                method=method,
                table=table,
                status_code=response.status_code,
                code=error.code,
                error=error.message,
            )
            raise error

        return response


def parse_content_range_count(content_range: str | None) -> int | None:
    """Extract the total count from a ``Content-Range`` header such as ``0-1/1``."""
    if not content_range or "/" not in content_range:
        return None
    total = content_range.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        return None
    return int(total)


def _parse_error(response: httpx.Response) -> BackendError:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        return BackendError(
            message=str(payload.get("message") or response.reason_phrase),
            code=payload.get("code"),
            status_code=response.status_code,
            details=payload.get("details"),
            hint=payload.get("hint"),
        )
    return BackendError(
        message=response.text or response.reason_phrase,
        status_code=response.status_code,
    )
