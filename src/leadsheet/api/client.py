"""Sheets API Client - async wrapper for the spreadsheet values endpoints.

Supports two credentials:
1. OAuth access token (read/write, the authenticated tier)
2. Public API key (read-only fallback tier)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4"

VALUE_INPUT_OPTION = "USER_ENTERED"
VALUE_RENDER_OPTION = "UNFORMATTED_VALUE"


class SheetsError(Exception):
    """Base exception for remote store errors."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class SheetsAuthError(SheetsError):
    """Missing, invalid or insufficient credentials."""

    pass


class SheetsRateLimitError(SheetsError):
    """Quota or rate limit exceeded."""

    pass


def column_letter(index: int) -> str:
    """Zero-based column index -> A1 column letters (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"column index must be >= 0, got {index}")
    letters = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def _quote_range(a1_range: str) -> str:
    return quote(a1_range, safe="!:$'")


@dataclass
class SheetsConfig:
    """Remote store addressing and credentials."""

    spreadsheet_id: str
    access_token: str | None = None
    api_key: str | None = None

    @property
    def read_only(self) -> bool:
        return not self.access_token

    def to_dict(self) -> dict[str, Any]:
        return {
            "spreadsheet_id": self.spreadsheet_id,
            "access_token": (self.access_token[:12] + "...") if self.access_token else None,
            "api_key": "set" if self.api_key else None,
            "read_only": self.read_only,
        }


class SheetsClient:
    """Spreadsheet values client.

    Usage:
        async with SheetsClient(SheetsConfig(sheet_id, access_token=token)) as sheets:
            tables = await sheets.batch_get(["Leads!A1:ZZ", "LEAD_FLOWS!A1:ZZ"])
            await sheets.append_row("Leads!A1", ["LD-2025-004", "Sarah"])
    """

    def __init__(
        self,
        config: SheetsConfig,
        base_url: str = SHEETS_API_BASE,
        timeout: float = 30.0,
    ):
        if not config.access_token and not config.api_key:
            raise SheetsAuthError("No access token or public API key configured")

        self.config = config
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def read_only(self) -> bool:
        return self.config.read_only

    async def __aenter__(self) -> "SheetsClient":
        self._ensure_client()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.config.access_token:
                headers["Authorization"] = f"Bearer {self.config.access_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _values_path(self, suffix: str = "") -> str:
        return f"/spreadsheets/{self.config.spreadsheet_id}/values{suffix}"

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | list | None = None,
        json: dict | None = None,
    ) -> dict[str, Any]:
        """Make an API request with error handling."""
        if method != "GET" and self.read_only:
            raise SheetsAuthError("Write attempted with a read-only credential")

        if self.config.api_key and not self.config.access_token:
            if isinstance(params, list):
                params = [*params, ("key", self.config.api_key)]
            else:
                params = {**(params or {}), "key": self.config.api_key}

        client = self._ensure_client()
        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
            )
        except httpx.HTTPError as e:
            raise SheetsError(f"Transport error: {e}") from e

        if response.status_code in (401, 403):
            raise SheetsAuthError(
                "Invalid credential or access denied",
                response.status_code,
                _safe_json(response),
            )

        if response.status_code == 429:
            raise SheetsRateLimitError(
                "Rate limit exceeded. Wait and retry.",
                429,
                _safe_json(response),
            )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SheetsError(
                f"API error: {e.response.status_code}",
                e.response.status_code,
                _safe_json(e.response),
            ) from e

        return _safe_json(response) or {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def batch_get(self, ranges: list[str]) -> dict[str, list[list[Any]]]:
        """Fetch several ranges in one call. Keys are the requested ranges."""
        params: list[tuple[str, str]] = [("ranges", r) for r in ranges]
        params.append(("valueRenderOption", VALUE_RENDER_OPTION))
        result = await self._request("GET", self._values_path(":batchGet"), params=params)

        value_ranges = result.get("valueRanges", []) or []
        tables: dict[str, list[list[Any]]] = {r: [] for r in ranges}
        # Response ranges are normalized by the server, so match by position.
        for requested, value_range in zip(ranges, value_ranges):
            tables[requested] = value_range.get("values", []) or []
        return tables

    async def get_range(self, a1_range: str) -> list[list[Any]]:
        result = await self._request(
            "GET",
            self._values_path(f"/{_quote_range(a1_range)}"),
            params={"valueRenderOption": VALUE_RENDER_OPTION},
        )
        return result.get("values", []) or []

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append_row(self, a1_range: str, row: list[Any]) -> dict[str, Any]:
        """Append one row after the last row of the table at ``a1_range``."""
        return await self._request(
            "POST",
            self._values_path(f"/{_quote_range(a1_range)}:append"),
            params={"valueInputOption": VALUE_INPUT_OPTION, "insertDataOption": "INSERT_ROWS"},
            json={"values": [row]},
        )

    async def update_row(self, sheet: str, row_index: int, row: list[Any]) -> dict[str, Any]:
        """Overwrite the full row at 1-based ``row_index`` of ``sheet``."""
        if row_index < 1:
            raise ValueError(f"row_index must be >= 1, got {row_index}")
        last = column_letter(max(len(row), 1) - 1)
        a1_range = f"{sheet}!A{row_index}:{last}{row_index}"
        return await self.update_range(a1_range, [row])

    async def update_range(self, a1_range: str, rows: list[list[Any]]) -> dict[str, Any]:
        return await self._request(
            "PUT",
            self._values_path(f"/{_quote_range(a1_range)}"),
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"range": a1_range, "values": rows},
        )

    async def clear_range(self, a1_range: str) -> dict[str, Any]:
        return await self._request("POST", self._values_path(f"/{_quote_range(a1_range)}:clear"))

    async def update_cells(self, sheet: str, row_index: int, cells: dict[int, Any]) -> dict[str, Any]:
        """Sparse update of individual cells on one row (column index -> value)."""
        data = [
            {"range": f"{sheet}!{column_letter(col)}{row_index}", "values": [[value]]}
            for col, value in sorted(cells.items())
            if col >= 0
        ]
        if not data:
            return {}
        return await self._request(
            "POST",
            self._values_path(":batchUpdate"),
            json={"valueInputOption": VALUE_INPUT_OPTION, "data": data},
        )


def _safe_json(response: httpx.Response) -> dict | None:
    if not response.content:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
