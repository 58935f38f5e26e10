"""Remote tabular store client.

Usage:
    from leadsheet.api import SheetsClient, SheetsConfig

    async with SheetsClient(SheetsConfig(sheet_id, access_token=token)) as sheets:
        tables = await sheets.batch_get(["Leads!A1:ZZ"])
"""

from .client import (
    SheetsAuthError,
    SheetsClient,
    SheetsConfig,
    SheetsError,
    SheetsRateLimitError,
    column_letter,
)

__all__ = [
    "SheetsAuthError",
    "SheetsClient",
    "SheetsConfig",
    "SheetsError",
    "SheetsRateLimitError",
    "column_letter",
]
