"""leadsheet configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_SPREADSHEET_ID = "1bbzFwbQ3z3lQGZoo6Y3WfvuBRJXlXp8xrf3LuDEGs1A"


class SyncSettings(BaseSettings):
    spreadsheet_id: str = DEFAULT_SPREADSHEET_ID
    # Rule tables may live in their own spreadsheet; empty = same as spreadsheet_id.
    config_spreadsheet_id: str = ""
    public_api_key: str | None = None

    sheets_api_base: str = "https://sheets.googleapis.com/v4"
    request_timeout_seconds: float = 30.0

    cache_ttl_seconds: int = 15 * 60
    data_dir: str = "~/.leadsheet"

    # Lead tables (the first row of each is the header row)
    leads_range: str = "Leads!A1:ZZ"
    flows_range: str = "LEAD_FLOWS!A1:ZZ"

    # Configuration tables
    legend_range: str = "Legend!A:G"
    stage_rules_range: str = "Stage_Rules!A:F"
    sla_rules_range: str = "SLA_Rules!A:F"
    auto_actions_range: str = "Auto_Actions!A:D"

    default_owner: str = "Unassigned"

    model_config = {"env_prefix": "LEADSHEET_", "env_file": ".env", "extra": "ignore"}

    @property
    def config_sheet_id(self) -> str:
        return self.config_spreadsheet_id.strip() or self.spreadsheet_id

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def public_read_configured(self) -> bool:
        return bool(self.public_api_key and self.public_api_key.strip())

    @property
    def config_ranges(self) -> dict[str, str]:
        return {
            "legends": self.legend_range,
            "stage_rules": self.stage_rules_range,
            "sla_rules": self.sla_rules_range,
            "auto_actions": self.auto_actions_range,
        }

    @property
    def flows_sheet(self) -> str:
        return sheet_name(self.flows_range)


def sheet_name(a1_range: str) -> str:
    """Return the sheet (tab) part of an A1 range like ``Leads!A1:ZZ``."""
    return a1_range.split("!", 1)[0].strip("'")


settings = SyncSettings()
