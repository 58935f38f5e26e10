"""leadsheet - spreadsheet-backed lead pipeline sync engine and workflow rules."""

__version__ = "0.3.0"
