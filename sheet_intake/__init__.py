"""Template-checked bulk import of spreadsheet tables."""

__version__ = "0.3.0"
