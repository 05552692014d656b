"""
sources.py — Forward-only row cursors over uploaded tables.

Every source yields rows as lists of strings and never seeks backward:

    with open_row_source("upload.xlsx") as source:
        for cells in source:
            ...

Supports: .xlsx .xlsm (openpyxl, streamed) · .csv .tsv .txt (pandas, with
chardet encoding detection) · .xls .ods (pandas + xlrd / odfpy).
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol, Sequence

from sheet_intake.errors import SourceUnavailable

logger = logging.getLogger(__name__)

TEXT_FORMATS = {".csv", ".tsv", ".txt"}
MODERN_WORKBOOK_FORMATS = {".xlsx", ".xlsm"}
LEGACY_WORKBOOK_FORMATS = {".xls", ".ods"}
ALL_FORMATS = TEXT_FORMATS | MODERN_WORKBOOK_FORMATS | LEGACY_WORKBOOK_FORMATS


class RowSource(Protocol):
    def next_row(self) -> list[str] | None: ...

    def close(self) -> None: ...


OpenSourceFunc = Callable[[], "RowSource | None"]


def cell_text(value: Any) -> str:
    """Render a cell the way a spreadsheet shows it as text."""
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        # pandas fills short rows with NaN
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def trim_trailing_blanks(cells: Sequence[str]) -> list[str]:
    row = list(cells)
    while row and row[-1] == "":
        row.pop()
    return row


class _BaseRowSource:
    def __iter__(self) -> Iterator[list[str]]:
        while True:
            row = self.next_row()
            if row is None:
                return
            yield row

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def next_row(self) -> list[str] | None:
        raise NotImplementedError

    def close(self) -> None:
        return None


class ListRowSource(_BaseRowSource):
    def __init__(self, rows: Sequence[Sequence[Any]]) -> None:
        self._rows = [[cell_text(cell) for cell in row] for row in rows]
        self._position = 0
        self.closed = False

    def next_row(self) -> list[str] | None:
        if self.closed or self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return list(row)

    def close(self) -> None:
        self.closed = True


class WorkbookRowSource(_BaseRowSource):
    """Streams the first (or named) sheet of an .xlsx/.xlsm workbook."""

    def __init__(self, path_or_bytes: "str | Path | bytes", sheet_name: str | None = None) -> None:
        import openpyxl

        handle = io.BytesIO(path_or_bytes) if isinstance(path_or_bytes, bytes) else path_or_bytes
        try:
            self._workbook = openpyxl.load_workbook(handle, read_only=True, data_only=True)
        except Exception as exc:
            raise SourceUnavailable(f"Could not read workbook: {exc}") from exc
        if not self._workbook.sheetnames:
            self._workbook.close()
            raise SourceUnavailable("Workbook has no sheets")
        if sheet_name is not None and sheet_name not in self._workbook.sheetnames:
            available = list(self._workbook.sheetnames)
            self._workbook.close()
            raise SourceUnavailable(f"Sheet '{sheet_name}' not found. Available: {available}")
        self.sheet_name = sheet_name or self._workbook.sheetnames[0]
        self._rows = self._workbook[self.sheet_name].iter_rows(values_only=True)

    def next_row(self) -> list[str] | None:
        if self._rows is None:
            return None
        try:
            values = next(self._rows)
        except StopIteration:
            return None
        return trim_trailing_blanks([cell_text(value) for value in values])

    def close(self) -> None:
        self._rows = None
        self._workbook.close()


def _detect_encoding(raw: bytes) -> str:
    import chardet

    result = chardet.detect(raw[:200_000])
    encoding = result.get("encoding") or "utf-8"
    if encoding.lower() == "ascii":
        return "utf-8"
    return encoding


def _decode_text(raw: bytes) -> str:
    encoding = _detect_encoding(raw)
    for candidate in ("utf-8-sig", encoding, "latin-1"):
        try:
            return raw.decode(candidate)
        except (LookupError, UnicodeDecodeError):
            continue
    return raw.decode("cp1252", errors="replace")


def _detect_delimiter(text: str, suffix: str) -> str:
    if suffix == ".tsv":
        return "\t"
    sample = "\n".join([line for line in text.splitlines() if line.strip()][:25])
    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass
    return ","


class DelimitedRowSource(_BaseRowSource):
    """Delimited text read with pandas as strings, without a header row."""

    def __init__(self, path: "str | Path") -> None:
        import pandas as pd

        path = Path(path)
        try:
            text = _decode_text(path.read_bytes())
        except OSError as exc:
            raise SourceUnavailable(f"Could not read {path.name}: {exc}") from exc

        self.delimiter = _detect_delimiter(text, path.suffix.lower())
        sep = r"\|" if self.delimiter == "|" else self.delimiter
        # Ragged rows are normal in uploads; size the frame to the widest one.
        width = max((len(row) for row in csv.reader(io.StringIO(text), delimiter=self.delimiter)), default=0)
        try:
            frame = pd.read_csv(
                io.StringIO(text),
                header=None,
                names=list(range(width)) or None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                sep=sep,
                engine="python",
            )
        except pd.errors.EmptyDataError:
            frame = pd.DataFrame()
        except Exception as exc:
            raise SourceUnavailable(f"Could not parse {path.suffix} file: {exc}") from exc
        self._rows = frame.itertuples(index=False, name=None)

    def next_row(self) -> list[str] | None:
        if self._rows is None:
            return None
        try:
            values = next(self._rows)
        except StopIteration:
            return None
        return trim_trailing_blanks([cell_text(value) for value in values])

    def close(self) -> None:
        self._rows = None


class PandasWorkbookRowSource(DelimitedRowSource):
    """Legacy .xls and .ods workbooks, loaded through pandas."""

    def __init__(self, path: "str | Path", sheet_name: str | None = None) -> None:
        import pandas as pd

        path = Path(path)
        engine = "odf" if path.suffix.lower() == ".ods" else "xlrd"
        try:
            frame = pd.read_excel(
                path,
                sheet_name=sheet_name if sheet_name is not None else 0,
                header=None,
                dtype=str,
                keep_default_na=False,
                engine=engine,
            )
        except ImportError as exc:
            package = "odfpy" if engine == "odf" else "xlrd"
            raise SourceUnavailable(f"{path.suffix} files require {package} — run: pip install {package}") from exc
        except Exception as exc:
            raise SourceUnavailable(f"Could not read workbook: {exc}") from exc
        self.delimiter = None
        self._rows = frame.itertuples(index=False, name=None)


def open_row_source(path: "str | Path", sheet_name: str | None = None) -> RowSource:
    path = Path(path)
    suffix = path.suffix.lower()
    if not path.exists():
        raise SourceUnavailable(f"File not found: {path}")
    if suffix not in ALL_FORMATS:
        raise SourceUnavailable(
            f"Unsupported format '{suffix or '[missing extension]'}'. Supported: {', '.join(sorted(ALL_FORMATS))}"
        )
    if suffix in MODERN_WORKBOOK_FORMATS:
        return WorkbookRowSource(path, sheet_name=sheet_name)
    if suffix in LEGACY_WORKBOOK_FORMATS:
        return PandasWorkbookRowSource(path, sheet_name=sheet_name)
    return DelimitedRowSource(path)


def open_path_func(path: "str | Path", sheet_name: str | None = None) -> OpenSourceFunc:
    return lambda: open_row_source(path, sheet_name=sheet_name)


def open_bytes_func(content: bytes, sheet_name: str | None = None) -> OpenSourceFunc:
    return lambda: WorkbookRowSource(content, sheet_name=sheet_name)


def close_quietly(source: RowSource | None, label: str = "row source", correlation_id: str | None = None) -> None:
    if source is None:
        return
    try:
        source.close()
    except Exception as exc:
        logger.warning("id=%s close %s error: %s", correlation_id or "-", label, exc)


def read_all_rows(source: RowSource, correlation_id: str | None = None) -> list[list[str]]:
    rows: list[list[str]] = []
    try:
        while True:
            row = source.next_row()
            if row is None:
                break
            rows.append(row)
    finally:
        close_quietly(source, correlation_id=correlation_id)
    return rows
