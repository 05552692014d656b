from __future__ import annotations

import io
import os
import tempfile
from datetime import datetime
from pathlib import Path

import openpyxl
from openpyxl.cell import WriteOnlyCell
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from sheet_intake.error_ledger import ErrorArtifact

WRITE_ONLY_THRESHOLD = 5_000
SHEET_TITLE = "Sheet1"

# Failure reasons in red, like the upload templates' validation hints
REASON_FONT_COLOR = "FF0000"


def _reason_font() -> Font:
    return Font(color=REASON_FONT_COLOR)


def _infer_col_widths(rows: list[list[str]], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return widths


def _write_fast_impl(artifact: ErrorArtifact, output) -> None:
    """write_only=True path for large error tables."""
    wb = openpyxl.Workbook(write_only=True)
    ws = wb.create_sheet(SHEET_TITLE)
    font = _reason_font()
    for i in range(1, artifact.width + 1):
        ws.column_dimensions[get_column_letter(i)].width = 15

    next_row = 0
    for position, cells in sorted(artifact.rows, key=lambda item: item[0]):
        # write-only sheets cannot skip rows, so pad any gap explicitly
        while next_row < position:
            ws.append([])
            next_row += 1
        reason = WriteOnlyCell(ws, value=cells[-1] or None)
        reason.font = font
        ws.append([value or None for value in cells[:-1]] + [reason])
        next_row += 1
    wb.save(output)


def _write_standard_impl(artifact: ErrorArtifact, output) -> None:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    font = _reason_font()
    header_font = Font(bold=True)

    for position, cells in artifact.rows:
        for column, value in enumerate(cells, start=1):
            ws.cell(row=position + 1, column=column, value=value or None)
        ws.cell(row=position + 1, column=artifact.width).font = font
        if position < artifact.skip_row_count:
            for column in range(1, artifact.width):
                ws.cell(row=position + 1, column=column).font = header_font

    for i, width in enumerate(_infer_col_widths(artifact.as_table()), start=1):
        ws.column_dimensions[get_column_letter(i)].width = width
    if artifact.skip_row_count:
        ws.freeze_panes = f"A{artifact.skip_row_count + 1}"
    wb.save(output)


def _writer_for(artifact: ErrorArtifact):
    if len(artifact.rows) > WRITE_ONLY_THRESHOLD:
        return _write_fast_impl
    return _write_standard_impl


def write_error_workbook(artifact: ErrorArtifact, output_path: Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{output_path.stem}.",
        suffix=output_path.suffix,
        dir=str(output_path.parent),
    )
    os.close(fd)
    temp_path = Path(tmp_name)
    try:
        _writer_for(artifact)(artifact, temp_path)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def error_workbook_bytes(artifact: ErrorArtifact) -> bytes:
    buffer = io.BytesIO()
    _writer_for(artifact)(artifact, buffer)
    return buffer.getvalue()


def default_error_filename(now: datetime | None = None) -> str:
    now = now or datetime.now()
    return f"{now.strftime('%Y%m%d%H%M%S')}_error.xlsx"
