"""
error_ledger.py — Collect per-row failures and build the error table.

The error table keeps the header rows and only the failing data rows,
renumbered densely after the header, with one extra trailing column that
holds the failure reason.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

ERROR_REASON_LABEL = "error reason"


@dataclass
class LedgerEntry:
    position: int
    error: BaseException | str | None


@dataclass
class ErrorArtifact:
    rows: list[tuple[int, list[str]]] = field(default_factory=list)
    width: int = 0
    skip_row_count: int = 0

    @property
    def reason_column(self) -> int:
        return self.width - 1

    def header_rows(self) -> list[list[str]]:
        return [cells for position, cells in self.rows if position < self.skip_row_count]

    def failing_rows(self) -> list[list[str]]:
        return [cells for position, cells in self.rows if position >= self.skip_row_count]

    def reasons(self) -> list[str]:
        return [cells[self.reason_column] for cells in self.failing_rows()]

    def as_table(self) -> list[list[str]]:
        return [cells for _, cells in sorted(self.rows, key=lambda item: item[0])]


class ErrorLedger:
    def __init__(self) -> None:
        self._entries: list[LedgerEntry] = []
        self.artifact: ErrorArtifact | None = None

    def append(self, position: int, error: BaseException | str | None = None) -> None:
        self._entries.append(LedgerEntry(position, error))

    def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def positions(self) -> list[int]:
        return [entry.position for entry in self._entries]

    def build(
        self,
        rows: Sequence[Sequence[str]],
        max_column_count: int,
        skip_row_count: int,
    ) -> ErrorArtifact | None:
        if not self._entries:
            return None

        ordered = sorted(self._entries, key=lambda entry: entry.position)
        by_position: dict[int, LedgerEntry] = {}
        for entry in ordered:
            by_position.setdefault(entry.position, entry)

        width = max_column_count + 1
        artifact = ErrorArtifact(width=width, skip_row_count=skip_row_count)
        emitted = 0
        for index, source in enumerate(rows):
            cells = _fit_width(source, width)
            if index < skip_row_count:
                if index == 0:
                    cells[max_column_count] = ERROR_REASON_LABEL
                artifact.rows.append((index, cells))
                continue

            entry = by_position.get(index)
            if entry is None:
                continue
            if entry.error is not None:
                cells[max_column_count] = str(entry.error)
            artifact.rows.append((skip_row_count + emitted, cells))
            emitted += 1

        self._entries = []
        self.artifact = artifact
        return artifact


def _fit_width(cells: Sequence[str], width: int) -> list[str]:
    row = [str(cell or "") for cell in list(cells)[:width]]
    if len(row) < width:
        row.extend([""] * (width - len(row)))
    return row
