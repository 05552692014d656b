"""
grouping.py — Merge physical rows that share a key into one logical unit.

The accumulator needs to know up front how many rows carry each key, so a
prescan over every data row runs before anything is offered. Pending groups
live in an arena of slots addressed by the data index of the key's first
occurrence; a slot is cleared as soon as its group is released.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Sequence

from sheet_intake.errors import ConfigError
from sheet_intake.header_rules import is_blank_row
from sheet_intake.rows import Rows

KEY_SEPARATOR = ":"


class WriteBackMode(str, Enum):
    ANY_ROW = "any"
    ASSIGNED_ROW = "assign"

    @classmethod
    def parse(cls, value: "str | WriteBackMode | None") -> "WriteBackMode":
        if isinstance(value, cls):
            return value
        text = (value or "").strip().lower()
        if text in {"", "any", "any-row"}:
            return cls.ANY_ROW
        if text in {"assign", "assigned", "assigned-row"}:
            return cls.ASSIGNED_ROW
        raise ConfigError(f"Unknown write-back mode '{value}'. Expected any-row or assigned-row")

    @property
    def writes_whole_unit(self) -> bool:
        return self is WriteBackMode.ANY_ROW


def normalize_unique_columns(indexes: Iterable[int], field_count: int) -> tuple[int, ...]:
    result: list[int] = []
    for index in sorted(set(indexes)):
        if index < 0:
            raise ConfigError(f"Unique column {index} is below the first schema field")
        if index >= field_count:
            raise ConfigError(
                f"Unique column {index} exceeds the schema's {field_count} fields"
            )
        result.append(index)
    return tuple(result)


@dataclass
class GroupEntry:
    remaining: int
    rows: Rows = field(default_factory=Rows)


class GroupAccumulator:
    def __init__(self, unique_columns: Sequence[int] = ()) -> None:
        self.unique_columns: tuple[int, ...] = tuple(unique_columns)
        self.slots: list[GroupEntry | None] = []
        self.key_slots: dict[str, int] = {}
        self._prescanned = False

    @property
    def enabled(self) -> bool:
        return bool(self.unique_columns)

    def configure(self, unique_columns: Sequence[int]) -> None:
        self.unique_columns = tuple(unique_columns)
        self.slots = []
        self.key_slots = {}
        self._prescanned = False

    def key_for(self, cells: Sequence[str]) -> str | None:
        parts: list[str] = []
        for index in self.unique_columns:
            if index >= len(cells):
                return None
            parts.append(str(cells[index] or "").strip())
        return KEY_SEPARATOR.join(parts)

    def prescan(self, data_rows: Iterable[Sequence[str]]) -> None:
        """Count every key over the data rows and assign each key its slot."""
        self.slots = []
        self.key_slots = {}
        self._prescanned = True
        if not self.enabled:
            return

        counts: dict[str, int] = {}
        for data_index, cells in enumerate(data_rows):
            self.slots.append(None)
            if is_blank_row(cells):
                continue
            key = self.key_for(cells)
            if key is None:
                continue
            counts[key] = counts.get(key, 0) + 1
            if key not in self.key_slots:
                self.key_slots[key] = data_index

        for key, slot in self.key_slots.items():
            self.slots[slot] = GroupEntry(remaining=counts[key])

    def offer(self, record: Any, form_index: int, cells: Sequence[str]) -> tuple[Rows | None, bool]:
        if self.enabled:
            if not self._prescanned:
                raise RuntimeError("prescan() must run before rows are offered")
            key = self.key_for(cells)
            slot = self.key_slots.get(key) if key is not None else None
            entry = self.slots[slot] if slot is not None else None
            if entry is not None:
                entry.rows.append(record, form_index)
                entry.remaining -= 1
                if entry.remaining > 0:
                    return None, False
                self.slots[slot] = None
                return entry.rows, True

        unit = Rows()
        unit.append(record, form_index)
        return unit, True

    def pending_count(self) -> int:
        return sum(1 for entry in self.slots if entry is not None and len(entry.rows) > 0)
