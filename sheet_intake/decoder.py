"""
decoder.py — Turn raw string rows into schema-shaped records.

Conversion is best effort: malformed numbers decode to the field's zero
value and are left for the consumer's business rules to reject.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Sequence

from sheet_intake.schema import ZERO_VALUES, ExtraColumn, FieldKind, SchemaDescriptor
from sheet_intake.sources import trim_trailing_blanks

logger = logging.getLogger(__name__)

INT_RE = re.compile(r"[+-]?[0-9]+")
UINT_RE = re.compile(r"[0-9]+")

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
UINT64_MAX = 2**64 - 1


def parse_int(text: str) -> int | None:
    if not INT_RE.fullmatch(text):
        return None
    return max(INT64_MIN, min(INT64_MAX, int(text)))


def parse_uint(text: str) -> int | None:
    if not UINT_RE.fullmatch(text):
        return None
    return min(UINT64_MAX, int(text))


def parse_float(text: str) -> float | None:
    # float() also accepts non-ASCII digits.
    if not text or "_" in text or not text.isascii():
        return None
    try:
        # Overflowing literals like 1e999 come back as +/-inf.
        return float(text)
    except ValueError:
        return None


PARSERS = {
    FieldKind.INT: parse_int,
    FieldKind.UINT: parse_uint,
    FieldKind.FLOAT: parse_float,
}


class RowDecoder:
    def __init__(self, schema: SchemaDescriptor, header_row: Sequence[str] | None = None) -> None:
        self.schema = schema
        self.header_row = [str(cell or "") for cell in (header_row or [])]
        # The header may label columns the schema does not model.
        self.max_column_count = max(schema.field_count, len(trim_trailing_blanks(self.header_row)))

    def decode(self, cells: Sequence[str]) -> Any:
        schema = self.schema
        row = [str(cell or "") for cell in cells]
        if len(row) < schema.field_count:
            row.extend([""] * (schema.field_count - len(row)))

        values: dict[str, Any] = {}
        for position, spec in enumerate(schema.fields):
            if spec.kind is FieldKind.EXTRA:
                values[spec.name] = self._capture_extra(position, row)
                continue
            text = row[position].strip()
            if spec.kind is FieldKind.STRING:
                values[spec.name] = text
                continue
            parsed = PARSERS[spec.kind](text)
            if parsed is None:
                if text:
                    logger.debug("decode anomaly: field=%s kind=%s value=%r", spec.name, spec.kind.value, text)
                parsed = ZERO_VALUES[spec.kind]
            values[spec.name] = parsed
        return schema.new_record(values)

    def _capture_extra(self, start: int, row: list[str]) -> ExtraColumn:
        if len(row) > self.max_column_count:
            self.max_column_count = len(row)

        extra = ExtraColumn()
        for position in range(start, len(self.header_row)):
            label = self.header_row[position]
            # Blank labels are template gaps.
            if not label.strip():
                continue
            value = row[position] if position < len(row) else ""
            extra.append(label, value.strip())
        return extra
