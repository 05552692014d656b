"""
check.py — Quick pre-import check of an upload against its template.

Validates the header rows and counts the non-blank data rows without
decoding anything, so an upload can be rejected before a full scan is queued.
"""

from __future__ import annotations

import logging

from sheet_intake.config import DEFAULT_SKIP_ROW_COUNT
from sheet_intake.errors import EmptyInput, MaxRowsExceeded, MaxRowsInvalid, SourceUnavailable, TemplateInvalid
from sheet_intake.header_rules import HeaderRuleValidator, equal_rows, is_blank_row
from sheet_intake.sources import OpenSourceFunc, RowSource, close_quietly

logger = logging.getLogger(__name__)


def _next_row(source: RowSource) -> list[str]:
    return source.next_row() or []


class CheckService:
    def __init__(
        self,
        open_template: OpenSourceFunc,
        open_upload: OpenSourceFunc,
        skip_row_count: int = DEFAULT_SKIP_ROW_COUNT,
        max_row_count: int = 0,
        header_rule: HeaderRuleValidator | None = None,
    ) -> None:
        self.open_template = open_template
        self.open_upload = open_upload
        self.skip_row_count = skip_row_count
        self.max_row_count = max_row_count
        self.header_rule = header_rule

    def set_header_rule(self, header_rule: HeaderRuleValidator | None) -> "CheckService":
        self.header_rule = header_rule
        return self

    def run(self) -> int:
        """Return the number of non-blank data rows in the upload."""
        template: RowSource | None = None
        upload: RowSource | None = None
        try:
            template = self._open(self.open_template, "template")
            upload = self._open(self.open_upload, "upload")

            if self.max_row_count is None or self.max_row_count <= 0:
                raise MaxRowsInvalid()
            if template is None or upload is None:
                raise TemplateInvalid()

            if not self.compare_header(template, upload):
                raise TemplateInvalid()

            total_rows = self.count_data_rows(upload)
            if total_rows <= 0:
                raise EmptyInput()
            if total_rows > self.max_row_count:
                raise MaxRowsExceeded()
            logger.info("check passed with %d data rows", total_rows)
            return total_rows
        finally:
            close_quietly(upload, "upload file")
            close_quietly(template, "template file")

    def _open(self, opener: OpenSourceFunc, label: str) -> RowSource | None:
        try:
            return opener()
        except Exception as exc:
            raise SourceUnavailable(f"open {label} file error: {exc}") from exc

    def compare_header(self, template: RowSource, upload: RowSource) -> bool:
        if self.header_rule is not None:
            ok = self.header_rule.validate(_next_row(template), _next_row(upload))
            # Remaining header rows carry no rule; step past them.
            for _ in range(self.skip_row_count - 1):
                template.next_row()
                upload.next_row()
            return ok

        for _ in range(self.skip_row_count):
            if not equal_rows(_next_row(template), _next_row(upload)):
                return False
        return True

    def count_data_rows(self, upload: RowSource) -> int:
        total = 0
        while True:
            row = upload.next_row()
            if row is None:
                return total
            if is_blank_row(row):
                continue
            total += 1
