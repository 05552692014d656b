"""
scanner.py — One streaming pass over an uploaded table.

    NOT_STARTED -> READING_HEADER -> SCANNING -> FINALIZING -> DONE
                 (any state) -> FAILED

Rows are read once, in order. Header rows are validated (when a template is
configured), each data row is decoded, grouped by its unique columns and the
completed logical units are handed to the handler's submit hook. Failures
the handler attaches to rows go to the error ledger, which becomes the error
table at the end of the scan.
"""

from __future__ import annotations

import abc
import dataclasses
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol

from sheet_intake.config import DEFAULT_PROGRESS_INTERVAL, ScanOptions
from sheet_intake.decoder import RowDecoder
from sheet_intake.error_ledger import ErrorArtifact, ErrorLedger
from sheet_intake.errors import ConfigError, MaxRowsExceeded, MaxRowsInvalid, SourceUnavailable, TemplateInvalid
from sheet_intake.grouping import GroupAccumulator, WriteBackMode, normalize_unique_columns
from sheet_intake.header_rules import equal_rows, is_blank_row
from sheet_intake.rows import Rows
from sheet_intake.schema import SchemaDescriptor
from sheet_intake.sources import RowSource, read_all_rows, trim_trailing_blanks

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int, int], Any]


class ScanState(str, Enum):
    NOT_STARTED = "not_started"
    READING_HEADER = "reading_header"
    SCANNING = "scanning"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class ImportHandler(Protocol):
    def start(self) -> None: ...

    def end(self, ledger: ErrorLedger, done_count: int, error_count: int) -> None: ...

    def progress(self) -> tuple[int, ProgressFn | None]: ...

    def open_source(self) -> RowSource: ...

    def schema(self) -> SchemaDescriptor: ...

    def submit(self, rows: Rows) -> None: ...


class BaseImportHandler(abc.ABC):
    """No-op lifecycle hooks; subclasses supply open_source, schema and submit."""

    def start(self) -> None:
        return None

    def end(self, ledger: ErrorLedger, done_count: int, error_count: int) -> None:
        return None

    def progress(self) -> tuple[int, ProgressFn | None]:
        return DEFAULT_PROGRESS_INTERVAL, None

    @abc.abstractmethod
    def open_source(self) -> RowSource:
        raise NotImplementedError

    @abc.abstractmethod
    def schema(self) -> SchemaDescriptor:
        raise NotImplementedError

    @abc.abstractmethod
    def submit(self, rows: Rows) -> None:
        raise NotImplementedError


@dataclass
class ScanResult:
    state: ScanState
    correlation_id: str
    total_rows: int = 0
    skip_row_count: int = 0
    done_count: int = 0
    empty_count: int = 0
    error_count: int = 0
    artifact: ErrorArtifact | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "correlation_id": self.correlation_id,
            "total_rows": self.total_rows,
            "skip_rows": self.skip_row_count,
            "done_rows": self.done_count,
            "empty_rows": self.empty_count,
            "error_rows": self.error_count,
            "error_table_rows": len(self.artifact.rows) if self.artifact else 0,
        }


class ImportScanner:
    def __init__(
        self,
        handler: ImportHandler,
        options: ScanOptions | None = None,
        correlation_id: str | None = None,
    ) -> None:
        self.handler = handler
        # Each scanner owns its options; set_write_back_mode must not leak.
        self.options = dataclasses.replace(options) if options is not None else ScanOptions()
        self.correlation_id = correlation_id or uuid.uuid4().hex
        self.state = ScanState.NOT_STARTED
        self._schema: SchemaDescriptor | None = None
        self.groups = GroupAccumulator()
        self.ledger = ErrorLedger()
        if self.options.unique_columns:
            self.set_unique_columns(*self.options.unique_columns)

    def _log_error(self, message: str, *args: Any) -> None:
        logger.error("id=%s " + message, self.correlation_id, *args)

    @property
    def schema(self) -> SchemaDescriptor:
        if self._schema is None:
            self._schema = self.handler.schema()
        return self._schema

    def set_unique_columns(self, *indexes: int) -> None:
        if not indexes:
            return
        self.groups.configure(normalize_unique_columns(indexes, self.schema.field_count))

    def set_write_back_mode(self, mode: "WriteBackMode | str") -> None:
        try:
            self.options.write_back_mode = WriteBackMode.parse(mode)
        except ConfigError:
            logger.warning("id=%s ignoring unknown write-back mode %r", self.correlation_id, mode)

    def run(self) -> ScanResult:
        try:
            return self._run()
        except Exception:
            self.state = ScanState.FAILED
            raise

    def _run(self) -> ScanResult:
        options = self.options
        skip = options.skip_row_count

        try:
            self.handler.start()
        except Exception as exc:
            self._log_error("start error: %s", exc)
            raise

        rows = self._read_rows()
        result = ScanResult(
            state=self.state,
            correlation_id=self.correlation_id,
            total_rows=len(rows),
            skip_row_count=skip,
        )

        self.state = ScanState.READING_HEADER
        if options.template_rows is not None and not self._header_matches(rows[:skip]):
            self._log_error("upload header does not match the template")
            raise TemplateInvalid()
        if options.max_row_count is not None:
            self._check_row_ceiling(rows[skip:])

        if len(rows) <= skip:
            logger.info("id=%s this is an empty file", self.correlation_id)
            self.state = result.state = ScanState.DONE
            return result

        self.state = ScanState.SCANNING
        schema = self.schema
        decoder = RowDecoder(schema, rows[0])
        self.groups.prescan(rows[skip:])
        interval, progress_fn = self.handler.progress()
        if interval <= 0:
            interval = options.progress_interval

        empty_count = 0
        for index in range(skip, len(rows)):
            cells = rows[index]
            if is_blank_row(cells):
                empty_count += 1
                continue

            record = decoder.decode(cells)
            unit, ready = self.groups.offer(record, index, cells)
            if not ready:
                continue

            self.handler.submit(unit)
            self._collect_errors(unit)

            done_count = index - skip - empty_count + 1
            if progress_fn is not None and done_count % interval == 0:
                try:
                    progress_fn(len(rows), done_count)
                except Exception as exc:
                    logger.warning("id=%s progress hook error: %s", self.correlation_id, exc)

        if self.groups.pending_count():
            logger.warning(
                "id=%s %d row groups were never completed", self.correlation_id, self.groups.pending_count()
            )

        self.state = ScanState.FINALIZING
        result.empty_count = empty_count
        result.done_count = len(rows) - skip - empty_count
        result.error_count = self.ledger.count()
        try:
            # Header rows may label columns no data row reaches.
            width = max([decoder.max_column_count, *(len(trim_trailing_blanks(cells)) for cells in rows[:skip])])
            result.artifact = self.ledger.build(rows, width, skip)
        except Exception as exc:
            self._log_error("write error table error: %s", exc)

        try:
            self.handler.end(self.ledger, result.done_count, result.error_count)
        except Exception as exc:
            self._log_error("end error: %s", exc)
            raise

        self.state = result.state = ScanState.DONE
        return result

    def _read_rows(self) -> list[list[str]]:
        try:
            source = self.handler.open_source()
        except Exception as exc:
            self._log_error("open file error: %s", exc)
            if isinstance(exc, SourceUnavailable):
                raise
            raise SourceUnavailable(f"open file error: {exc}") from exc
        if source is None:
            raise TemplateInvalid("No upload file to scan")
        try:
            return read_all_rows(source, correlation_id=self.correlation_id)
        except Exception as exc:
            self._log_error("read rows error: %s", exc)
            raise SourceUnavailable(f"read rows error: {exc}") from exc

    def _check_row_ceiling(self, data_rows: list[list[str]]) -> None:
        ceiling = self.options.max_row_count
        if ceiling is None or ceiling <= 0:
            self._log_error("max row count must be positive, got %s", ceiling)
            raise MaxRowsInvalid()
        total = sum(1 for cells in data_rows if not is_blank_row(cells))
        if total > ceiling:
            self._log_error("%d data rows exceed the ceiling of %d", total, ceiling)
            raise MaxRowsExceeded()

    def _header_matches(self, header_rows: list[list[str]]) -> bool:
        template_rows = self.options.template_rows or []
        rule = self.options.header_rule
        if rule is not None:
            template_first = template_rows[0] if template_rows else []
            uploaded_first = header_rows[0] if header_rows else []
            return rule.validate(template_first, uploaded_first)

        for position in range(self.options.skip_row_count):
            expected = template_rows[position] if position < len(template_rows) else []
            actual = header_rows[position] if position < len(header_rows) else []
            if not equal_rows(expected, actual):
                return False
        return True

    def _collect_errors(self, unit: Rows) -> None:
        if not unit.is_err:
            return
        whole_unit = self.options.write_back_mode.writes_whole_unit
        for row in unit:
            message = row.errors.combined()
            if message is not None:
                logger.info("id=%s submit error: %s, form index: %d", self.correlation_id, message, row.form_index)
            if whole_unit or message is not None:
                self.ledger.append(row.form_index, message)
