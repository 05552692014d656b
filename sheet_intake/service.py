"""
service.py — Wire scans to a task store that owns files and task status.

The store downloads the upload, receives progress updates, and at the end
either marks the task successful or receives the error workbook and marks
the task failed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sheet_intake.check import CheckService
from sheet_intake.config import ScanOptions
from sheet_intake.error_ledger import ErrorLedger
from sheet_intake.errors import SinkUnavailable
from sheet_intake.rows import Rows
from sheet_intake.scanner import ImportScanner, ProgressFn
from sheet_intake.schema import SchemaDescriptor
from sheet_intake.sources import OpenSourceFunc, RowSource, WorkbookRowSource
from sheet_intake.workbook import error_workbook_bytes

DEFAULT_TASK_PROGRESS_INTERVAL = 200


@dataclass(frozen=True)
class ImportTask:
    task_id: int
    import_id: int
    file_id: int


class TaskStore(Protocol):
    def get_task(self, task_id: int) -> ImportTask: ...

    def download_file(self, file_id: int) -> bytes: ...

    def upload_file(self, content: bytes) -> int: ...

    def task_start(self, import_id: int) -> None: ...

    def task_progress(self, import_id: int, total: int, done: int) -> None: ...

    def task_succeed(self, import_id: int) -> None: ...

    def task_failed(self, import_id: int, error_file_id: int) -> None: ...


class TaskImplementor(Protocol):
    def schema(self) -> SchemaDescriptor: ...

    def submit(self, rows: Rows, task: ImportTask) -> None: ...


class StoreImportHandler:
    def __init__(
        self,
        store: TaskStore,
        task: ImportTask,
        implementor: TaskImplementor,
        progress_interval: int = DEFAULT_TASK_PROGRESS_INTERVAL,
    ) -> None:
        self.store = store
        self.task = task
        self.implementor = implementor
        self.progress_interval = progress_interval

    def schema(self) -> SchemaDescriptor:
        return self.implementor.schema()

    def submit(self, rows: Rows) -> None:
        self.implementor.submit(rows, self.task)

    def open_source(self) -> RowSource:
        return WorkbookRowSource(self.store.download_file(self.task.file_id))

    def start(self) -> None:
        self.store.task_start(self.task.import_id)

    def progress(self) -> tuple[int, ProgressFn | None]:
        def report(total: int, done: int) -> None:
            self.store.task_progress(self.task.import_id, total, done)

        return self.progress_interval, report

    def end(self, ledger: ErrorLedger, done_count: int, error_count: int) -> None:
        if error_count == 0:
            self.store.task_succeed(self.task.import_id)
            return

        if ledger.artifact is None:
            return
        try:
            content = error_workbook_bytes(ledger.artifact)
        except Exception as exc:
            raise SinkUnavailable(f"serialise error workbook error: {exc}") from exc
        try:
            error_file_id = self.store.upload_file(content)
        except Exception as exc:
            raise SinkUnavailable(f"upload error workbook error: {exc}") from exc
        try:
            self.store.task_failed(self.task.import_id, error_file_id)
        except Exception as exc:
            raise SinkUnavailable(f"mark task failed error: {exc}") from exc


class ImportService:
    def __init__(self, store: TaskStore) -> None:
        self.store = store

    def new_import_task(
        self,
        task_id: int,
        implementor: TaskImplementor,
        skip_row_count: int = 2,
        progress_interval: int = DEFAULT_TASK_PROGRESS_INTERVAL,
    ) -> ImportScanner:
        task = self.store.get_task(task_id)
        handler = StoreImportHandler(self.store, task, implementor, progress_interval)
        return ImportScanner(
            handler,
            ScanOptions(skip_row_count=skip_row_count),
            correlation_id=f"task-{task.task_id}-import-{task.import_id}",
        )

    def new_check_task(
        self,
        open_template: OpenSourceFunc,
        open_upload: OpenSourceFunc,
        skip_row_count: int,
        max_row_count: int,
    ) -> CheckService:
        return CheckService(open_template, open_upload, skip_row_count, max_row_count)
