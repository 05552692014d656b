from __future__ import annotations

import unittest
from unittest import mock

from sheet_intake.config import ScanOptions
from sheet_intake.error_ledger import ERROR_REASON_LABEL
from sheet_intake.errors import ConfigError, MaxRowsExceeded, SourceUnavailable, TemplateInvalid
from sheet_intake.grouping import WriteBackMode
from sheet_intake.scanner import BaseImportHandler, ImportScanner, ScanState
from sheet_intake.schema import SchemaDescriptor
from sheet_intake.sources import ListRowSource

HEADER = [["sku", "qty"], ["Stock keeping unit", "Units"]]
SCHEMA = SchemaDescriptor.from_mapping([{"name": "sku"}, {"name": "qty", "kind": "int"}])


class ListHandler(BaseImportHandler):
    def __init__(self, rows, schema=SCHEMA, on_submit=None, interval=0, progress_fn=None):
        self.rows = rows
        self._schema = schema
        self.on_submit = on_submit
        self.interval = interval
        self.progress_fn = progress_fn
        self.units = []
        self.started = False
        self.end_calls = []

    def start(self):
        self.started = True

    def end(self, ledger, done_count, error_count):
        self.end_calls.append((ledger, done_count, error_count))

    def progress(self):
        return self.interval, self.progress_fn

    def open_source(self):
        return ListRowSource(self.rows)

    def schema(self):
        return self._schema

    def submit(self, rows):
        self.units.append(rows)
        if self.on_submit is not None:
            self.on_submit(rows)


def fail_second_row_of_pairs(unit):
    if len(unit) == 2:
        unit[1].set_errors("qty mismatch")


class ScannerFlowTests(unittest.TestCase):
    def test_clean_scan_submits_every_row(self):
        handler = ListHandler(HEADER + [["A", "1"], ["B", "2"]])
        scanner = ImportScanner(handler, correlation_id="scan-1")

        result = scanner.run()

        self.assertTrue(handler.started)
        self.assertEqual(result.state, ScanState.DONE)
        self.assertEqual(scanner.state, ScanState.DONE)
        self.assertEqual([unit.records() for unit in handler.units], [[{"sku": "A", "qty": 1}], [{"sku": "B", "qty": 2}]])
        self.assertEqual(result.done_count, 2)
        self.assertEqual(result.error_count, 0)
        self.assertIsNone(result.artifact)
        self.assertEqual(handler.end_calls[0][1:], (2, 0))
        self.assertEqual(
            result.to_dict(),
            {
                "state": "done",
                "correlation_id": "scan-1",
                "total_rows": 4,
                "skip_rows": 2,
                "done_rows": 2,
                "empty_rows": 0,
                "error_rows": 0,
                "error_table_rows": 0,
            },
        )

    def test_blank_rows_are_skipped_and_counted(self):
        handler = ListHandler(HEADER + [["A", "1"], ["", ""], ["B", "2"]])

        result = ImportScanner(handler).run()

        self.assertEqual([unit.form_indexes() for unit in handler.units], [[2], [4]])
        self.assertEqual(result.empty_count, 1)
        self.assertEqual(result.done_count, 2)

    def test_empty_file_finishes_without_end_hook(self):
        handler = ListHandler(list(HEADER))

        result = ImportScanner(handler).run()

        self.assertEqual(result.state, ScanState.DONE)
        self.assertEqual(result.total_rows, 2)
        self.assertEqual(handler.units, [])
        self.assertEqual(handler.end_calls, [])

    def test_failures_become_error_table(self):
        def reject_b(unit):
            if unit[0].data["sku"] == "B":
                unit[0].set_errors("qty is required", "qty is required", "sku retired")

        handler = ListHandler(HEADER + [["A", "1"], ["B", "0"], ["C", "3"]], on_submit=reject_b)

        result = ImportScanner(handler).run()

        self.assertEqual(result.error_count, 1)
        self.assertEqual(result.artifact.header_rows()[0], ["sku", "qty", ERROR_REASON_LABEL])
        self.assertEqual(result.artifact.failing_rows(), [["B", "0", "qty is required; sku retired"]])
        ledger, done_count, error_count = handler.end_calls[0]
        self.assertIs(ledger.artifact, result.artifact)
        self.assertEqual((done_count, error_count), (3, 1))

    def test_error_table_widens_for_extra_columns(self):
        schema = SchemaDescriptor.from_mapping([{"name": "sku"}, {"name": "extras", "kind": "extra"}])
        rows = [["sku", "extras", "fr"], ["hint"], ["A", "x", "y", "z", "w"]]
        handler = ListHandler(rows, schema=schema, on_submit=lambda unit: unit[0].set_errors("bad"))

        result = ImportScanner(handler).run()

        self.assertEqual(result.artifact.width, 6)
        self.assertEqual(result.artifact.header_rows()[0], ["sku", "extras", "fr", "", "", ERROR_REASON_LABEL])
        self.assertEqual(result.artifact.failing_rows(), [["A", "x", "y", "z", "w", "bad"]])

    def test_error_table_keeps_header_columns_outside_schema(self):
        rows = [["sku", "qty", "notes"], ["SKU", "Units", "Free text"], ["A", "1", "keep me"]]
        handler = ListHandler(rows, on_submit=lambda unit: unit[0].set_errors("bad"))

        result = ImportScanner(handler).run()

        self.assertEqual(result.artifact.header_rows()[0], ["sku", "qty", "notes", ERROR_REASON_LABEL])
        self.assertEqual(result.artifact.header_rows()[1], ["SKU", "Units", "Free text", ""])
        self.assertEqual(result.artifact.failing_rows(), [["A", "1", "keep me", "bad"]])

    def test_error_table_keeps_extra_labels_wider_than_data(self):
        schema = SchemaDescriptor.from_mapping(
            [{"name": "sku"}, {"name": "qty", "kind": "int"}, {"name": "names", "kind": "extra"}]
        )
        rows = [["sku", "qty", "name_fr", "name_de"], ["hint"], ["A", "1", "x"]]
        handler = ListHandler(rows, schema=schema, on_submit=lambda unit: unit[0].set_errors("bad"))

        result = ImportScanner(handler).run()

        self.assertEqual(result.artifact.width, 5)
        self.assertEqual(result.artifact.header_rows()[0], ["sku", "qty", "name_fr", "name_de", ERROR_REASON_LABEL])
        self.assertEqual(result.artifact.failing_rows(), [["A", "1", "x", "", "bad"]])

    def test_base_handler_requires_source_schema_and_submit(self):
        with self.assertRaises(TypeError):
            BaseImportHandler()


class GroupedScanTests(unittest.TestCase):
    ROWS = HEADER + [["A", "1"], ["A", "2"], ["B", "3"]]

    def test_rows_sharing_key_submit_as_one_unit(self):
        handler = ListHandler(self.ROWS)

        ImportScanner(handler, ScanOptions(unique_columns=[0])).run()

        self.assertEqual([unit.form_indexes() for unit in handler.units], [[2, 3], [4]])

    def test_any_row_mode_writes_whole_unit(self):
        handler = ListHandler(self.ROWS, on_submit=fail_second_row_of_pairs)

        result = ImportScanner(handler, ScanOptions(unique_columns=[0])).run()

        self.assertEqual(result.error_count, 2)
        self.assertEqual(result.artifact.failing_rows(), [["A", "1", ""], ["A", "2", "qty mismatch"]])

    def test_assigned_row_mode_writes_only_failing_rows(self):
        handler = ListHandler(self.ROWS, on_submit=fail_second_row_of_pairs)
        scanner = ImportScanner(handler, ScanOptions(unique_columns=[0]))
        scanner.set_write_back_mode("assigned-row")

        result = scanner.run()

        self.assertEqual(result.error_count, 1)
        self.assertEqual(result.artifact.failing_rows(), [["A", "2", "qty mismatch"]])

    def test_write_back_modes_for_three_row_unit(self):
        rows = HEADER + [["Z", "9"], ["K1", "1"], ["K1", "2"], ["K1", "3"]]

        def fail_form_index_5(unit):
            for row in unit:
                if row.form_index == 5:
                    row.set_errors("qty too high")

        for mode, expected in (("any-row", [3, 4, 5]), ("assigned-row", [5])):
            with self.subTest(mode=mode):
                handler = ListHandler(rows, on_submit=fail_form_index_5)
                scanner = ImportScanner(handler, ScanOptions(unique_columns=[0], write_back_mode=mode))
                with mock.patch.object(scanner.ledger, "append", wraps=scanner.ledger.append) as append:
                    result = scanner.run()

                self.assertEqual([call.args[0] for call in append.call_args_list], expected)
                self.assertEqual(result.error_count, len(expected))

    def test_unknown_write_back_mode_is_ignored(self):
        scanner = ImportScanner(ListHandler(self.ROWS), ScanOptions(write_back_mode=WriteBackMode.ASSIGNED_ROW))
        with self.assertLogs("sheet_intake.scanner", level="WARNING"):
            scanner.set_write_back_mode("sometimes")
        self.assertIs(scanner.options.write_back_mode, WriteBackMode.ASSIGNED_ROW)

    def test_scanners_do_not_share_options(self):
        options = ScanOptions(unique_columns=[0])
        first = ImportScanner(ListHandler(self.ROWS), options)
        second = ImportScanner(ListHandler(self.ROWS), options)

        first.set_write_back_mode("assigned-row")

        self.assertIs(first.options.write_back_mode, WriteBackMode.ASSIGNED_ROW)
        self.assertIs(second.options.write_back_mode, WriteBackMode.ANY_ROW)
        self.assertIs(options.write_back_mode, WriteBackMode.ANY_ROW)

    def test_unique_column_outside_schema_is_rejected(self):
        with self.assertRaises(ConfigError):
            ImportScanner(ListHandler(self.ROWS), ScanOptions(unique_columns=[2]))


class ProgressTests(unittest.TestCase):
    def test_progress_reports_done_rows_at_interval(self):
        calls = []
        rows = HEADER + [["A", "1"], [], ["B", "2"], ["C", "3"], ["D", "4"]]
        handler = ListHandler(rows, interval=2, progress_fn=lambda total, done: calls.append((total, done)))

        ImportScanner(handler).run()

        self.assertEqual(calls, [(7, 2), (7, 4)])

    def test_progress_falls_back_to_configured_interval(self):
        calls = []
        rows = HEADER + [["A", "1"], ["B", "2"], ["C", "3"]]
        handler = ListHandler(rows, progress_fn=lambda total, done: calls.append(done))

        ImportScanner(handler, ScanOptions(progress_interval=3)).run()

        self.assertEqual(calls, [3])

    def test_progress_failure_does_not_stop_the_scan(self):
        def broken(total, done):
            raise RuntimeError("status store down")

        handler = ListHandler(HEADER + [["A", "1"], ["B", "2"]], interval=1, progress_fn=broken)
        with self.assertLogs("sheet_intake.scanner", level="WARNING") as logs:
            result = ImportScanner(handler).run()

        self.assertEqual(result.state, ScanState.DONE)
        self.assertEqual(len(handler.units), 2)
        self.assertIn("progress hook error: status store down", logs.output[0])


class ScannerFailureTests(unittest.TestCase):
    def test_start_failure_marks_scan_failed(self):
        class BrokenStart(ListHandler):
            def start(self):
                raise RuntimeError("task store down")

        scanner = ImportScanner(BrokenStart(HEADER + [["A", "1"]]))
        with self.assertLogs("sheet_intake.scanner", level="ERROR"):
            with self.assertRaises(RuntimeError):
                scanner.run()
        self.assertEqual(scanner.state, ScanState.FAILED)

    def test_end_failure_is_raised(self):
        class BrokenEnd(ListHandler):
            def end(self, ledger, done_count, error_count):
                raise RuntimeError("upload failed")

        scanner = ImportScanner(BrokenEnd(HEADER + [["A", "1"]]))
        with self.assertLogs("sheet_intake.scanner", level="ERROR"):
            with self.assertRaises(RuntimeError):
                scanner.run()
        self.assertEqual(scanner.state, ScanState.FAILED)

    def test_open_failure_is_source_unavailable(self):
        class BrokenOpen(ListHandler):
            def open_source(self):
                raise OSError("bucket missing")

        scanner = ImportScanner(BrokenOpen([]))
        with self.assertLogs("sheet_intake.scanner", level="ERROR"):
            with self.assertRaises(SourceUnavailable):
                scanner.run()
        self.assertEqual(scanner.state, ScanState.FAILED)

    def test_missing_source_is_template_invalid(self):
        class NoSource(ListHandler):
            def open_source(self):
                return None

        with self.assertRaises(TemplateInvalid):
            ImportScanner(NoSource([])).run()

    def test_template_header_mismatch(self):
        options = ScanOptions(template_rows=[["sku", "qty"], ["Stock keeping unit", "Count"]])
        handler = ListHandler(HEADER + [["A", "1"]])

        with self.assertLogs("sheet_intake.scanner", level="ERROR"):
            with self.assertRaises(TemplateInvalid):
                ImportScanner(handler, options).run()
        self.assertEqual(handler.units, [])

    def test_row_ceiling(self):
        handler = ListHandler(HEADER + [["A", "1"], [""], ["B", "2"]])

        with self.assertLogs("sheet_intake.scanner", level="ERROR"):
            with self.assertRaises(MaxRowsExceeded):
                ImportScanner(handler, ScanOptions(max_row_count=1)).run()
        self.assertEqual(ImportScanner(ListHandler(handler.rows), ScanOptions(max_row_count=2)).run().done_count, 2)


if __name__ == "__main__":
    unittest.main()
