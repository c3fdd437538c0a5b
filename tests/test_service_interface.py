"""Tests for the request/response service layer."""
import logging
import tempfile
from pathlib import Path

import pytest
from tabular_editor.core.edits import DeleteRow
from tabular_editor.errors import (
    EncodingError,
    FileAccessError,
    InvalidEditError,
    PatternError,
    SessionNotFoundError,
)
from tabular_editor.formats.transforms import MacroOp, MacroSpec
from tabular_editor.service import TabularEditService


class TestTabularEditService:
    """Test the boundary operations end to end."""

    def setup_method(self) -> None:
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.test_file = Path(self.temp_dir) / "people.csv"
        self.test_file.write_text(
            "id,name,city\n" + "".join(f"{i},person {i},city{i % 3}\n" for i in range(10))
        )
        self.output = Path(self.temp_dir) / "out.csv"
        self.service = TabularEditService()

    def teardown_method(self) -> None:
        """Clean up test environment."""
        import shutil

        self.service.shutdown()
        shutil.rmtree(self.temp_dir)

    def test_preview_detects_delimiter(self) -> None:
        tsv = Path(self.temp_dir) / "data.tsv"
        tsv.write_text("a\tb\tc,d\n1\t2\t3,4\n")

        preview = self.service.preview(tsv)

        assert preview.delimiter == "\\t"
        assert preview.headers == ["a", "b", "c,d"]
        assert preview.rows == [["1", "2", "3,4"]]
        assert preview.path == str(tsv)

    def test_preview_explicit_delimiter(self) -> None:
        preview = self.service.preview(self.test_file, delimiter=",")

        assert preview.delimiter == ","
        assert len(preview.rows) == 10

    def test_preview_row_limit(self) -> None:
        service = TabularEditService(preview_rows=3)

        preview = service.preview(self.test_file)

        assert [row[0] for row in preview.rows] == ["0", "1", "2"]

    def test_session_batches(self) -> None:
        info = self.service.open_session(self.test_file)

        assert info.headers == ["id", "name", "city"]
        assert info.delimiter == ","

        batches = [self.service.read_batch(info.session_id, 4) for _ in range(4)]
        assert [len(b.rows) for b in batches] == [4, 4, 2, 0]
        assert [b.eof for b in batches] == [False, False, True, True]

        assert self.service.close_session(info.session_id) is True
        with pytest.raises(SessionNotFoundError):
            self.service.read_batch(info.session_id, 4)

    def test_close_unknown_session(self) -> None:
        assert self.service.close_session(999) is False

    def test_read_window_and_count(self) -> None:
        batch = self.service.read_window(self.test_file, 8, 5)

        assert batch.rows == [["8", "person 8", "city2"], ["9", "person 9", "city0"]]
        assert batch.eof
        assert self.service.count_rows(self.test_file) == 10

    def test_rewrite_with_dict_ops(self) -> None:
        result = self.service.rewrite_with_edits(
            self.test_file,
            self.output,
            ",",
            patches=[{"row": 0, "col": 1, "value": "first"}],
            row_ops=[{"type": "delete", "index": 0}, DeleteRow(8)],
            column_ops=[{"type": "rename", "index": 2, "name": "town"}],
            terminator="LF",
        )

        assert result == self.output
        lines = self.output.read_text().split("\n")
        assert lines[0] == "id,name,town"
        assert lines[1] == "1,first,city1"
        assert lines[-1] == ""
        assert len(lines) == 1 + 8 + 1

        log = self.service.get_operation_log()
        assert log[-1]["operation"] == "rewrite_with_edits"
        assert log[-1]["details"]["row_ops"] == 2

    def test_rewrite_with_tab_output_and_utf16(self) -> None:
        tsv = Path(self.temp_dir) / "data.tsv"
        tsv.write_text("a\tb\n1\t2\n")

        self.service.rewrite_with_edits(tsv, self.output, "\\t", encoding="utf-16le", bom=True)

        data = self.output.read_bytes()
        assert data[:2] == b"\xff\xfe"
        assert data[2:].decode("utf-16-le") == "a\tb\r\n1\t2\r\n"

    def test_rewrite_rejects_bad_ops(self) -> None:
        with pytest.raises(InvalidEditError):
            self.service.rewrite_with_edits(
                self.test_file, self.output, ",", row_ops=[{"type": "swap", "index": 0}]
            )
        assert not self.output.exists()
        assert self.service.get_operation_log()[-1]["operation"] == "failed_rewrite_with_edits"

    def test_rewrite_unencodable_patch_is_library_error(self) -> None:
        with pytest.raises(EncodingError):
            self.service.rewrite_with_edits(
                self.test_file,
                self.output,
                ",",
                patches=[{"row": 0, "col": 0, "value": "\ud800"}],
            )

        assert self.service.get_operation_log()[-1]["operation"] == "failed_rewrite_with_edits"
        assert self.service.monitor.get_stats("rewrite_with_edits")["failures"] == 1

    def test_rewrite_onto_input_is_refused(self) -> None:
        before = self.test_file.read_bytes()

        with pytest.raises(FileAccessError):
            self.service.rewrite_with_edits(self.test_file, self.test_file, ",")

        assert self.test_file.read_bytes() == before

    def test_monitor_counts_rows_read(self) -> None:
        info = self.service.open_session(self.test_file)
        self.service.read_batch(info.session_id, 4)
        self.service.read_batch(info.session_id, 4)
        self.service.read_window(self.test_file, 7, 10)

        assert self.service.monitor.get_stats("read_batch")["rows"] == 8
        assert self.service.monitor.get_stats("read_window")["rows"] == 3

    def test_apply_macro(self) -> None:
        result = self.service.apply_macro(
            self.test_file,
            self.output,
            ",",
            {"op": "prefix", "column": 0, "text": "#"},
            terminator="LF",
            bom=True,
        )

        assert result.applied == 10
        data = self.output.read_bytes()
        assert data.startswith(b"\xef\xbb\xbfid,name,city\n#0,")

    def test_apply_macro_with_spec_object(self) -> None:
        result = self.service.apply_macro(
            self.test_file, self.output, ",", MacroSpec(MacroOp.UPPERCASE, 1)
        )

        assert result.applied == 10
        assert "PERSON 3" in self.output.read_text()

    def test_apply_find_replace(self) -> None:
        result = self.service.apply_find_replace(
            self.test_file,
            self.output,
            ",",
            {"find": r"city(\d)", "replace": r"town-\1", "column": 2, "regex": True},
        )

        assert result.applied == 10
        rows = self.service.read_window(self.output, 0, 2, ",").rows
        assert rows == [["0", "person 0", "town-0"], ["1", "person 1", "town-1"]]

    def test_apply_find_replace_bad_regex(self) -> None:
        with pytest.raises(PatternError):
            self.service.apply_find_replace(
                self.test_file, self.output, ",", {"find": "(", "regex": True}
            )

    def test_column_stats(self) -> None:
        stats = self.service.column_stats(self.test_file, ",")

        assert [s.name for s in stats] == ["id", "name", "city"]
        assert stats[0].inferred == "number"
        assert stats[1].inferred == "text"
        assert stats[2].distinct == 3

    def test_column_stats_uses_default_cap(self) -> None:
        service = TabularEditService(max_distinct=2)

        stats = service.column_stats(self.test_file, ",")

        assert stats[0].distinct == 2
        assert stats[0].distinct_truncated
        assert service.column_stats(self.test_file, ",", max_distinct=50)[0].distinct == 10

    def test_failure_is_logged_and_reraised(self, caplog) -> None:
        missing = Path(self.temp_dir) / "missing.csv"

        with caplog.at_level(logging.ERROR, logger="tabular_editor.service.interface"):
            with pytest.raises(FileAccessError):
                self.service.count_rows(missing)

        assert "count_rows failed" in caplog.text
        entry = self.service.get_operation_log()[-1]
        assert entry["operation"] == "failed_count_rows"
        assert entry["file"] == str(missing)

    def test_operation_log_and_monitor(self) -> None:
        self.service.preview(self.test_file)
        self.service.count_rows(self.test_file)

        operations = [entry["operation"] for entry in self.service.get_operation_log()]
        assert operations == ["preview", "count_rows"]
        assert self.service.monitor.get_stats("preview")["count"] == 1

        self.service.clear_operation_log()
        assert self.service.get_operation_log() == []

    def test_operation_log_is_a_copy(self) -> None:
        self.service.count_rows(self.test_file)
        self.service.get_operation_log().clear()

        assert len(self.service.get_operation_log()) == 1

    def test_shutdown_closes_sessions(self) -> None:
        first = self.service.open_session(self.test_file)
        self.service.open_session(self.test_file)

        assert self.service.shutdown() == 2
        with pytest.raises(SessionNotFoundError):
            self.service.read_batch(first.session_id, 1)
