"""Request/response interface over the tabular editing engine."""
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from ..core.dialect import (
    DEFAULT_SAMPLE_SIZE,
    DialectConfig,
    display_delimiter,
    parse_delimiter,
    resolve_dialect,
    sniff_delimiter,
)
from ..core.edits import (
    CellPatch,
    ColumnOp,
    RowOp,
    coerce_column_ops,
    coerce_patches,
    coerce_row_ops,
)
from ..core.safety import PerformanceMonitor
from ..core.session import SessionStore
from ..core.stream_editor import RecordBatch
from ..formats.csv import DEFAULT_MAX_DISTINCT, ColumnStat, CSVEditor, TransformResult
from ..formats.transforms import FindReplaceSpec, MacroSpec

logger = logging.getLogger(__name__)

PatchInput = Union[CellPatch, Mapping[str, Any]]
RowOpInput = Union[RowOp, Mapping[str, Any]]
ColumnOpInput = Union[ColumnOp, Mapping[str, Any]]


@dataclass
class CsvPreview:
    headers: list[str]
    rows: list[list[str]]
    delimiter: str
    path: str


@dataclass
class SessionInfo:
    session_id: int
    headers: list[str]
    delimiter: str
    path: str


class TabularEditService:
    """Boundary operations for browsing and rewriting tabular files.

    Owns the session store; construct one per process (or per test) and
    route every request through it. Every operation is timed, recorded in
    the operation log, and re-raises failures after logging them.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        preview_rows: int = 200,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        lock_timeout: float = 30,
        max_distinct: int = DEFAULT_MAX_DISTINCT,
    ):
        """Initialize the service.

        Args:
            store: Session store to use (a fresh one if omitted)
            preview_rows: Rows returned by ``preview``
            sample_size: Bytes sampled for delimiter detection
            lock_timeout: Seconds to wait for an output file lock
            max_distinct: Default cap for ``column_stats``
        """
        self.store = store or SessionStore()
        self.preview_rows = preview_rows
        self.sample_size = sample_size
        self.lock_timeout = lock_timeout
        self.max_distinct = max_distinct
        self.monitor = PerformanceMonitor()
        self.operation_log: list[dict[str, Any]] = []

    def _log_operation(self, op_type: str, file_path: Any, details: Any):
        """Maintain audit trail for operations."""
        self.operation_log.append(
            {
                "timestamp": time.time(),
                "operation": op_type,
                "file": str(file_path),
                "details": details,
            }
        )

    def _fail(self, op_type: str, file_path: Any, error: Exception):
        logger.error(f"{op_type} failed for {file_path}: {error}")
        self._log_operation(f"failed_{op_type}", file_path, str(error))

    def _input_dialect(self, path: Union[str, Path], delimiter: Optional[str]) -> DialectConfig:
        if delimiter is None:
            return DialectConfig(delimiter=sniff_delimiter(path, self.sample_size))
        return DialectConfig(delimiter=parse_delimiter(delimiter))

    def preview(self, path: Union[str, Path], delimiter: Optional[str] = None) -> CsvPreview:
        """Load headers and the first rows, detecting the delimiter if not given."""
        try:
            with self.monitor.measure_operation("preview") as measured:
                dialect = self._input_dialect(path, delimiter)
                headers, rows = CSVEditor(path, dialect).preview(self.preview_rows)
                measured.rows = len(rows)
        except Exception as e:
            self._fail("preview", path, e)
            raise

        self._log_operation("preview", path, len(rows))
        return CsvPreview(headers, rows, display_delimiter(dialect.delimiter), str(path))

    def open_session(self, path: Union[str, Path], delimiter: Optional[str] = None) -> SessionInfo:
        """Open a browsing session on a file."""
        try:
            with self.monitor.measure_operation("open_session"):
                dialect = self._input_dialect(path, delimiter)
                session_id, headers = self.store.open(path, dialect)
        except Exception as e:
            self._fail("open_session", path, e)
            raise

        self._log_operation("open_session", path, session_id)
        return SessionInfo(session_id, headers, display_delimiter(dialect.delimiter), str(path))

    def read_batch(self, session_id: int, limit: int) -> RecordBatch:
        """Read the next batch of rows from a session."""
        try:
            with self.monitor.measure_operation("read_batch") as measured:
                batch = self.store.read_next(session_id, limit)
                measured.rows = len(batch.rows)
                return batch
        except Exception as e:
            self._fail("read_batch", f"session {session_id}", e)
            raise

    def close_session(self, session_id: int) -> bool:
        """Close a session, returning whether it existed."""
        try:
            existed = self.store.close(session_id)
        except Exception as e:
            self._fail("close_session", f"session {session_id}", e)
            raise

        self._log_operation("close_session", f"session {session_id}", existed)
        return existed

    def read_window(
        self,
        path: Union[str, Path],
        start: int,
        limit: int,
        delimiter: Optional[str] = None,
    ) -> RecordBatch:
        """Read rows ``start`` .. ``start + limit`` without keeping a session."""
        try:
            with self.monitor.measure_operation("read_window") as measured:
                dialect = self._input_dialect(path, delimiter)
                batch = CSVEditor(path, dialect).read_window(start, limit)
                measured.rows = len(batch.rows)
        except Exception as e:
            self._fail("read_window", path, e)
            raise

        self._log_operation("read_window", path, (batch.start, batch.end))
        return batch

    def count_rows(self, path: Union[str, Path], delimiter: Optional[str] = None) -> int:
        """Count data rows with a full scan."""
        try:
            with self.monitor.measure_operation("count_rows") as measured:
                dialect = self._input_dialect(path, delimiter)
                count = CSVEditor(path, dialect).count_rows()
                measured.rows = count
        except Exception as e:
            self._fail("count_rows", path, e)
            raise

        self._log_operation("count_rows", path, count)
        return count

    def rewrite_with_edits(
        self,
        path: Union[str, Path],
        out_path: Union[str, Path],
        delimiter: str,
        patches: Iterable[PatchInput] = (),
        row_ops: Iterable[RowOpInput] = (),
        column_ops: Iterable[ColumnOpInput] = (),
        terminator: Optional[str] = None,
        bom: Optional[bool] = None,
        encoding: Optional[str] = None,
        quote: Optional[str] = None,
        escape: Optional[str] = None,
    ) -> Path:
        """Write ``path`` to ``out_path`` with every deferred edit merged in.

        The input is read with ``delimiter`` and default quoting; the output
        uses the same delimiter with the requested terminator, quoting,
        escape, encoding and BOM.

        Returns:
            Path to the written file
        """
        try:
            with self.monitor.measure_operation("rewrite_with_edits"):
                input_dialect = DialectConfig(delimiter=parse_delimiter(delimiter))
                output_dialect = resolve_dialect(delimiter, terminator, bom, encoding, quote, escape)
                patch_list = coerce_patches(patches)
                row_op_list = coerce_row_ops(row_ops)
                column_op_list = coerce_column_ops(column_ops)

                editor = CSVEditor(path, input_dialect, self.lock_timeout)
                result = editor.rewrite_with_edits(
                    out_path, patch_list, row_op_list, column_op_list, output_dialect
                )
        except Exception as e:
            self._fail("rewrite_with_edits", path, e)
            raise

        self._log_operation(
            "rewrite_with_edits",
            path,
            {
                "output": str(result),
                "patches": len(patch_list),
                "row_ops": len(row_op_list),
                "column_ops": len(column_op_list),
            },
        )
        return result

    def apply_macro(
        self,
        path: Union[str, Path],
        out_path: Union[str, Path],
        delimiter: str,
        spec: Union[MacroSpec, Mapping[str, Any]],
        terminator: Optional[str] = None,
        bom: Optional[bool] = None,
        encoding: Optional[str] = None,
        quote: Optional[str] = None,
        escape: Optional[str] = None,
    ) -> TransformResult:
        """Apply a macro op to one column and write the result to ``out_path``."""
        try:
            with self.monitor.measure_operation("apply_macro"):
                if not isinstance(spec, MacroSpec):
                    spec = MacroSpec.from_dict(spec)
                input_dialect = DialectConfig(delimiter=parse_delimiter(delimiter))
                output_dialect = resolve_dialect(delimiter, terminator, bom, encoding, quote, escape)
                editor = CSVEditor(path, input_dialect, self.lock_timeout)
                result = editor.apply_macro(spec, out_path, output_dialect)
        except Exception as e:
            self._fail("apply_macro", path, e)
            raise

        self._log_operation("apply_macro", path, {"op": spec.op.value, "applied": result.applied})
        return result

    def apply_find_replace(
        self,
        path: Union[str, Path],
        out_path: Union[str, Path],
        delimiter: str,
        spec: Union[FindReplaceSpec, Mapping[str, Any]],
        terminator: Optional[str] = None,
        bom: Optional[bool] = None,
        encoding: Optional[str] = None,
        quote: Optional[str] = None,
        escape: Optional[str] = None,
    ) -> TransformResult:
        """Find and replace across the file and write the result to ``out_path``."""
        try:
            with self.monitor.measure_operation("apply_find_replace"):
                if not isinstance(spec, FindReplaceSpec):
                    spec = FindReplaceSpec.from_dict(spec)
                input_dialect = DialectConfig(delimiter=parse_delimiter(delimiter))
                output_dialect = resolve_dialect(delimiter, terminator, bom, encoding, quote, escape)
                editor = CSVEditor(path, input_dialect, self.lock_timeout)
                result = editor.find_replace(spec, out_path, output_dialect)
        except Exception as e:
            self._fail("apply_find_replace", path, e)
            raise

        self._log_operation("apply_find_replace", path, {"applied": result.applied})
        return result

    def column_stats(
        self,
        path: Union[str, Path],
        delimiter: str,
        max_distinct: Optional[int] = None,
    ) -> list[ColumnStat]:
        """Compute per-column statistics in one pass."""
        if max_distinct is None:
            max_distinct = self.max_distinct
        try:
            with self.monitor.measure_operation("column_stats"):
                dialect = DialectConfig(delimiter=parse_delimiter(delimiter))
                stats = CSVEditor(path, dialect).get_column_stats(max_distinct)
        except Exception as e:
            self._fail("column_stats", path, e)
            raise

        self._log_operation("column_stats", path, len(stats))
        return stats

    def shutdown(self) -> int:
        """Close every open session."""
        closed = self.store.close_all()
        self._log_operation("shutdown", "-", closed)
        return closed

    def get_operation_log(self) -> list[dict[str, Any]]:
        """Get operation log for debugging and audit purposes."""
        return self.operation_log.copy()

    def clear_operation_log(self):
        """Clear the operation log."""
        self.operation_log.clear()
