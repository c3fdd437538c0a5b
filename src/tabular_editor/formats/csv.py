"""CSV file editing with single-pass streaming rewrites."""
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from ..core.dialect import DialectConfig
from ..core.edits import CellPatch, ColumnOp, RowOp
from ..core.rewrite import rewrite_with_edits
from ..core.stream_editor import Record, RecordStream
from .transforms import (
    FindReplaceSpec,
    MacroSpec,
    find_replace_transform,
    macro_transform,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISTINCT = 5000


@dataclass
class TransformResult:
    """Outcome of a per-cell transform pass."""

    output_path: Path
    applied: int


@dataclass
class ColumnStat:
    """Summary of one column's values."""

    name: str
    non_empty: int
    distinct: int
    distinct_truncated: bool
    inferred: str


@dataclass
class _ColumnAccumulator:
    non_empty: int = 0
    numbers: int = 0
    distinct: set = field(default_factory=set)
    distinct_truncated: bool = False

    def add(self, value: str, max_distinct: int):
        self.non_empty += 1
        try:
            float(value)
        except ValueError:
            pass
        else:
            self.numbers += 1

        if not self.distinct_truncated:
            if len(self.distinct) < max_distinct:
                self.distinct.add(value)
            else:
                self.distinct_truncated = True

    def result(self, name: str) -> ColumnStat:
        is_number = self.non_empty > 0 and self.numbers == self.non_empty
        return ColumnStat(
            name=name,
            non_empty=self.non_empty,
            distinct=len(self.distinct),
            distinct_truncated=self.distinct_truncated,
            inferred="number" if is_number else "text",
        )


class CSVEditor(RecordStream):
    """CSV file editor with memory-efficient row-wise processing.

    Every rewrite reads the source once and writes a new file once; the
    source is never modified.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        dialect: Optional[DialectConfig] = None,
        lock_timeout: float = 30,
    ):
        """Initialize CSV editor.

        Args:
            file_path: Path to CSV file
            dialect: Input dialect (defaults to comma-separated)
            lock_timeout: Seconds to wait for an output file lock
        """
        super().__init__(file_path, dialect)
        self.lock_timeout = lock_timeout

    def preview(self, limit: int = 200) -> tuple[Record, list[Record]]:
        """Get headers and the first ``limit`` data rows."""
        return self.head(limit)

    def apply_macro(
        self,
        spec: MacroSpec,
        output_path: Union[str, Path],
        output_dialect: Optional[DialectConfig] = None,
    ) -> TransformResult:
        """Apply a macro op to one column of every row.

        Rows shorter than the target column are padded with empty cells.

        Args:
            spec: Macro to apply
            output_path: Output file path
            output_dialect: Dialect to write (defaults to the input dialect)

        Returns:
            Output path and number of cells whose value changed
        """
        transform = macro_transform(spec)
        col = spec.column
        applied = 0

        def transform_row(row: Record) -> Record:
            nonlocal applied
            if col >= len(row):
                row.extend([""] * (col + 1 - len(row)))
            current = row[col]
            updated = transform(current)
            if updated != current:
                row[col] = updated
                applied += 1
            return row

        path = self.process_records(
            transform_row, output_path, output_dialect, lock_timeout=self.lock_timeout
        )
        logger.info(f"Macro {spec.op.value} on column {col}: {applied} cells changed")
        return TransformResult(path, applied)

    def find_replace(
        self,
        spec: FindReplaceSpec,
        output_path: Union[str, Path],
        output_dialect: Optional[DialectConfig] = None,
    ) -> TransformResult:
        """Find and replace within one column or all columns.

        Rows without the target column are written unchanged.

        Args:
            spec: Find/replace rule
            output_path: Output file path
            output_dialect: Dialect to write (defaults to the input dialect)

        Returns:
            Output path and number of cells whose value changed
        """
        transform = find_replace_transform(spec)
        applied = 0

        def transform_row(row: Record) -> Record:
            nonlocal applied
            columns = range(len(row)) if spec.column is None else (spec.column,)
            for col in columns:
                if col >= len(row):
                    continue
                current = row[col]
                updated = transform(current)
                if updated != current:
                    row[col] = updated
                    applied += 1
            return row

        path = self.process_records(
            transform_row, output_path, output_dialect, lock_timeout=self.lock_timeout
        )
        scope = "all columns" if spec.column is None else f"column {spec.column}"
        logger.info(f"Find/replace on {scope}: {applied} cells changed")
        return TransformResult(path, applied)

    def rewrite_with_edits(
        self,
        output_path: Union[str, Path],
        patches: Iterable[CellPatch] = (),
        row_ops: Iterable[RowOp] = (),
        column_ops: Sequence[ColumnOp] = (),
        output_dialect: Optional[DialectConfig] = None,
    ) -> Path:
        """Write the file with patches, row ops and column ops merged in."""
        return rewrite_with_edits(
            self.file_path,
            output_path,
            self.dialect,
            output_dialect or self.dialect,
            patches,
            row_ops,
            column_ops,
            self.lock_timeout,
        )

    def get_column_stats(self, max_distinct: int = DEFAULT_MAX_DISTINCT) -> list[ColumnStat]:
        """Get per-column statistics in one pass.

        Values are trimmed and empty ones ignored. Distinct values are
        tracked up to ``max_distinct`` per column to bound memory.

        Args:
            max_distinct: Cap on tracked distinct values per column

        Returns:
            One ColumnStat per column
        """
        with self.open_reader() as reader:
            names = list(reader.header)
            stats = [_ColumnAccumulator() for _ in names]

            for record in reader:
                if not self.dialect.has_header and len(record) > len(stats):
                    stats.extend(_ColumnAccumulator() for _ in range(len(record) - len(stats)))
                for idx, value in enumerate(record[: len(stats)]):
                    value = value.strip()
                    if value:
                        stats[idx].add(value, max_distinct)

        if not self.dialect.has_header:
            names = [f"column_{idx + 1}" for idx in range(len(stats))]

        return [stat.result(name) for name, stat in zip(names, stats)]
