"""Single-pass merge of deferred edits into a rewritten file."""
import logging
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import Optional, Union

from .dialect import DialectConfig
from .edits import (
    CellPatch,
    ColumnOp,
    DeleteRow,
    InsertRow,
    NormalizedRowOp,
    RowOp,
    apply_column_ops_to_header,
    apply_column_ops_to_row,
    apply_patches,
    build_patch_map,
    normalize_row_ops,
)
from .stream_editor import Record, RecordReader, ensure_distinct_output, write_records

logger = logging.getLogger(__name__)


class EditMerger:
    """State machine merging row ops, column ops and patches into a record stream.

    Feed input records in file order with ``feed``; each call returns the
    output rows that become due, in order. Call ``finish`` once the input is
    exhausted to emit inserts that land at or beyond end of file.

    Counters:
        op_index: next unconsumed normalized row op
        input_index: input records consumed so far
        output_index: data rows emitted so far
    """

    def __init__(
        self,
        patches: Iterable[CellPatch] = (),
        row_ops: Iterable[RowOp] = (),
        column_ops: Sequence[ColumnOp] = (),
    ):
        self.patch_map = build_patch_map(patches)
        self.row_ops: list[NormalizedRowOp] = normalize_row_ops(row_ops)
        self.column_ops = list(column_ops)
        self.op_index = 0
        self.input_index = 0
        self.output_index = 0
        self.skipped = 0
        self.finished = False

    def header(self, header: Sequence[str]) -> Record:
        return apply_column_ops_to_header(header, self.column_ops)

    def _emit(self, row: Sequence[str]) -> Record:
        out = apply_column_ops_to_row(row, self.column_ops)
        row_patches = self.patch_map.get(self.output_index)
        if row_patches:
            apply_patches(out, row_patches)
        self.output_index += 1
        return out

    def _drain(self, position: Optional[int]) -> tuple[list[Record], bool]:
        """Apply ops landing at ``position`` (``None`` drains everything left)."""
        rows = []
        skip = False
        while self.op_index < len(self.row_ops):
            pending = self.row_ops[self.op_index]
            if position is not None and pending.input_index != position:
                break
            self.op_index += 1

            op = pending.op
            if isinstance(op, InsertRow):
                rows.append(self._emit(op.values))
            elif isinstance(op, DeleteRow):
                skip = True
        return rows, skip

    def feed(self, record: Sequence[str]) -> list[Record]:
        """Consume one input record and return the rows now ready for output."""
        if self.finished:
            raise RuntimeError("EditMerger already finished")

        rows, skip = self._drain(self.input_index)
        if skip:
            self.skipped += 1
        else:
            rows.append(self._emit(record))
        self.input_index += 1
        return rows

    def finish(self) -> list[Record]:
        """Emit trailing inserts; trailing deletes have nothing left to remove."""
        ignored = sum(
            1 for pending in self.row_ops[self.op_index:] if isinstance(pending.op, DeleteRow)
        )
        if ignored:
            logger.warning(f"Ignoring {ignored} row deletes past end of input")
        rows, _ = self._drain(None)
        self.finished = True
        return rows

    def merge(self, records: Iterable[Sequence[str]]) -> Iterator[Record]:
        """Lazily merge an entire record stream."""
        for record in records:
            yield from self.feed(record)
        yield from self.finish()


def rewrite_with_edits(
    file_path: Union[str, Path],
    output_path: Union[str, Path],
    input_dialect: DialectConfig,
    output_dialect: DialectConfig,
    patches: Iterable[CellPatch] = (),
    row_ops: Iterable[RowOp] = (),
    column_ops: Sequence[ColumnOp] = (),
    lock_timeout: float = 30,
) -> Path:
    """Read ``file_path`` once and write the edited table to ``output_path``.

    A malformed input record aborts the pass with ``ParseError``; whatever was
    already written stays at ``output_path``.

    Args:
        file_path: Source file
        output_path: Target file, overwritten
        input_dialect: Dialect of the source
        output_dialect: Dialect (and encoding) of the target
        patches: Cell overrides in output coordinates
        row_ops: Row inserts/deletes in final row numbering
        column_ops: Column inserts/deletes/renames, applied in order
        lock_timeout: Seconds to wait for the output lock

    Returns:
        Path to the written file

    Raises:
        FileAccessError: If ``output_path`` is the input file
    """
    output_path = Path(output_path)
    ensure_distinct_output(file_path, output_path)
    merger = EditMerger(patches, row_ops, column_ops)

    with RecordReader(file_path, input_dialect) as reader:
        written = write_records(
            output_path,
            merger.header(reader.header),
            merger.merge(reader),
            output_dialect,
            lock_timeout,
        )

    logger.info(
        f"Rewrote {file_path} -> {output_path}: {merger.input_index} rows in, "
        f"{written} rows out ({merger.skipped} deleted)"
    )
    return output_path
