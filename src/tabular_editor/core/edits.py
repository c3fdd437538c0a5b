"""Deferred edit operations and their normalization.

Row ops and cell patches are addressed in *final* output coordinates, the
numbering the client sees after its own edits. Column ops are replayed in
order, each one against the column layout the previous op produced.
"""
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from ..errors import InvalidEditError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellPatch:
    """Single-cell override at a final (row, col) position."""

    row: int
    col: int
    value: str


@dataclass(frozen=True)
class InsertRow:
    index: int
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeleteRow:
    index: int


@dataclass(frozen=True)
class InsertColumn:
    index: int
    name: str


@dataclass(frozen=True)
class DeleteColumn:
    index: int


@dataclass(frozen=True)
class RenameColumn:
    index: int
    name: str


RowOp = Union[InsertRow, DeleteRow]
ColumnOp = Union[InsertColumn, DeleteColumn, RenameColumn]


@dataclass(frozen=True)
class NormalizedRowOp:
    """A row op pinned to the input record position where it takes effect."""

    input_index: int
    op: RowOp


PatchMap = dict[int, dict[int, str]]


def normalize_row_ops(ops: Iterable[RowOp]) -> list[NormalizedRowOp]:
    """Translate final-space row indices into input-space positions.

    Each insert seen so far shifts later final indices one further from the
    input numbering, each delete one closer. Positions before the start of
    the file clamp to 0.

    The result is ordered by input position; ops landing on the same
    position keep their original relative order.
    """
    normalized = []
    offset = 0
    for op in ops:
        input_index = max(0, op.index - offset)
        if isinstance(op, InsertRow):
            offset += 1
        elif isinstance(op, DeleteRow):
            offset -= 1
        else:
            raise InvalidEditError(f"Not a row op: {op!r}")
        normalized.append(NormalizedRowOp(input_index, op))

    normalized.sort(key=lambda item: item.input_index)
    return normalized


def _apply_column_ops(row: Sequence[str], ops: Iterable[ColumnOp], header: bool) -> list[str]:
    result = list(row)
    for op in ops:
        if isinstance(op, InsertColumn):
            result.insert(min(op.index, len(result)), op.name if header else "")
        elif isinstance(op, DeleteColumn):
            if 0 <= op.index < len(result):
                del result[op.index]
        elif isinstance(op, RenameColumn):
            if header and 0 <= op.index < len(result):
                result[op.index] = op.name
        else:
            raise InvalidEditError(f"Not a column op: {op!r}")
    return result


def apply_column_ops_to_header(header: Sequence[str], ops: Iterable[ColumnOp]) -> list[str]:
    """Replay column ops on a header; inserted columns get their names."""
    return _apply_column_ops(header, ops, header=True)


def apply_column_ops_to_row(row: Sequence[str], ops: Iterable[ColumnOp]) -> list[str]:
    """Replay column ops on a data row; inserted cells start empty, renames are ignored."""
    return _apply_column_ops(row, ops, header=False)


def build_patch_map(patches: Iterable[CellPatch]) -> PatchMap:
    """Collapse patches into row → col → value; later patches win."""
    patch_map: PatchMap = {}
    for patch in patches:
        patch_map.setdefault(patch.row, {})[patch.col] = patch.value
    return patch_map


def apply_patches(row: list[str], row_patches: Mapping[int, str]) -> list[str]:
    """Overwrite cells in place, growing the row with empty cells as needed."""
    for col, value in row_patches.items():
        if col >= len(row):
            row.extend([""] * (col + 1 - len(row)))
        row[col] = value
    return row


def _require(data: Mapping[str, Any], key: str, kind: str) -> Any:
    if key not in data:
        raise InvalidEditError(f"{kind} is missing {key!r}: {dict(data)!r}")
    return data[key]


def _index(data: Mapping[str, Any], kind: str) -> int:
    index = _require(data, "index", kind)
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise InvalidEditError(f"{kind} index must be a non-negative integer, got {index!r}")
    return index


def cell_patch_from_dict(data: Mapping[str, Any]) -> CellPatch:
    """Build a patch from ``{"row": r, "col": c, "value": v}``."""
    row = _require(data, "row", "patch")
    col = _require(data, "col", "patch")
    if not isinstance(row, int) or not isinstance(col, int) or row < 0 or col < 0:
        raise InvalidEditError(f"patch coordinates must be non-negative integers: {dict(data)!r}")
    return CellPatch(row, col, str(_require(data, "value", "patch")))


def row_op_from_dict(data: Mapping[str, Any]) -> RowOp:
    """Build a row op from ``{"type": "insert"|"delete", "index": i, ...}``."""
    kind = data.get("type")
    if kind == "insert":
        values = data.get("values") or ()
        return InsertRow(_index(data, "row insert"), tuple(str(v) for v in values))
    if kind == "delete":
        return DeleteRow(_index(data, "row delete"))
    raise InvalidEditError(f"Unknown row op type: {kind!r}")


def column_op_from_dict(data: Mapping[str, Any]) -> ColumnOp:
    """Build a column op from ``{"type": "insert"|"delete"|"rename", "index": i, ...}``."""
    kind = data.get("type")
    if kind == "insert":
        return InsertColumn(_index(data, "column insert"), str(data.get("name", "")))
    if kind == "delete":
        return DeleteColumn(_index(data, "column delete"))
    if kind == "rename":
        return RenameColumn(_index(data, "column rename"), str(_require(data, "name", "column rename")))
    raise InvalidEditError(f"Unknown column op type: {kind!r}")


def coerce_patches(patches: Iterable[Union[CellPatch, Mapping[str, Any]]]) -> list[CellPatch]:
    return [p if isinstance(p, CellPatch) else cell_patch_from_dict(p) for p in patches]


def coerce_row_ops(ops: Iterable[Union[RowOp, Mapping[str, Any]]]) -> list[RowOp]:
    return [op if isinstance(op, (InsertRow, DeleteRow)) else row_op_from_dict(op) for op in ops]


def coerce_column_ops(ops: Iterable[Union[ColumnOp, Mapping[str, Any]]]) -> list[ColumnOp]:
    return [
        op if isinstance(op, (InsertColumn, DeleteColumn, RenameColumn)) else column_op_from_dict(op)
        for op in ops
    ]
