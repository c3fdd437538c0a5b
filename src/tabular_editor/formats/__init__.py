"""File format-specific editors."""

from .csv import ColumnStat, CSVEditor, TransformResult
from .transforms import (
    FindReplaceSpec,
    MacroOp,
    MacroSpec,
    find_replace_transform,
    macro_transform,
)

__all__ = [
    "CSVEditor",
    "ColumnStat",
    "TransformResult",
    "MacroOp",
    "MacroSpec",
    "FindReplaceSpec",
    "macro_transform",
    "find_replace_transform",
]
