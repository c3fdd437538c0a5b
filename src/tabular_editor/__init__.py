"""Streaming editor for large delimiter-separated files."""

from .core import (
    CellPatch,
    DeleteColumn,
    DeleteRow,
    DialectConfig,
    EditMerger,
    InsertColumn,
    InsertRow,
    RecordStream,
    RenameColumn,
    SessionStore,
    rewrite_with_edits,
)
from .errors import (
    EncodingError,
    FileAccessError,
    InvalidEditError,
    LockPoisonedError,
    ParseError,
    PatternError,
    SessionNotFoundError,
    TabularEditorError,
)
from .formats import CSVEditor, FindReplaceSpec, MacroOp, MacroSpec
from .service import TabularEditService

__version__ = "0.1.0"

__all__ = [
    # Service
    "TabularEditService",
    # Engine
    "DialectConfig",
    "RecordStream",
    "SessionStore",
    "CSVEditor",
    "EditMerger",
    "rewrite_with_edits",
    # Edits and rules
    "CellPatch",
    "InsertRow",
    "DeleteRow",
    "InsertColumn",
    "DeleteColumn",
    "RenameColumn",
    "MacroOp",
    "MacroSpec",
    "FindReplaceSpec",
    # Errors
    "TabularEditorError",
    "FileAccessError",
    "ParseError",
    "PatternError",
    "EncodingError",
    "SessionNotFoundError",
    "LockPoisonedError",
    "InvalidEditError",
]
