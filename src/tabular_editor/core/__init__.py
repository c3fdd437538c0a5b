"""Core tabular streaming and editing modules."""

from .dialect import (
    DialectConfig,
    Terminator,
    TextEncoding,
    detect_delimiter,
    display_delimiter,
    parse_delimiter,
    resolve_dialect,
    sniff_delimiter,
)
from .stream_editor import RecordBatch, RecordReader, RecordStream, RecordWriter, write_records
from .session import Session, SessionStore
from .edits import (
    CellPatch,
    DeleteColumn,
    DeleteRow,
    InsertColumn,
    InsertRow,
    NormalizedRowOp,
    RenameColumn,
    apply_column_ops_to_header,
    apply_column_ops_to_row,
    normalize_row_ops,
)
from .rewrite import EditMerger, rewrite_with_edits
from .encoding import apply_output_encoding, encode_output
from .safety import PerformanceMonitor, SafeOutputFile, safe_output_context

__all__ = [
    # Dialects
    'DialectConfig',
    'Terminator',
    'TextEncoding',
    'detect_delimiter',
    'display_delimiter',
    'parse_delimiter',
    'resolve_dialect',
    'sniff_delimiter',

    # Streaming primitives
    'RecordBatch',
    'RecordReader',
    'RecordStream',
    'RecordWriter',
    'write_records',

    # Sessions
    'Session',
    'SessionStore',

    # Deferred edits
    'CellPatch',
    'InsertRow',
    'DeleteRow',
    'InsertColumn',
    'DeleteColumn',
    'RenameColumn',
    'NormalizedRowOp',
    'normalize_row_ops',
    'apply_column_ops_to_header',
    'apply_column_ops_to_row',
    'EditMerger',
    'rewrite_with_edits',

    # Output
    'apply_output_encoding',
    'encode_output',
    'SafeOutputFile',
    'safe_output_context',
    'PerformanceMonitor',
]
