"""Request/response service over the editing engine."""

from .interface import CsvPreview, SessionInfo, TabularEditService

__all__ = [
    'TabularEditService',
    'CsvPreview',
    'SessionInfo',
]
