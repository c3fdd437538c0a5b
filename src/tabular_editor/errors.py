"""Exceptions raised by tabular editing operations."""


class TabularEditorError(Exception):
    """Base class for every error raised by this package."""


class FileAccessError(TabularEditorError):
    """A file could not be opened, read, written or locked."""


class ParseError(TabularEditorError):
    """A record could not be decoded under the active dialect."""

    def __init__(self, message: str, line: int = 0):
        super().__init__(message)
        self.line = line


class PatternError(TabularEditorError):
    """A find/replace pattern failed to compile."""


class EncodingError(TabularEditorError):
    """Output bytes are not valid text for the requested re-encoding."""


class SessionNotFoundError(TabularEditorError):
    """No open session exists for the given id."""

    def __init__(self, session_id: int):
        super().__init__(f"session not found: {session_id}")
        self.session_id = session_id


class LockPoisonedError(TabularEditorError):
    """The session registry was left in an unknown state by an earlier failure."""


class InvalidEditError(TabularEditorError, ValueError):
    """An edit operation or transform rule is malformed."""
