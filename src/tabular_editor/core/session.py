"""Incremental browsing sessions over open tabular files."""
import itertools
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union

from ..errors import LockPoisonedError, SessionNotFoundError
from .dialect import DialectConfig
from .stream_editor import Record, RecordBatch, RecordReader

logger = logging.getLogger(__name__)


class Session:
    """Forward-only cursor over one open tabular file.

    The cursor counts data records handed out so far. Once a read returns
    fewer records than requested the session is exhausted for good: the file
    handle is released and later reads return empty batches.
    """

    def __init__(self, session_id: int, reader: RecordReader):
        self.id = session_id
        self.reader = reader
        self.cursor = 0
        self.exhausted = False
        self.closed = False
        self.lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self.reader.file_path

    def read_next(self, limit: int) -> RecordBatch:
        """Read the next batch of at most ``limit`` records."""
        with self.lock:
            if self.closed:
                raise SessionNotFoundError(self.id)

            if self.exhausted:
                return RecordBatch(start=self.cursor, end=self.cursor, eof=True)

            start = self.cursor
            rows: list[Record] = []
            # Advance per record so a parse error leaves the cursor on the
            # last record actually consumed.
            for record in itertools.islice(self.reader, limit):
                rows.append(record)
                self.cursor += 1

            if len(rows) < limit:
                self.exhausted = True
                self.reader.close()

            logger.debug(
                f"Session {self.id}: read rows {start}..{self.cursor}"
                f"{' (eof)' if self.exhausted else ''}"
            )
            return RecordBatch(rows=rows, start=start, end=self.cursor, eof=self.exhausted)

    def close(self):
        with self.lock:
            self.closed = True
            self.reader.close()


class SessionStore:
    """Registry of open sessions keyed by id.

    A single lock guards the id → session mapping; it is held only for map
    access, never for file I/O. Reads against one session are serialized by
    that session's own lock, so different sessions proceed independently.

    If an unexpected exception escapes while the registry lock is held the
    store is marked poisoned and every later call raises ``LockPoisonedError``.
    """

    def __init__(self):
        self._sessions: dict[int, Session] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._poisoned = False

    @contextmanager
    def _locked(self):
        with self._lock:
            if self._poisoned:
                raise LockPoisonedError("session registry lock is poisoned")
            try:
                yield self._sessions
            except BaseException:
                self._poisoned = True
                logger.error("Session registry poisoned by failure during map access")
                raise

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def __len__(self) -> int:
        with self._locked() as sessions:
            return len(sessions)

    def __contains__(self, session_id: int) -> bool:
        with self._locked() as sessions:
            return session_id in sessions

    def open(
        self, file_path: Union[str, Path], dialect: DialectConfig
    ) -> tuple[int, Record]:
        """Open a session on a file.

        Args:
            file_path: Path to the tabular file
            dialect: Dialect used to decode it

        Returns:
            Tuple of (session_id, header)

        Raises:
            FileAccessError: If the file cannot be opened
            ParseError: If the header cannot be decoded
        """
        reader = RecordReader(file_path, dialect)

        try:
            with self._locked() as sessions:
                session_id = next(self._ids)
                sessions[session_id] = Session(session_id, reader)
        except BaseException:
            reader.close()
            raise

        logger.info(f"Opened session {session_id} on {reader.file_path}")
        return session_id, reader.header

    def get(self, session_id: int) -> Session:
        with self._locked() as sessions:
            session: Optional[Session] = sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def read_next(self, session_id: int, limit: int) -> RecordBatch:
        """Read the next batch from a session.

        Args:
            session_id: Id returned by ``open``
            limit: Maximum number of records to return

        Returns:
            RecordBatch positioned at the session cursor
        """
        return self.get(session_id).read_next(limit)

    def close(self, session_id: int) -> bool:
        """Close a session, returning whether it existed."""
        with self._locked() as sessions:
            session = sessions.pop(session_id, None)

        if session is None:
            return False

        session.close()
        logger.info(f"Closed session {session_id}")
        return True

    def close_all(self) -> int:
        """Close every open session, returning how many were closed."""
        with self._locked() as sessions:
            closing = list(sessions.values())
            sessions.clear()

        for session in closing:
            session.close()

        if closing:
            logger.info(f"Closed {len(closing)} sessions")
        return len(closing)
