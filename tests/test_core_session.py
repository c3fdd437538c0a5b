"""Tests for browsing sessions and the session registry."""
import tempfile
import threading
from pathlib import Path

import pytest
from tabular_editor.core.dialect import DialectConfig
from tabular_editor.core.session import SessionStore
from tabular_editor.errors import (
    FileAccessError,
    LockPoisonedError,
    ParseError,
    SessionNotFoundError,
)


class _ExplodingDict(dict):
    """Mapping that fails on lookup, simulating a crash inside the registry lock."""

    def get(self, key, default=None):
        raise RuntimeError("boom")


class TestSessionStore:
    """Test the session registry."""

    def setup_method(self) -> None:
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.test_file = Path(self.temp_dir) / "test.csv"
        self.test_file.write_text("id,name\n" + "".join(f"{i},n{i}\n" for i in range(10)))
        self.store = SessionStore()

    def teardown_method(self) -> None:
        """Clean up test environment."""
        import shutil

        if not self.store.poisoned:
            self.store.close_all()
        shutil.rmtree(self.temp_dir)

    def test_open_returns_header(self) -> None:
        session_id, header = self.store.open(self.test_file, DialectConfig())

        assert session_id == 1
        assert header == ["id", "name"]
        assert session_id in self.store

    def test_ids_increase_and_are_not_reused(self) -> None:
        first, _ = self.store.open(self.test_file, DialectConfig())
        second, _ = self.store.open(self.test_file, DialectConfig())
        self.store.close(first)
        third, _ = self.store.open(self.test_file, DialectConfig())

        assert (first, second, third) == (1, 2, 3)

    def test_eof_is_sticky(self) -> None:
        session_id, _ = self.store.open(self.test_file, DialectConfig())

        batches = [self.store.read_next(session_id, 4) for _ in range(3)]
        assert [len(b.rows) for b in batches] == [4, 4, 2]
        assert [b.eof for b in batches] == [False, False, True]
        assert [(b.start, b.end) for b in batches] == [(0, 4), (4, 8), (8, 10)]
        assert batches[0].rows[0] == ["0", "n0"]
        assert batches[2].rows[-1] == ["9", "n9"]

        fourth = self.store.read_next(session_id, 4)
        assert fourth.rows == []
        assert fourth.eof
        assert (fourth.start, fourth.end) == (10, 10)

    def test_exact_multiple_needs_extra_read_for_eof(self) -> None:
        session_id, _ = self.store.open(self.test_file, DialectConfig())

        first = self.store.read_next(session_id, 5)
        second = self.store.read_next(session_id, 5)
        third = self.store.read_next(session_id, 5)

        assert not first.eof
        assert not second.eof
        assert third.rows == [] and third.eof

    def test_exhausted_session_releases_file(self) -> None:
        session_id, _ = self.store.open(self.test_file, DialectConfig())
        self.store.read_next(session_id, 100)

        assert self.store.get(session_id).reader.closed

    def test_zero_limit(self) -> None:
        session_id, _ = self.store.open(self.test_file, DialectConfig())

        batch = self.store.read_next(session_id, 0)
        assert batch.rows == []
        assert not batch.eof
        assert self.store.read_next(session_id, 1).rows == [["0", "n0"]]

    def test_sessions_are_independent(self) -> None:
        a, _ = self.store.open(self.test_file, DialectConfig())
        b, _ = self.store.open(self.test_file, DialectConfig())

        self.store.read_next(a, 6)
        batch = self.store.read_next(b, 2)

        assert batch.start == 0
        assert batch.rows == [["0", "n0"], ["1", "n1"]]

    def test_close(self) -> None:
        session_id, _ = self.store.open(self.test_file, DialectConfig())

        assert self.store.close(session_id) is True
        assert self.store.close(session_id) is False
        assert len(self.store) == 0

    def test_read_unknown_session(self) -> None:
        with pytest.raises(SessionNotFoundError, match="42"):
            self.store.read_next(42, 10)

    def test_read_after_close_through_stale_reference(self) -> None:
        session_id, _ = self.store.open(self.test_file, DialectConfig())
        session = self.store.get(session_id)
        self.store.close(session_id)

        with pytest.raises(SessionNotFoundError):
            session.read_next(1)

    def test_open_missing_file(self) -> None:
        with pytest.raises(FileAccessError):
            self.store.open(Path(self.temp_dir) / "missing.csv", DialectConfig())
        assert len(self.store) == 0

    def test_open_bad_header(self) -> None:
        self.test_file.write_text('"broken header\n')

        with pytest.raises(ParseError):
            self.store.open(self.test_file, DialectConfig())
        assert len(self.store) == 0

    def test_parse_error_mid_session(self) -> None:
        self.test_file.write_text('a\n1\n2\n"oops\n')
        session_id, _ = self.store.open(self.test_file, DialectConfig())

        with pytest.raises(ParseError):
            self.store.read_next(session_id, 10)
        assert session_id in self.store

    def test_close_all(self) -> None:
        for _ in range(3):
            self.store.open(self.test_file, DialectConfig())

        assert self.store.close_all() == 3
        assert len(self.store) == 0

    def test_poisoned_store_fails_fast(self) -> None:
        session_id, _ = self.store.open(self.test_file, DialectConfig())
        self.store._sessions = _ExplodingDict(self.store._sessions)

        with pytest.raises(RuntimeError, match="boom"):
            self.store.read_next(session_id, 1)

        assert self.store.poisoned
        with pytest.raises(LockPoisonedError):
            self.store.read_next(session_id, 1)
        with pytest.raises(LockPoisonedError):
            self.store.open(self.test_file, DialectConfig())
        with pytest.raises(LockPoisonedError):
            self.store.close(session_id)

    def test_concurrent_reads_on_one_session(self) -> None:
        """Reads on the same id are serialized and never hand out a row twice."""
        self.test_file.write_text("n\n" + "".join(f"{i}\n" for i in range(1000)))
        session_id, _ = self.store.open(self.test_file, DialectConfig())
        collected = []
        collected_lock = threading.Lock()

        def worker():
            while True:
                batch = self.store.read_next(session_id, 7)
                with collected_lock:
                    collected.extend(int(row[0]) for row in batch.rows)
                if batch.eof:
                    return

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(collected) == list(range(1000))
