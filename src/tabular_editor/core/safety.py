"""Safety mechanisms for writing output files."""
import hashlib
import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from filelock import FileLock, Timeout

from ..errors import FileAccessError

logger = logging.getLogger(__name__)


def lock_path_for(file_path: Union[str, Path]) -> Path:
    """Lock file for an output path, kept in the system temp directory.

    The name is a digest of the absolute output path.
    """
    resolved = str(Path(file_path).resolve())
    digest = hashlib.sha256(resolved.encode("utf-8", "surrogatepass")).hexdigest()[:32]
    return Path(tempfile.gettempdir()) / f"tabular-editor-{digest}.lock"


class SafeOutputFile:
    """Context manager serializing writers of one output path.

    Holds a ``FileLock`` keyed on the output path for the duration of a pass
    and provides a temp file in the same directory for whole-file
    replacements.
    """

    def __init__(self, file_path: Union[str, Path], timeout: float = 30):
        """Initialize safe output operation.

        Args:
            file_path: Path of the output file
            timeout: Lock timeout in seconds
        """
        self.file_path = Path(file_path)
        self.timeout = timeout
        self.lock_path = lock_path_for(self.file_path)
        self.temp_path: Optional[Path] = None
        self.lock: Optional[FileLock] = None

    def __enter__(self):
        """Enter context manager."""
        self.lock = FileLock(self.lock_path, timeout=self.timeout)
        try:
            self.lock.acquire()
        except Timeout as e:
            raise FileAccessError(
                f"Timed out after {self.timeout}s waiting for lock on {self.file_path}"
            ) from e
        except OSError as e:
            raise FileAccessError(f"Failed to lock {self.file_path}: {e}") from e

        logger.debug(f"Acquired lock for {self.file_path}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager."""
        try:
            if self.temp_path and self.temp_path.exists():
                os.remove(self.temp_path)
        finally:
            if self.lock:
                self.lock.release()
                logger.debug(f"Released lock for {self.file_path}")

    def get_temp_file(self) -> Path:
        """Get a temporary file in the same directory."""
        if self.temp_path is None:
            with tempfile.NamedTemporaryFile(
                dir=self.file_path.parent,
                prefix=f".{self.file_path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                self.temp_path = Path(tmp.name)

        return self.temp_path

    def atomic_replace(self, source: Union[str, Path]):
        """Atomically replace the output file with source."""
        source = Path(source)
        if not source.exists():
            raise FileAccessError(f"Source file not found: {source}")

        os.replace(source, self.file_path)
        if source == self.temp_path:
            self.temp_path = None
        logger.debug(f"Atomically replaced {self.file_path} with {source}")

    def replace_contents(self, data: bytes):
        """Replace the whole output file with ``data``."""
        try:
            temp_file = self.get_temp_file()
            temp_file.write_bytes(data)
            self.atomic_replace(temp_file)
        except OSError as e:
            raise FileAccessError(f"Failed to rewrite {self.file_path}: {e}") from e


@contextmanager
def safe_output_context(file_path: Union[str, Path], timeout: float = 30):
    """Context manager for writing an output file under its lock.

    Args:
        file_path: Path of the output file
        timeout: Lock timeout in seconds

    Yields:
        SafeOutputFile instance
    """
    with SafeOutputFile(file_path, timeout) as safe_op:
        yield safe_op


@dataclass
class Measurement:
    """Handle yielded while an operation runs; set ``rows`` to record throughput."""

    rows: int = 0


@dataclass
class OperationStats:
    """Running totals for one named operation."""

    count: int = 0
    failures: int = 0
    rows: int = 0
    total_time: float = 0.0
    min_time: float = float("inf")
    max_time: float = 0.0

    def add(self, duration: float, rows: int, failed: bool):
        self.count += 1
        self.failures += int(failed)
        self.rows += rows
        self.total_time += duration
        self.min_time = min(self.min_time, duration)
        self.max_time = max(self.max_time, duration)

    def as_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "failures": self.failures,
            "rows": self.rows,
            "total_time": self.total_time,
            "average_time": self.total_time / self.count,
            "min_time": self.min_time,
            "max_time": self.max_time,
        }


class PerformanceMonitor:
    """Timing, failure and row counts per service operation.

    Safe to share between threads calling the same service.
    """

    def __init__(self):
        self.operations: dict[str, OperationStats] = {}
        self._lock = threading.Lock()

    @contextmanager
    def measure_operation(self, operation_name: str):
        """Time one call of ``operation_name``.

        Args:
            operation_name: Service operation being measured

        Yields:
            Measurement whose ``rows`` the caller may set
        """
        measurement = Measurement()
        failed = False
        start_time = time.perf_counter()
        try:
            yield measurement
        except BaseException:
            failed = True
            raise
        finally:
            duration = time.perf_counter() - start_time
            with self._lock:
                stats = self.operations.setdefault(operation_name, OperationStats())
                stats.add(duration, measurement.rows, failed)

    def get_stats(self, operation: str) -> dict[str, Any]:
        """Get totals for one operation, or an empty dict if it never ran."""
        with self._lock:
            stats = self.operations.get(operation)
            return stats.as_dict() if stats else {}

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {name: stats.as_dict() for name, stats in self.operations.items()}
