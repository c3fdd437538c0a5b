"""Streaming tabular reader and writer primitives."""
import csv
import itertools
import logging
import os
import sys
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TextIO, Union

from ..errors import EncodingError, FileAccessError, ParseError
from .dialect import DialectConfig
from .encoding import apply_output_encoding
from .safety import safe_output_context

logger = logging.getLogger(__name__)

Record = list[str]

# Cells may be arbitrarily long; lift the csv module's per-field cap.
_max_field_size = sys.maxsize
while True:
    try:
        csv.field_size_limit(_max_field_size)
        break
    except OverflowError:
        _max_field_size //= 10


@dataclass
class RecordBatch:
    """A contiguous run of data records and its position in the file."""

    rows: list[Record] = field(default_factory=list)
    start: int = 0
    end: int = 0
    eof: bool = False


def open_text(file_path: Union[str, Path]) -> TextIO:
    """Open a tabular file for reading, dropping a leading UTF-8 BOM."""
    try:
        return open(file_path, encoding="utf-8-sig", newline="")
    except OSError as e:
        raise FileAccessError(f"Failed to open {file_path}: {e}") from e


def iter_records(reader, source: Union[str, Path]) -> Iterator[Record]:
    """Yield records from a ``csv.reader``, skipping blank lines.

    Every record must have as many fields as the first one (the header,
    when the file has one).

    Args:
        reader: ``csv.reader`` instance
        source: File name used in error messages

    Yields:
        One list of cells per record

    Raises:
        ParseError: On malformed quoting, undecodable bytes or a record
            whose field count differs from the first record
        FileAccessError: On read failures
    """
    width: Optional[int] = None
    while True:
        try:
            record = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            raise ParseError(f"{source}: line {reader.line_num}: {e}", reader.line_num) from e
        except UnicodeDecodeError as e:
            raise ParseError(
                f"{source}: line {reader.line_num + 1}: invalid UTF-8: {e}",
                reader.line_num + 1,
            ) from e
        except OSError as e:
            raise FileAccessError(f"Failed to read {source}: {e}") from e

        if not record:
            continue
        if width is None:
            width = len(record)
        elif len(record) != width:
            raise ParseError(
                f"{source}: line {reader.line_num}: found record with {len(record)} fields, "
                f"expected {width}",
                reader.line_num,
            )
        yield record


def ensure_distinct_output(source: Union[str, Path], output: Union[str, Path]):
    """Refuse to write over the file being read.

    Raises:
        FileAccessError: If ``output`` names the same file as ``source``
    """
    source, output = Path(source), Path(output)
    same = source.resolve() == output.resolve()
    if not same and output.exists():
        try:
            same = os.path.samefile(source, output)
        except OSError:
            same = False
    if same:
        raise FileAccessError(f"Output {output} is the input file; choose a different path")


class RecordReader:
    """Tabular reader bound to one open file handle.

    The header (when the dialect has one) is consumed on construction;
    iterating the reader yields the remaining data records lazily.
    """

    def __init__(self, file_path: Union[str, Path], dialect: DialectConfig):
        self.file_path = Path(file_path)
        self.dialect = dialect
        self._file = open_text(self.file_path)
        self._records = iter_records(
            csv.reader(self._file, **dialect.reader_kwargs()), self.file_path
        )
        self.header: Record = []

        if dialect.has_header:
            try:
                self.header = next(self._records, [])
            except Exception:
                self.close()
                raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __iter__(self) -> Iterator[Record]:
        return self._records

    @property
    def closed(self) -> bool:
        return self._file.closed

    def take(self, limit: int) -> list[Record]:
        """Read up to ``limit`` records."""
        return list(itertools.islice(self._records, limit))

    def skip(self, count: int) -> int:
        """Discard up to ``count`` records, returning how many were skipped."""
        skipped = 0
        for _ in itertools.islice(self._records, count):
            skipped += 1
        return skipped

    def close(self):
        if not self._file.closed:
            self._file.close()


class RecordWriter:
    """Tabular writer producing UTF-8 output in the given dialect."""

    def __init__(self, file_path: Union[str, Path], dialect: DialectConfig):
        self.file_path = Path(file_path)
        self.dialect = dialect
        self.rows_written = 0
        try:
            self._file = open(self.file_path, "w", encoding="utf-8", newline="")
        except OSError as e:
            raise FileAccessError(f"Failed to create {self.file_path}: {e}") from e
        self._writer = csv.writer(self._file, **dialect.writer_kwargs())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def write_header(self, header: Record):
        if self.dialect.has_header:
            self._write(header)

    def write(self, row: Record):
        self._write(row)
        self.rows_written += 1

    def _write(self, row: Record):
        try:
            self._writer.writerow(row)
        except UnicodeEncodeError as e:
            raise EncodingError(f"Cannot encode value for {self.file_path}: {e}") from e
        except (OSError, csv.Error) as e:
            raise FileAccessError(f"Failed to write {self.file_path}: {e}") from e

    def close(self):
        if not self._file.closed:
            self._file.close()


def write_records(
    output_path: Union[str, Path],
    header: Record,
    rows: Iterable[Record],
    dialect: DialectConfig,
    lock_timeout: float = 30,
) -> int:
    """Stream rows into a new file, then apply the encoding post-process.

    ``rows`` is consumed lazily, so a generator over an input reader keeps
    the whole pass at constant memory. The output path stays locked until
    the post-process has finished.

    Args:
        output_path: Target file
        header: Header record, written first when the dialect has headers
        rows: Data records in output order
        dialect: Output dialect
        lock_timeout: Seconds to wait for the output lock

    Returns:
        Number of data rows written
    """
    output_path = Path(output_path)
    with safe_output_context(output_path, lock_timeout) as safe_op:
        with RecordWriter(output_path, dialect) as writer:
            writer.write_header(header)
            for row in rows:
                writer.write(row)
        apply_output_encoding(output_path, dialect, safe_op)

    return writer.rows_written


class RecordStream:
    """Streaming access to a delimiter-separated file.

    Every method opens its own reader, so an instance holds no file handles
    between calls and is safe to reuse.
    """

    def __init__(
        self, file_path: Union[str, Path], dialect: Optional[DialectConfig] = None
    ):
        """Initialize record stream.

        Args:
            file_path: Path to the tabular file
            dialect: Input dialect (defaults to comma-separated)
        """
        self.file_path = Path(file_path)
        self.dialect = dialect or DialectConfig()

    def open_reader(self) -> RecordReader:
        return RecordReader(self.file_path, self.dialect)

    def get_headers(self) -> Record:
        """Get the header record."""
        with self.open_reader() as reader:
            return reader.header

    def read_records(self) -> Iterator[Record]:
        """Read data records lazily.

        Yields:
            List of cell values for each record
        """
        with self.open_reader() as reader:
            yield from reader

    def head(self, n: int = 10) -> tuple[Record, list[Record]]:
        """Get the header and the first n data records."""
        with self.open_reader() as reader:
            return reader.header, reader.take(n)

    def read_window(self, start: int, limit: int) -> RecordBatch:
        """Read up to ``limit`` records starting at data record ``start``.

        Records vary in byte length, so the first ``start`` records are
        scanned and discarded rather than seeked over.
        """
        with self.open_reader() as reader:
            reader.skip(start)
            rows = reader.take(limit)

        return RecordBatch(
            rows=rows, start=start, end=start + len(rows), eof=len(rows) < limit
        )

    def count_rows(self) -> int:
        """Count data records (excluding header)."""
        count = 0
        for _ in self.read_records():
            count += 1
        return count

    def process_records(
        self,
        row_transformer: Callable[[Record], Record],
        output_path: Union[str, Path],
        output_dialect: Optional[DialectConfig] = None,
        header_transformer: Optional[Callable[[Record], Record]] = None,
        lock_timeout: float = 30,
    ) -> Path:
        """Rewrite the file record by record.

        Args:
            row_transformer: Function mapping each input record to its output row
            output_path: Output file path
            output_dialect: Dialect to write (defaults to the input dialect)
            header_transformer: Optional function applied to the header
            lock_timeout: Seconds to wait for the output lock

        Returns:
            Path to output file
        """
        output_path = Path(output_path)
        output_dialect = output_dialect or self.dialect
        ensure_distinct_output(self.file_path, output_path)

        with self.open_reader() as reader:
            header = reader.header
            if header_transformer is not None:
                header = header_transformer(header)
            written = write_records(
                output_path,
                header,
                (row_transformer(record) for record in reader),
                output_dialect,
                lock_timeout,
            )

        logger.info(f"Wrote {written} rows from {self.file_path} to {output_path}")
        return output_path
