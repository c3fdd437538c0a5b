"""Dialect resolution for delimiter-separated files."""
import logging
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from ..errors import FileAccessError

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 64 * 1024

# Ordered: ties go to the earlier candidate.
DELIMITER_CANDIDATES = (",", ";", "\t", "|")


class Terminator(Enum):
    """Line terminator written after each record."""

    CRLF = "\r\n"
    LF = "\n"

    @classmethod
    def from_name(cls, name: Optional[str]) -> "Terminator":
        """Map a client terminator name to a terminator, CRLF unless "LF"."""
        if name == "LF":
            return cls.LF
        return cls.CRLF


class TextEncoding(Enum):
    """Target text encoding of a written file."""

    UTF8 = "UTF-8"
    UTF16LE = "UTF-16LE"

    @classmethod
    def from_name(cls, name: Optional[str]) -> "TextEncoding":
        """Map a client encoding name to an encoding, UTF-8 unless UTF-16LE."""
        if name is not None and name.upper() == cls.UTF16LE.value:
            return cls.UTF16LE
        return cls.UTF8


@dataclass(frozen=True)
class DialectConfig:
    """Lexical conventions used to decode or encode one tabular file.

    Resolved once per operation and never mutated afterwards; use
    ``with_changes`` to derive an output dialect from an input one.
    """

    delimiter: str = ","
    quote: str = '"'
    escape: str = '"'
    terminator: Terminator = Terminator.CRLF
    has_header: bool = True
    encoding: TextEncoding = TextEncoding.UTF8
    bom: bool = False

    def __post_init__(self):
        for name in ("delimiter", "quote", "escape"):
            value = getattr(self, name)
            if not isinstance(value, str) or len(value) != 1:
                raise ValueError(f"{name} must be a single character, got {value!r}")

    def with_changes(self, **changes: Any) -> "DialectConfig":
        return replace(self, **changes)

    def reader_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``csv.reader``."""
        kwargs: dict[str, Any] = {
            "delimiter": self.delimiter,
            "quotechar": self.quote,
            "strict": True,
        }
        kwargs.update(self._escape_kwargs())
        return kwargs

    def writer_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``csv.writer``."""
        kwargs: dict[str, Any] = {
            "delimiter": self.delimiter,
            "quotechar": self.quote,
            "lineterminator": self.terminator.value,
        }
        kwargs.update(self._escape_kwargs())
        return kwargs

    def _escape_kwargs(self) -> dict[str, Any]:
        # An escape equal to the quote means quotes are doubled.
        if self.escape == self.quote:
            return {"doublequote": True, "escapechar": None}
        return {"doublequote": False, "escapechar": self.escape}


def parse_delimiter(value: Optional[str]) -> str:
    """Choose a delimiter from user input.

    The two-character sequence ``\\t`` selects a tab, an empty string falls
    back to a comma and anything else contributes its first character.
    """
    if value is None or value == "":
        return ","
    if value == "\\t":
        return "\t"
    return value[0]


def display_delimiter(delimiter: str) -> str:
    """Inverse of ``parse_delimiter`` for reporting back to clients."""
    if delimiter == "\t":
        return "\\t"
    return delimiter


def detect_delimiter(sample: str) -> str:
    """Pick the most frequent candidate delimiter in a text sample."""
    best_count, best = 0, ","
    for candidate in DELIMITER_CANDIDATES:
        count = sample.count(candidate)
        if count > best_count:
            best_count, best = count, candidate
    return best


def sniff_delimiter(
    file_path: Union[str, Path], sample_size: int = DEFAULT_SAMPLE_SIZE
) -> str:
    """Detect the delimiter of a file from its first ``sample_size`` bytes."""
    try:
        with open(file_path, "rb") as f:
            raw = f.read(sample_size)
    except OSError as e:
        raise FileAccessError(f"Failed to read {file_path}: {e}") from e

    # The sample may end mid-character.
    sample = raw.decode("utf-8", errors="ignore")
    delimiter = detect_delimiter(sample)
    logger.debug(f"Detected delimiter {display_delimiter(delimiter)!r} in {file_path}")
    return delimiter


def resolve_dialect(
    delimiter: Optional[str] = None,
    terminator: Optional[str] = None,
    bom: Optional[bool] = None,
    encoding: Optional[str] = None,
    quote: Optional[str] = None,
    escape: Optional[str] = None,
) -> DialectConfig:
    """Build a dialect from optional client-supplied fields.

    Args:
        delimiter: Delimiter string as accepted by ``parse_delimiter``
        terminator: "LF" or anything else for CRLF
        bom: Whether to emit a byte-order mark
        encoding: "UTF-16LE" or anything else for UTF-8
        quote: Quote character; only the first character is used
        escape: Escape character; only the first character is used

    Returns:
        Resolved dialect with unspecified fields at their defaults
    """
    return DialectConfig(
        delimiter=parse_delimiter(delimiter),
        quote=quote[0] if quote else '"',
        escape=escape[0] if escape else '"',
        terminator=Terminator.from_name(terminator),
        encoding=TextEncoding.from_name(encoding),
        bom=bool(bom),
    )
