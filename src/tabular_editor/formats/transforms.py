"""Per-cell transform rules."""
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from ..errors import InvalidEditError, PatternError

CellTransform = Callable[[str], str]


class MacroOp(Enum):
    REPLACE = "replace"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    TRIM = "trim"
    PREFIX = "prefix"
    SUFFIX = "suffix"


@dataclass(frozen=True)
class MacroSpec:
    """A single-column bulk transform."""

    op: MacroOp
    column: int
    find: Optional[str] = None
    replace: Optional[str] = None
    text: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MacroSpec":
        try:
            op = MacroOp(data.get("op"))
        except ValueError:
            raise InvalidEditError(f"Unknown macro op: {data.get('op')!r}") from None
        column = data.get("column")
        if isinstance(column, bool) or not isinstance(column, int) or column < 0:
            raise InvalidEditError(f"Macro column must be a non-negative integer, got {column!r}")
        return cls(op, column, data.get("find"), data.get("replace"), data.get("text"))


@dataclass(frozen=True)
class FindReplaceSpec:
    """Find/replace over one column, or every column when ``column`` is None."""

    find: str
    replace: str = ""
    column: Optional[int] = None
    regex: bool = False
    match_case: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FindReplaceSpec":
        if "find" not in data:
            raise InvalidEditError("Find/replace spec is missing 'find'")
        column = data.get("column")
        if column is not None and (isinstance(column, bool) or not isinstance(column, int) or column < 0):
            raise InvalidEditError(f"Find/replace column must be a non-negative integer, got {column!r}")
        return cls(
            find=str(data["find"]),
            replace=str(data.get("replace") or ""),
            column=column,
            regex=bool(data.get("regex", False)),
            match_case=bool(data.get("match_case", False)),
        )


TransformRule = Union[MacroSpec, FindReplaceSpec]


def macro_transform(spec: MacroSpec) -> CellTransform:
    """Build the cell function for a macro op."""
    op = spec.op
    if op is MacroOp.REPLACE:
        find = spec.find or ""
        replacement = spec.replace or ""
        if not find:
            return lambda value: value
        return lambda value: value.replace(find, replacement)
    if op is MacroOp.UPPERCASE:
        return str.upper
    if op is MacroOp.LOWERCASE:
        return str.lower
    if op is MacroOp.TRIM:
        return str.strip
    if op is MacroOp.PREFIX:
        text = spec.text or ""
        return lambda value: text + value
    if op is MacroOp.SUFFIX:
        text = spec.text or ""
        return lambda value: value + text
    raise InvalidEditError(f"Unknown macro op: {op!r}")


def find_replace_transform(spec: FindReplaceSpec) -> CellTransform:
    """Compile a find/replace spec into a cell function.

    Regex mode uses Python ``re`` syntax for both pattern and replacement
    template. Case-insensitive literal mode escapes ``find`` and inserts
    ``replace`` verbatim. An empty literal ``find`` matches nothing.

    Raises:
        PatternError: If the regex does not compile
    """
    flags = 0 if spec.match_case else re.IGNORECASE

    if spec.regex:
        try:
            pattern = re.compile(spec.find, flags)
        except re.error as e:
            raise PatternError(f"Invalid pattern {spec.find!r}: {e}") from e

        def substitute(value: str) -> str:
            try:
                return pattern.sub(spec.replace, value)
            except re.error as e:
                raise PatternError(f"Invalid replacement {spec.replace!r}: {e}") from e

        return substitute

    if not spec.find:
        return lambda value: value

    if spec.match_case:
        return lambda value: value.replace(spec.find, spec.replace)

    literal = re.compile(re.escape(spec.find), re.IGNORECASE)
    return lambda value: literal.sub(lambda _match: spec.replace, value)
