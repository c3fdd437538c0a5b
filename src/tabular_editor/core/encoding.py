"""Output encoding post-process.

The tabular writer always produces UTF-8 without a byte-order mark. When a
different target encoding or a BOM is requested, the finished file is read
back whole and rewritten once.
"""
import codecs
import logging
from pathlib import Path
from typing import Optional, Union

from ..errors import EncodingError, FileAccessError
from .dialect import DialectConfig, TextEncoding
from .safety import SafeOutputFile

logger = logging.getLogger(__name__)

UTF8_BOM = codecs.BOM_UTF8
UTF16LE_BOM = codecs.BOM_UTF16_LE


def needs_post_process(dialect: DialectConfig) -> bool:
    return dialect.encoding is TextEncoding.UTF16LE or dialect.bom


def encode_output(content: bytes, encoding: TextEncoding, bom: bool) -> bytes:
    """Re-encode UTF-8 writer output for the target encoding.

    Args:
        content: Bytes produced by the tabular writer
        encoding: Target encoding
        bom: Whether to prefix a byte-order mark

    Returns:
        Final file bytes

    Raises:
        EncodingError: If UTF-16 output is requested and ``content`` is not UTF-8
    """
    if encoding is TextEncoding.UTF16LE:
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError(f"Output is not valid UTF-8: {e}") from e
        data = text.encode("utf-16-le")
        return UTF16LE_BOM + data if bom else data

    if bom:
        return UTF8_BOM + content
    return content


def apply_output_encoding(
    file_path: Union[str, Path],
    dialect: DialectConfig,
    safe_op: Optional[SafeOutputFile] = None,
) -> bool:
    """Rewrite a finished output file for the dialect's encoding and BOM.

    Args:
        file_path: File just written by a tabular writer
        dialect: Output dialect
        safe_op: Lock already held on ``file_path``; one is taken if omitted

    Returns:
        True if the file was rewritten
    """
    if not needs_post_process(dialect):
        return False

    file_path = Path(file_path)
    try:
        content = file_path.read_bytes()
    except OSError as e:
        raise FileAccessError(f"Failed to read back {file_path}: {e}") from e

    data = encode_output(content, dialect.encoding, dialect.bom)

    if safe_op is None:
        with SafeOutputFile(file_path) as lock_op:
            lock_op.replace_contents(data)
    else:
        safe_op.replace_contents(data)

    logger.info(
        f"Re-encoded {file_path} as {dialect.encoding.value}"
        f"{' with BOM' if dialect.bom else ''}"
    )
    return True
