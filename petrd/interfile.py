# petrd/interfile.py
"""Targeted edits of Interfile (``KEY:=VALUE``) headers.

This is deliberately not a parser: only a handful of known lines are ever
located and replaced, and every other byte of the header is passed through
untouched. Header text is handled as latin-1 so that ``bytes -> str -> bytes``
is lossless.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Tuple, Union

from petrd.fileio import write_atomic

logger = logging.getLogger(__name__)

ENCODING = "latin-1"
CRLF = "\r\n"

DATA_FILE_LABEL = "name of data file"
DATA_SET_LABEL = "%data set [1]:={0,,"
WORD_COUNT_LABEL = "%total listmode word counts"

_NUMBER = re.compile(r"[0-9]+")

HeaderValue = Union[str, int, float]


def find_header_line(text: str, label: str) -> Optional[Tuple[int, int]]:
    """Span ``(start, end)`` from ``label`` to the end of its line content.

    ``end`` stops before the line terminator (``\\n`` or ``\\r\\n``).
    """
    start = text.find(label)
    if start < 0:
        return None
    end = text.find("\n", start)
    if end < 0:
        end = len(text)
    while end > start and text[end - 1] == "\r":
        end -= 1
    return start, end


def header_line(text: str, label: str) -> Optional[str]:
    span = find_header_line(text, label)
    if span is None:
        return None
    return text[span[0]:span[1]]


def replace_header_line(
    text: str,
    label: str,
    new_line: str,
    log: Optional[logging.Logger] = None,
) -> str:
    """Replace the first line starting at ``label`` with ``new_line``.

    A missing label leaves the text unchanged (logged, not raised).
    """
    log = log or logger
    span = find_header_line(text, label)
    if span is None:
        log.warning(f"'{label}' not found in header; line left unchanged")
        return text
    start, end = span
    return text[:start] + new_line + text[end:]


def clean_line_endings(text: str) -> str:
    """Normalise every line to end in CRLF, including the last one.

    Repairs the ``\\r\\r\\n`` and bare ``\\n`` endings found in mMR norm headers.
    """
    lines = text.split("\n")
    if text.endswith("\n"):
        lines.pop()
    return "".join(line.rstrip("\r") + CRLF for line in lines)


def parse_word_count(text: str, log: Optional[logging.Logger] = None) -> Optional[int]:
    """Number of 32-bit list-mode words declared in the header, or None."""
    log = log or logger
    line = header_line(text, WORD_COUNT_LABEL)
    if line is None:
        log.info("No word count tag found in Interfile header")
        return None

    match = _NUMBER.search(line[len(WORD_COUNT_LABEL):])
    if match is None:
        log.info("No word count number found in Interfile header")
        return None
    return int(match.group(0))


def data_file_line(data_file: Path) -> str:
    return f"{DATA_FILE_LABEL}:={Path(data_file).name}"


def data_set_line(data_file: Path) -> str:
    return f"{DATA_SET_LABEL}{Path(data_file).name}}}"


def rewrite_header_text(
    text: str,
    data_file: Path,
    *,
    rewrite_data_set: bool = False,
    repair_line_endings: bool = False,
    log: Optional[logging.Logger] = None,
) -> str:
    text = replace_header_line(text, DATA_FILE_LABEL, data_file_line(data_file), log)
    if rewrite_data_set:
        text = replace_header_line(text, DATA_SET_LABEL, data_set_line(data_file), log)
    if repair_line_endings:
        text = clean_line_endings(text)
    return text


def modify_header(
    header_path: Path,
    data_file: Path,
    *,
    rewrite_data_set: bool = False,
    repair_line_endings: bool = False,
    log: Optional[logging.Logger] = None,
) -> bool:
    """Point the header at ``data_file`` (file name only), rewriting in place."""
    log = log or logger
    header_path = Path(header_path)

    try:
        text = header_path.read_bytes().decode(ENCODING)
    except OSError as e:
        log.error(f"Unable to read header {header_path}: {e}")
        return False
    log.debug(f"Read {header_path}")

    text = rewrite_header_text(
        text,
        data_file,
        rewrite_data_set=rewrite_data_set,
        repair_line_endings=repair_line_endings,
        log=log,
    )

    try:
        write_atomic(header_path, text.encode(ENCODING))
    except OSError as e:
        log.error(f"Unable to update header in {header_path}: {e}")
        return False
    return True


# ----------------------------
# Template substitution (<%%KEY%%> placeholders)
# ----------------------------

def format_header_value(value: HeaderValue) -> str:
    # bool is an int subclass but has no Interfile meaning
    if isinstance(value, bool):
        raise TypeError("bool is not a valid header value")
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return format(value, ".7g")
    raise TypeError(f"Unsupported header value type: {type(value).__name__}")


def placeholder(key: str) -> str:
    return f"<%%{key}%%>"


def fill_template(
    template: str,
    key: str,
    value: HeaderValue,
    log: Optional[logging.Logger] = None,
) -> Tuple[str, bool]:
    """Replace the first ``<%%key%%>`` in ``template`` with ``value``."""
    log = log or logger
    target = placeholder(key)
    if target not in template:
        log.warning(f"Interfile replacement key: {target} not found!")
        return template, False
    return template.replace(target, format_header_value(value), 1), True
