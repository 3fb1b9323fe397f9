# petrd/tags.py
"""Thin accessors over pydicom datasets.

All tag reads go through here so that the rest of the package only ever sees
"value or absent" and never pydicom's empty-value and decoding quirks.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

import pydicom
from pydicom.dataset import Dataset
from pydicom.errors import InvalidDicomError
from pydicom.multival import MultiValue

from petrd.config import Tag
from petrd.exceptions import StructuralError

logger = logging.getLogger(__name__)

# Placeholder used for values that were never actually read into memory
LOADED_SENTINEL = "Loaded:"


def open_dataset(path: Path) -> Dataset:
    """Read a DICOM file. Raises StructuralError if it is not DICOM at all."""
    try:
        return pydicom.dcmread(str(path), force=False)
    except InvalidDicomError as e:
        raise StructuralError(f"Unable to read as DICOM file: {path}: {e}") from e
    except OSError as e:
        raise StructuralError(f"Cannot open {path}: {e}") from e


def _decode(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1").rstrip("\x00 ")
    if isinstance(value, (list, tuple, MultiValue)):
        return "\\".join(str(v) for v in value)
    return str(value).strip()


def get_tag_value(ds: Dataset, tag: Tag) -> Tuple[str, bool]:
    """Return ``(value, present)`` for ``tag``. Never raises for a missing tag."""
    try:
        elem = ds.get(tag)
    except Exception as e:
        # pydicom raises lazily when a deferred element cannot be decoded
        logger.error(f"Cannot read tag {format_tag(tag)}: {e}")
        return "", False

    if elem is None or elem.value is None or elem.is_empty:
        return "", False

    text = _decode(elem.value)
    if text:
        return text, True
    # Zero-length or all-padding values read as absent
    if isinstance(elem.value, (bytes, bytearray, str, list, tuple, MultiValue)):
        return "", False

    # Generic representation for values that do not stringify directly
    fallback = str(elem.repval).strip()
    if not fallback or fallback.startswith(LOADED_SENTINEL):
        return "", False
    return fallback, True


def get_tag_bytes(ds: Dataset, tag: Tag) -> Optional[bytes]:
    """Raw value of a binary tag, or None if absent."""
    try:
        elem = ds.get(tag)
    except Exception as e:
        logger.error(f"Cannot read tag {format_tag(tag)}: {e}")
        return None

    if elem is None or elem.value is None:
        return None
    value = elem.value
    if isinstance(value, str):
        return value.encode("latin-1")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return None


def format_tag(tag: Tag) -> str:
    return f"({tag[0]:04X},{tag[1]:04X})"
