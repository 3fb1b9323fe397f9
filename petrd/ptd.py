# petrd/ptd.py
"""Siemens ``.ptd`` files: raw list-mode words with a DICOM file appended.

There is no index, so the DICOM part is found by scanning backwards from EOF
for the ``DICM`` magic. The list-mode payload is everything before the 128
byte preamble that precedes it.
"""
from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from petrd import interfile
from petrd.classify import Vendor, VendorFileKind
from petrd.config import Config
from petrd.containers import ContentType, std_file_name
from petrd.fileio import copy_prefix_atomic, refuse_existing, write_atomic

logger = logging.getLogger(__name__)

INTERFILE_START = "!INTERFILE"
INTERFILE_LAST = "%comment"


class FileStatus(Enum):
    GOOD = "good"
    BAD = "bad"
    IO_ERROR = "io_error"


def find_dicom_marker(path: Path, limit: int = Config.PTD_SCAN_LIMIT) -> Optional[int]:
    """Absolute offset of the last ``DICM`` in the final ``limit`` bytes, or None.

    Raises OSError if the file cannot be read.
    """
    with open(path, "rb") as fh:
        fh.seek(0, os.SEEK_END)
        size = fh.tell()
        start = max(0, size - limit)
        fh.seek(start)
        tail = fh.read()

    pos = tail.rfind(Config.DICOM_MAGIC)
    if pos < 0:
        return None
    return start + pos


def extract_interfile(tail: str, log: Optional[logging.Logger] = None) -> Optional[str]:
    """Cut the Interfile header out of the decoded DICOM tail.

    Keeps ``!INTERFILE`` through the end of the ``%comment`` line.
    """
    log = log or logger
    begin = tail.find(INTERFILE_START)
    if begin < 0:
        log.info("No Interfile header found")
        return None

    last = tail.find(INTERFILE_LAST, begin)
    if last < 0:
        log.info("No end of Interfile header found")
        return None

    end = tail.find("\n", last)
    if end < 0:
        end = len(tail)
    return tail[begin:end]


def read_ptd_header(
    path: Path,
    cfg: Config = Config(),
    log: Optional[logging.Logger] = None,
) -> Tuple[Optional[int], Optional[str]]:
    """``(marker offset, Interfile header)``; either may be None."""
    log = log or logger
    marker = find_dicom_marker(path, cfg.PTD_SCAN_LIMIT)
    if marker is None:
        log.info("No DICOM header found")
        return None, None
    log.info(f"Found DICOM header at: {marker} bytes")

    with open(path, "rb") as fh:
        fh.seek(marker)
        tail = fh.read().decode(interfile.ENCODING)
    return marker, extract_interfile(tail, log)


def validate_ptd(path: Path, cfg: Config = Config(), log: Optional[logging.Logger] = None) -> FileStatus:
    log = log or logger
    path = Path(path)

    try:
        log.info(f"File size in bytes: {path.stat().st_size}")
        marker, header = read_ptd_header(path, cfg, log)
    except OSError as e:
        log.info(f"Cannot open {path}: {e}")
        return FileStatus.IO_ERROR

    if marker is None or header is None:
        return FileStatus.BAD

    expected = interfile.parse_word_count(header, log)
    if expected is None:
        return FileStatus.BAD
    log.info(f"Expected number of LM words: {expected}")

    payload = marker - cfg.DICOM_PREAMBLE_LENGTH
    # 32-bit words
    if payload < 0 or payload % 4 != 0:
        log.info(f"{payload // 4} words found")
        log.info("Incorrect number of bytes")
        return FileStatus.BAD

    actual = payload // 4
    log.info(f"{actual} LM words found")
    if actual != expected:
        log.info("Expected no. of LM words does not equal no. read!")
        return FileStatus.BAD
    return FileStatus.GOOD


class PtdContainer:
    """Same verbs as ``RawContainer`` for a headerless ``.ptd`` file."""

    vendor = Vendor.SIEMENS
    kind = VendorFileKind.LIST_MODE
    has_interfile_header = True
    data_suffix = ".l"

    def __init__(self, path: Path, cfg: Config = Config(), log: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.cfg = cfg
        self.log = log or logger
        self._marker: Optional[int] = None
        self._header: Optional[str] = None

    def __repr__(self) -> str:
        return f"PtdContainer({self.path.name!r})"

    def _load(self) -> bool:
        if self._header is not None:
            return True
        try:
            self._marker, self._header = read_ptd_header(self.path, self.cfg, self.log)
        except OSError as e:
            self.log.error(f"Cannot open {self.path}: {e}")
            return False
        return self._header is not None

    def read_header(self) -> Tuple[str, bool]:
        if not self._load():
            return "", False
        return self._header, True

    def is_valid(self) -> bool:
        return validate_ptd(self.path, self.cfg, self.log) == FileStatus.GOOD

    def extract_header(self, dst: Path) -> bool:
        text, ok = self.read_header()
        if not ok:
            self.log.error("Unable to read Interfile header")
            return False
        if refuse_existing(dst, "header", self.log):
            return False
        try:
            write_atomic(Path(dst), text.encode(interfile.ENCODING))
        except OSError as e:
            self.log.error(f"Unable to write header to {dst}: {e}")
            return False
        self.log.info("Successfully extracted raw header.")
        return True

    def extract_data(self, dst: Path) -> bool:
        if not self.is_valid():
            self.log.error(f"{self.path} is not a valid .ptd file")
            return False
        if not self._load():
            return False
        if refuse_existing(dst, "data", self.log):
            return False

        length = self._marker - self.cfg.DICOM_PREAMBLE_LENGTH
        try:
            copy_prefix_atomic(self.path, Path(dst), length)
        except OSError as e:
            self.log.error(f"Unable to write listmode to {dst}: {e}")
            return False
        self.log.info(f"Wrote {length} bytes of listmode data to {dst}")
        return True

    def modify_header(self, header_path: Path, data_file: Path) -> bool:
        return interfile.modify_header(header_path, data_file, log=self.log)

    def std_file_name(self, src: Path, ctype: ContentType) -> Path:
        return std_file_name(src, self.data_suffix, ctype, self.cfg)
