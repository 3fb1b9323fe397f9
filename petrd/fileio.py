# petrd/fileio.py
from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

COPY_CHUNK = 16 * 1024 * 1024


def _tmp_with_same_suffixes(out_path: Path) -> Path:
    suffixes = "".join(out_path.suffixes)
    base = out_path.name[:-len(suffixes)] if suffixes else out_path.name
    return out_path.with_name(f"{base}.tmp{suffixes}")


def _discard(tmp: Path) -> None:
    if tmp.exists():
        tmp.unlink()


def write_atomic(out_path: Path, data: bytes) -> None:
    """Write ``data`` via a temporary sibling so ``out_path`` is all-or-nothing."""
    tmp = _tmp_with_same_suffixes(out_path)
    _discard(tmp)
    try:
        tmp.write_bytes(data)
        os.replace(str(tmp), str(out_path))
    finally:
        _discard(tmp)


def copy_atomic(src: Path, out_path: Path) -> None:
    tmp = _tmp_with_same_suffixes(out_path)
    _discard(tmp)
    try:
        shutil.copy2(src, tmp)
        os.replace(str(tmp), str(out_path))
    finally:
        _discard(tmp)


def copy_prefix_atomic(src: Path, out_path: Path, length: int) -> None:
    """Copy the first ``length`` bytes of ``src`` to ``out_path``."""
    tmp = _tmp_with_same_suffixes(out_path)
    _discard(tmp)
    try:
        with open(src, "rb") as fin, open(tmp, "wb") as fout:
            remaining = length
            while remaining > 0:
                chunk = fin.read(min(COPY_CHUNK, remaining))
                if not chunk:
                    raise OSError(f"{src} ended {remaining} bytes early")
                fout.write(chunk)
                remaining -= len(chunk)
        os.replace(str(tmp), str(out_path))
    finally:
        _discard(tmp)


def file_length(path: Path) -> Optional[int]:
    """Size in bytes found by seeking to EOF, or None if it cannot be opened."""
    try:
        with open(path, "rb") as fh:
            fh.seek(0, os.SEEK_END)
            return fh.tell()
    except OSError as e:
        logger.info(f"Cannot open {path}: {e}")
        return None


def refuse_existing(dst: Path, what: str, log: Optional[logging.Logger] = None) -> bool:
    """True (and logged) if ``dst`` already exists. Outputs are never overwritten."""
    if Path(dst).exists():
        log = log or logger
        log.error(f"The {what} file already exists: {dst}")
        log.error("Refusing to over-write!")
        return True
    return False
