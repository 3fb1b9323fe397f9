# petrd/config.py
from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

# DICOM tags, as (group, element) tuples accepted by pydicom.
Tag = Tuple[int, int]

TAG_IMAGE_TYPE: Tag = (0x0008, 0x0008)
TAG_MANUFACTURER: Tag = (0x0008, 0x0070)
TAG_MODEL_NAME: Tag = (0x0008, 0x1090)
TAG_STUDY_DATE: Tag = (0x0008, 0x0020)
TAG_STUDY_TIME: Tag = (0x0008, 0x0030)

# Siemens CSA private tags
TAG_SIEMENS_HEADER: Tag = (0x0029, 0x1010)
TAG_SIEMENS_HEADER_ALT: Tag = (0x0029, 0x1110)
TAG_SIEMENS_DATA: Tag = (0x7FE1, 0x1010)

# GE PET private tags
TAG_GE_SINO_TYPE: Tag = (0x0009, 0x1019)
TAG_GE_CAL_TYPE: Tag = (0x0017, 0x1006)
TAG_GE_RAW_DATA_TYPE: Tag = (0x0021, 0x1001)
TAG_GE_RDF_DATA: Tag = (0x0023, 0x1002)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    return int(value) if value else default


def verify_write_access(path: Path) -> None:
    """
    Verify write access to an output directory. Abort if no access.

    Creates and removes a small probe file under ``path``.

    Raises:
        PermissionError: If write access is not available.
    """
    probe = path / f".write_test_{uuid.uuid4().hex[:8]}"
    try:
        probe.write_bytes(b"")
        probe.unlink()
    except OSError as e:
        if probe.exists():
            probe.unlink()
        raise PermissionError(
            f"No write access to output directory: {path}\n"
            f"Original error: {e}"
        ) from e


def ensure_output_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    verify_write_access(path)


@dataclass(frozen=True)
class Config:
    # Headers are assumed to fit in this many trailing bytes of a .ptd file
    PTD_SCAN_LIMIT: int = _env_int("PETRD_PTD_SCAN_LIMIT", 50000)

    # 128 zero bytes precede the DICM magic
    DICOM_PREAMBLE_LENGTH: int = 128
    DICOM_MAGIC: bytes = b"DICM"

    SIDECAR_SUFFIX: str = ".bf"
    HEADER_SUFFIX: str = ".hdr"

    # ({344,127}+{9,344}+{504,64}+{837}+{64}+{64}+{9}+{837}) * 4
    MMR_NORM_BYTE_LENGTH: int = 323404

    SIEMENS_MANUFACTURER: str = "SIEMENS"
    MMR_MODEL_NAME: str = "Biograph_mMR"
    GE_MANUFACTURER: str = "GE MEDICAL SYSTEMS"

    # Header in 0029,1010 is a stub pointing at 0029,1110 (SMS-MI VB20P / 3.2)
    ALT_HEADER_MARKER: str = "SV10"

    LOG_FORMAT: str = "%(asctime)s | %(levelname)-7s | %(message)s"
    LOG_DATEFMT: str = "%H:%M:%S"


@dataclass(frozen=True)
class MuMapParameters:
    """Reslicing geometry for the mu-map head pipeline.

    Defaults: FOV = 700mm; voxel size = [2.09, 2.09, 2.03]; matrix [344, 344, 127].
    """
    fov: float = 700.0
    px: float = 2.08626
    py: float = 2.08626
    pz: float = 2.03125
    sx: int = 344
    sy: int = 344
    sz: int = 127

    @property
    def spacing(self) -> Tuple[float, float, float]:
        return (self.px, self.py, self.pz)

    @property
    def matrix(self) -> Tuple[int, int, int]:
        return (self.sx, self.sy, self.sz)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MuMapParameters":
        defaults = cls()
        try:
            return cls(
                fov=float(d.get("FOV", defaults.fov)),
                px=float(d.get("px", defaults.px)),
                py=float(d.get("py", defaults.py)),
                pz=float(d.get("pz", defaults.pz)),
                sx=int(d.get("sx", defaults.sx)),
                sy=int(d.get("sy", defaults.sy)),
                sz=int(d.get("sz", defaults.sz)),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid mu-map parameters: {e}") from e

    @classmethod
    def from_json(cls, path: Path) -> "MuMapParameters":
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "FOV": self.fov,
            "px": self.px,
            "py": self.py,
            "pz": self.pz,
            "sx": self.sx,
            "sy": self.sy,
            "sz": self.sz,
        }


DEFAULT_MUMAP_PARAMS = MuMapParameters()
