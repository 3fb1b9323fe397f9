# petrd/mumap.py
"""MR-based attenuation correction (MRAC) series -> PET mu-map.

Stages:
1) read the first DICOM series in a directory and reorient it
2) scale to linear attenuation coefficients (cm^-1); optionally reslice onto
   the PET head geometry (resample, pad x/y, crop z)
3) write with SimpleITK, or as Interfile (``.hv`` + ``.mhd``/``.raw``)

MRAC series store mu * 10000 as integers.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np
import SimpleITK as sitk

from petrd import interfile
from petrd.config import DEFAULT_MUMAP_PARAMS, TAG_STUDY_DATE, TAG_STUDY_TIME, MuMapParameters, Tag
from petrd.exceptions import MuMapError
from petrd.fileio import write_atomic
from petrd.orientation import DEFAULT_ORIENTATION, parse_orientation, to_dicom_orient

logger = logging.getLogger(__name__)

MU_SCALE = 10000.0

# Slices removed below/above after head reslicing
Z_CROP_LOWER = 11
Z_CROP_UPPER = 10

INTERFILE_SUFFIX = ".hv"

# Horizontal bed position written into the Interfile header (mm)
SCANNER_BED_POSITION: Dict[str, str] = {
    "mmr": "-10",
    "signa": "0",
}

SCANNER_LABEL: Dict[str, str] = {
    "mmr": "mMR",
    "signa": "SIGNA PET/MR",
}


def _metadata_key(tag: Tag) -> str:
    """SimpleITK metadata key, e.g. ``0008|0020``."""
    return f"{tag[0]:04x}|{tag[1]:04x}"


DICOM_STUDY_DATE = _metadata_key(TAG_STUDY_DATE)
DICOM_STUDY_TIME = _metadata_key(TAG_STUDY_TIME)


# ----------------------------
# Header template
# ----------------------------

def build_interfile_template(scanner: str = "mmr") -> str:
    """Interfile image header with ``<%%KEY%%>`` placeholders for one scanner."""
    if scanner not in SCANNER_BED_POSITION:
        raise ValueError(f"Unknown scanner: {scanner!r}")
    ph = interfile.placeholder
    bed = SCANNER_BED_POSITION[scanner]

    lines = [
        "!INTERFILE:=",
        f"%comment:=created with petrd mrac2mu for {SCANNER_LABEL[scanner]} data",
        "!originating system:=2008",
        "",
        "!GENERAL DATA:=",
        f"!name of data file:={ph('DATAFILE')}",
        "!GENERAL IMAGE DATA:=",
        "!type of data := PET",
        "",
        f"%study date (yyyy:mm:dd):={ph('STUDYDATE')}",
        f"%study time (hh:mm:ss GMT+00:00):={ph('STUDYTIME')}",
        "imagedata byte order:=LITTLEENDIAN",
        "%patient orientation:=HFS",
        "!PET data type:=image",
        "number format:=float",
        "!number of bytes per pixel:=4",
        "number of dimensions:=3",
        "matrix axis label[1]:=x",
        "matrix axis label[2]:=y",
        "matrix axis label[3]:=z",
        f"matrix size[1]:={ph('NX')}",
        f"matrix size[2]:={ph('NY')}",
        f"matrix size[3]:={ph('NZ')}",
        f"scaling factor (mm/pixel) [1]:={ph('SX')}",
        f"scaling factor (mm/pixel) [2]:={ph('SY')}",
        f"scaling factor (mm/pixel) [3]:={ph('SZ')}",
        f"start horizontal bed position (mm):={bed}",
        f"end horizontal bed position (mm):={bed}",
        "start vertical bed position (mm):=0.0",
        "",
        "!IMAGE DATA DESCRIPTION:=",
        "!total number of data sets:=1",
        "number of time frames:=1",
        "!image duration (sec)[1]:=0",
        "!image relative start time (sec)[1]:=0",
        "",
        "%SUPPLEMENTARY ATTRIBUTES:=",
        "quantification units:=1/cm",
        "slice orientation:=Transverse",
        "%image zoom:=1",
        "%x-offset (mm):=0.0",
        "%y-offset (mm):=0.0",
        "%image slope:=1",
        "%image intercept:=0.0",
        f"maximum pixel count:={ph('MAXVAL')}",
        f"minimum pixel count:={ph('MINVAL')}",
        "!END OF INTERFILE :=",
    ]
    return "\n".join(lines) + "\n"


def format_study_date(value: str) -> Optional[str]:
    """``YYYYMMDD`` -> ``YYYY:MM:DD``."""
    value = value.strip()
    if len(value) < 8 or not value[:8].isdigit():
        return None
    return f"{value[0:4]}:{value[4:6]}:{value[6:8]}"


def format_study_time(value: str) -> Optional[str]:
    """``HHMMSS[.ffffff]`` -> ``HH:MM:SS``."""
    value = value.strip()
    if len(value) < 6 or not value[:6].isdigit():
        return None
    return f"{value[0:2]}:{value[2:4]}:{value[4:6]}"


# ----------------------------
# Image stages
# ----------------------------

def scale_to_mu(img: sitk.Image) -> sitk.Image:
    return sitk.Cast(img, sitk.sitkFloat32) / MU_SCALE


def resliced_size(
    size: Tuple[int, ...],
    spacing: Tuple[float, ...],
    out_spacing: Tuple[float, ...],
) -> Tuple[int, int, int]:
    return tuple(int(n * sp / out_sp + 0.5) for n, sp, out_sp in zip(size, spacing, out_spacing))


def reslice_head(
    img: sitk.Image,
    params: MuMapParameters = DEFAULT_MUMAP_PARAMS,
    log: Optional[logging.Logger] = None,
) -> sitk.Image:
    """Resample to the PET voxel size, scale to mu, pad x/y to the matrix, crop z."""
    log = log or logger

    out_size = resliced_size(img.GetSize(), img.GetSpacing(), params.spacing)
    log.debug(f"Resliced size: {out_size}")
    if out_size[0] % 2 == 1 or out_size[1] % 2 == 1:
        raise MuMapError("Input x or y size is odd. Unsure how to resample!")
    if out_size[2] <= Z_CROP_LOWER + Z_CROP_UPPER:
        raise MuMapError(f"Too few slices ({out_size[2]}) to crop for head geometry")

    try:
        resampled = sitk.Resample(
            img,
            [int(n) for n in out_size],
            sitk.Transform(3, sitk.sitkIdentity),
            sitk.sitkLinear,
            img.GetOrigin(),
            params.spacing,
            img.GetDirection(),
            0.0,
            sitk.sitkFloat32,
        )
    except RuntimeError as e:
        raise MuMapError("Unable to resample!") from e

    mu = scale_to_mu(resampled)

    pad_x = max(0, (params.sx - out_size[0]) // 2)
    pad_y = max(0, (params.sy - out_size[1]) // 2)
    padded = sitk.ConstantPad(mu, [pad_x, pad_y, 0], [pad_x, pad_y, 0], 0.0)

    return sitk.Crop(padded, [0, 0, Z_CROP_LOWER], [0, 0, Z_CROP_UPPER])


def image_min_max(img: sitk.Image) -> Tuple[float, float]:
    arr = sitk.GetArrayViewFromImage(img)
    return float(np.min(arr)), float(np.max(arr))


# ----------------------------
# Pipeline
# ----------------------------

class MuMapPipeline:
    """read() -> update() -> write(dst). Every stage raises MuMapError on failure."""

    def __init__(
        self,
        src_dir: Path,
        orientation: str = DEFAULT_ORIENTATION,
        params: Optional[MuMapParameters] = None,
        is_head: bool = False,
        scanner: str = "mmr",
        log: Optional[logging.Logger] = None,
    ):
        if scanner not in SCANNER_BED_POSITION:
            raise ValueError(f"Unknown scanner: {scanner!r}")
        self.src_dir = Path(src_dir)
        self.orientation = parse_orientation(orientation)
        self.params = params or DEFAULT_MUMAP_PARAMS
        self.is_head = is_head
        self.scanner = scanner
        self.log = log or logger

        self.input_image: Optional[sitk.Image] = None
        self.mu_image: Optional[sitk.Image] = None
        self.study_date: Optional[str] = None
        self.study_time: Optional[str] = None
        self._header = ""

    @property
    def interfile_header(self) -> str:
        return self._header

    def _fill(self, key: str, value: interfile.HeaderValue) -> None:
        self._header, _ = interfile.fill_template(self._header, key, value, self.log)

    def read(self) -> sitk.Image:
        src = self.src_dir
        if not src.exists():
            raise MuMapError(f"Input path {src} does not exist!")
        if not src.is_dir():
            raise MuMapError(f"{src} does not appear to be a directory!")

        self.log.debug(f"DICOM directory: {src}")
        series_ids = sitk.ImageSeriesReader.GetGDCMSeriesIDs(str(src)) or []
        if not series_ids:
            raise MuMapError("No valid DICOM series found")
        if len(series_ids) > 1:
            self.log.warning(f"{len(series_ids)} series found; converting only {series_ids[0]}")

        file_names = sitk.ImageSeriesReader.GetGDCMSeriesFileNames(str(src), series_ids[0])
        reader = sitk.ImageSeriesReader()
        reader.SetFileNames(file_names)
        reader.MetaDataDictionaryArrayUpdateOn()
        reader.LoadPrivateTagsOn()

        try:
            img = reader.Execute()
            img = sitk.DICOMOrient(sitk.Cast(img, sitk.sitkFloat32), to_dicom_orient(self.orientation))
        except RuntimeError as e:
            raise MuMapError("Unable to get image from DICOM series") from e

        if reader.HasMetaDataKey(0, DICOM_STUDY_DATE):
            raw = reader.GetMetaData(0, DICOM_STUDY_DATE)
            self.log.info(f"Study date: {raw}")
            self.study_date = format_study_date(raw)
        if reader.HasMetaDataKey(0, DICOM_STUDY_TIME):
            raw = reader.GetMetaData(0, DICOM_STUDY_TIME)
            self.log.info(f"Study time: {raw}")
            self.study_time = format_study_time(raw)

        self.log.debug(f"DICOM Origin: {img.GetOrigin()}")
        self.log.debug("Reading complete")
        self.input_image = img
        self._header = build_interfile_template(self.scanner)
        return img

    def update(self) -> sitk.Image:
        if self.input_image is None:
            raise MuMapError("No input image; call read() first")

        if self.is_head:
            mu = reslice_head(self.input_image, self.params, self.log)
        else:
            mu = scale_to_mu(self.input_image)

        lo, hi = image_min_max(mu)
        self.log.info(f"Image min: {lo}")
        self.log.info(f"Image max: {hi}")

        nx, ny, nz = mu.GetSize()
        sx, sy, sz = mu.GetSpacing()
        self._fill("NX", int(nx))
        self._fill("NY", int(ny))
        self._fill("NZ", int(nz))
        self._fill("SX", float(sx))
        self._fill("SY", float(sy))
        self._fill("SZ", float(sz))
        self._fill("MAXVAL", hi)
        self._fill("MINVAL", lo)
        if self.study_date:
            self._fill("STUDYDATE", self.study_date)
        if self.study_time:
            self._fill("STUDYTIME", self.study_time)

        self.mu_image = mu
        return mu

    def write(self, dst: Path) -> Path:
        if self.mu_image is None:
            raise MuMapError("No mu-map; call update() first")
        dst = Path(dst)
        dst.parent.mkdir(parents=True, exist_ok=True)

        try:
            if dst.suffix.lower() != INTERFILE_SUFFIX:
                sitk.WriteImage(self.mu_image, str(dst))
                self.log.info(f"Wrote {dst}")
                return dst

            # MetaImage writer puts the pixels in <stem>.raw
            mhd = dst.with_suffix(".mhd")
            sitk.WriteImage(self.mu_image, str(mhd))
        except RuntimeError as e:
            raise MuMapError(f"Unable to write {dst}") from e

        self._fill("DATAFILE", mhd.with_suffix(".raw").name)
        try:
            write_atomic(dst, self._header.encode(interfile.ENCODING))
        except OSError as e:
            raise MuMapError(f"Unable to write Interfile header {dst}") from e
        self.log.info(f"Wrote {mhd} and {dst}")
        return dst
