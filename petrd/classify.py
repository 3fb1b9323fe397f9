# petrd/classify.py
"""Vendor/file-kind classification of raw-data DICOM datasets.

Classification is pure: it only looks at tag values. A clean "not mine" is
``UNKNOWN``; a required tag that cannot be read is ``ERROR``.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from pydicom.dataset import Dataset

from petrd.config import (
    TAG_GE_CAL_TYPE,
    TAG_GE_RAW_DATA_TYPE,
    TAG_GE_SINO_TYPE,
    TAG_IMAGE_TYPE,
    TAG_MANUFACTURER,
    TAG_MODEL_NAME,
    Config,
)
from petrd.tags import get_tag_value

logger = logging.getLogger(__name__)


class Vendor(str, Enum):
    SIEMENS = "siemens"
    GE = "ge"


class VendorFileKind(str, Enum):
    LIST_MODE = "listmode"
    SINOGRAM = "sinogram"
    NORMALIZATION = "norm"
    CT_ATTENUATION_SINO = "ctac"
    NORM_2D = "norm2d"
    NORM_3D = "norm3d"
    GEOMETRY_CALIBRATION = "geo"
    WELL_COUNTER_CALIBRATION = "wcc"
    UNKNOWN = "unknown"
    ERROR = "error"


# Checked in order; the image-type values are mutually exclusive
SIEMENS_IMAGE_TYPES = (
    ("PRIMARY\\PET_LISTMODE", VendorFileKind.LIST_MODE),
    ("PRIMARY\\PET_EM_SINO", VendorFileKind.SINOGRAM),
    ("PRIMARY\\PET_NORM", VendorFileKind.NORMALIZATION),
)

GE_SINO_TYPES = {
    "0": VendorFileKind.SINOGRAM,
    "5": VendorFileKind.CT_ATTENUATION_SINO,
}

GE_NORM_TYPES = {
    "0": VendorFileKind.NORM_2D,
    "2": VendorFileKind.NORM_3D,
}

GE_GEO_CAL_TYPE = "3"


def _read(ds: Dataset, tag, label: str, log: logging.Logger) -> Optional[str]:
    value, present = get_tag_value(ds, tag)
    if not present:
        log.error(f"Unable to read {label}")
        return None
    log.info(f"{label}: {value}")
    return value


def classify_siemens(ds: Dataset, cfg: Config = Config(), log: Optional[logging.Logger] = None) -> VendorFileKind:
    log = log or logger

    manufacturer = _read(ds, TAG_MANUFACTURER, "Manufacturer", log)
    if manufacturer is None:
        return VendorFileKind.ERROR
    if cfg.SIEMENS_MANUFACTURER not in manufacturer.upper():
        return VendorFileKind.UNKNOWN

    model = _read(ds, TAG_MODEL_NAME, "Model name", log)
    if model is None:
        return VendorFileKind.ERROR
    if cfg.MMR_MODEL_NAME not in model:
        return VendorFileKind.UNKNOWN
    log.debug("Scanner = mMR")

    image_type = _read(ds, TAG_IMAGE_TYPE, "Image type", log)
    if image_type is None:
        return VendorFileKind.ERROR
    for marker, kind in SIEMENS_IMAGE_TYPES:
        if marker in image_type:
            return kind
    return VendorFileKind.UNKNOWN


def classify_ge(ds: Dataset, cfg: Config = Config(), log: Optional[logging.Logger] = None) -> VendorFileKind:
    log = log or logger

    manufacturer = _read(ds, TAG_MANUFACTURER, "Manufacturer", log)
    if manufacturer is None:
        return VendorFileKind.ERROR
    if cfg.GE_MANUFACTURER not in manufacturer.upper():
        return VendorFileKind.UNKNOWN

    raw_type = _read(ds, TAG_GE_RAW_DATA_TYPE, "Type of raw data", log)
    if raw_type is None:
        return VendorFileKind.ERROR

    if raw_type == "3":
        # sinogram, or CTAC stored in sinogram format
        sino_type = _read(ds, TAG_GE_SINO_TYPE, "Type of sino data", log)
        if sino_type is None:
            return VendorFileKind.ERROR
        return GE_SINO_TYPES.get(sino_type, VendorFileKind.UNKNOWN)

    if raw_type == "4":
        cal_type = _read(ds, TAG_GE_CAL_TYPE, "Type of normalisation data", log)
        if cal_type is None:
            return VendorFileKind.ERROR
        return GE_NORM_TYPES.get(cal_type, VendorFileKind.UNKNOWN)

    if raw_type == "5":
        cal_type = _read(ds, TAG_GE_CAL_TYPE, "Type of calibration data", log)
        if cal_type is None:
            return VendorFileKind.ERROR
        if cal_type == GE_GEO_CAL_TYPE:
            return VendorFileKind.GEOMETRY_CALIBRATION
        return VendorFileKind.UNKNOWN

    if raw_type == "7":
        log.error("GE well-counter calibration (WCC) files are unsupported")
        return VendorFileKind.WELL_COUNTER_CALIBRATION

    return VendorFileKind.UNKNOWN
