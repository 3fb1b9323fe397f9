from __future__ import annotations

import logging
from typing import Optional

import pytest
from pydicom.dataset import Dataset

from petrd.classify import VendorFileKind, classify_ge, classify_siemens


def _siemens(image_type: Optional[str] = "PET_LISTMODE", model: str = "Biograph_mMR", manufacturer: str = "SIEMENS") -> Dataset:
    ds = Dataset()
    ds.Manufacturer = manufacturer
    ds.ManufacturerModelName = model
    if image_type is not None:
        ds.ImageType = ["ORIGINAL", "PRIMARY", image_type]
    return ds


def _ge(raw_type: Optional[str], sino_type: Optional[str] = None, cal_type: Optional[str] = None) -> Dataset:
    ds = Dataset()
    ds.Manufacturer = "GE MEDICAL SYSTEMS"
    if raw_type is not None:
        ds.add_new((0x0021, 0x1001), "LO", raw_type)
    if sino_type is not None:
        ds.add_new((0x0009, 0x1019), "LO", sino_type)
    if cal_type is not None:
        ds.add_new((0x0017, 0x1006), "LO", cal_type)
    return ds


@pytest.mark.parametrize(
    "image_type,expected",
    [
        ("PET_LISTMODE", VendorFileKind.LIST_MODE),
        ("PET_EM_SINO", VendorFileKind.SINOGRAM),
        ("PET_NORM", VendorFileKind.NORMALIZATION),
        ("PET_RECON", VendorFileKind.UNKNOWN),
    ],
)
def test_siemens_image_types(image_type, expected):
    assert classify_siemens(_siemens(image_type)) == expected


def test_siemens_is_deterministic():
    ds = _siemens("PET_NORM")
    assert classify_siemens(ds) == classify_siemens(ds) == VendorFileKind.NORMALIZATION


def test_siemens_other_model_is_unknown():
    assert classify_siemens(_siemens(model="Biograph64")) == VendorFileKind.UNKNOWN


def test_siemens_rejects_ge_file():
    assert classify_siemens(_siemens(manufacturer="GE MEDICAL SYSTEMS")) == VendorFileKind.UNKNOWN


def test_siemens_missing_image_type_is_error(caplog):
    caplog.set_level(logging.INFO)
    assert classify_siemens(_siemens(image_type=None)) == VendorFileKind.ERROR
    assert "Unable to read Image type" in caplog.text


def test_missing_manufacturer_is_error():
    assert classify_siemens(Dataset()) == VendorFileKind.ERROR
    assert classify_ge(Dataset()) == VendorFileKind.ERROR


def test_empty_manufacturer_is_error():
    assert classify_siemens(_siemens(manufacturer="")) == VendorFileKind.ERROR
    ds = _ge("3", sino_type="0")
    ds.Manufacturer = ""
    assert classify_ge(ds) == VendorFileKind.ERROR


def test_empty_model_is_error():
    assert classify_siemens(_siemens(model="")) == VendorFileKind.ERROR


@pytest.mark.parametrize(
    "raw_type,sino_type,cal_type,expected",
    [
        ("3", "0", None, VendorFileKind.SINOGRAM),
        ("3", "5", None, VendorFileKind.CT_ATTENUATION_SINO),
        ("3", "2", None, VendorFileKind.UNKNOWN),
        ("4", None, "0", VendorFileKind.NORM_2D),
        ("4", None, "2", VendorFileKind.NORM_3D),
        ("4", None, "1", VendorFileKind.UNKNOWN),
        ("5", None, "3", VendorFileKind.GEOMETRY_CALIBRATION),
        ("5", None, "0", VendorFileKind.UNKNOWN),
        ("9", None, None, VendorFileKind.UNKNOWN),
    ],
)
def test_ge_kinds(raw_type, sino_type, cal_type, expected):
    assert classify_ge(_ge(raw_type, sino_type, cal_type)) == expected


def test_ge_values_match_exactly():
    # "13" contains "3" but is not a sinogram
    assert classify_ge(_ge("13", sino_type="0")) == VendorFileKind.UNKNOWN


def test_ge_missing_subtype_is_error():
    assert classify_ge(_ge("4")) == VendorFileKind.ERROR
    assert classify_ge(_ge(None)) == VendorFileKind.ERROR


def test_ge_well_counter_is_flagged(caplog):
    caplog.set_level(logging.INFO)
    assert classify_ge(_ge("7")) == VendorFileKind.WELL_COUNTER_CALIBRATION
    assert "unsupported" in caplog.text


def test_ge_rejects_siemens_file():
    assert classify_ge(_siemens()) == VendorFileKind.UNKNOWN
