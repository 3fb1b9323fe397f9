from __future__ import annotations

import pytest

from petrd.exceptions import OrientationError
from petrd.orientation import parse_orientation, to_dicom_orient


@pytest.mark.parametrize("code", ["RAI", "rai", " LPS ", "SAR"])
def test_valid_codes(code):
    assert parse_orientation(code) == code.strip().upper()


@pytest.mark.parametrize("code", ["", "RA", "RAIS", "RAX", "RLA", "AAS", "123"])
def test_invalid_codes(code):
    with pytest.raises(OrientationError):
        parse_orientation(code)


def test_orientation_error_is_value_error():
    with pytest.raises(ValueError):
        parse_orientation("XYZ")


@pytest.mark.parametrize(
    "code,dicom",
    [
        ("RAI", "LPS"),
        ("LPS", "RAI"),
        ("RAS", "LPI"),
        ("ASL", "PIR"),
    ],
)
def test_to_dicom_orient(code, dicom):
    assert to_dicom_orient(code) == dicom
