from __future__ import annotations

import pytest
from pydicom.dataset import Dataset

from petrd.config import TAG_IMAGE_TYPE, TAG_MANUFACTURER, TAG_SIEMENS_DATA, TAG_SIEMENS_HEADER
from petrd.exceptions import StructuralError
from petrd.tags import get_tag_bytes, get_tag_value, open_dataset

from conftest import listmode_header, make_siemens_dicom


def test_missing_tag_is_absent_not_error():
    assert get_tag_value(Dataset(), TAG_MANUFACTURER) == ("", False)
    assert get_tag_bytes(Dataset(), TAG_SIEMENS_DATA) is None


def test_string_value_is_stripped():
    ds = Dataset()
    ds.Manufacturer = "SIEMENS "
    assert get_tag_value(ds, TAG_MANUFACTURER) == ("SIEMENS", True)


def test_multi_value_is_backslash_joined():
    ds = Dataset()
    ds.ImageType = ["ORIGINAL", "PRIMARY", "PET_LISTMODE"]
    value, present = get_tag_value(ds, TAG_IMAGE_TYPE)
    assert present
    assert value == "ORIGINAL\\PRIMARY\\PET_LISTMODE"


def test_integer_value_reads_as_text():
    ds = Dataset()
    ds.add_new((0x0021, 0x1001), "SL", 4)
    assert get_tag_value(ds, (0x0021, 0x1001)) == ("4", True)


def test_binary_value_drops_padding():
    ds = Dataset()
    ds.add_new(TAG_SIEMENS_HEADER, "OB", b"!INTERFILE:=\x00")
    assert get_tag_value(ds, TAG_SIEMENS_HEADER) == ("!INTERFILE:=", True)
    assert get_tag_bytes(ds, TAG_SIEMENS_HEADER) == b"!INTERFILE:=\x00"


def test_empty_values_read_as_absent():
    ds = Dataset()
    ds.Manufacturer = ""
    ds.add_new(TAG_SIEMENS_HEADER, "OB", b"\x00\x00")
    assert get_tag_value(ds, TAG_MANUFACTURER) == ("", False)
    assert get_tag_value(ds, TAG_SIEMENS_HEADER) == ("", False)


def test_empty_manufacturer_in_file_reads_as_absent(tmp_path):
    path = make_siemens_dicom(tmp_path / "lm.dcm", header=listmode_header(2), payload=b"\x00" * 8, manufacturer="")
    assert get_tag_value(open_dataset(path), TAG_MANUFACTURER) == ("", False)


def test_open_dataset_round_trips_private_tags(tmp_path):
    path = make_siemens_dicom(tmp_path / "lm.dcm", header=listmode_header(2), payload=b"\x00" * 8)
    ds = open_dataset(path)
    assert get_tag_bytes(ds, TAG_SIEMENS_DATA) == b"\x00" * 8
    text, present = get_tag_value(ds, TAG_SIEMENS_HEADER)
    assert present
    assert "%total listmode word counts:=2" in text


def test_open_dataset_rejects_non_dicom(tmp_path):
    path = tmp_path / "junk.bin"
    path.write_bytes(b"\x01" * 512)
    with pytest.raises(StructuralError):
        open_dataset(path)


def test_open_dataset_missing_file(tmp_path):
    with pytest.raises(StructuralError):
        open_dataset(tmp_path / "nope.dcm")
