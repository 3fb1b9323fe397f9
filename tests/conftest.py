from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import pydicom
import pytest
from pydicom.dataset import FileDataset, FileMetaDataset

SIEMENS_CREATOR = "SIEMENS CSA NON-IMAGE"
GE_CREATOR = "GEMS_PETD_01"


def listmode_header(words: int, data_file: str = "original.l") -> str:
    return (
        "!INTERFILE:=\r\n"
        "%comment:=SMS-MI header\r\n"
        f"name of data file:={data_file}\r\n"
        "%SMS-MI header name space:=PETLINK bin address\r\n"
        f"%total listmode word counts:={words}\r\n"
        "!END OF INTERFILE:=\r\n"
    )


def norm_header(data_file: str = "original.n") -> str:
    # mMR norm headers carry stray \r\r\n endings
    return (
        "!INTERFILE:=\r\n"
        f"name of data file:={data_file}\r\r\n"
        f"%data set [1]:={{0,,{data_file}}}\r\n"
        "%number of normalization components:=8\n"
        "!END OF INTERFILE:=\r\n"
    )


def sinogram_header(data_file: str = "original.s") -> str:
    return (
        "!INTERFILE:=\r\n"
        f"name of data file:={data_file}\r\n"
        "%compression:=on\r\n"
        "!END OF INTERFILE:=\r\n"
    )


def _file_dataset(path: Path) -> FileDataset:
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = "1.3.12.2.1107.5.9.1"
    file_meta.MediaStorageSOPInstanceUID = pydicom.uid.generate_uid()
    file_meta.TransferSyntaxUID = pydicom.uid.ExplicitVRLittleEndian

    ds = FileDataset(str(path), {}, file_meta=file_meta, preamble=b"\0" * 128)
    ds.SOPClassUID = file_meta.MediaStorageSOPClassUID
    ds.SOPInstanceUID = file_meta.MediaStorageSOPInstanceUID
    ds.PatientID = "PATIENT1"
    ds.StudyDate = "20170102"
    ds.StudyTime = "123456"
    return ds


def make_siemens_dicom(
    path: Path,
    *,
    image_type: str = "PET_LISTMODE",
    header: Optional[str] = None,
    alt_header: Optional[str] = None,
    payload: Optional[bytes] = None,
    manufacturer: str = "SIEMENS",
    model: str = "Biograph_mMR",
) -> Path:
    ds = _file_dataset(path)
    ds.Modality = "PT"
    ds.Manufacturer = manufacturer
    ds.ManufacturerModelName = model
    ds.ImageType = ["ORIGINAL", "PRIMARY", image_type]

    ds.add_new((0x0029, 0x0010), "LO", SIEMENS_CREATOR)
    if header is not None:
        ds.add_new((0x0029, 0x1010), "OB", header.encode("latin-1"))
    if alt_header is not None:
        ds.add_new((0x0029, 0x0011), "LO", SIEMENS_CREATOR)
        ds.add_new((0x0029, 0x1110), "OB", alt_header.encode("latin-1"))
    if payload is not None:
        ds.add_new((0x7FE1, 0x0010), "LO", SIEMENS_CREATOR)
        ds.add_new((0x7FE1, 0x1010), "OB", payload)

    ds.save_as(str(path))
    return path


def make_ge_dicom(
    path: Path,
    *,
    raw_type: Union[str, int] = "3",
    sino_type: Optional[str] = None,
    cal_type: Optional[str] = None,
    rdf: Optional[bytes] = b"RDF\x00" * 16,
    manufacturer: str = "GE MEDICAL SYSTEMS",
) -> Path:
    ds = _file_dataset(path)
    ds.Modality = "PT"
    ds.Manufacturer = manufacturer
    ds.ManufacturerModelName = "SIGNA PET/MR"

    if sino_type is not None:
        ds.add_new((0x0009, 0x0010), "LO", GE_CREATOR)
        ds.add_new((0x0009, 0x1019), "LO", sino_type)
    if cal_type is not None:
        ds.add_new((0x0017, 0x0010), "LO", GE_CREATOR)
        ds.add_new((0x0017, 0x1006), "LO", cal_type)

    ds.add_new((0x0021, 0x0010), "LO", GE_CREATOR)
    if isinstance(raw_type, int):
        ds.add_new((0x0021, 0x1001), "SL", raw_type)
    else:
        ds.add_new((0x0021, 0x1001), "LO", raw_type)
    if rdf is not None:
        ds.add_new((0x0023, 0x0010), "LO", GE_CREATOR)
        ds.add_new((0x0023, 0x1002), "OB", rdf)

    ds.save_as(str(path))
    return path


def make_ptd(
    path: Path,
    *,
    words: int,
    declared_words: Optional[int] = None,
    extra_payload: bytes = b"",
    comment: bool = True,
    tail_padding: int = 64,
) -> Path:
    """Listmode words, then a 128 byte preamble, ``DICM`` and a fake DICOM body."""
    declared = words if declared_words is None else declared_words
    payload = b"\x01\x02\x03\x04" * words + extra_payload

    header = "!INTERFILE:=\r\nname of data file:=original.l\r\n"
    header += f"%total listmode word counts:={declared}\r\n"
    if comment:
        header += "%comment:=ptd test\r\n"
    body = b"\x02\x00\x10\x00UI" + header.encode("latin-1") + b"\x00" * tail_padding

    path.write_bytes(payload + b"\0" * 128 + b"DICM" + body)
    return path


@pytest.fixture
def listmode_dcm(tmp_path: Path) -> Path:
    """A complete list-mode file: 100 declared words, 400 inline bytes."""
    return make_siemens_dicom(
        tmp_path / "scan.dcm",
        header=listmode_header(100),
        payload=b"\xAB" * 400,
    )
