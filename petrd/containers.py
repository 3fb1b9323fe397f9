# petrd/containers.py
"""Raw-data containers for DICOM-wrapped PET data (Siemens mMR, GE PET/MR).

One ``RawContainer`` class covers every supported file kind; what differs per
kind (payload tag, expected-length rule, output suffix, header repairs) lives
in the ``KIND_PROFILES`` table.

Payload resolution, in order:
1. expected length from the header word count, a fixed constant, or none
2. inline bytes in the data tag, if their length matches
3. a same-stem ``.bf`` sidecar, if its length matches
Anything else is invalid; partial/truncated payloads are never accepted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from pydicom.dataset import Dataset

from petrd import interfile
from petrd.classify import Vendor, VendorFileKind, classify_ge, classify_siemens
from petrd.config import (
    TAG_GE_RDF_DATA,
    TAG_SIEMENS_DATA,
    TAG_SIEMENS_HEADER,
    TAG_SIEMENS_HEADER_ALT,
    Config,
    Tag,
)
from petrd.fileio import copy_atomic, file_length, refuse_existing, write_atomic
from petrd.tags import format_tag, get_tag_bytes, open_dataset

logger = logging.getLogger(__name__)


class ContentType(Enum):
    HEADER = "header"
    RAW_DATA = "rawdata"


class LengthRule(str, Enum):
    HEADER_WORD_COUNT = "word_count"  # 4 bytes per declared list-mode word
    FIXED = "fixed"                   # scanner constant
    UNCHECKED = "unchecked"           # compressed; any bytes will do
    BLOB = "blob"                     # self-describing vendor blob


class PayloadSource(str, Enum):
    INLINE = "inline"
    SIDECAR = "sidecar"


@dataclass(frozen=True)
class KindProfile:
    vendor: Vendor
    kind: VendorFileKind
    label: str
    data_suffix: str
    length_rule: LengthRule
    data_tag: Tag = TAG_SIEMENS_DATA
    has_interfile_header: bool = True
    rewrite_data_set: bool = False
    repair_line_endings: bool = False


KIND_PROFILES: Dict[Tuple[Vendor, VendorFileKind], KindProfile] = {
    (Vendor.SIEMENS, VendorFileKind.LIST_MODE): KindProfile(
        Vendor.SIEMENS, VendorFileKind.LIST_MODE, "listmode", ".l", LengthRule.HEADER_WORD_COUNT,
    ),
    (Vendor.SIEMENS, VendorFileKind.SINOGRAM): KindProfile(
        Vendor.SIEMENS, VendorFileKind.SINOGRAM, "sinogram", ".s", LengthRule.UNCHECKED,
    ),
    (Vendor.SIEMENS, VendorFileKind.NORMALIZATION): KindProfile(
        Vendor.SIEMENS, VendorFileKind.NORMALIZATION, "norm", ".n", LengthRule.FIXED,
        rewrite_data_set=True, repair_line_endings=True,
    ),
    (Vendor.GE, VendorFileKind.LIST_MODE): KindProfile(
        Vendor.GE, VendorFileKind.LIST_MODE, "listmode", ".BLF", LengthRule.BLOB,
        data_tag=TAG_GE_RDF_DATA, has_interfile_header=False,
    ),
    (Vendor.GE, VendorFileKind.SINOGRAM): KindProfile(
        Vendor.GE, VendorFileKind.SINOGRAM, "sinogram", ".sino.rdf", LengthRule.BLOB,
        data_tag=TAG_GE_RDF_DATA, has_interfile_header=False,
    ),
    (Vendor.GE, VendorFileKind.NORM_2D): KindProfile(
        Vendor.GE, VendorFileKind.NORM_2D, "norm", ".norm.rdf", LengthRule.BLOB,
        data_tag=TAG_GE_RDF_DATA, has_interfile_header=False,
    ),
    (Vendor.GE, VendorFileKind.NORM_3D): KindProfile(
        Vendor.GE, VendorFileKind.NORM_3D, "norm", ".norm.rdf", LengthRule.BLOB,
        data_tag=TAG_GE_RDF_DATA, has_interfile_header=False,
    ),
    # No dot: GE tooling expects <stem>geo.rdf
    (Vendor.GE, VendorFileKind.GEOMETRY_CALIBRATION): KindProfile(
        Vendor.GE, VendorFileKind.GEOMETRY_CALIBRATION, "geo", "geo.rdf", LengthRule.BLOB,
        data_tag=TAG_GE_RDF_DATA, has_interfile_header=False,
    ),
}


@dataclass(frozen=True)
class PayloadDescriptor:
    expected_bytes: Optional[int]
    inline_bytes: Optional[int]
    sidecar_path: Optional[Path]
    sidecar_bytes: Optional[int]
    source: Optional[PayloadSource]

    @property
    def is_valid(self) -> bool:
        return self.source is not None


def std_file_name(src: Path, data_suffix: str, ctype: ContentType, cfg: Config = Config()) -> Path:
    """``<stem><suffix>`` for data, ``<stem><suffix>.hdr`` for the header."""
    name = Path(src).stem + data_suffix
    if ctype == ContentType.HEADER:
        name += cfg.HEADER_SUFFIX
    return Path(name)


class RawContainer:
    """A classified raw-data DICOM file. Never modifies its source."""

    def __init__(
        self,
        path: Path,
        profile: KindProfile,
        dataset: Optional[Dataset] = None,
        cfg: Config = Config(),
        log: Optional[logging.Logger] = None,
    ):
        self.path = Path(path)
        self.profile = profile
        self.cfg = cfg
        self.log = log or logger
        # Raises StructuralError if this is not DICOM at all
        self.ds = dataset if dataset is not None else open_dataset(self.path)
        self._header: Optional[str] = None

    def __repr__(self) -> str:
        return f"RawContainer({self.path.name!r}, {self.vendor.value}, {self.kind.value})"

    @property
    def vendor(self) -> Vendor:
        return self.profile.vendor

    @property
    def kind(self) -> VendorFileKind:
        return self.profile.kind

    @property
    def has_interfile_header(self) -> bool:
        return self.profile.has_interfile_header

    @property
    def sidecar_path(self) -> Path:
        return self.path.with_suffix(self.cfg.SIDECAR_SUFFIX)

    # ----------------------------
    # Header
    # ----------------------------

    def _header_from_tag(self, tag: Tag) -> str:
        raw = get_tag_bytes(self.ds, tag)
        if raw is None:
            return ""
        # Strip DICOM even-length padding only
        return raw.decode(interfile.ENCODING).rstrip("\x00")

    def read_header(self) -> Tuple[str, bool]:
        """Interfile header text, from 0029,1010 or (SV10 stub) 0029,1110."""
        if self._header is not None:
            return self._header, bool(self._header)

        if not self.has_interfile_header:
            self._header = ""
            return "", False

        text = self._header_from_tag(TAG_SIEMENS_HEADER)
        if not text or self.cfg.ALT_HEADER_MARKER in text:
            self.log.debug("Reading header from alternate tag (0029,1110)")
            text = self._header_from_tag(TAG_SIEMENS_HEADER_ALT)

        if not text:
            self.log.error("Unable to read Interfile header")
        self._header = text
        return text, bool(text)

    def extract_header(self, dst: Path) -> bool:
        dst = Path(dst)
        if not self.has_interfile_header:
            self.log.info(f"{self.vendor.value.upper()} {self.profile.label} data has no separate header")
            return True

        text, ok = self.read_header()
        if not ok:
            return False
        if refuse_existing(dst, "header", self.log):
            return False

        try:
            write_atomic(dst, text.encode(interfile.ENCODING))
        except OSError as e:
            self.log.error(f"Unable to write header to {dst}: {e}")
            return False

        self.log.info("Successfully extracted raw header.")
        return True

    # ----------------------------
    # Payload
    # ----------------------------

    def expected_bytes(self) -> Optional[int]:
        rule = self.profile.length_rule
        if rule == LengthRule.FIXED:
            return self.cfg.MMR_NORM_BYTE_LENGTH
        if rule == LengthRule.HEADER_WORD_COUNT:
            text, ok = self.read_header()
            if not ok:
                return None
            words = interfile.parse_word_count(text, self.log)
            if words is None:
                return None
            self.log.info(f"Expected number of LM words: {words}")
            return words * 4
        return None

    def _inline_payload(self) -> Optional[bytes]:
        return get_tag_bytes(self.ds, self.profile.data_tag)

    def resolve_payload(self) -> PayloadDescriptor:
        inline = self._inline_payload()
        inline_len = None if inline is None else len(inline)
        self.log.info(f"{inline_len or 0} bytes in data field {format_tag(self.profile.data_tag)}")

        rule = self.profile.length_rule
        if rule == LengthRule.BLOB:
            source = PayloadSource.INLINE if inline_len else None
            return PayloadDescriptor(None, inline_len, None, None, source)

        sidecar = self.sidecar_path
        if rule == LengthRule.UNCHECKED:
            self.log.warning(f"Cannot check {self.profile.label} length due to compression.")
            if sidecar.exists():
                self.log.info(f"{sidecar.name} exists.")
                return PayloadDescriptor(None, inline_len, sidecar, file_length(sidecar), PayloadSource.SIDECAR)
            source = PayloadSource.INLINE if inline_len else None
            return PayloadDescriptor(None, inline_len, None, None, source)

        expected = self.expected_bytes()
        if expected is None:
            return PayloadDescriptor(None, inline_len, None, None, None)
        self.log.info(f"Expected number of bytes: {expected}")

        if inline_len == expected:
            return PayloadDescriptor(expected, inline_len, None, None, PayloadSource.INLINE)

        self.log.info("Expected no. of bytes does not equal no. read!")
        self.log.info(f"Looking for {self.cfg.SIDECAR_SUFFIX} file...")
        sidecar_len = file_length(sidecar)
        if sidecar_len is None:
            return PayloadDescriptor(expected, inline_len, None, None, None)

        self.log.info(f"{sidecar.name} size in bytes: {sidecar_len}")
        if sidecar_len != expected:
            self.log.info("Expected no. of bytes does not equal no. read in sidecar!")
            return PayloadDescriptor(expected, inline_len, sidecar, sidecar_len, None)

        self.log.info(f"{sidecar} is valid raw data file for this header.")
        return PayloadDescriptor(expected, inline_len, sidecar, sidecar_len, PayloadSource.SIDECAR)

    def is_valid(self) -> bool:
        if self.has_interfile_header:
            _, ok = self.read_header()
            if not ok:
                return False

        payload = self.resolve_payload()
        if not payload.is_valid:
            self.log.error(f"No {self.profile.label} data found in either DICOM or {self.cfg.SIDECAR_SUFFIX} file!")
        return payload.is_valid

    def extract_data(self, dst: Path) -> bool:
        dst = Path(dst)
        if self.has_interfile_header:
            _, ok = self.read_header()
            if not ok:
                return False
        if refuse_existing(dst, "data", self.log):
            return False

        payload = self.resolve_payload()
        if payload.source is None:
            self.log.error(f"No {self.profile.label} data found in either DICOM or {self.cfg.SIDECAR_SUFFIX} file!")
            return False

        try:
            if payload.source == PayloadSource.SIDECAR:
                copy_atomic(payload.sidecar_path, dst)
            else:
                write_atomic(dst, self._inline_payload())
        except OSError as e:
            self.log.error(f"Unable to write {self.profile.label} to {dst}: {e}")
            return False

        self.log.info(f"Wrote {self.profile.label} data ({payload.source.value}) to {dst}")
        return True

    def modify_header(self, header_path: Path, data_file: Path) -> bool:
        if not self.has_interfile_header:
            return True
        return interfile.modify_header(
            header_path,
            data_file,
            rewrite_data_set=self.profile.rewrite_data_set,
            repair_line_endings=self.profile.repair_line_endings,
            log=self.log,
        )

    def std_file_name(self, src: Path, ctype: ContentType) -> Path:
        name = std_file_name(src, self.profile.data_suffix, ctype, self.cfg)
        self.log.debug(f"Created filename: {name}")
        return name


# ----------------------------
# Factories
# ----------------------------

UNSUPPORTED_KINDS = (
    VendorFileKind.WELL_COUNTER_CALIBRATION,
    VendorFileKind.CT_ATTENUATION_SINO,
)


class RawDataFactory:
    """Classifies a file for one vendor and builds the matching container."""

    vendor: Vendor

    def __init__(self, cfg: Config = Config(), log: Optional[logging.Logger] = None):
        self.cfg = cfg
        self.log = log or logger

    def classify_dataset(self, ds: Dataset) -> VendorFileKind:
        raise NotImplementedError

    def classify(self, path: Path) -> VendorFileKind:
        return self.classify_dataset(open_dataset(Path(path)))

    def create(self, path: Path, dataset: Optional[Dataset] = None) -> Optional[RawContainer]:
        path = Path(path)
        ds = dataset if dataset is not None else open_dataset(path)
        kind = self.classify_dataset(ds)

        if kind in UNSUPPORTED_KINDS:
            self.log.error(f"{self.vendor.value.upper()} {kind.value} files are unsupported")
            return None
        profile = KIND_PROFILES.get((self.vendor, kind))
        if profile is None:
            self.log.info(f"Not a recognised {self.vendor.value.upper()} raw data file ({kind.value})")
            return None

        self.log.info(f"Found {self.vendor.value.upper()} {profile.label} data")
        return RawContainer(path, profile, dataset=ds, cfg=self.cfg, log=self.log)


class SiemensFactory(RawDataFactory):
    vendor = Vendor.SIEMENS

    def classify_dataset(self, ds: Dataset) -> VendorFileKind:
        return classify_siemens(ds, self.cfg, self.log)


class GEFactory(RawDataFactory):
    vendor = Vendor.GE

    def classify_dataset(self, ds: Dataset) -> VendorFileKind:
        return classify_ge(ds, self.cfg, self.log)


DEFAULT_FACTORIES = (SiemensFactory, GEFactory)


def create_container(
    path: Path,
    factories: Iterable[type] = DEFAULT_FACTORIES,
    cfg: Config = Config(),
    log: Optional[logging.Logger] = None,
) -> Optional[RawContainer]:
    """Try each vendor factory in turn; None if none of them claims the file.

    Raises StructuralError if ``path`` is not a DICOM file.
    """
    path = Path(path)
    ds = open_dataset(path)
    for factory_cls in factories:
        container = factory_cls(cfg, log).create(path, dataset=ds)
        if container is not None:
            return container
    return None
