# petrd/orientation.py
"""Three-letter output orientation codes.

Codes follow ITK's legacy ``SpatialOrientation`` naming, where each letter
names the side an axis runs *from* (``RAI`` is the DICOM/LPS layout).
``sitk.DICOMOrient`` wants the side each axis runs *to*, so letters are
flipped on the way out.
"""
from __future__ import annotations

from petrd.exceptions import OrientationError

DEFAULT_ORIENTATION = "RAI"

_OPPOSITE = {
    "R": "L", "L": "R",
    "A": "P", "P": "A",
    "I": "S", "S": "I",
}

_AXIS = {
    "R": "x", "L": "x",
    "A": "y", "P": "y",
    "I": "z", "S": "z",
}


def parse_orientation(code: str) -> str:
    """Normalise ``code`` (e.g. ``"rai"`` -> ``"RAI"``) or raise OrientationError."""
    if not isinstance(code, str):
        raise OrientationError(f"Orientation code must be a string, got {type(code).__name__}")

    code = code.strip().upper()
    if len(code) != 3:
        raise OrientationError(f"Orientation code must be 3 letters: {code!r}")

    bad = [c for c in code if c not in _AXIS]
    if bad:
        raise OrientationError(f"Invalid orientation letter(s) {''.join(bad)!r} in {code!r}")

    if len({_AXIS[c] for c in code}) != 3:
        raise OrientationError(f"Orientation code {code!r} repeats an axis")
    return code


def to_dicom_orient(code: str) -> str:
    return "".join(_OPPOSITE[c] for c in parse_orientation(code))
