# petrd/exceptions.py
"""Error taxonomy for raw-data handling.

Classification misses and length mismatches are *not* exceptions: they are
reported through return values. Only conditions that make the whole command
meaningless are raised.
"""
from __future__ import annotations


class PetRDError(Exception):
    """Base class for all petrd errors."""


class StructuralError(PetRDError):
    """Input cannot be parsed as the claimed container format at all."""


class MuMapError(PetRDError):
    """The mu-map pipeline could not read, scale, reslice or write."""


class OrientationError(PetRDError, ValueError):
    """Invalid three-letter orientation code."""
