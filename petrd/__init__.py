# petrd/__init__.py
"""Validation and extraction of PET/MR raw data (Siemens mMR, GE SIGNA PET/MR)."""
__version__ = "2.0.1"
