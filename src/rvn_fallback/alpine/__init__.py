"""Fallback to the secondary binary-package repository (Alpine)."""

from .archive import extract_data_tar_gz
from .index import BinaryIndex, parse_index
from .resolver import BinaryIndexResolver, normalize_dep

__all__ = ["BinaryIndex", "BinaryIndexResolver", "extract_data_tar_gz", "normalize_dep", "parse_index"]
