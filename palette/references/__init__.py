"""
Palette References Module

Handles, reference sets and reference extraction.
"""

from .handles import normalize_handle, is_valid_handle, unique_handle
from .reference_set import Reference, ReferenceSet
from .extractor import ReferenceExtractor, ExtractionResult, is_grounded

__all__ = [
    'normalize_handle',
    'is_valid_handle',
    'unique_handle',
    'Reference',
    'ReferenceSet',
    'ReferenceExtractor',
    'ExtractionResult',
    'is_grounded',
]
