"""
Palette Pipelines Module

Run coordination for shot breakdowns.
"""

from .base_pipeline import BasePipeline
from .breakdown_pipeline import BreakdownPipeline

__all__ = [
    'BasePipeline',
    'BreakdownPipeline',
]
