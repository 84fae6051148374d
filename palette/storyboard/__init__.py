"""
Palette Storyboard Module

Data model, segmentation, unit breakdowns, treatments and media.
"""

from .models import (
    InputDocument,
    NarrativeUnit,
    UnitBreakdown,
    UnitStatus,
    TitleCard,
    ShotMedia,
    Treatment,
    ProgressUpdate,
    RunOptions,
    PipelineRun,
)
from .director_style import DirectorStyle, build_director_style
from .segmenter import Segmenter, SegmentationResult, detect_markers
from .unit_generator import (
    UnitBreakdownGenerator,
    GenerationOptions,
    TitleCardOptions,
    close_over_references,
)
from .treatments import TreatmentGenerator
from .media_stage import ShotMediaGenerator, estimate_media_cost

__all__ = [
    'InputDocument',
    'NarrativeUnit',
    'UnitBreakdown',
    'UnitStatus',
    'TitleCard',
    'ShotMedia',
    'Treatment',
    'ProgressUpdate',
    'RunOptions',
    'PipelineRun',
    'DirectorStyle',
    'build_director_style',
    'Segmenter',
    'SegmentationResult',
    'detect_markers',
    'UnitBreakdownGenerator',
    'GenerationOptions',
    'TitleCardOptions',
    'close_over_references',
    'TreatmentGenerator',
    'ShotMediaGenerator',
    'estimate_media_cost',
]
