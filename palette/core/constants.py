"""
Palette Constants

Global constants used throughout the shot breakdown engine.
"""

from enum import Enum

# =============================================================================
# VERSION INFO
# =============================================================================
VERSION = "1.0.0"
PROJECT_NAME = "Director's Palette"

# =============================================================================
# INPUT DOCUMENTS
# =============================================================================

class DocumentKind(Enum):
    """Kind of creative text being broken down."""
    STORY = "story"
    LYRICS = "lyrics"


# =============================================================================
# REFERENCE CONSTANTS
# =============================================================================

class ReferenceKind(Enum):
    """Categories of named recurring entities."""
    CHARACTER = "character"
    LOCATION = "location"
    PROP = "prop"
    WARDROBE = "wardrobe"


# Canonical handle shape: "@" + lowercase words joined by single underscores
HANDLE_PATTERN = r'^@[a-z0-9]+(?:_[a-z0-9]+)*$'
# Loose token pattern used to find handles inside generated shot text
HANDLE_TOKEN_PATTERN = r'(?<![A-Za-z0-9_.])@[A-Za-z0-9_]+'
FALLBACK_HANDLE = "@ref"

# =============================================================================
# SEGMENTATION CONSTANTS
# =============================================================================

class DetectionMode(Enum):
    """How a document is split into narrative units."""
    EXISTING = "existing"
    AI_GENERATED = "ai-generated"
    HYBRID = "hybrid"


class UnitSource(Enum):
    """Where a unit boundary came from."""
    MARKER = "marker"
    AI = "ai"
    HEURISTIC = "heuristic"


class NarrativeBeat(Enum):
    """Story beat labels for prose units."""
    SETUP = "setup"
    RISING_ACTION = "rising-action"
    CLIMAX = "climax"
    RESOLUTION = "resolution"


class SectionType(Enum):
    """Song section labels for lyric units."""
    INTRO = "intro"
    VERSE = "verse"
    PRE_CHORUS = "pre-chorus"
    CHORUS = "chorus"
    POST_CHORUS = "post-chorus"
    BRIDGE = "bridge"
    INSTRUMENTAL = "instrumental"
    SOLO = "solo"
    REFRAIN = "refrain"
    OUTRO = "outro"
    HOOK = "hook"
    INTERLUDE = "interlude"


MIN_UNITS = 1
MAX_UNITS = 20
DEFAULT_TARGET_UNITS = 4

# =============================================================================
# SHOT GENERATION CONSTANTS
# =============================================================================

MAX_SHOTS_PER_UNIT = 50
MAX_ADDITIONAL_SHOTS = 20
WORDS_PER_SHOT = 30

# "Add more shots" categories offered to the caller
SHOT_CATEGORIES = [
    "establishing",
    "detail",
    "reaction",
    "transition",
    "insert",
    "cutaway",
    "performance",
    "b-roll",
]

# =============================================================================
# PIPELINE CONSTANTS
# =============================================================================

class RunStatus(Enum):
    """Lifecycle of a breakdown run."""
    PENDING = "pending"
    EXTRACTING_REFERENCES = "extracting-references"
    SEGMENTING = "segmenting"
    GENERATING_UNITS = "generating-units"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UnitState(Enum):
    """Lifecycle of a single unit inside a run."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_RUN_STATUSES = (RunStatus.COMPLETE, RunStatus.FAILED, RunStatus.CANCELLED)

# =============================================================================
# MEDIA CONSTANTS
# =============================================================================

class MediaKind(Enum):
    """Media produced for a shot."""
    IMAGE = "image"
    VIDEO = "video"


class MediaJobStatus(Enum):
    """Status values reported by the media provider."""
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


# =============================================================================
# LLM PROVIDERS
# =============================================================================

class LLMProvider(Enum):
    """Supported structured-generation providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GROK = "grok"
