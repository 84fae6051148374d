"""
Director's Palette - Shot Breakdown Engine

Turns a story or song lyrics into a structured shot-by-shot breakdown
(narrative chapters or music-video sections, shots, references) using
hosted AI text and media providers.

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "Director's Palette Team"
__project__ = "Director's Palette"

from pathlib import Path

# Load environment variables early - before any provider modules read keys
from palette.core.env_loader import ensure_env_loaded
ensure_env_loaded()

# Package root directory
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent

__all__ = [
    "__version__",
    "__author__",
    "__project__",
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
]
