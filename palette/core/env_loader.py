"""
Environment loading for Palette.

Provider keys come from the process environment, topped up from a .env
file. The working directory's .env wins over the one at the repository
root so `palette run` picks up keys from wherever it is invoked.

Usage:
    from palette.core.env_loader import get_api_key
    key = get_api_key("XAI_API_KEY")  # also tries GROK_API_KEY
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

# Older variable names still accepted for each key
KEY_ALIASES: Dict[str, List[str]] = {
    "XAI_API_KEY": ["GROK_API_KEY"],
    "REPLICATE_API_TOKEN": ["REPLICATE_API_KEY"],
    "SUPABASE_SERVICE_KEY": ["SUPABASE_KEY"],
}

_loaded_from: Optional[Path] = None
_searched = False


def _candidate_env_files() -> List[Path]:
    repo_root = Path(__file__).resolve().parent.parent.parent
    return [Path.cwd() / ".env", repo_root / ".env"]


def ensure_env_loaded() -> Optional[Path]:
    """
    Load the first .env found, once per process.

    Variables already set in the environment are never overwritten.

    Returns:
        Path of the loaded file, or None when there is none
    """
    global _loaded_from, _searched

    if _searched:
        return _loaded_from
    _searched = True

    for env_path in _candidate_env_files():
        if env_path.is_file():
            load_dotenv(env_path, override=False)
            _loaded_from = env_path
            break
    return _loaded_from


def get_api_key(key_name: str, fallback_keys: Optional[List[str]] = None) -> Optional[str]:
    """
    Look up a key, trying its known aliases after the primary name.

    Empty values count as missing.
    """
    ensure_env_loaded()

    names = [key_name] + list(fallback_keys or KEY_ALIASES.get(key_name, []))
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return None
