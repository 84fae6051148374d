"""
Reference handle normalization.

A handle is "@" followed by lowercase ASCII words joined by single
underscores, e.g. "John O'Neil" -> "@john_o_neil".
"""

import re
import unicodedata
from typing import Iterable

from palette.core.constants import HANDLE_PATTERN, FALLBACK_HANDLE

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_HANDLE_RE = re.compile(HANDLE_PATTERN)


def normalize_handle(name: str) -> str:
    """Derive the canonical handle for a display name or raw @token."""
    folded = unicodedata.normalize("NFKD", name or "").encode("ascii", "ignore").decode("ascii")
    slug = _NON_ALNUM.sub("_", folded.lower()).strip("_")
    return f"@{slug}" if slug else FALLBACK_HANDLE


def is_valid_handle(handle: str) -> bool:
    return bool(_HANDLE_RE.match(handle or ""))


def unique_handle(name: str, taken: Iterable[str]) -> str:
    """
    Allocate a handle for `name` that is not in `taken`.

    Collisions are resolved by numbering the name: "John", "John 2", "John 3"
    give "@john", "@john_2", "@john_3".
    """
    taken = set(taken)
    handle = normalize_handle(name)
    base = handle[1:]
    counter = 2
    while handle in taken:
        handle = f"@{base}_{counter}"
        counter += 1
    return handle
