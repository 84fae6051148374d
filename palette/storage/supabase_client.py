"""
Supabase client factory.
"""

from functools import lru_cache
from typing import Optional

from supabase import create_client, Client

from palette.core.logging_config import get_logger

logger = get_logger("storage.supabase")


@lru_cache()
def get_supabase_client(url: str, key: str) -> Optional[Client]:
    """Cached client for a project URL and key, or None when unconfigured."""
    if not url or not key:
        logger.warning("Supabase URL or key not configured - persistence disabled")
        return None
    return create_client(url, key)
