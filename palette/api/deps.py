"""
API Dependencies

Builds the shared pipeline and repository for route handlers. Tests
replace these through app.dependency_overrides.
"""

from functools import lru_cache

from palette.core.config import load_config, set_config
from palette.core.logging_config import get_logger
from palette.core.retry import RetryConfig
from palette.llm.media import MediaClient
from palette.llm.providers import create_provider
from palette.llm.structured import StructuredGenerator
from palette.pipelines.breakdown_pipeline import BreakdownPipeline
from palette.storage.credits import SupabaseCreditLedger
from palette.storage.run_repository import (
    InMemoryRunRepository,
    RunRepository,
    SupabaseRunRepository,
)
from palette.storage.supabase_client import get_supabase_client
from .settings import get_settings

logger = get_logger("api.deps")


@lru_cache()
def get_repository() -> RunRepository:
    """Supabase-backed when configured, in-memory otherwise."""
    settings = get_settings()
    client = get_supabase_client(settings.supabase_url, settings.supabase_service_key)
    if client is None:
        return InMemoryRunRepository()
    return SupabaseRunRepository(client)


@lru_cache()
def get_pipeline() -> BreakdownPipeline:
    """The process-wide BreakdownPipeline."""
    settings = get_settings()
    config = load_config(settings.palette_config_path)
    set_config(config)

    retry_config = RetryConfig.from_settings(config.retry)
    generator = StructuredGenerator(
        create_provider(config.llm),
        retry_config=retry_config,
        timeout=config.pipeline.call_timeout,
    )
    media_client = MediaClient(config.media, retry_config=retry_config)

    credits = None
    client = get_supabase_client(settings.supabase_url, settings.supabase_service_key)
    if client is not None and settings.credits_user_id:
        credits = SupabaseCreditLedger(client, settings.credits_user_id)

    logger.info(f"Pipeline ready (provider: {generator.provider_name})")
    return BreakdownPipeline(
        generator,
        config=config,
        media_client=media_client,
        credits=credits,
        repository=get_repository(),
    )
