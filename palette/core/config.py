"""
Palette Configuration Management

Centralized configuration system with JSON loading and validation.
Model names and per-job credit costs live here, never in code paths.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .exceptions import ConfigurationError, InvalidConfigError
from .constants import (
    LLMProvider,
    MIN_UNITS,
    MAX_UNITS,
    DEFAULT_TARGET_UNITS,
    MAX_SHOTS_PER_UNIT,
    MAX_ADDITIONAL_SHOTS,
)

DEFAULT_CONFIG_PATH = Path("config/palette_config.json")

DEFAULT_MODELS = {
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.ANTHROPIC: "claude-sonnet-4-20250514",
    LLMProvider.GROK: "grok-3-fast",
}

DEFAULT_KEY_ENVS = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
    LLMProvider.GROK: "XAI_API_KEY",
}


@dataclass
class LLMConfig:
    """Configuration for the structured-generation provider."""
    provider: LLMProvider = LLMProvider.OPENAI
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"  # Environment variable name for API key
    temperature: float = 0.7
    max_tokens: int = 4096
    timeout: int = 60

    @classmethod
    def from_dict(cls, data: dict) -> 'LLMConfig':
        """Create LLMConfig from dictionary."""
        try:
            provider = LLMProvider(data.get('provider', LLMProvider.OPENAI.value))
        except ValueError:
            raise InvalidConfigError(f"Unknown LLM provider: {data.get('provider')}")
        return cls(
            provider=provider,
            model=data.get('model', DEFAULT_MODELS[provider]),
            api_key_env=data.get('api_key_env', DEFAULT_KEY_ENVS[provider]),
            temperature=data.get('temperature', 0.7),
            max_tokens=data.get('max_tokens', 4096),
            timeout=data.get('timeout', 60)
        )


@dataclass
class RetrySettings:
    """Backoff settings shared by every external call."""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds; doubles after each failed attempt

    @classmethod
    def from_dict(cls, data: dict) -> 'RetrySettings':
        settings = cls(
            max_attempts=data.get('max_attempts', 3),
            base_delay=data.get('base_delay', 1.0)
        )
        if settings.max_attempts < 1:
            raise InvalidConfigError("retry.max_attempts must be at least 1")
        if settings.base_delay < 0:
            raise InvalidConfigError("retry.base_delay must not be negative")
        return settings


@dataclass
class PipelineConfig:
    """Breakdown pipeline settings."""
    max_concurrency: int = 4
    call_timeout: float = 120.0
    min_units: int = MIN_UNITS
    max_units: int = MAX_UNITS
    default_target_units: int = DEFAULT_TARGET_UNITS
    max_shots_per_unit: int = MAX_SHOTS_PER_UNIT
    max_additional_shots: int = MAX_ADDITIONAL_SHOTS

    @classmethod
    def from_dict(cls, data: dict) -> 'PipelineConfig':
        config = cls(
            max_concurrency=data.get('max_concurrency', 4),
            call_timeout=data.get('call_timeout', 120.0),
            min_units=data.get('min_units', MIN_UNITS),
            max_units=data.get('max_units', MAX_UNITS),
            default_target_units=data.get('default_target_units', DEFAULT_TARGET_UNITS),
            max_shots_per_unit=data.get('max_shots_per_unit', MAX_SHOTS_PER_UNIT),
            max_additional_shots=data.get('max_additional_shots', MAX_ADDITIONAL_SHOTS)
        )
        if config.max_concurrency < 1:
            raise InvalidConfigError("pipeline.max_concurrency must be at least 1")
        if not 1 <= config.min_units <= config.max_units:
            raise InvalidConfigError(
                f"Invalid unit bounds: min={config.min_units}, max={config.max_units}"
            )
        return config


@dataclass
class MediaConfig:
    """Media provider settings (predictions-style API)."""
    provider_url: str = "https://api.replicate.com/v1"
    api_key_env: str = "REPLICATE_API_TOKEN"
    image_model: str = "black-forest-labs/flux-schnell"
    video_model: str = "wan-video/wan-2.2-i2v-fast"
    width: int = 1344
    height: int = 768
    poll_interval: float = 1.0
    max_poll_attempts: int = 30
    credits_per_image: int = 1
    credits_per_video: int = 5
    shots_per_unit: int = 3  # shots rendered per unit when media is requested

    @classmethod
    def from_dict(cls, data: dict) -> 'MediaConfig':
        defaults = cls()
        return cls(
            provider_url=data.get('provider_url', defaults.provider_url),
            api_key_env=data.get('api_key_env', defaults.api_key_env),
            image_model=data.get('image_model', defaults.image_model),
            video_model=data.get('video_model', defaults.video_model),
            width=data.get('width', defaults.width),
            height=data.get('height', defaults.height),
            poll_interval=data.get('poll_interval', defaults.poll_interval),
            max_poll_attempts=data.get('max_poll_attempts', defaults.max_poll_attempts),
            credits_per_image=data.get('credits_per_image', defaults.credits_per_image),
            credits_per_video=data.get('credits_per_video', defaults.credits_per_video),
            shots_per_unit=data.get('shots_per_unit', defaults.shots_per_unit)
        )


@dataclass
class PaletteConfig:
    """Main configuration class for Director's Palette."""

    project_name: str = "Director's Palette"
    version: str = "1.0.0"

    logs_dir: Path = field(default_factory=lambda: Path("logs"))

    llm: LLMConfig = field(default_factory=LLMConfig)
    retry: RetrySettings = field(default_factory=RetrySettings)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    media: MediaConfig = field(default_factory=MediaConfig)

    verbose_logging: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> 'PaletteConfig':
        """Create PaletteConfig from dictionary."""
        config = cls()

        config.project_name = data.get('project_name', config.project_name)
        config.version = data.get('version', config.version)
        config.verbose_logging = data.get('verbose_logging', config.verbose_logging)

        if 'logs_dir' in data:
            config.logs_dir = Path(data['logs_dir'])

        if 'llm' in data:
            config.llm = LLMConfig.from_dict(data['llm'])
        if 'retry' in data:
            config.retry = RetrySettings.from_dict(data['retry'])
        if 'pipeline' in data:
            config.pipeline = PipelineConfig.from_dict(data['pipeline'])
        if 'media' in data:
            config.media = MediaConfig.from_dict(data['media'])

        return config


def load_config(config_path: Path = None) -> PaletteConfig:
    """
    Load configuration from JSON file.

    Args:
        config_path: Path to configuration file. If None, uses default.

    Returns:
        Loaded PaletteConfig instance
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return PaletteConfig()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidConfigError(f"Invalid JSON in config file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to load config: {e}")

    return PaletteConfig.from_dict(data)


# Global config instance
_config: Optional[PaletteConfig] = None


def get_config() -> PaletteConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: PaletteConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
