"""
Palette LLM Module

Provider adapters, the schema-validated generator call and the media client.
"""

from .providers import (
    BaseLLMProvider,
    OpenAIProvider,
    AnthropicProvider,
    GrokProvider,
    create_provider,
)
from .structured import (
    StructuredGenerator,
    StructuredResult,
    coerce_response,
    relax_model,
)
from .media import MediaClient, MediaJob, MediaRequest

__all__ = [
    'BaseLLMProvider',
    'OpenAIProvider',
    'AnthropicProvider',
    'GrokProvider',
    'create_provider',
    'StructuredGenerator',
    'StructuredResult',
    'coerce_response',
    'relax_model',
    'MediaClient',
    'MediaJob',
    'MediaRequest',
]
