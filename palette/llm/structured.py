"""
Schema-Validated Generator Call

Wraps a text provider so callers always get back a value of a declared
pydantic schema:

1. The provider call runs under the retry executor with a per-attempt
   deadline. Transport errors surviving every attempt propagate.
2. The raw text is parsed and validated strictly.
3. On a shape failure the text is validated against a relaxed copy of
   the schema (every field optional), merged over caller defaults and
   validated strictly again.
4. If that still fails the defaults alone are returned.

Shape failures never cause another provider call.
"""

import asyncio
import copy
import json
import re
import types
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError, create_model

from palette.core.exceptions import LLMTimeoutError, SchemaValidationError
from palette.core.logging_config import get_logger
from palette.core.retry import RetryConfig, retry_async_call

logger = get_logger("llm.structured")

ModelT = TypeVar("ModelT", bound=BaseModel)

SOURCE_STRICT = "strict"
SOURCE_RELAXED = "relaxed"
SOURCE_DEFAULTS = "defaults"

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

_relaxed_cache: Dict[type, type] = {}


@dataclass
class StructuredResult(Generic[ModelT]):
    """A schema-conforming value plus how it was obtained."""
    value: ModelT
    source: str = SOURCE_STRICT
    errors: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True when the response needed any repair."""
        return self.source != SOURCE_STRICT

    @property
    def from_defaults(self) -> bool:
        """True when nothing from the response survived."""
        return self.source == SOURCE_DEFAULTS


# =============================================================================
# SCHEMA RELAXATION
# =============================================================================

def _relax_annotation(annotation: Any) -> Any:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return relax_model(annotation)

    origin = get_origin(annotation)
    args = get_args(annotation)
    if origin is None or not args:
        return annotation

    if origin is list:
        return List[_relax_annotation(args[0])]
    if origin is dict:
        return Dict[args[0], _relax_annotation(args[1])]
    if origin is Union or origin is types.UnionType:
        return Union[tuple(_relax_annotation(arg) for arg in args)]
    return annotation


def relax_model(schema: Type[BaseModel]) -> Type[BaseModel]:
    """
    Build a variant of a schema where every field, recursively, is optional.

    The variant is cached per schema class.
    """
    if schema in _relaxed_cache:
        return _relaxed_cache[schema]

    fields = {
        name: (Optional[_relax_annotation(info.annotation)], None)
        for name, info in schema.model_fields.items()
    }
    relaxed = create_model(f"Relaxed{schema.__name__}", **fields)
    _relaxed_cache[schema] = relaxed
    return relaxed


# =============================================================================
# RESPONSE HANDLING
# =============================================================================

def parse_json_response(raw: str) -> Optional[Any]:
    """
    Parse model output as JSON, tolerating markdown fences and chatter
    around a single top-level object. Returns None when nothing parses.
    """
    if not raw:
        return None

    text = raw.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            return None
    return None


def deep_merge(base: Any, override: Any) -> Any:
    """Merge override onto base. Mappings merge recursively; anything else replaces."""
    if isinstance(base, dict) and isinstance(override, dict):
        merged = dict(base)
        for key, value in override.items():
            merged[key] = deep_merge(base.get(key), value) if key in base else value
        return merged
    return override


def _format_errors(error: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    ]


def _prune_invalid_items(data: dict, error: ValidationError) -> Optional[dict]:
    """
    Drop list items that a strict validation rejected.

    Returns a pruned copy, or None if an error is not inside a list item.
    """
    doomed: Dict[tuple, set] = {}
    for err in error.errors():
        loc = err["loc"]
        index_pos = next(
            (i for i in range(len(loc) - 1, -1, -1) if isinstance(loc[i], int)), None
        )
        if index_pos is None:
            return None
        doomed.setdefault(tuple(loc[:index_pos]), set()).add(loc[index_pos])

    pruned = copy.deepcopy(data)
    for path, indexes in doomed.items():
        container = pruned
        for part in path:
            container = container[part]
        if not isinstance(container, list):
            return None
        container[:] = [item for i, item in enumerate(container) if i not in indexes]
    return pruned


def coerce_response(
    schema: Type[ModelT],
    raw: str,
    defaults: Optional[dict] = None
) -> StructuredResult[ModelT]:
    """
    Turn raw provider text into a value of `schema`.

    Raises:
        SchemaValidationError: when every repair fails and no defaults were given
    """
    errors: List[str] = []
    data = parse_json_response(raw)

    if data is None:
        errors.append("response is not valid JSON")
    else:
        try:
            return StructuredResult(schema.model_validate(data), SOURCE_STRICT)
        except ValidationError as e:
            errors.extend(_format_errors(e))

        relaxed = relax_model(schema)
        try:
            partial = relaxed.model_validate(data).model_dump(exclude_none=True)
        except ValidationError as e:
            partial = None
            errors.extend(_format_errors(e))

        if partial is not None:
            merged = deep_merge(defaults or {}, partial)
            try:
                return StructuredResult(schema.model_validate(merged), SOURCE_RELAXED, errors)
            except ValidationError as e:
                pruned = _prune_invalid_items(merged, e)
                if pruned is not None:
                    try:
                        return StructuredResult(schema.model_validate(pruned), SOURCE_RELAXED, errors)
                    except ValidationError as retry_error:
                        errors.extend(_format_errors(retry_error))
                else:
                    errors.extend(_format_errors(e))

    if defaults is None:
        raise SchemaValidationError(schema.__name__, errors)

    logger.warning(f"{schema.__name__}: response unusable, falling back to defaults ({len(errors)} errors)")
    return StructuredResult(schema.model_validate(defaults), SOURCE_DEFAULTS, errors)


# =============================================================================
# GENERATOR
# =============================================================================

class StructuredGenerator:
    """
    Issues schema-bound generation requests through a provider.

    Example:
        generator = StructuredGenerator(create_provider(config.llm))
        result = await generator.generate(ExtractionSchema, prompt, defaults={...})
    """

    def __init__(
        self,
        provider,
        retry_config: RetryConfig = None,
        timeout: float = 120.0
    ):
        self.provider = provider
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return getattr(self.provider, "name", type(self.provider).__name__)

    @property
    def is_available(self) -> bool:
        return bool(getattr(self.provider, "is_available", True))

    async def _call_once(self, prompt, system_prompt, temperature, max_tokens, json_mode) -> str:
        try:
            return await asyncio.wait_for(
                self.provider.generate(
                    prompt,
                    system_prompt=system_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    json_mode=json_mode
                ),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            raise LLMTimeoutError(self.provider_name, self.timeout)

    async def generate_text(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: float = None,
        max_tokens: int = None
    ) -> str:
        """Unstructured completion under the same retry and deadline rules."""
        return await retry_async_call(
            self._call_once, prompt, system_prompt, temperature, max_tokens, False,
            config=self.retry_config
        )

    async def generate(
        self,
        schema: Type[ModelT],
        prompt: str,
        system_prompt: str = "",
        defaults: Optional[dict] = None,
        temperature: float = None,
        max_tokens: int = None
    ) -> StructuredResult[ModelT]:
        """
        Request a value of `schema`.

        Args:
            schema: pydantic model describing the expected response
            prompt: task prompt
            system_prompt: system instructions
            defaults: mapping used to fill fields the response lacks
            temperature: sampling temperature override
            max_tokens: output token limit override

        Returns:
            StructuredResult whose value is always a valid `schema` instance
        """
        schema_json = json.dumps(schema.model_json_schema(), indent=2)
        full_prompt = (
            f"{prompt}\n\n"
            f"Respond with a single JSON object matching this JSON schema:\n{schema_json}"
        )

        raw = await retry_async_call(
            self._call_once, full_prompt, system_prompt, temperature, max_tokens, True,
            config=self.retry_config
        )

        result = coerce_response(schema, raw, defaults)
        if result.degraded:
            logger.info(f"{schema.__name__} resolved via {result.source} pass")
        return result
