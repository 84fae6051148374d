"""
Pytest Configuration and Fixtures

Shared fixtures for all tests.
"""

import json
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

from palette.core.config import PaletteConfig, PipelineConfig, RetrySettings
from palette.core.constants import ReferenceKind
from palette.core.retry import RetryConfig
from palette.llm.structured import StructuredGenerator
from palette.references.reference_set import Reference, ReferenceSet


class ScriptedProvider:
    """
    Provider double.

    Answers from a list of canned responses, or from `handler(prompt,
    system_prompt)` when one is given. Dicts and lists are sent as JSON;
    exceptions are raised.
    """

    name = "scripted"

    def __init__(self, responses: List[Any] = None, handler: Callable = None, available: bool = True):
        self.responses = list(responses or [])
        self.handler = handler
        self.is_available = available
        self.calls: List[Dict[str, Any]] = []

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: float = None,
        max_tokens: int = None,
        json_mode: bool = False
    ) -> str:
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "json_mode": json_mode})
        if self.handler is not None:
            response = self.handler(prompt, system_prompt)
        else:
            response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, (dict, list)):
            return json.dumps(response)
        return response


def unit_title(prompt: str) -> str:
    """The TITLE line of a unit breakdown prompt."""
    match = re.search(r"^TITLE: (.+?)(?: \([^)]*\))?$", prompt, re.MULTILINE)
    return match.group(1) if match else ""


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry policy with no waiting."""
    return RetryConfig(max_attempts=3, base_delay=0.0)


@pytest.fixture
def make_generator(fast_retry) -> Callable[..., StructuredGenerator]:
    """Build a StructuredGenerator over a ScriptedProvider."""
    def _make(responses: List[Any] = None, handler: Callable = None, available: bool = True):
        provider = ScriptedProvider(responses, handler, available)
        return StructuredGenerator(provider, retry_config=fast_retry, timeout=5.0)
    return _make


@pytest.fixture
def engine_config() -> PaletteConfig:
    """Engine config with instant retries and modest concurrency."""
    config = PaletteConfig()
    config.retry = RetrySettings(max_attempts=3, base_delay=0.0)
    config.pipeline = PipelineConfig(max_concurrency=2, call_timeout=5.0)
    config.media.poll_interval = 0.0
    config.media.max_poll_attempts = 3
    return config


@pytest.fixture
def sample_story_text() -> str:
    """Five chapters with John, Sarah and a warehouse."""
    return (
        "Chapter 1: The Meeting\n"
        "John walked into the warehouse at dusk. Sarah was already waiting by the crates.\n\n"
        "Chapter 2: The Deal\n"
        "Sarah slid the envelope across the table. John counted the money twice.\n\n"
        "Chapter 3: The Betrayal\n"
        "Headlights swept the warehouse windows. Sarah ran for the back door.\n\n"
        "Chapter 4: The Chase\n"
        "John followed her through the rain-soaked alleys behind the docks.\n\n"
        "Chapter 5: The Reckoning\n"
        "At dawn John found Sarah on the pier, the envelope still in her hand.\n"
    )


@pytest.fixture
def sample_lyrics_text() -> str:
    return (
        "[Verse 1]\n"
        "City lights are fading out\n"
        "I can hear you calling now\n\n"
        "[Chorus]\n"
        "Run with me tonight\n"
        "Under neon light\n\n"
        "[Verse 2]\n"
        "Every street remembers you\n"
        "Every sign is shining through\n\n"
        "[Chorus]\n"
        "Run with me tonight\n"
        "Under neon light\n"
    )


@pytest.fixture
def story_extraction() -> Dict[str, Any]:
    """Extraction response for sample_story_text."""
    return {
        "characters": [
            {"name": "John", "description": "A tired man in a grey coat"},
            {"name": "Sarah", "description": "A sharp woman with a red scarf"},
        ],
        "locations": [{"name": "The Warehouse", "description": "A rusted dockside warehouse"}],
        "props": [{"name": "Envelope", "description": "A thick manila envelope"}],
        "wardrobe": [],
        "themes": ["trust", "betrayal"],
    }


@pytest.fixture
def sample_references() -> ReferenceSet:
    return ReferenceSet([
        Reference("@john", "John", ReferenceKind.CHARACTER, "A tired man in a grey coat"),
        Reference("@sarah", "Sarah", ReferenceKind.CHARACTER, "A sharp woman with a red scarf",
                  image_url="https://example.com/sarah.png"),
        Reference("@warehouse", "Warehouse", ReferenceKind.LOCATION, "A rusted dockside warehouse"),
    ])


@pytest.fixture
def scripted_provider():
    """The ScriptedProvider class, for tests that build their own generator."""
    return ScriptedProvider


@pytest.fixture
def title_of():
    """Extract the TITLE line from a unit breakdown prompt."""
    return unit_title
