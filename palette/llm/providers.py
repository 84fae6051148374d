"""
Palette LLM Providers

Thin async adapters over hosted text-generation APIs. Every adapter
returns raw response text and wraps transport failures in
LLMProviderError; parsing and validation happen in structured.py.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

from palette.core.config import LLMConfig
from palette.core.constants import LLMProvider
from palette.core.env_loader import get_api_key
from palette.core.exceptions import LLMProviderError, MissingConfigError
from palette.core.logging_config import get_logger

logger = get_logger("llm.providers")

XAI_CHAT_URL = "https://api.x.ai/v1/chat/completions"


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name = "base"

    def __init__(self, config: LLMConfig):
        self.config = config
        self._api_key = get_api_key(config.api_key_env)
        if not self._api_key:
            logger.warning(f"API key not found: {config.api_key_env}")

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: float = None,
        max_tokens: int = None,
        json_mode: bool = False
    ) -> str:
        """Generate a response from the LLM."""
        pass

    @property
    def is_available(self) -> bool:
        """Check if the provider is available."""
        return self._api_key is not None

    def _temperature(self, temperature: Optional[float]) -> float:
        return temperature if temperature is not None else self.config.temperature

    def _messages(self, prompt: str, system_prompt: str) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages


class OpenAIProvider(BaseLLMProvider):
    """OpenAI GPT provider."""

    name = "openai"

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: float = None,
        max_tokens: int = None,
        json_mode: bool = False
    ) -> str:
        try:
            import openai

            client = openai.AsyncOpenAI(api_key=self._api_key, timeout=self.config.timeout)

            kwargs = {}
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}

            response = await client.chat.completions.create(
                model=self.config.model,
                messages=self._messages(prompt, system_prompt),
                max_tokens=max_tokens or self.config.max_tokens,
                temperature=self._temperature(temperature),
                **kwargs
            )

            return response.choices[0].message.content or ""

        except Exception as e:
            raise LLMProviderError(self.name, str(e))


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude provider."""

    name = "anthropic"

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: float = None,
        max_tokens: int = None,
        json_mode: bool = False
    ) -> str:
        try:
            import anthropic

            client = anthropic.AsyncAnthropic(api_key=self._api_key, timeout=self.config.timeout)

            if json_mode:
                system_prompt = (system_prompt + "\n\nRespond with a single JSON object only.").strip()

            message = await client.messages.create(
                model=self.config.model,
                max_tokens=max_tokens or self.config.max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": prompt}],
                temperature=self._temperature(temperature)
            )

            return "".join(
                block.text for block in message.content if getattr(block, "type", "") == "text"
            )

        except Exception as e:
            raise LLMProviderError(self.name, str(e))


class GrokProvider(BaseLLMProvider):
    """xAI Grok provider (OpenAI-compatible chat endpoint)."""

    name = "grok"

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: float = None,
        max_tokens: int = None,
        json_mode: bool = False
    ) -> str:
        try:
            import httpx

            payload = {
                "model": self.config.model,
                "messages": self._messages(prompt, system_prompt),
                "max_tokens": max_tokens or self.config.max_tokens,
                "temperature": self._temperature(temperature)
            }
            if json_mode:
                payload["response_format"] = {"type": "json_object"}

            async with httpx.AsyncClient() as client:
                response = await client.post(
                    XAI_CHAT_URL,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json"
                    },
                    json=payload,
                    timeout=self.config.timeout
                )
                response.raise_for_status()
                data = response.json()
                return data["choices"][0]["message"]["content"]

        except Exception as e:
            raise LLMProviderError(self.name, str(e))


PROVIDER_CLASSES: Dict[LLMProvider, Type[BaseLLMProvider]] = {
    LLMProvider.OPENAI: OpenAIProvider,
    LLMProvider.ANTHROPIC: AnthropicProvider,
    LLMProvider.GROK: GrokProvider,
}


def create_provider(config: LLMConfig) -> BaseLLMProvider:
    """
    Instantiate the provider named by an LLMConfig.

    Raises:
        MissingConfigError: if no adapter exists for the provider
    """
    provider_class = PROVIDER_CLASSES.get(config.provider)
    if provider_class is None:
        raise MissingConfigError(f"No adapter for LLM provider: {config.provider}")
    return provider_class(config)
