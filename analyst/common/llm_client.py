"""
Provider-agnostic LLM client for the analyst pipeline.

Supports Google Gemini, Anthropic, and OpenAI behind one ``generate(prompt)``
interface. Anything else exposing ``generate(prompt) -> str`` can stand in for
it (see TextGenerator).
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from .config import LLMConfig
from .errors import GenerationError

logger = logging.getLogger("analyst.common.llm_client")


@runtime_checkable
class TextGenerator(Protocol):
    """Generative capability: prompt in, free text out."""

    def generate(self, prompt: str) -> str:
        ...


def _anthropic_client(api_key: str) -> Any:
    import anthropic

    return anthropic.Anthropic(api_key=api_key)


def _openai_client(api_key: str) -> Any:
    from openai import OpenAI

    return OpenAI(api_key=api_key)


def _google_client(api_key: str) -> Any:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    return genai  # the module; models are built per system prompt


# provider -> (client factory, package name for install hints)
_CLIENT_FACTORIES: Dict[str, tuple[Callable[[str], Any], str]] = {
    "anthropic": (_anthropic_client, "anthropic"),
    "openai": (_openai_client, "openai"),
    "google": (_google_client, "google-generativeai"),
}


class LLMClient:
    """Unified text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "google",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        max_tokens: int = 2048,
        timeout: float = 60.0,
    ) -> None:
        self.provider = (provider or "google").lower()
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None
        self._google_models: Dict[str, Any] = {}

        entry = _CLIENT_FACTORIES.get(self.provider)
        if entry is None:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return

        api_key = {
            "anthropic": anthropic_api_key,
            "openai": openai_api_key,
            "google": google_api_key,
        }[self.provider]
        if not api_key:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        factory, package = entry
        try:
            self._client = factory(api_key)
        except ImportError:
            logger.warning("%s package not installed", package)
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, config: LLMConfig) -> "LLMClient":
        models = {
            "anthropic": config.anthropic_model,
            "openai": config.openai_model,
            "google": config.google_model,
        }
        return cls(
            provider=config.provider,
            model=models.get((config.provider or "").lower(), ""),
            anthropic_api_key=config.anthropic_api_key,
            openai_api_key=config.openai_api_key,
            google_api_key=config.google_api_key,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Generate text for ``prompt``.

        Raises:
            GenerationError: no client for the configured provider
        """
        if not self.is_available:
            raise GenerationError(f"LLM client is not available (provider={self.provider})")

        generate = getattr(self, f"_generate_{self.provider}")
        return generate(prompt, system, max_tokens or self.max_tokens, timeout or self.timeout)

    def _generate_anthropic(self, prompt: str, system: Optional[str], max_tokens: int, timeout: float) -> str:
        kwargs = {"system": system} if system else {}
        response = self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
            **kwargs,
        )
        return response.content[0].text.strip()

    def _generate_openai(self, prompt: str, system: Optional[str], max_tokens: int, timeout: float) -> str:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=messages,
            timeout=timeout,
        )
        return (response.choices[0].message.content or "").strip()

    def _generate_google(self, prompt: str, system: Optional[str], max_tokens: int, timeout: float) -> str:
        # One GenerativeModel per distinct system prompt
        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        model = self._google_models.get(cache_key)
        if model is None:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            model = self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        response = model.generate_content(
            prompt,
            generation_config={"max_output_tokens": max_tokens},
            request_options={"timeout": timeout},
        )
        return response.text.strip()
