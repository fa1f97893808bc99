"""Text generation backends used by agent and skill executors."""

from typing import Any, Dict, Optional
from openai import AsyncOpenAI
from loguru import logger


class ContentGenerator:
    """Produces text for a prompt. Subclass to plug in a backend."""

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None
    ) -> str:
        """Generate a completion.

        Args:
            prompt: User message
            system: Optional system prompt
            model: Optional model name or alias

        Returns:
            Generated text
        """
        raise NotImplementedError


class OpenAIContentGenerator(ContentGenerator):
    """Generator backed by an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_base: str = "http://localhost:11434/v1",
        model: str = "gemma3:27b",
        api_key: str = "not-needed",
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        model_aliases: Optional[Dict[str, str]] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        """Initialize the generator.

        Args:
            api_base: OpenAI-compatible endpoint (e.g. "http://localhost:11434/v1" for Ollama)
            model: Default model name
            api_key: API key for authentication
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate (None = model default)
            model_aliases: Short names (e.g. "sonnet") mapped to model names
            client: Preconfigured client, mainly for tests
        """
        self.llm = client or AsyncOpenAI(
            base_url=api_base,
            api_key=api_key
        )
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.model_aliases = dict(model_aliases or {})

    def resolve_model(self, model: Optional[str]) -> str:
        """Resolve an alias to a model name, falling back to the default."""
        if not model:
            return self.model
        return self.model_aliases.get(model, model)

    def _get_generation_kwargs(self, model: Optional[str]) -> Dict[str, Any]:
        kwargs = {
            "model": self.resolve_model(model),
            "temperature": self.temperature
        }

        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens

        return kwargs

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        model: Optional[str] = None
    ) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs = self._get_generation_kwargs(model)
        logger.debug(f"[GENERATOR] Calling {kwargs['model']} ({len(prompt)} chars)")

        response = await self.llm.chat.completions.create(
            messages=messages,
            **kwargs
        )
        return response.choices[0].message.content or ""
