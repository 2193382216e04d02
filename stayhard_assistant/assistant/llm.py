"""
LLM backends for coaching replies.

Supports:
- Ollama (local LLMs: Llama, Mistral, Phi, etc.)
- OpenAI API (GPT-4o-mini) and OpenAI-compatible servers
- A rule-based stand-in for running without any model
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM."""

    text: str
    model: str
    tokens_used: int = 0
    latency_ms: float = 0.0


class LLMBackend(ABC):
    """Abstract base class for LLM backends. Calls are blocking."""

    model: str = ""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        context: Optional[list[dict]] = None,
        system_prompt: Optional[str] = None,
        max_tokens: int = 150,
        temperature: float = 0.8,
    ) -> LLMResponse:
        """
        Generate a reply.

        Args:
            prompt: Final user-turn content
            context: Earlier turns as {"role", "content"} dicts
            system_prompt: Optional system message
            max_tokens: Generation cap
            temperature: Sampling temperature

        Returns:
            LLMResponse with generated text
        """
        pass

    @staticmethod
    def _build_messages(
        prompt: str, context: Optional[list[dict]], system_prompt: Optional[str]
    ) -> list[dict]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        if context:
            messages.extend(context)
        messages.append({"role": "user", "content": prompt})
        return messages


class OllamaLLM(LLMBackend):
    """
    Local LLM using Ollama.

    Ollama must be running: `ollama serve`
    """

    def __init__(self, model: str = "llama3.2:3b", host: Optional[str] = None):
        try:
            import ollama
        except ImportError as e:
            raise ImportError(
                "Ollama Python client not installed. "
                "Install with: pip install stayhard-assistant[ollama]"
            ) from e

        self.model = model
        self.host = host or "http://localhost:11434"
        self._client = ollama.Client(host=self.host)

        try:
            self._client.show(model)
        except Exception:
            logger.info("Model '%s' not found. Pulling...", model)
            self._client.pull(model)
        logger.info("Ollama LLM ready: %s", model)

    def generate(
        self,
        prompt: str,
        context: Optional[list[dict]] = None,
        system_prompt: Optional[str] = None,
        max_tokens: int = 150,
        temperature: float = 0.8,
    ) -> LLMResponse:
        start = time.perf_counter()
        response = self._client.chat(
            model=self.model,
            messages=self._build_messages(prompt, context, system_prompt),
            options={"num_predict": max_tokens, "temperature": temperature},
        )
        latency = (time.perf_counter() - start) * 1000

        return LLMResponse(
            text=response["message"].get("content", "") or "",
            model=self.model,
            tokens_used=response.get("eval_count", 0) or 0,
            latency_ms=latency,
        )


class OpenAILLM(LLMBackend):
    """
    LLM using the OpenAI API, or any OpenAI-compatible server via ``host``.

    Requires OPENAI_API_KEY for the hosted API.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        host: Optional[str] = None,
    ):
        try:
            from openai import OpenAI
        except ImportError as e:
            raise ImportError(
                "OpenAI client not installed. "
                "Install with: pip install stayhard-assistant[openai]"
            ) from e

        api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not api_key:
            if host is None:
                raise ValueError("OpenAI API key required. Set OPENAI_API_KEY environment variable.")
            api_key = "not-needed"

        self.model = model
        self._client = OpenAI(api_key=api_key, base_url=host)
        logger.info("OpenAI LLM ready: %s", model)

    def generate(
        self,
        prompt: str,
        context: Optional[list[dict]] = None,
        system_prompt: Optional[str] = None,
        max_tokens: int = 150,
        temperature: float = 0.8,
    ) -> LLMResponse:
        start = time.perf_counter()
        response = self._client.chat.completions.create(
            model=self.model,
            messages=self._build_messages(prompt, context, system_prompt),
            max_tokens=max_tokens,
            temperature=temperature,
        )
        latency = (time.perf_counter() - start) * 1000

        return LLMResponse(
            text=response.choices[0].message.content or "",
            model=self.model,
            tokens_used=response.usage.total_tokens if response.usage else 0,
            latency_ms=latency,
        )


class SimpleLLM(LLMBackend):
    """
    Rule-based "LLM" for running without a model.

    Matches keywords in the prompt and answers with canned coaching lines.
    """

    RESPONSES = {
        "can't": "You can. You just don't want to yet. Stay hard.",
        "tired": "Tired is a feeling, not a fact. Get back to it.",
        "working on": "Good. What's the very next step? Say it out loud.",
        "break": "You earn breaks. Did you earn this one?",
        "hey goggins": "I'm here. What are you working on right now?",
        "hello": "I'm here. What are you working on right now?",
    }
    DEFAULT = "Who's gonna carry the boats? Tell me what you're doing."
    FINAL = "That's it. Go finish what you started. Stay hard."

    def __init__(self):
        self.model = "simple"
        logger.info("Using simple rule-based responses (no LLM)")

    def generate(
        self,
        prompt: str,
        context: Optional[list[dict]] = None,
        system_prompt: Optional[str] = None,
        max_tokens: int = 150,
        temperature: float = 0.8,
    ) -> LLMResponse:
        if system_prompt and "FINAL EXCHANGE" in system_prompt:
            return LLMResponse(text=self.FINAL, model="simple")

        prompt_lower = prompt.lower()
        for key, response in self.RESPONSES.items():
            if key in prompt_lower:
                return LLMResponse(text=response, model="simple")
        return LLMResponse(text=self.DEFAULT, model="simple")


def create_llm(
    backend: str = "ollama",
    model: Optional[str] = None,
    **kwargs,
) -> LLMBackend:
    """
    Factory function to create LLM backend.

    Args:
        backend: "ollama", "openai", or "simple"
        model: Model name (backend-specific)
        **kwargs: Backend-specific options (host, api_key)
    """
    if backend == "ollama":
        return OllamaLLM(model=model or "llama3.2:3b", host=kwargs.get("host"))
    elif backend == "openai":
        return OpenAILLM(model=model or "gpt-4o-mini", api_key=kwargs.get("api_key"), host=kwargs.get("host"))
    elif backend == "simple":
        return SimpleLLM()
    else:
        raise ValueError(f"Unknown LLM backend: {backend}")
