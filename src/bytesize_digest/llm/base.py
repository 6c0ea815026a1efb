"""
Base LLM provider interface.

Defines the abstract base class that all LLM providers must implement.
Provides a mock implementation for testing and development, and the
factory that builds a provider from configuration.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from ..errors import ConfigError, ErrorCode, LLMError


DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 300
LLM_TIMEOUT_SECONDS = 30


class LLMProvider(ABC):
    """Base class for all LLM providers."""

    @abstractmethod
    def complete(self, system: str, prompt: str) -> str:
        """
        Generate text for a prompt under a system instruction.

        Args:
            system: System/instruction prompt
            prompt: The user message

        Returns:
            Generated text response

        Raises:
            LLMError: If generation fails
        """
        pass

    @property
    def name(self) -> str:
        """Provider name for logging."""
        return self.__class__.__name__


@dataclass
class LLMCall:
    """Record of an LLM call for testing/debugging."""
    system: str
    prompt: str
    response: str


class MockLLMProvider(LLMProvider):
    """
    Mock LLM provider for testing.

    Returns predefined responses and tracks all calls for assertions.
    Safe to call from several worker threads at once.
    """

    def __init__(
        self,
        response: Union[str, Callable[[str, str], str]] = "<div>Mock summary</div>",
        error: Optional[Exception] = None,
        fail_on: Optional[Dict[str, Exception]] = None,
        fail_count: int = 0,
    ):
        """
        Initialize mock provider.

        Args:
            response: Fixed response, or a function of (system, prompt)
            error: Exception to raise instead of returning response
            fail_on: Substring of the prompt -> exception raised when it appears
            fail_count: Number of calls that raise LLM_TIMEOUT before succeeding
        """
        self.response = response
        self.error = error
        self.fail_on = fail_on or {}
        self.fail_count = fail_count
        self.calls: List[LLMCall] = []
        self._lock = threading.Lock()

    def complete(self, system: str, prompt: str) -> str:
        """Generate mock response and track call."""
        call = LLMCall(system=system, prompt=prompt, response="")
        with self._lock:
            self.calls.append(call)
            call_number = len(self.calls)

        for marker, exc in self.fail_on.items():
            if marker in prompt:
                raise exc

        if self.error:
            raise self.error

        if call_number <= self.fail_count:
            raise LLMError(ErrorCode.LLM_TIMEOUT, "Configured failure count")

        # Rendered outside the lock so a slow response doesn't block other threads
        call.response = self._render(system, prompt)
        return call.response

    def _render(self, system: str, prompt: str) -> str:
        if callable(self.response):
            return self.response(system, prompt)
        return self.response

    def prompts_mentioning(self, text: str) -> List[LLMCall]:
        """Calls whose prompt contains text."""
        return [c for c in self.calls if text in c.prompt]

    def reset(self):
        """Clear call history."""
        self.calls = []

    def set_response(self, response: str):
        """Change the response for future calls."""
        self.response = response
        self.error = None


def get_llm_provider(config: Dict[str, Any], api_key: Optional[str]) -> LLMProvider:
    """
    Get LLM provider instance from configuration.

    Args:
        config: The "llm" configuration section
        api_key: API key resolved from the environment

    Returns:
        Configured LLM provider instance

    Raises:
        ConfigError: If provider not found or key missing
    """
    provider_type = config.get("provider", "openai")

    if not api_key:
        raise ConfigError(
            ErrorCode.CONFIG_MISSING_CREDENTIALS,
            f"No API key for LLM provider '{provider_type}'"
        )

    temperature = config.get("temperature", DEFAULT_TEMPERATURE)
    max_tokens = config.get("max_tokens", DEFAULT_MAX_TOKENS)
    timeout = config.get("timeout_seconds", LLM_TIMEOUT_SECONDS)

    if provider_type == "openai":
        from .openai import OpenAIProvider
        return OpenAIProvider(
            api_key=api_key,
            model=config.get("model") or "gpt-4o",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

    if provider_type == "gemini":
        from .gemini import GeminiProvider
        return GeminiProvider(
            api_key=api_key,
            model=config.get("model") or "gemini-2.0-flash",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

    raise ConfigError(
        ErrorCode.CONFIG_INVALID_VALUE,
        f"Unknown LLM provider: {provider_type}"
    )
