"""
LLM provider interface and implementations.

Provides a pluggable interface for the text generation services (OpenAI,
Gemini) used to summarize each handle's posts.
"""

from .base import LLMProvider, MockLLMProvider, get_llm_provider
from .gemini import GeminiProvider
from .openai import OpenAIProvider

__all__ = ["LLMProvider", "MockLLMProvider", "get_llm_provider", "GeminiProvider", "OpenAIProvider"]
