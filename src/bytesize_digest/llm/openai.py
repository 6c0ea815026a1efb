"""
OpenAI LLM provider implementation.

Calls the Chat Completions endpoint over plain HTTP with a system message
and a single user message.
"""

import requests
from typing import Any, Dict

from .base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, LLM_TIMEOUT_SECONDS, LLMProvider
from ..errors import ErrorCode, LLMError


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = LLM_TIMEOUT_SECONDS,
        base_url: str = "https://api.openai.com/v1",
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def complete(self, system: str, prompt: str) -> str:
        """
        Generate text using the Chat Completions API.

        Raises:
            LLMError: If API call fails or response is invalid
        """
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout:
            raise LLMError(ErrorCode.LLM_TIMEOUT)
        except requests.RequestException as e:
            raise LLMError(ErrorCode.LLM_NETWORK_ERROR, str(e))

        if response.status_code == 401:
            raise LLMError(ErrorCode.LLM_API_AUTH, "Invalid OpenAI API key")
        elif response.status_code == 429:
            if _error_type(response) == "insufficient_quota":
                raise LLMError(ErrorCode.LLM_QUOTA_EXCEEDED, "OpenAI quota exceeded")
            raise LLMError(ErrorCode.LLM_RATE_LIMITED, "OpenAI API rate limit exceeded")
        elif response.status_code >= 500:
            raise LLMError(ErrorCode.LLM_NETWORK_ERROR, f"OpenAI server error: HTTP {response.status_code}")
        elif response.status_code != 200:
            raise LLMError(ErrorCode.LLM_INVALID_RESPONSE, f"HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise LLMError(ErrorCode.LLM_INVALID_RESPONSE, f"Invalid JSON: {e}")

        return self._parse_response(data)

    def _parse_response(self, response_data: Dict[str, Any]) -> str:
        """Extract the first choice's message content."""
        choices = response_data.get("choices") or []
        if not choices:
            raise LLMError(ErrorCode.LLM_EMPTY_RESPONSE, "No choices in response")

        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMError(ErrorCode.LLM_INVALID_RESPONSE, "Missing message content")

        content = content.strip()
        if not content:
            raise LLMError(ErrorCode.LLM_EMPTY_RESPONSE, "Empty message content")

        return content


def _error_type(response: requests.Response) -> str:
    try:
        return (response.json().get("error") or {}).get("type", "")
    except (ValueError, AttributeError):
        return ""
