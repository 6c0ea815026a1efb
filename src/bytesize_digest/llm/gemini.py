"""
Gemini LLM provider implementation.

Integrates with Google's Gemini generateContent API. The system prompt is
sent as a systemInstruction and the post texts as the single user turn.
"""

import requests
from typing import Any, Dict

from .base import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE, LLM_TIMEOUT_SECONDS, LLMProvider
from ..errors import ErrorCode, LLMError


class GeminiProvider(LLMProvider):
    """Gemini API provider for text generation."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = LLM_TIMEOUT_SECONDS,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Gemini API key
            model: Model name (default: gemini-2.0-flash)
            temperature: Sampling temperature
            max_tokens: Maximum output tokens
            timeout: HTTP timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"

    def complete(self, system: str, prompt: str) -> str:
        """
        Generate text using Gemini API.

        Raises:
            LLMError: If API call fails or response is invalid
        """
        payload = self._build_payload(system, prompt)
        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {"Content-Type": "application/json"}
        params = {"key": self.api_key}

        try:
            response = requests.post(url, json=payload, headers=headers, params=params, timeout=self.timeout)
        except requests.Timeout:
            raise LLMError(ErrorCode.LLM_TIMEOUT)
        except requests.RequestException as e:
            raise LLMError(ErrorCode.LLM_NETWORK_ERROR, str(e))

        if response.status_code == 401:
            raise LLMError(ErrorCode.LLM_API_AUTH, "Invalid Gemini API key")
        elif response.status_code == 429:
            raise LLMError(ErrorCode.LLM_RATE_LIMITED, "Gemini API rate limit exceeded")
        elif response.status_code == 403:
            raise LLMError(ErrorCode.LLM_QUOTA_EXCEEDED, "Gemini API quota exceeded")
        elif response.status_code >= 500:
            raise LLMError(ErrorCode.LLM_NETWORK_ERROR, f"Gemini server error: HTTP {response.status_code}")
        elif response.status_code != 200:
            raise LLMError(ErrorCode.LLM_INVALID_RESPONSE, f"HTTP {response.status_code}")

        try:
            response_data = response.json()
        except ValueError as e:
            raise LLMError(ErrorCode.LLM_INVALID_RESPONSE, f"Invalid JSON: {e}")

        return self._parse_response(response_data)

    def _build_payload(self, system: str, prompt: str) -> Dict[str, Any]:
        """Build Gemini API request payload."""
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    def _parse_response(self, response_data: Dict[str, Any]) -> str:
        """Parse Gemini API response and extract text."""
        try:
            candidates = response_data.get("candidates", [])

            if not candidates:
                raise LLMError(ErrorCode.LLM_EMPTY_RESPONSE, "No candidates in response")

            parts = candidates[0].get("content", {}).get("parts", [])

            if not parts:
                raise LLMError(ErrorCode.LLM_EMPTY_RESPONSE, "No parts in response")

            text_parts = [part["text"] for part in parts if "text" in part]

            if not text_parts:
                raise LLMError(ErrorCode.LLM_EMPTY_RESPONSE, "No text in response parts")

            return "".join(text_parts).strip()

        except LLMError:
            raise
        except (KeyError, TypeError, AttributeError) as e:
            raise LLMError(ErrorCode.LLM_INVALID_RESPONSE, f"Malformed response: {e}")
