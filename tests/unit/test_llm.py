"""Tests for LLM providers: the mock, OpenAI and Gemini."""

from unittest.mock import Mock, patch

import pytest
import requests

from bytesize_digest.errors import ConfigError, ErrorCode, LLMError
from bytesize_digest.llm.base import LLMProvider, MockLLMProvider, get_llm_provider
from bytesize_digest.llm.gemini import GeminiProvider
from bytesize_digest.llm.openai import OpenAIProvider


def http_response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body if body is not None else {}
    return response


def openai_body(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def gemini_body(*texts):
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


class TestMockLLMProvider:
    """Tests for MockLLMProvider."""

    def test_interface(self):
        with pytest.raises(TypeError):
            LLMProvider()

    def test_returns_fixed_response(self):
        provider = MockLLMProvider(response="<div>x</div>")
        assert provider.complete("sys", "prompt") == "<div>x</div>"

    def test_tracks_calls(self):
        provider = MockLLMProvider()
        provider.complete("s1", "p1")
        provider.complete("s2", "p2")

        assert [c.prompt for c in provider.calls] == ["p1", "p2"]
        assert provider.calls[1].system == "s2"

    def test_callable_response(self):
        provider = MockLLMProvider(response=lambda system, prompt: prompt.upper())
        assert provider.complete("", "abc") == "ABC"

    def test_error(self):
        provider = MockLLMProvider(error=LLMError(ErrorCode.LLM_API_AUTH))
        with pytest.raises(LLMError):
            provider.complete("", "p")
        assert len(provider.calls) == 1

    def test_fail_on_marker(self):
        provider = MockLLMProvider(fail_on={"@bad": LLMError(ErrorCode.LLM_INVALID_RESPONSE)})
        assert provider.complete("", "about @good")
        with pytest.raises(LLMError):
            provider.complete("", "about @bad")

    def test_fail_count(self):
        provider = MockLLMProvider(fail_count=2)
        for _ in range(2):
            with pytest.raises(LLMError) as exc:
                provider.complete("", "p")
            assert exc.value.code == ErrorCode.LLM_TIMEOUT
        assert provider.complete("", "p") == "<div>Mock summary</div>"

    def test_set_response_clears_error(self):
        provider = MockLLMProvider(error=LLMError(ErrorCode.LLM_TIMEOUT))
        provider.set_response("ok")
        assert provider.complete("", "p") == "ok"

    def test_reset(self):
        provider = MockLLMProvider()
        provider.complete("", "p")
        provider.reset()
        assert provider.calls == []


class TestOpenAIProvider:
    """Tests for OpenAIProvider with HTTP mocked."""

    @patch("bytesize_digest.llm.openai.requests.post")
    def test_success(self, mock_post):
        mock_post.return_value = http_response(200, openai_body("  <div>s</div>  "))
        provider = OpenAIProvider(api_key="sk-test", model="gpt-4o", temperature=0.7, max_tokens=300)

        assert provider.complete("system text", "user text") == "<div>s</div>"

        url = mock_post.call_args[0][0]
        kwargs = mock_post.call_args[1]
        assert url == "https://api.openai.com/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
        assert kwargs["json"]["model"] == "gpt-4o"
        assert kwargs["json"]["temperature"] == 0.7
        assert kwargs["json"]["max_tokens"] == 300
        assert kwargs["json"]["messages"] == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "user text"},
        ]

    @pytest.mark.parametrize("status,body,code", [
        (401, {}, ErrorCode.LLM_API_AUTH),
        (429, {"error": {"type": "rate_limit"}}, ErrorCode.LLM_RATE_LIMITED),
        (429, {"error": {"type": "insufficient_quota"}}, ErrorCode.LLM_QUOTA_EXCEEDED),
        (503, {}, ErrorCode.LLM_NETWORK_ERROR),
        (400, {}, ErrorCode.LLM_INVALID_RESPONSE),
    ])
    @patch("bytesize_digest.llm.openai.requests.post")
    def test_http_errors(self, mock_post, status, body, code):
        mock_post.return_value = http_response(status, body)
        with pytest.raises(LLMError) as exc:
            OpenAIProvider(api_key="k").complete("s", "p")
        assert exc.value.code == code

    @patch("bytesize_digest.llm.openai.requests.post")
    def test_timeout(self, mock_post):
        mock_post.side_effect = requests.Timeout()
        with pytest.raises(LLMError) as exc:
            OpenAIProvider(api_key="k").complete("s", "p")
        assert exc.value.code == ErrorCode.LLM_TIMEOUT

    @patch("bytesize_digest.llm.openai.requests.post")
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(LLMError) as exc:
            OpenAIProvider(api_key="k").complete("s", "p")
        assert exc.value.code == ErrorCode.LLM_NETWORK_ERROR

    @patch("bytesize_digest.llm.openai.requests.post")
    def test_empty_content(self, mock_post):
        mock_post.return_value = http_response(200, openai_body("   "))
        with pytest.raises(LLMError) as exc:
            OpenAIProvider(api_key="k").complete("s", "p")
        assert exc.value.code == ErrorCode.LLM_EMPTY_RESPONSE

    @patch("bytesize_digest.llm.openai.requests.post")
    def test_no_choices(self, mock_post):
        mock_post.return_value = http_response(200, {"choices": []})
        with pytest.raises(LLMError) as exc:
            OpenAIProvider(api_key="k").complete("s", "p")
        assert exc.value.code == ErrorCode.LLM_EMPTY_RESPONSE

    @patch("bytesize_digest.llm.openai.requests.post")
    def test_invalid_json(self, mock_post):
        mock_post.return_value = http_response(200, ValueError("bad"))
        with pytest.raises(LLMError) as exc:
            OpenAIProvider(api_key="k").complete("s", "p")
        assert exc.value.code == ErrorCode.LLM_INVALID_RESPONSE


class TestGeminiProvider:
    """Tests for GeminiProvider with HTTP mocked."""

    @patch("bytesize_digest.llm.gemini.requests.post")
    def test_success(self, mock_post):
        mock_post.return_value = http_response(200, gemini_body("<div>", "s</div>"))
        provider = GeminiProvider(api_key="g-key", model="gemini-2.0-flash")

        assert provider.complete("system text", "user text") == "<div>s</div>"

        url = mock_post.call_args[0][0]
        kwargs = mock_post.call_args[1]
        assert url.endswith("/models/gemini-2.0-flash:generateContent")
        assert kwargs["params"] == {"key": "g-key"}
        payload = kwargs["json"]
        assert payload["systemInstruction"] == {"parts": [{"text": "system text"}]}
        assert payload["contents"][0]["parts"][0]["text"] == "user text"
        assert payload["generationConfig"]["maxOutputTokens"] == 300

    def test_payload_without_system(self):
        payload = GeminiProvider(api_key="k")._build_payload("", "p")
        assert "systemInstruction" not in payload

    @pytest.mark.parametrize("status,code", [
        (401, ErrorCode.LLM_API_AUTH),
        (403, ErrorCode.LLM_QUOTA_EXCEEDED),
        (429, ErrorCode.LLM_RATE_LIMITED),
        (500, ErrorCode.LLM_NETWORK_ERROR),
        (404, ErrorCode.LLM_INVALID_RESPONSE),
    ])
    @patch("bytesize_digest.llm.gemini.requests.post")
    def test_http_errors(self, mock_post, status, code):
        mock_post.return_value = http_response(status)
        with pytest.raises(LLMError) as exc:
            GeminiProvider(api_key="k").complete("s", "p")
        assert exc.value.code == code

    @pytest.mark.parametrize("body", [
        {"candidates": []},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": [{"content": {"parts": [{"inlineData": {}}]}}]},
    ])
    @patch("bytesize_digest.llm.gemini.requests.post")
    def test_empty_responses_keep_their_code(self, mock_post, body):
        mock_post.return_value = http_response(200, body)
        with pytest.raises(LLMError) as exc:
            GeminiProvider(api_key="k").complete("s", "p")
        assert exc.value.code == ErrorCode.LLM_EMPTY_RESPONSE

    @patch("bytesize_digest.llm.gemini.requests.post")
    def test_timeout(self, mock_post):
        mock_post.side_effect = requests.Timeout()
        with pytest.raises(LLMError) as exc:
            GeminiProvider(api_key="k").complete("s", "p")
        assert exc.value.code == ErrorCode.LLM_TIMEOUT


class TestGetLLMProvider:
    """Tests for the provider factory."""

    def test_openai_default_model(self):
        provider = get_llm_provider({"provider": "openai", "model": None}, "k")
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o"

    def test_gemini(self):
        provider = get_llm_provider({"provider": "gemini", "max_tokens": 500}, "k")
        assert isinstance(provider, GeminiProvider)
        assert provider.model == "gemini-2.0-flash"
        assert provider.max_tokens == 500

    def test_missing_key(self):
        with pytest.raises(ConfigError) as exc:
            get_llm_provider({"provider": "openai"}, None)
        assert exc.value.code == ErrorCode.CONFIG_MISSING_CREDENTIALS

    def test_unknown_provider(self):
        with pytest.raises(ConfigError):
            get_llm_provider({"provider": "llama"}, "k")
