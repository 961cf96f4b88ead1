"""
Unit tests for the chat-completions client.
"""

import json

import httpx
import pytest

from core.exceptions import CollaboratorError, CollaboratorTimeoutError
from services.llm_client import LLMClient


def _completion(content: str, total_tokens: int = 42) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 30, "completion_tokens": 12, "total_tokens": total_tokens},
    }


def _client(handler) -> LLMClient:
    return LLMClient(
        api_key="test-key",
        base_url="https://llm.test/v1",
        model="test-model",
        retry_delays=[0, 0, 0],
        transport=httpx.MockTransport(handler),
    )


class TestLLMClient:
    """Tests for LLMClient.generate."""

    @pytest.mark.asyncio
    async def test_generate_success(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=_completion("  {\"ok\": true}  "))

        client = _client(handler)
        result = await client.generate("prompt", system_message="system", temperature=0.3)
        await client.close()

        assert result.content == '{"ok": true}'
        assert result.total_tokens == 42
        assert result.prompt_tokens == 30

        request = requests[0]
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body["model"] == "test-model"
        assert body["temperature"] == 0.3
        assert body["max_tokens"] == 2000
        assert [m["role"] for m in body["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_retries_transient_server_error(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(503, json={"error": {"message": "overloaded"}})
            return httpx.Response(200, json=_completion("done"))

        client = _client(handler)
        result = await client.generate("prompt")

        assert result.content == "done"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_client_error_fails_fast(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            return httpx.Response(401, json={"error": {"message": "Invalid API key"}})

        client = _client(handler)
        with pytest.raises(CollaboratorError) as exc_info:
            await client.generate("prompt")

        assert len(attempts) == 1
        assert exc_info.value.completed is True
        assert "Invalid API key" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_persistent_server_error_is_completed_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="bad gateway")

        client = _client(handler)
        with pytest.raises(CollaboratorError) as exc_info:
            await client.generate("prompt")

        assert not isinstance(exc_info.value, CollaboratorTimeoutError)
        assert exc_info.value.completed is True

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_is_timeout(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(CollaboratorTimeoutError) as exc_info:
            await client.generate("prompt")

        assert len(attempts) == 3
        assert exc_info.value.completed is False

    @pytest.mark.asyncio
    async def test_unexpected_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        client = _client(handler)
        with pytest.raises(CollaboratorError) as exc_info:
            await client.generate("prompt")

        assert exc_info.value.error_code == "analysis_output_invalid"


class TestLLMSingleton:
    """Tests for the shared client accessor."""

    def test_missing_key_is_not_configured(self, monkeypatch):
        from services import llm_client

        monkeypatch.setattr(llm_client, "_llm_client", None)
        monkeypatch.setattr(
            llm_client, "get_settings", lambda: type("S", (), {"llm_api_key": None})()
        )

        with pytest.raises(CollaboratorError) as exc_info:
            llm_client.get_llm_client()

        assert exc_info.value.error_code == "analysis_not_configured"
        assert exc_info.value.completed is False
