"""
Tests for the LLM client, using httpx.MockTransport instead of the network.
"""

import json

import httpx
import pytest

from codeloop.config import LLMConfig
from codeloop.errors import AuthenticationError, RateLimitError, TransportError
from codeloop.llm import ChatResponse, LLMClient


def completion(content: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def make_client(handler, max_retries: int = 0) -> LLMClient:
    config = LLMConfig(base_url="https://llm.test/v1", api_key="sk-test", model="test/model")
    return LLMClient(config, max_retries=max_retries, retry_delay=0, transport=httpx.MockTransport(handler))


class TestChatResponse:
    """Tests for ChatResponse parsing."""

    def test_from_api_response(self) -> None:
        response = ChatResponse.from_api_response(completion("hi"))
        assert response.content == "hi"
        assert response.finish_reason == "stop"
        assert response.total_tokens == 15

    def test_null_content_becomes_empty(self) -> None:
        data = {"choices": [{"message": {"content": None}}]}
        assert ChatResponse.from_api_response(data).content == ""

    def test_no_choices_raises(self) -> None:
        with pytest.raises(TransportError):
            ChatResponse.from_api_response({"error": {"message": "bad"}})


class TestLLMClient:
    """Tests for requests and error mapping."""

    def test_sends_openai_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=completion('{"mode": "sequential", "actions": []}'))

        with make_client(handler) as client:
            response = client.chat([{"role": "user", "content": "hello"}], json_mode=True)

        assert response.content == '{"mode": "sequential", "actions": []}'
        request = seen[0]
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "test/model"
        assert body["messages"] == [{"role": "user", "content": "hello"}]
        assert body["response_format"] == {"type": "json_object"}

    def test_option_overrides(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=completion("ok"))

        make_client(handler).chat([], temperature=0.1, max_tokens=12)
        assert bodies[0]["temperature"] == 0.1
        assert bodies[0]["max_tokens"] == 12
        assert "response_format" not in bodies[0]

    def test_unauthorized(self) -> None:
        client = make_client(lambda request: httpx.Response(401, text="nope"))
        with pytest.raises(AuthenticationError) as exc_info:
            client.chat([])
        assert exc_info.value.status_code == 401

    def test_rate_limited(self) -> None:
        client = make_client(lambda request: httpx.Response(429, text="slow down"))
        with pytest.raises(RateLimitError):
            client.chat([])

    def test_server_error_not_retried(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(500, text="oops")

        with pytest.raises(TransportError) as exc_info:
            make_client(handler, max_retries=3).chat([])
        assert exc_info.value.status_code == 500
        assert len(calls) == 1

    def test_unavailable_retried_when_enabled(self) -> None:
        responses = [httpx.Response(503, text="busy"), httpx.Response(200, json=completion("done"))]

        response = make_client(lambda request: responses.pop(0), max_retries=1).chat([])
        assert response.content == "done"

    def test_network_error_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError, match="Request failed"):
            make_client(handler).chat([])

    def test_malformed_body(self) -> None:
        client = make_client(lambda request: httpx.Response(200, text="not json"))
        with pytest.raises(TransportError, match="Malformed"):
            client.chat([])
