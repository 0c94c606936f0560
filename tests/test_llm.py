"""
Tests for the LLM client, using httpx.MockTransport instead of a network.
"""

import json

import httpx
import pytest

from fileagent.config import LLMConfig
from fileagent.errors import ClientUnavailable
from fileagent.llm import ControllerReply, LLMClient


def make_client(handler, max_retries: int = 2) -> LLMClient:
    config = LLMConfig(api_key="secret", api_url="https://llm.test/v1/messages", model_id="test-model")
    return LLMClient(config, max_retries=max_retries, retry_delay=0, transport=httpx.MockTransport(handler))


def text_response(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}], "stop_reason": "end_turn"}


class TestReplyParsing:
    def test_final_answer(self) -> None:
        reply = ControllerReply.from_api_response(text_response("all done"))

        assert not reply.has_tool_calls
        assert reply.final_answer == "all done"

    def test_tool_calls(self) -> None:
        reply = ControllerReply.from_api_response({
            "content": [
                {"type": "text", "text": "Let me look."},
                {"type": "tool_use", "id": "tu_1", "name": "read", "input": {"file_path": "a.txt"}},
                {"type": "tool_use", "id": "tu_2", "name": "grep", "input": {"pattern": "x"}},
            ],
            "stop_reason": "tool_use",
        })

        assert [c.id for c in reply.tool_calls] == ["tu_1", "tu_2"]
        assert reply.tool_calls[0].arguments == {"file_path": "a.txt"}
        assert reply.final_answer is None
        assert reply.content == "Let me look."


class TestRequests:
    def test_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=text_response("hi"))

        with make_client(handler) as client:
            reply = client.send(
                [{"role": "user", "content": "hello"}],
                [{"name": "read", "description": "", "input_schema": {"type": "object"}}],
                system="be brief",
            )

        assert reply.final_answer == "hi"
        request = seen[0]
        body = json.loads(request.content)
        assert request.headers["x-api-key"] == "secret"
        assert "anthropic-version" in request.headers
        assert body["model"] == "test-model"
        assert body["system"] == "be brief"
        assert body["tools"][0]["name"] == "read"

    def test_retries_on_503_then_succeeds(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) < 3:
                return httpx.Response(503, text="busy")
            return httpx.Response(200, json=text_response("ok"))

        reply = make_client(handler).send([{"role": "user", "content": "x"}], [])

        assert reply.final_answer == "ok"
        assert len(attempts) == 3

    def test_retries_on_rate_limit(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            if len(attempts) == 1:
                return httpx.Response(429, headers={"Retry-After": "0"})
            return httpx.Response(200, json=text_response("ok"))

        assert make_client(handler).send([], []).final_answer == "ok"

    def test_retries_exhausted(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ClientUnavailable, match="after 3 attempts"):
            make_client(handler, max_retries=2).send([], [])

    def test_client_error_not_retried(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(401, text="bad key")

        with pytest.raises(ClientUnavailable, match="HTTP 401"):
            make_client(handler).send([], [])
        assert len(attempts) == 1

    def test_malformed_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(ClientUnavailable, match="Malformed"):
            make_client(handler).send([], [])
