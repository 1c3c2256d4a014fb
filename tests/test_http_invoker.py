"""Tests for the HTTP agent invoker."""

import asyncio
import json

import httpx
import pytest
from agentgraph.errors import InvocationError
from agentgraph.integrations.http_invoker import HttpAgentInvoker

ENDPOINT = "https://agents.example.com/summarizer"


def _invoke(handler, message, correlation_id=None, auth_token=None):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            invoker = HttpAgentInvoker(auth_token=auth_token, client=client)
            return await invoker.invoke(ENDPOINT, message, correlation_id)
    return asyncio.run(_run())


def test_posts_message_and_correlation_id():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"response": "short summary", "cost": "0.03"})

    result = _invoke(handler, {"text": "long text"}, correlation_id="run_1:A:1", auth_token="secret")

    assert seen["url"] == ENDPOINT
    assert seen["body"] == {"message": {"text": "long text"}, "correlationId": "run_1:A:1"}
    assert seen["auth"] == "Bearer secret"
    assert result.response == "short summary"
    assert result.cost == "0.03"


def test_reply_field_fallbacks():
    def text_reply(request):
        return httpx.Response(200, json={"text": "from text"})

    def output_reply(request):
        return httpx.Response(200, json={"output": {"response": "nested"}, "cost": 0.5})

    assert _invoke(text_reply, "hi").response == "from text"
    assert _invoke(text_reply, "hi").cost == "0"
    nested = _invoke(output_reply, "hi")
    assert nested.response == "nested"
    assert nested.cost == "0.5"


def test_non_json_reply_is_taken_as_text():
    def handler(request):
        return httpx.Response(200, text="plain answer")

    assert _invoke(handler, "hi").response == "plain answer"


def test_error_status_raises_invocation_error():
    def handler(request):
        return httpx.Response(503, text="busy")

    with pytest.raises(InvocationError, match="status 503") as excinfo:
        _invoke(handler, "hi")

    assert excinfo.value.retryable is True


def test_network_error_raises_invocation_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(InvocationError, match="Network error"):
        _invoke(handler, "hi")
