"""Tests for the email and AI adapters."""

import json

import httpx
import pytest

from app.config import Settings
from integrations.claude_client import ClaudeQueryService, extract_json, safe_extract_json
from integrations.resend_email import ResendEmailSender


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def claude_reply(text: str) -> dict:
    return {"content": [{"type": "text", "text": text}]}


@pytest.mark.unit
class TestExtractJson:
    def test_plain(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        assert extract_json('Here you go:\n```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}

    def test_embedded_in_prose(self):
        assert extract_json('Result: {"msg": "a } brace"} done') == {"msg": "a } brace"}

    def test_nothing_found(self):
        with pytest.raises(ValueError):
            extract_json("no json here")
        assert safe_extract_json("no json here", fallback={}) == {}


@pytest.mark.unit
class TestClaudeQueryService:
    async def test_structured_reply(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=claude_reply(
                '```json\n{"response": "Cash is fine", "analysis": {"runway_months": 9}, "confidence": 1.7}\n```'
            ))

        settings = Settings(ANTHROPIC_API_KEY="test-key", CLAUDE_MODEL="claude-test")
        async with make_client(handler) as client:
            answer = await ClaudeQueryService(client, settings).query("How is cash?", "user-1", "cashflow")

        assert answer == {"response": "Cash is fine", "analysis": {"runway_months": 9}, "confidence": 1.0}
        assert seen["headers"]["x-api-key"] == "test-key"
        assert seen["body"]["model"] == "claude-test"
        assert seen["body"]["messages"] == [{"role": "user", "content": "How is cash?"}]
        assert "cashflow" in seen["body"]["system"]

    async def test_unstructured_reply(self):
        def handler(request):
            return httpx.Response(200, json=claude_reply("Just prose."))

        async with make_client(handler) as client:
            answer = await ClaudeQueryService(client, Settings(ANTHROPIC_API_KEY="k")).query("q", "user-1")

        assert answer == {"response": "Just prose.", "analysis": {}, "confidence": 0.0}

    async def test_api_error(self):
        def handler(request):
            return httpx.Response(529, json={"error": "overloaded"})

        async with make_client(handler) as client:
            with pytest.raises(RuntimeError, match="529"):
                await ClaudeQueryService(client, Settings(ANTHROPIC_API_KEY="k")).query("q", "user-1")

    async def test_not_configured(self):
        async with make_client(lambda request: httpx.Response(200)) as client:
            service = ClaudeQueryService(client, Settings(ANTHROPIC_API_KEY=""))
            assert service.is_configured is False
            with pytest.raises(RuntimeError):
                await service.query("q", "user-1")


@pytest.mark.unit
class TestResendEmailSender:
    async def test_send(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "re_123"})

        settings = Settings(RESEND_API_KEY="rk", RESEND_API_BASE="https://mail.test/", EMAIL_FROM_ADDRESS="bot@acme.test")
        async with make_client(handler) as client:
            message_id = await ResendEmailSender(client, settings).send("cfo@acme.test", "Q3 <report>", "workflow_report")

        assert message_id == "re_123"
        assert seen["url"] == "https://mail.test/emails"
        assert seen["auth"] == "Bearer rk"
        assert seen["body"]["to"] == ["cfo@acme.test"]
        assert seen["body"]["from"] == "bot@acme.test"
        assert "Q3 &lt;report&gt;" in seen["body"]["html"]

    async def test_provider_rejection(self):
        async with make_client(lambda request: httpx.Response(422, json={"message": "bad"})) as client:
            with pytest.raises(RuntimeError, match="422"):
                await ResendEmailSender(client, Settings(RESEND_API_KEY="rk")).send("x@acme.test", "s", "default")

    async def test_not_configured(self):
        async with make_client(lambda request: httpx.Response(200)) as client:
            with pytest.raises(RuntimeError):
                await ResendEmailSender(client, Settings(RESEND_API_KEY="")).send("x@acme.test", "s", "default")
