"""Tests for the Gemini wrapper and the audit logger."""

import asyncio
from types import SimpleNamespace

import pytest

from conftest import FailingStore, make_response
from finan_ai.agents import AIServiceError, FunctionCall, GroundingSource
from finan_ai.agents.gemini_client import history_to_contents, parse_response
from finan_ai.audit import AuditLogger
from finan_ai.models import AuditEventBuilder, ChatMessage, ChatRole
from finan_ai.services.storage import InMemoryKeyValueStore


class TestParseResponse:

    def test_text_parts_are_joined(self):
        response = make_response("Hello")
        response.candidates[0].content.parts.append(SimpleNamespace(text=" world", function_call=None))
        assert parse_response(response).text == "Hello world"

    def test_function_call(self):
        reply = parse_response(make_response(function_calls=[("add_transaction", {"amount": 5})]))
        assert reply.function_calls == [FunctionCall(name="add_transaction", args={"amount": 5})]
        assert reply.text == ""
        assert not reply.is_empty

    def test_grounding_sources(self):
        reply = parse_response(make_response("x", sources=[("", "https://a.example")]))
        assert reply.grounding_sources == [GroundingSource(title="https://a.example", uri="https://a.example")]

    def test_no_candidates(self):
        reply = parse_response(SimpleNamespace(candidates=[]))
        assert reply.is_empty


class TestGeminiClient:

    def test_json_mode_config(self, make_client, gemini_settings):
        client, factory = make_client(make_response("[]"))
        asyncio.run(client.generate("prompt", model="m", response_schema={"type": "ARRAY"}))

        config = factory.calls[0]["generation_config"]
        assert config["response_mime_type"] == "application/json"
        assert config["response_schema"] == {"type": "ARRAY"}
        assert config["max_output_tokens"] == gemini_settings.max_tokens

    def test_sdk_errors_become_ai_service_error(self, make_client):
        client, _ = make_client(ValueError("API key not valid"))
        with pytest.raises(AIServiceError) as excinfo:
            asyncio.run(client.generate("prompt", model="m", operation="parse_text"))
        assert excinfo.value.operation == "parse_text"
        assert isinstance(excinfo.value.__cause__, ValueError)

    def test_history_roles(self):
        contents = history_to_contents([
            ChatMessage(role=ChatRole.USER, text="hi"),
            ChatMessage(role=ChatRole.TOOL, text="added"),
        ])
        assert contents == [
            {"role": "user", "parts": ["hi"]},
            {"role": "model", "parts": ["added"]},
        ]


class TestAuditLogger:

    def test_events_are_stored_per_user(self):
        store = InMemoryKeyValueStore()
        audit = AuditLogger(store)

        asyncio.run(audit.log(AuditEventBuilder.session_started("a@b.com")))
        asyncio.run(audit.log(AuditEventBuilder.session_started("c@d.com")))

        events = asyncio.run(audit.recent_events("a@b.com"))
        assert [e.user_id for e in events] == ["a@b.com"]

    def test_storage_failure_does_not_raise(self):
        audit = AuditLogger(FailingStore())
        assert asyncio.run(audit.log(AuditEventBuilder.session_started("a@b.com"))) is False

    def test_without_storage(self):
        audit = AuditLogger()
        assert asyncio.run(audit.log(AuditEventBuilder.session_started("a@b.com"))) is True
        assert asyncio.run(audit.recent_events("a@b.com")) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
