"""
Shared fixtures for Finan AI tests.

No real API calls: the Gemini SDK is replaced by FakeModelFactory, which
hands out models that answer from a queue of canned responses.
"""

from datetime import date
from types import SimpleNamespace

import pytest

from finan_ai.agents import GeminiClient
from finan_ai.config import AppSettings, GeminiSettings
from finan_ai.services.storage import InMemoryKeyValueStore, StorageError


def make_response(text="", function_calls=(), sources=()):
    """Build an object shaped like a google-generativeai response."""
    parts = []
    if text:
        parts.append(SimpleNamespace(text=text, function_call=None))
    for name, args in function_calls:
        parts.append(SimpleNamespace(
            text="",
            function_call=SimpleNamespace(name=name, args=args),
        ))
    chunks = [SimpleNamespace(web=SimpleNamespace(title=t, uri=u)) for t, u in sources]
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=parts),
        grounding_metadata=SimpleNamespace(grounding_chunks=chunks),
    )
    return SimpleNamespace(candidates=[candidate])


class FakeModel:
    def __init__(self, factory, kwargs):
        self._factory = factory
        self.kwargs = kwargs

    async def generate_content_async(self, request, request_options=None):
        self._factory.calls.append({
            **self.kwargs,
            "request": request,
            "request_options": request_options,
        })
        if not self._factory.responses:
            raise RuntimeError("No canned response left")
        item = self._factory.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeModelFactory:
    """Stands in for genai.GenerativeModel and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, **kwargs):
        return FakeModel(self, kwargs)


class CountingStore(InMemoryKeyValueStore):
    """In-memory store that records set_many calls."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.set_many_calls = []

    async def set_many(self, values):
        self.set_many_calls.append(sorted(values))
        await super().set_many(values)


class FailingStore(InMemoryKeyValueStore):
    """In-memory store whose writes always fail."""

    async def set(self, key, value):
        raise StorageError("disk full")

    async def set_many(self, values):
        raise StorageError("disk full")


@pytest.fixture
def today():
    return date(2024, 4, 20)


@pytest.fixture
def gemini_settings():
    return GeminiSettings(api_key="test-key")


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def storage():
    return CountingStore()


@pytest.fixture
def make_client(gemini_settings):
    """make_client(*responses) -> (GeminiClient, FakeModelFactory)"""
    def _make(*responses):
        factory = FakeModelFactory(*responses)
        return GeminiClient(settings=gemini_settings, model_factory=factory), factory
    return _make
