"""Shared fakes for the upstream OpenAI-compatible server."""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

import chat_relay


def make_chunk(content: str | None) -> SimpleNamespace:
    """Build a ChatCompletionChunk-like object carrying one text delta."""
    delta = SimpleNamespace(content=content, role=None)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, index=0)])


def connection_error() -> openai.APIConnectionError:
    request = httpx.Request("POST", f"{chat_relay.BASE_URL}/chat/completions")
    return openai.APIConnectionError(request=request)


class FakeStream:
    """Stands in for openai.Stream: iterable, with a ``close()`` to release it."""

    def __init__(self, completions):
        self._iterator = completions._chunks()
        self.closed = False

    def __iter__(self):
        return self._iterator

    def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self):
        self.calls: list[dict] = []
        self.streams: list[FakeStream] = []
        self.chunks: list = []
        self.error: Exception | None = None
        self.fail_after: int | None = None

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        stream = FakeStream(self)
        self.streams.append(stream)
        return stream

    def _chunks(self):
        for index, item in enumerate(self.chunks):
            if self.fail_after is not None and index == self.fail_after:
                raise connection_error()
            yield item if isinstance(item, SimpleNamespace) else make_chunk(item)


@pytest.fixture
def fake_completions():
    return FakeCompletions()


@pytest.fixture
def fake_client(fake_completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=fake_completions))


@pytest.fixture
def upstream(monkeypatch, fake_client, fake_completions):
    """Route every relay call to the fake client."""
    monkeypatch.setattr(chat_relay, "get_client", lambda: fake_client)
    return fake_completions
