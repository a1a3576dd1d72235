"""Tests for the chat and embedding backends and how the engine picks them."""

from unittest.mock import MagicMock

import pytest

from agent_memory import EngineSettings, MemoryEngine
from agent_memory.core import MemoryCapabilities
from agent_memory.errors import CapabilityUnavailable
from agent_memory.utils import (
    MockEmbeddings,
    MockProvider,
    OpenAIEmbeddings,
    OpenAIProvider,
    decode_json_reply,
    get_embedding_service,
    get_llm_provider,
)
from tests.mock_db import MockMongoStorageClient


def chat_reply(content, finish_reason="stop"):
    choice = MagicMock()
    choice.message.content = content
    choice.finish_reason = finish_reason
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def provider(client):
    return OpenAIProvider(model="gpt-test", client=client)


def test_decode_json_reply():
    assert decode_json_reply('{"memories": []}') == {"memories": []}
    assert decode_json_reply('```json\n{"memories": [1]}\n```') == {"memories": [1]}
    assert decode_json_reply("not json") == {"raw": "not json"}
    assert decode_json_reply("[1, 2]") == {"raw": "[1, 2]"}


def test_complete_json_requests_json_object(provider, client):
    client.chat.completions.create.return_value = chat_reply(
        '```json\n{"memories": [{"kind": "fact", "content": "User likes tea"}]}\n```'
    )

    result = provider.complete_json([{"role": "user", "content": "hi"}])

    assert result == {"memories": [{"kind": "fact", "content": "User likes tea"}]}
    request = client.chat.completions.create.call_args.kwargs
    assert request["model"] == "gpt-test"
    assert request["response_format"] == {"type": "json_object"}
    assert "max_tokens" not in request


def test_complete_json_keeps_undecodable_reply(provider, client):
    client.chat.completions.create.return_value = chat_reply("Sorry, I cannot help")

    assert provider.complete_json([{"role": "user", "content": "hi"}]) == {
        "raw": "Sorry, I cannot help"
    }


def test_complete_returns_text(provider, client):
    client.chat.completions.create.return_value = chat_reply(None, finish_reason="length")

    assert provider.complete([{"role": "user", "content": "hi"}], max_tokens=5) == ""
    request = client.chat.completions.create.call_args.kwargs
    assert request["max_tokens"] == 5
    assert "response_format" not in request


def test_undecodable_reply_makes_generation_unavailable(provider, client):
    client.chat.completions.create.return_value = chat_reply("no json here")
    capabilities = MemoryCapabilities(provider, MockEmbeddings())

    with pytest.raises(CapabilityUnavailable):
        capabilities.generate_candidates([], [])


def test_openai_provider_requires_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValueError):
        OpenAIProvider()


def test_openai_embeddings_batches_in_order(client):
    def create(model, input):
        response = MagicMock()
        items = []
        for offset, text in reversed(list(enumerate(input))):
            item = MagicMock()
            item.index = offset
            item.embedding = [float(len(text))]
            items.append(item)
        response.data = items
        return response

    client.embeddings.create.side_effect = create
    embeddings = OpenAIEmbeddings(batch_size=2, client=client)

    assert embeddings.embed_batch(["a", "bb", "ccc"]) == [[1.0], [2.0], [3.0]]
    assert client.embeddings.create.call_count == 2
    assert embeddings.embed("dddd") == [4.0]


def test_mock_provider_matches_first_pattern():
    llm = MockProvider(
        responses={"condense": "Condensed"},
        json_responses={"espresso": {"memories": ["a"]}, "coffee": {"memories": ["b"]}},
    )

    reply = llm.complete_json([{"role": "user", "content": "Espresso or coffee?"}])
    reply["memories"].append("mutated")

    assert llm.complete_json([{"role": "user", "content": "ESPRESSO"}]) == {"memories": ["a"]}
    assert llm.complete_json([{"role": "user", "content": "tea"}]) == {"memories": []}
    assert llm.complete([{"role": "user", "content": "please condense"}]) == "Condensed"
    assert llm.complete([]) == "Mock response"


def test_factories():
    assert isinstance(get_llm_provider("mock", model="ignored"), MockProvider)
    assert isinstance(get_embedding_service("mock", model="ignored"), MockEmbeddings)
    assert get_llm_provider("openai", model="gpt-x", client=MagicMock()).model == "gpt-x"
    with pytest.raises(ValueError):
        get_llm_provider("carrier-pigeon")
    with pytest.raises(ValueError):
        get_embedding_service("carrier-pigeon")


def test_engine_builds_backends_from_settings(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    engine = MemoryEngine(
        settings=EngineSettings(llm_provider="openai", llm_model="gpt-test"),
        mongo_client=MockMongoStorageClient(),
    )
    try:
        assert isinstance(engine.llm, OpenAIProvider)
        assert engine.llm.model == "gpt-test"
        assert isinstance(engine.embeddings, MockEmbeddings)
    finally:
        engine.close()


def test_engine_defaults_to_mock_backends():
    engine = MemoryEngine(settings=EngineSettings(), mongo_client=MockMongoStorageClient())
    try:
        assert isinstance(engine.llm, MockProvider)
        assert isinstance(engine.embeddings, MockEmbeddings)
    finally:
        engine.close()
