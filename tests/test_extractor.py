"""Tests for memory extraction and merging."""

import threading
from unittest.mock import MagicMock

import pytest

from agent_memory.config import EngineSettings
from agent_memory.core import MemoryCapabilities, MemoryExtractor
from agent_memory.errors import CapabilityUnavailable
from agent_memory.models import AgentMemoryConfig, Message
from agent_memory.storage import MemoryStore
from agent_memory.utils import MockEmbeddings, MockProvider
from tests.mock_db import MockClock, MockMongoStorageClient


def candidates(*items):
    return {
        "memories": [
            {"kind": kind, "content": content, "salience": salience}
            for kind, content, salience in items
        ]
    }


@pytest.fixture
def clock():
    return MockClock()


@pytest.fixture
def store():
    return MemoryStore(mongo_client=MockMongoStorageClient())


@pytest.fixture
def mock_llm():
    llm = MagicMock()
    llm.complete_json.return_value = candidates(("fact", "User likes espresso", 0.6))
    return llm


@pytest.fixture
def extractor(store, mock_llm, clock):
    capabilities = MemoryCapabilities(mock_llm, MockEmbeddings(dim=384))
    return MemoryExtractor(store, capabilities, EngineSettings(), clock=clock)


def seed_transcript(store, session_id="s1", count=2):
    for i in range(count):
        role = "user" if i % 2 == 0 else "assistant"
        store.append_message(session_id, Message(role=role, content=f"turn {i} about espresso"))


def test_extract_creates_records(extractor, store, clock):
    seed_transcript(store)

    report = extractor.extract("s1", "a1", "u1")

    assert (report.created, report.merged) == (1, 0)
    assert report.message_count == 2
    [record] = store.list_active("u1", "a1")
    assert record.kind == "fact"
    assert record.salience == 0.6
    assert record.source_session_id == "s1"
    assert record.created_at == clock.now


def test_near_duplicate_reinforces(extractor, store, mock_llm, clock):
    seed_transcript(store)
    mock_llm.complete_json.side_effect = [
        candidates(("fact", "User likes espresso", 0.6)),
        candidates(("fact", "User really likes espresso", 0.5)),
    ]

    extractor.extract("s1", "a1", "u1")
    clock.advance(days=2)
    report = extractor.extract("s1", "a1", "u1")

    assert (report.created, report.merged) == (0, 1)
    [record] = store.list_active("u1", "a1")
    assert record.salience == pytest.approx(0.7)
    assert record.last_reinforced_at == clock.now
    assert record.reinforcement_count == 1


def test_distinct_candidates_create_separate_records(extractor, store, mock_llm):
    seed_transcript(store)
    mock_llm.complete_json.return_value = candidates(
        ("fact", "User lives in Berlin", 0.5),
        ("preference", "User prefers tea", 0.7),
    )

    report = extractor.extract("s1", "a1", "u1")

    assert report.created == 2
    kinds = sorted(r.kind for r in store.list_active("u1", "a1"))
    assert kinds == ["fact", "preference"]


def test_duplicates_within_one_batch_merge(extractor, store, mock_llm):
    seed_transcript(store)
    mock_llm.complete_json.return_value = candidates(
        ("fact", "User likes espresso", 0.6),
        ("fact", "User likes espresso!", 0.4),
    )

    report = extractor.extract("s1", "a1", "u1")

    assert (report.created, report.merged) == (1, 1)
    assert store.count_active("u1", "a1") == 1


def test_short_transcript_skips_model(extractor, store, mock_llm):
    seed_transcript(store, count=1)

    report = extractor.extract("s1", "a1", "u1")

    assert report.to_dict() == {"created": 0, "merged": 0}
    mock_llm.complete_json.assert_not_called()


def test_disabled_agent_skips_model(extractor, store, mock_llm):
    seed_transcript(store)
    store.save_agent_config(AgentMemoryConfig(agent_id="a1", memory_enabled=False))

    report = extractor.extract("s1", "a1", "u1")

    assert report.created == 0
    mock_llm.complete_json.assert_not_called()


def test_prompt_carries_existing_memories_and_instructions(extractor, store, mock_llm):
    seed_transcript(store)
    store.save_agent_config(
        AgentMemoryConfig(agent_id="a1", extraction_instructions="Track coffee habits")
    )
    extractor.extract("s1", "a1", "u1")
    mock_llm.complete_json.return_value = candidates()

    extractor.extract("s1", "a1", "u1")

    prompt = mock_llm.complete_json.call_args[0][0][-1]["content"]
    assert "Track coffee habits" in prompt
    assert "[fact] User likes espresso" in prompt
    assert "user: turn 0 about espresso" in prompt


def test_generation_failure_creates_nothing(extractor, store, mock_llm):
    seed_transcript(store)
    mock_llm.complete_json.side_effect = TimeoutError("model timed out")

    with pytest.raises(CapabilityUnavailable):
        extractor.extract("s1", "a1", "u1")
    assert store.list_records("u1", "a1") == []


def test_unparseable_output_is_capability_failure(extractor, store, mock_llm):
    seed_transcript(store)
    mock_llm.complete_json.return_value = {"raw": "not json"}

    with pytest.raises(CapabilityUnavailable):
        extractor.extract("s1", "a1", "u1")


def test_similarity_failure_creates_nothing(store, clock):
    seed_transcript(store)
    llm = MockProvider(
        json_responses={"espresso": candidates(("fact", "User likes espresso", 0.6))}
    )
    embeddings = MagicMock()
    embeddings.embed_batch.side_effect = ConnectionError("embedding backend down")
    extractor = MemoryExtractor(
        store, MemoryCapabilities(llm, embeddings), EngineSettings(), clock=clock
    )

    with pytest.raises(CapabilityUnavailable):
        extractor.extract("s1", "a1", "u1")
    assert store.list_records("u1", "a1") == []


def test_lock_not_held_during_generation(extractor, store, mock_llm):
    seed_transcript(store)
    acquired = []

    def generate(*args, **kwargs):
        def try_lock():
            try:
                with store.locked("u1", "a1", timeout=0):
                    acquired.append(True)
            except Exception:
                acquired.append(False)

        thread = threading.Thread(target=try_lock)
        thread.start()
        thread.join()
        return candidates(("fact", "User likes espresso", 0.6))

    mock_llm.complete_json.side_effect = generate
    extractor.extract("s1", "a1", "u1")

    assert acquired == [True]
