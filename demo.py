#!/usr/bin/env python3
"""
Interactive demo for the agent memory lifecycle engine.

Demonstrates:
1. Extraction of facts and preferences from a session
2. Reinforcement instead of duplication
3. Short-term buffer overflow into the session summary
4. Salience-scaled expiry and idempotent reflection
5. Owner-scoped deletion

Runs entirely on mocks (no MongoDB or API key needed).
"""

import logging

from agent_memory import EngineSettings, MemoryEngine
from agent_memory.utils import MockEmbeddings, MockProvider
from tests.mock_db import MockClock, MockMongoStorageClient

USER = "user-42"
AGENT = "barista-bot"


def print_header(title: str) -> None:
    """Print a formatted header."""
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)


def print_section(title: str) -> None:
    """Print a section header."""
    print(f"\n--- {title} ---")


def print_memories(engine: MemoryEngine) -> None:
    records = engine.list_memories(USER, AGENT)
    if not records:
        print("  (no active memories)")
    for r in records:
        print(f"  - [{r.kind:<10}] {r.content}  (salience {r.salience:.2f}, {r.state})")


def build_engine(clock: MockClock) -> MemoryEngine:
    llm = MockProvider(
        json_responses={
            # Checked in order; later prompts also list existing memories.
            "double shot": {
                "memories": [
                    {"kind": "fact", "content": "User really likes espresso", "salience": 0.6},
                    {"kind": "fact", "content": "User lives in Berlin", "salience": 0.2},
                ]
            },
            "oat milk": {
                "memories": [
                    {"kind": "preference", "content": "User prefers oat milk", "salience": 0.7},
                    {"kind": "fact", "content": "User likes espresso", "salience": 0.6},
                ]
            },
        },
    )
    return MemoryEngine(
        llm_provider=llm,
        embedding_service=MockEmbeddings(dim=384),
        settings=EngineSettings(max_short_term_messages=4),
        clock=clock,
        mongo_client=MockMongoStorageClient(),
    )


def demo_extraction(engine: MemoryEngine, clock: MockClock) -> None:
    """Demo: extraction, then reinforcement on a later session."""
    print_header("Demo 1: Extraction and Reinforcement")

    session = engine.start_session(USER, AGENT)
    for role, content in [
        ("user", "Morning! An espresso with a splash of oat milk, please."),
        ("assistant", "Coming right up."),
    ]:
        engine.append_message(session.session_id, USER, role, content)

    print("\nExtracting from first session...")
    print(f"  Result: {engine.extract(session.session_id, AGENT, USER)}")
    print_memories(engine)

    clock.advance(days=2)
    session = engine.start_session(USER, AGENT)
    for role, content in [
        ("user", "Make it a double shot today, I just moved to Berlin."),
        ("assistant", "Welcome to the neighbourhood!"),
    ]:
        engine.append_message(session.session_id, USER, role, content)

    print("\nExtracting from second session (near-duplicate espresso fact)...")
    print(f"  Result: {engine.extract(session.session_id, AGENT, USER)}")
    print_memories(engine)


def demo_session_buffer(engine: MemoryEngine) -> None:
    """Demo: the short-term window overflows into the summary."""
    print_header("Demo 2: Session Buffer Overflow")

    session = engine.start_session(USER, AGENT)
    for i in range(6):
        role = "user" if i % 2 == 0 else "assistant"
        engine.append_message(session.session_id, USER, role, f"Small talk, turn {i}")

    memory = engine.session_memory(session.session_id, USER)
    print(f"\nShort-term window ({len(memory.short_term)} messages):")
    for m in memory.short_term:
        print(f"  {m.role}: {m.content}")
    print("Summary of evicted messages:")
    for line in memory.summary.splitlines():
        print(f"  {line}")
    print(f"Facts: {[r.content for r in memory.facts]}")
    print(f"Preferences: {[r.content for r in memory.preferences]}")


def demo_reflection(engine: MemoryEngine, clock: MockClock) -> None:
    """Demo: staleness and expiry scaled by salience."""
    print_header("Demo 3: Reflection")

    clock.advance(days=20)
    print_section("20 days later")
    print(f"  Reflect: {engine.reflect(USER, AGENT, caller_user_id=USER)}")
    print_memories(engine)

    print_section("Immediately again (idempotent)")
    print(f"  Reflect: {engine.reflect(USER, AGENT, caller_user_id=USER)}")

    clock.advance(days=400)
    print_section("400 days later")
    print(f"  Sweep: {engine.sweep()}")
    print_memories(engine)


def demo_deletion(engine: MemoryEngine) -> None:
    """Demo: only the owner can delete a memory."""
    print_header("Demo 4: Owner-Scoped Deletion")

    session = engine.start_session(USER, AGENT)
    engine.append_message(session.session_id, USER, "user", "Oat milk again, please.")
    engine.append_message(session.session_id, USER, "assistant", "Of course.")
    engine.extract(session.session_id, AGENT, USER)
    record = engine.list_memories(USER, AGENT)[0]

    print(f"\n  Stranger deletes '{record.content}': {engine.delete_memory(record.id, 'stranger')}")
    print(f"  Owner deletes '{record.content}': {engine.delete_memory(record.id, USER)}")
    print_memories(engine)


def main():
    """Run all demos."""
    logging.basicConfig(level=logging.WARNING)
    print("\n" + "=" * 60)
    print("  Agent Memory Engine - Interactive Demo")
    print("=" * 60)

    clock = MockClock()
    engine = build_engine(clock)
    try:
        demo_extraction(engine, clock)
        demo_session_buffer(engine)
        demo_reflection(engine, clock)
        demo_deletion(engine)

        print_header("Demo Complete!")
        print("\nThe memory engine correctly handles:")
        print("  ✓ Extraction with merge-on-similarity")
        print("  ✓ Bounded short-term buffer with summary")
        print("  ✓ Salience-scaled expiry")
        print("  ✓ Owner-scoped deletion")
    finally:
        engine.close()


if __name__ == "__main__":
    main()
