"""
Unit tests for the retrieval agent: search, degraded search, confidence, synthesis.
"""

import pytest

from agentic_rag.agent.retrieval_agent import (
    NO_RESULTS_ANSWER,
    RetrievalAgent,
    confidence_from_distance,
    extract_file_ids,
)
from agentic_rag.core.errors import GenerationError, StoreError


class TestConfidence:
    """Tests for confidence_from_distance()."""

    def test_maps_distance_range_to_unit_interval(self) -> None:
        assert confidence_from_distance(0.0) == 1.0
        assert confidence_from_distance(1.0) == 0.5
        assert confidence_from_distance(2.0) == 0.0

    def test_clamped(self) -> None:
        assert confidence_from_distance(3.5) == 0.0
        assert confidence_from_distance(-0.5) == 1.0

    def test_monotonic_in_distance(self) -> None:
        distances = [0.0, 0.1, 0.35, 0.9, 1.4, 2.0, 2.5]
        scores = [confidence_from_distance(d) for d in distances]
        assert scores == sorted(scores, reverse=True)


def test_extract_file_ids_dedupes_and_skips_empty(make_record) -> None:
    records = [make_record("HR-001"), make_record("HR-002"), make_record("HR-001"), make_record("")]
    assert extract_file_ids(records) == ["HR-001", "HR-002"]


@pytest.mark.asyncio
async def test_query_synthesizes_from_all_sources(fakes, make_record) -> None:
    records = [
        make_record("HR-001", distance=0.4, question="What is the leave policy?"),
        make_record("HR-002", distance=0.2, question="What is the remote work policy?"),
        make_record("HR-001", distance=0.6, question="How is parental leave handled?"),
    ]
    store = fakes.Store(records=records)
    generator = fakes.Generator(text="  synthesized  ")
    agent = RetrievalAgent(store, generator, tenant="acme", max_results=3)

    result = await agent.query("leave and remote work")

    assert store.search_calls == [("acme", "leave and remote work", 3)]
    assert result.answer == "synthesized"
    assert result.file_ids == ["HR-001", "HR-002"]
    assert result.result_count == 3
    assert result.confidence == pytest.approx(0.9)
    prompt = generator.prompts[0]
    assert "leave and remote work" in prompt
    for r in records:
        assert r.question in prompt
    assert "Source 2 [HR-002]" in prompt


@pytest.mark.asyncio
async def test_store_failure_uses_substring_scan(fakes, make_record) -> None:
    scan = [
        make_record("HR-001", question="What is the LEAVE POLICY?"),
        make_record("HR-002", question="Remote work", answer="See the leave policy for details."),
        make_record("HR-003", question="Dress code"),
        make_record("HR-004", question="Parental leave policy"),
    ]
    store = fakes.Store(search_error=StoreError("connection refused"), scan=scan)
    agent = RetrievalAgent(store, fakes.Generator(text="answer"), tenant="acme", max_results=2, scan_limit=100)

    result = await agent.query("Leave Policy")

    assert store.scan_calls == [("acme", 100)]
    assert result.file_ids == ["HR-001", "HR-002"]
    assert result.result_count == 2


@pytest.mark.asyncio
async def test_vector_search_timeout_uses_substring_scan(fakes, make_record) -> None:
    store = fakes.Store(records=[make_record("X-1")], scan=[make_record("HR-009", question="dress code")], search_delay=1)
    agent = RetrievalAgent(store, fakes.Generator(), timeout=0.01)

    result = await agent.query("dress code")

    assert result.file_ids == ["HR-009"]


@pytest.mark.asyncio
async def test_no_results_returns_generated_apology(fakes) -> None:
    generator = fakes.Generator(text="Sorry, please contact HR.")
    agent = RetrievalAgent(fakes.Store(records=[]), generator)

    result = await agent.query("What is the parking policy?")

    assert result.answer == "Sorry, please contact HR."
    assert result.result_count == 0
    assert result.confidence == 0.0
    assert result.file_ids == []
    assert "What is the parking policy?" in generator.prompts[0]


@pytest.mark.asyncio
async def test_both_searches_fail_and_generator_fails(fakes) -> None:
    store = fakes.Store(search_error=StoreError("down"), scan_error=StoreError("still down"))
    agent = RetrievalAgent(store, fakes.Generator(invoke_error=GenerationError("quota")))

    result = await agent.query("anything")

    assert result.answer == NO_RESULTS_ANSWER
    assert result.result_count == 0
    assert result.confidence == 0.0
    assert result.file_ids == []


@pytest.mark.asyncio
async def test_synthesis_failure_returns_best_record_answer(fakes, make_record) -> None:
    records = [
        make_record("HR-002", distance=0.5, answer="second best"),
        make_record("HR-001", distance=0.1, answer="closest answer"),
    ]
    agent = RetrievalAgent(fakes.Store(records=records), fakes.Generator(invoke_error=GenerationError("down")))

    result = await agent.query("leave")

    assert result.answer == "closest answer"
    assert result.file_ids == ["HR-002", "HR-001"]
    assert result.confidence == pytest.approx(0.95)
