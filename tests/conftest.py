"""
Shared test doubles for the agent's capabilities.

Nothing here touches the network: generator, knowledge store, chart tool,
classifier and retrieval agent are replaced by small in-memory fakes.
"""

import asyncio
from types import SimpleNamespace

import pytest
from pydantic import BaseModel

from agentic_rag.schemas.contract import Classification, Intent, RetrievalResult, SourceRecord


class FakeGenerator:
    """Generator returning canned text / structured output, or raising the given errors."""

    def __init__(self, text="generated answer", structured=None, invoke_error=None, structured_error=None):
        self.text = text
        self.structured = structured
        self.invoke_error = invoke_error
        self.structured_error = structured_error
        self.prompts: list[str] = []
        self.structured_prompts: list[str] = []

    async def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.invoke_error is not None:
            raise self.invoke_error
        return self.text

    async def invoke_structured(self, prompt: str, shape: type[BaseModel]):
        self.structured_prompts.append(prompt)
        if self.structured_error is not None:
            raise self.structured_error
        if isinstance(self.structured, dict):
            return shape.model_validate(self.structured)
        return self.structured


class FakeStructuredClient:
    """Stands in for an instructor client: validates `payload` against the requested response_model."""

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.calls: list[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return kwargs["response_model"].model_validate(self.payload)


class FakeStore:
    """KnowledgeStore over fixed lists; search_error / scan_error make the calls fail."""

    def __init__(self, records=None, scan=None, search_error=None, scan_error=None, search_delay=0.0):
        self.records = list(records or [])
        self.scan = list(scan or [])
        self.search_error = search_error
        self.scan_error = scan_error
        self.search_delay = search_delay
        self.search_calls: list[tuple[str, str, int]] = []
        self.scan_calls: list[tuple[str, int]] = []

    async def vector_search(self, tenant: str, query: str, limit: int) -> list[SourceRecord]:
        self.search_calls.append((tenant, query, limit))
        if self.search_delay:
            await asyncio.sleep(self.search_delay)
        if self.search_error is not None:
            raise self.search_error
        return self.records[:limit]

    async def fetch_all(self, tenant: str, limit: int) -> list[SourceRecord]:
        self.scan_calls.append((tenant, limit))
        if self.scan_error is not None:
            raise self.scan_error
        return self.scan[:limit]


class FakeChart:
    def __init__(self, spec=None, error=None, delay=0.0, started: asyncio.Event | None = None):
        self.spec = spec if spec is not None else {"type": "bar", "data": {"labels": [], "datasets": []}}
        self.error = error
        self.delay = delay
        self.started = started
        self.calls: list[str] = []

    async def generate(self, context: str) -> dict:
        self.calls.append(context)
        if self.started is not None:
            self.started.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.spec

    def available_templates(self) -> list[str]:
        return ["fake"]


class FakeClassifier:
    def __init__(self, intent: Intent = Intent.DIRECT, confidence: float = 0.9, error=None):
        self.classification = Classification(intent=intent, confidence=confidence, reasoning="test")
        self.error = error
        self.calls: list[str] = []

    async def classify(self, query: str) -> Classification:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return self.classification


class FakeRetrievalAgent:
    def __init__(self, result: RetrievalResult | None = None, error=None, wait_for: asyncio.Event | None = None):
        self.result = result or RetrievalResult(
            answer="retrieved answer", file_ids=["HR-001"], confidence=0.9, result_count=1
        )
        self.error = error
        self.wait_for = wait_for
        self.calls: list[str] = []

    async def query(self, text: str) -> RetrievalResult:
        self.calls.append(text)
        if self.wait_for is not None:
            await self.wait_for.wait()
        if self.error is not None:
            raise self.error
        return self.result


def record(file_id: str, distance: float = 0.2, question: str = "", answer: str = "") -> SourceRecord:
    return SourceRecord(
        file_id=file_id,
        question=question or f"Question for {file_id}?",
        answer=answer or f"Answer for {file_id}.",
        distance=distance,
    )


@pytest.fixture
def make_record():
    return record


@pytest.fixture
def leave_record() -> SourceRecord:
    return record(
        "HR-001",
        distance=0.2,
        question="What is the company leave policy?",
        answer="Employees are entitled to 20 days of paid annual leave per year.",
    )


@pytest.fixture
def fakes():
    """Access to the fake classes without importing conftest."""

    class _Fakes:
        Generator = FakeGenerator
        StructuredClient = FakeStructuredClient
        Store = FakeStore
        Chart = FakeChart
        Classifier = FakeClassifier
        RetrievalAgent = FakeRetrievalAgent

    return _Fakes
