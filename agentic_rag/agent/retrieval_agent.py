"""
Retrieval agent: knowledge-base lookup, confidence scoring, and answer synthesis.

Pipeline: vector search (tenant-scoped, top-k) → substring scan if the store fails →
apology when nothing matches → LLM synthesis over all retrieved Q&A pairs.
query() never raises; every failure resolves to an answer the user can read. Each
backend call is bounded by `timeout`, so a slow store reaches the substring scan.
"""

import asyncio
import logging

from agentic_rag.agent.llm import Generator
from agentic_rag.core.config import (
    BACKEND_CALL_TIMEOUT,
    FALLBACK_SCAN_LIMIT,
    KNOWLEDGE_TENANT,
    RAG_MAX_RESULTS,
)
from agentic_rag.schemas.contract import RetrievalResult, SourceRecord
from agentic_rag.services.vector_store import KnowledgeStore

logger = logging.getLogger(__name__)

SYNTHESIS_PROMPT = """You are a helpful assistant synthesizing information from a company knowledge base.

Retrieved Sources:
{sources}

User Question: {query}

Instructions:
1. Use ONLY the information from the sources provided above
2. Combine information from multiple sources if relevant and merge overlapping details
3. If sources conflict, mention both perspectives
4. If the sources don't fully answer the question, say "Based on the available information..." and provide what you can
5. Do NOT make up information not present in the sources
6. Keep your answer focused, clear and concise

Answer:"""

NO_RESULTS_PROMPT = """The user asked: "{query}"

Unfortunately, there is no specific information about this in the company knowledge base.

Provide a helpful response that:
1. Acknowledges you don't have this specific information
2. Suggests they contact HR or IT support depending on the topic
3. Is brief and professional

Response:"""

NO_RESULTS_ANSWER = (
    "I couldn't find specific information about that in our knowledge base. "
    "Please contact HR or IT support for assistance."
)


def confidence_from_distance(distance: float) -> float:
    """Distance 0 (identical) → 1.0, distance 2 (opposite) → 0.0, clamped."""
    return max(0.0, min(1.0, 1.0 - distance / 2.0))


def extract_file_ids(records: list[SourceRecord]) -> list[str]:
    """Unique, non-empty file ids in first-seen order."""
    seen: set[str] = set()
    out: list[str] = []
    for r in records:
        if r.file_id and r.file_id not in seen:
            seen.add(r.file_id)
            out.append(r.file_id)
    return out


def format_sources(records: list[SourceRecord]) -> str:
    return "\n\n".join(
        f"Source {i} [{r.file_id}]:\nQuestion: {r.question}\nAnswer: {r.answer}"
        for i, r in enumerate(records, 1)
    )


class RetrievalAgent:
    def __init__(
        self,
        store: KnowledgeStore,
        generator: Generator,
        tenant: str = KNOWLEDGE_TENANT,
        max_results: int = RAG_MAX_RESULTS,
        scan_limit: int = FALLBACK_SCAN_LIMIT,
        timeout: float = BACKEND_CALL_TIMEOUT,
    ) -> None:
        self.store = store
        self.generator = generator
        self.tenant = tenant
        self.max_results = max_results
        self.scan_limit = scan_limit
        self.timeout = timeout

    @property
    def time_budget(self) -> float:
        """Longest query() can take: vector search, fallback scan, then one generation call."""
        return 3 * self.timeout

    async def query(self, text: str) -> RetrievalResult:
        logger.info("[retrieval:query] IN  query=%r tenant=%s", text, self.tenant)
        records = await self.search(text)
        if not records:
            logger.warning("[retrieval:query] no records found")
            return await self._no_results(text)

        best = min(records, key=lambda r: r.distance)
        confidence = confidence_from_distance(best.distance)
        file_ids = extract_file_ids(records)
        answer = await self.synthesize(text, records, best)
        logger.info(
            "[retrieval:query] OUT records=%d file_ids=%s confidence=%.2f answer_len=%d",
            len(records),
            file_ids,
            confidence,
            len(answer),
        )
        return RetrievalResult(
            answer=answer,
            file_ids=file_ids,
            confidence=confidence,
            result_count=len(records),
            sources=records,
        )

    async def search(self, text: str) -> list[SourceRecord]:
        """Vector search; on store failure or timeout, the substring scan."""
        try:
            records = await asyncio.wait_for(
                self.store.vector_search(self.tenant, text, self.max_results), self.timeout
            )
        except Exception as e:
            logger.warning("[retrieval:search] vector search failed (%s: %s); trying fallback", type(e).__name__, e)
            return await self.fallback_search(text)
        return records[: self.max_results]

    async def fallback_search(self, text: str) -> list[SourceRecord]:
        """Case-insensitive substring match of the whole query over a bounded scan of the tenant."""
        try:
            rows = await asyncio.wait_for(self.store.fetch_all(self.tenant, self.scan_limit), self.timeout)
        except Exception as e:
            logger.warning("[retrieval:fallback] scan also failed (%s: %s)", type(e).__name__, e)
            return []
        needle = text.lower()
        matches = [r for r in rows if needle in r.question.lower() or needle in r.answer.lower()]
        logger.info("[retrieval:fallback] scanned=%d matches=%d", len(rows), len(matches))
        return matches[: self.max_results]

    async def synthesize(self, text: str, records: list[SourceRecord], best: SourceRecord) -> str:
        """LLM answer grounded in `records`; the best record's answer verbatim if the LLM fails."""
        prompt = SYNTHESIS_PROMPT.replace("{sources}", format_sources(records)).replace("{query}", text)
        try:
            answer = await asyncio.wait_for(self.generator.invoke(prompt), self.timeout)
        except Exception as e:
            logger.warning("[retrieval:synthesize] failed (%s: %s); using top source answer", type(e).__name__, e)
            return best.answer
        return answer.strip() or best.answer

    async def _no_results(self, text: str) -> RetrievalResult:
        prompt = NO_RESULTS_PROMPT.replace("{query}", text)
        try:
            answer = (await asyncio.wait_for(self.generator.invoke(prompt), self.timeout)).strip()
        except Exception as e:
            logger.warning("[retrieval:no_results] apology generation failed (%s: %s)", type(e).__name__, e)
            answer = ""
        return RetrievalResult(answer=answer or NO_RESULTS_ANSWER, file_ids=[], confidence=0.0, result_count=0)

    def describe(self) -> dict:
        return {
            "max_results": self.max_results,
            "tenant": self.tenant,
            "collection": getattr(self.store, "collection_name", None),
            "fallback_scan_limit": self.scan_limit,
        }
