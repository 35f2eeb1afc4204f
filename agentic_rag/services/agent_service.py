"""
Agent: wire the generator, knowledge store and chart tool into a Router.

Responsibility: Build the long-lived backend handles once and share them between
requests. Called by the API and the CLI; no HTTP here.
"""

import logging
from functools import lru_cache

from agentic_rag.agent.graph import Router
from agentic_rag.agent.llm import LLMGenerator
from agentic_rag.agent.retrieval_agent import RetrievalAgent
from agentic_rag.services.chart_tool import ChartTool
from agentic_rag.services.vector_store import MilvusKnowledgeStore

logger = logging.getLogger(__name__)


def build_router() -> Router:
    generator = LLMGenerator()
    store = MilvusKnowledgeStore()
    router = Router(
        generator=generator,
        retrieval_agent=RetrievalAgent(store, generator),
        chart_generator=ChartTool(generator),
    )
    logger.info("Router initialized (llm provider=%s)", generator.provider)
    return router


@lru_cache(maxsize=1)
def get_router() -> Router:
    """Process-wide router. Backend clients are stateless and safe for concurrent requests."""
    return build_router()


@lru_cache(maxsize=1)
def get_store() -> MilvusKnowledgeStore:
    return get_router().retrieval_agent.store
