"""
API route aggregator: register endpoints and delegate to the agent.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from agentic_rag.agent.graph import Router
from agentic_rag.core.config import describe_config
from agentic_rag.core.errors import ServiceUnavailableError, StoreError
from agentic_rag.schemas.query import QueryRequest, QueryResponse
from agentic_rag.services.agent_service import get_router, get_store
from agentic_rag.services.vector_store import MilvusKnowledgeStore

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "Agentic RAG backend running"}


@router.get("/health", tags=["system"], summary="Check the knowledge store is reachable")
async def health(store: MilvusKnowledgeStore = Depends(get_store)) -> dict:
    """200 with collection status when Milvus answers; 503 otherwise."""
    try:
        collection_ready = await store.ping()
    except (StoreError, ServiceUnavailableError) as e:
        logger.warning("Health check failed: %s", e)
        raise HTTPException(status_code=503, detail=f"Knowledge store unavailable: {e.message}") from e
    return {"ok": True, "collection_ready": collection_ready}


@router.get("/config", tags=["system"], summary="Agent and application configuration")
def get_config(agent: Router = Depends(get_router)) -> dict:
    return {"agent": agent.describe(), "settings": describe_config()}


# --- Query ---

@router.post(
    "/query",
    response_model=QueryResponse,
    response_model_exclude_none=True,
    tags=["query"],
    summary="Ask the agent",
    description="Classify the question, run retrieval and/or chart generation or a direct answer, and return the response contract. Always 200 for a valid body.",
)
async def post_query(body: QueryRequest, agent: Router = Depends(get_router)) -> dict[str, Any]:
    logger.info("[api:post_query] IN  question=%r", body.question)
    response = await agent.process(body.question)
    logger.info(
        "[api:post_query] OUT retrieval=%s chart=%s",
        response.references.retrieval,
        response.references.chart,
    )
    return response.to_contract()
