"""
Intent classifier: asks the LLM which capability a request needs.

classify() never raises. Any generator failure, timeout or malformed output falls
back to a deterministic keyword rule.
"""

import asyncio
import logging

from agentic_rag.agent.llm import Generator
from agentic_rag.core.config import BACKEND_CALL_TIMEOUT
from agentic_rag.core.errors import ClassificationError, GenerationError
from agentic_rag.schemas.contract import Classification, Intent

logger = logging.getLogger(__name__)

INTENT_CLASSIFICATION_PROMPT = """You are an intent classification system for a company knowledge assistant.

Analyze the user's query and classify it into ONE of these categories:

1. retrieve - The user asks about company policies, procedures, HR guidelines, IT support, or anything that might be in the knowledge base.
   Examples: "What is the leave policy?", "How do I reset my password?", "Tell me about remote work"

2. visualize - The user wants a visualization, graph, or chart.
   Examples: "Show me a chart", "Create a graph of attendance", "Visualize department distribution"

3. both - The user wants information AND a visualization.
   Examples: "Explain the leave policy and show a chart", "What's the remote work policy? Show me the stats"

4. direct - General questions, math, casual conversation, or queries unrelated to company knowledge.
   Examples: "What is 5 x 7?", "Hello", "Tell me a joke"

User Query: "{query}"

Respond with ONLY a JSON object:
{"intent": "retrieve" | "visualize" | "both" | "direct", "confidence": 0.0-1.0, "reasoning": "brief explanation"}"""

VISUALIZATION_KEYWORDS = ("chart", "graph", "visualize", "plot", "show me", "display")
KNOWLEDGE_KEYWORDS = ("policy", "procedure", "how do i", "what is", "tell me about", "explain")

FALLBACK_CONFIDENCE = 0.6
FALLBACK_DIRECT_CONFIDENCE = 0.5


def fallback_classification(query: str) -> Classification:
    """Keyword rule used when the LLM cannot classify."""
    lowered = (query or "").lower()
    wants_chart = any(k in lowered for k in VISUALIZATION_KEYWORDS)
    wants_knowledge = any(k in lowered for k in KNOWLEDGE_KEYWORDS)
    if wants_chart and wants_knowledge:
        intent, confidence = Intent.BOTH, FALLBACK_CONFIDENCE
    elif wants_chart:
        intent, confidence = Intent.VISUALIZE, FALLBACK_CONFIDENCE
    elif wants_knowledge:
        intent, confidence = Intent.RETRIEVE, FALLBACK_CONFIDENCE
    else:
        intent, confidence = Intent.DIRECT, FALLBACK_DIRECT_CONFIDENCE
    return Classification(intent=intent, confidence=confidence, reasoning="keyword fallback")


class Classifier:
    def __init__(self, generator: Generator, timeout: float = BACKEND_CALL_TIMEOUT) -> None:
        self.generator = generator
        self.timeout = timeout

    async def _ask(self, query: str) -> Classification:
        """LLM classification. Raises ClassificationError on timeout or generator failure."""
        prompt = INTENT_CLASSIFICATION_PROMPT.replace("{query}", query)
        try:
            return await asyncio.wait_for(
                self.generator.invoke_structured(prompt, Classification), self.timeout
            )
        except TimeoutError as e:
            raise ClassificationError(f"classification timed out after {self.timeout}s") from e
        except GenerationError as e:
            raise ClassificationError(e.message) from e

    async def classify(self, query: str) -> Classification:
        logger.info("[classifier] IN  query=%r", query)
        try:
            result = await self._ask(query)
        except Exception as e:
            result = fallback_classification(query)
            logger.warning(
                "[classifier] LLM classification failed (%s: %s); keyword fallback -> %s",
                type(e).__name__,
                e,
                result.intent.value,
            )
            return result
        logger.info(
            "[classifier] OUT intent=%s confidence=%.2f reasoning=%r",
            result.intent.value,
            result.confidence,
            result.reasoning,
        )
        return result
