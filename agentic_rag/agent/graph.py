"""
LangGraph router: classify → (retrieve | visualize | retrieve_and_visualize | respond_directly) → format_response.

Each node returns a partial state update; LangGraph merges it by key (last write wins),
except `errors`, which accumulates. Low-confidence classifications always go to the
direct branch. process() never raises: every failure becomes a contract-conformant
response with both reference flags false.
"""

import asyncio
import logging
import operator
from typing import Annotated, Any, Literal, TypedDict

from langgraph.graph import END, StateGraph

from agentic_rag.agent.classifier import Classifier
from agentic_rag.agent.formatter import assemble_response
from agentic_rag.agent.llm import Generator
from agentic_rag.agent.retrieval_agent import RetrievalAgent
from agentic_rag.core.config import BACKEND_CALL_TIMEOUT, CONFIDENCE_THRESHOLD
from agentic_rag.core.errors import AgentError, ChartError, GenerationError, RetrievalError
from agentic_rag.schemas.contract import (
    AgentResponse,
    ChartSpec,
    Classification,
    Intent,
    RetrievalResult,
)
from agentic_rag.services.chart_tool import ChartGenerator

logger = logging.getLogger(__name__)

Branch = Literal["retrieve", "visualize", "retrieve_and_visualize", "respond_directly"]

INTENT_BRANCHES: dict[Intent, Branch] = {
    Intent.RETRIEVE: "retrieve",
    Intent.VISUALIZE: "visualize",
    Intent.BOTH: "retrieve_and_visualize",
    Intent.DIRECT: "respond_directly",
}

CHART_NOTICE = "I've generated a chart for you based on your request."
COMBINED_CHART_NOTICE = "I've also generated a visualization for you."
RETRIEVAL_ERROR_ANSWER = "I encountered an error querying the knowledge base. Please try again."
CHART_ERROR_ANSWER = "I encountered an error generating the chart. Please try again."
COMBINED_ERROR_ANSWER = "I encountered an error processing your request. Please try again."
DIRECT_ERROR_ANSWER = "I'm sorry, I encountered an error. Please try again."
GENERIC_ERROR_ANSWER = "I apologize, but I encountered an error processing your request. Please try again."

DIRECT_PROMPT = "Answer the following question directly and concisely:\n\n{query}"


class ExecutionState(TypedDict, total=False):
    query: str
    classification: Classification | None
    retrieval: RetrievalResult | None
    chart: ChartSpec | None
    answer_text: str
    used_retrieval: bool
    used_chart: bool
    errors: Annotated[list[str], operator.add]
    response: AgentResponse | None


def _branch_delta(
    answer_text: str,
    *,
    retrieval: RetrievalResult | None = None,
    chart: ChartSpec | None = None,
    used_retrieval: bool = False,
    used_chart: bool = False,
    errors: list[str] | None = None,
) -> dict[str, Any]:
    """Complete update written by every execution branch, so no field is left stale."""
    return {
        "retrieval": retrieval,
        "chart": chart,
        "answer_text": answer_text,
        "used_retrieval": used_retrieval,
        "used_chart": used_chart,
        "errors": errors or [],
    }


def _describe_error(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}" if str(error) else type(error).__name__


def select_branch(classification: Classification, threshold: float = CONFIDENCE_THRESHOLD) -> Branch:
    """Routing policy: below `threshold` always answer directly, otherwise follow the intent."""
    if classification.confidence < threshold:
        return "respond_directly"
    return INTENT_BRANCHES.get(classification.intent, "respond_directly")


class Router:
    """Per-request orchestration over injected generator, retrieval agent and chart generator."""

    def __init__(
        self,
        generator: Generator,
        retrieval_agent: RetrievalAgent,
        chart_generator: ChartGenerator,
        classifier: Classifier | None = None,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        timeout: float = BACKEND_CALL_TIMEOUT,
        retrieval_timeout: float | None = None,
    ) -> None:
        self.generator = generator
        self.retrieval_agent = retrieval_agent
        self.chart_generator = chart_generator
        self.classifier = classifier or Classifier(generator, timeout=timeout)
        self.confidence_threshold = confidence_threshold
        self.timeout = timeout
        # The retrieval agent bounds each of its own backend calls and degrades on
        # timeout, so the outer bound must outlast all of them.
        if retrieval_timeout is None:
            retrieval_timeout = getattr(retrieval_agent, "time_budget", timeout) + timeout
        self.retrieval_timeout = retrieval_timeout
        self._graph = self._build_graph()

    def _build_graph(self):
        """
        Build and compile the router graph.
        classify → one branch → format_response → END.
        """
        graph = StateGraph(ExecutionState)

        graph.add_node("classify", self._classify)
        graph.add_node("retrieve", self._retrieve)
        graph.add_node("visualize", self._visualize)
        graph.add_node("retrieve_and_visualize", self._retrieve_and_visualize)
        graph.add_node("respond_directly", self._respond_directly)
        graph.add_node("format_response", self._format_response)

        graph.set_entry_point("classify")
        graph.add_conditional_edges("classify", self._route, list(INTENT_BRANCHES.values()))
        for branch in INTENT_BRANCHES.values():
            graph.add_edge(branch, "format_response")
        graph.add_edge("format_response", END)

        return graph.compile()

    async def _bounded(self, awaitable, error_type: type[AgentError], what: str, timeout: float | None = None):
        """Await with a timeout (the backend timeout by default); a timeout surfaces as the capability's own error."""
        timeout = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except TimeoutError as e:
            raise error_type(f"{what} timed out after {timeout}s") from e

    async def _query_knowledge(self, query: str) -> RetrievalResult:
        return await self._bounded(
            self.retrieval_agent.query(query), RetrievalError, "retrieval", self.retrieval_timeout
        )

    async def _classify(self, state: ExecutionState) -> dict:
        classification = await self.classifier.classify(state["query"])
        logger.info(
            "[graph:classify] OUT intent=%s confidence=%.2f",
            classification.intent.value,
            classification.confidence,
        )
        return {"classification": classification}

    def _route(self, state: ExecutionState) -> Branch:
        classification = state["classification"]
        branch = select_branch(classification, self.confidence_threshold)
        if classification.confidence < self.confidence_threshold:
            logger.warning(
                "[graph:route] low confidence %.2f < %.2f for intent=%s -> %s",
                classification.confidence,
                self.confidence_threshold,
                classification.intent.value,
                branch,
            )
        else:
            logger.info("[graph:route] intent=%s -> %s", classification.intent.value, branch)
        return branch

    async def _retrieve(self, state: ExecutionState) -> dict:
        try:
            result = await self._query_knowledge(state["query"])
        except Exception as e:
            logger.warning("[graph:retrieve] retrieval failed: %s", _describe_error(e))
            return _branch_delta(RETRIEVAL_ERROR_ANSWER, errors=[_describe_error(e)])
        logger.info("[graph:retrieve] OUT records=%d file_ids=%s", result.result_count, result.file_ids)
        return _branch_delta(result.answer, retrieval=result, used_retrieval=True)

    async def _visualize(self, state: ExecutionState) -> dict:
        try:
            chart = await self._bounded(self.chart_generator.generate(state["query"]), ChartError, "chart generation")
        except Exception as e:
            logger.warning("[graph:visualize] chart generation failed: %s", _describe_error(e))
            return _branch_delta(CHART_ERROR_ANSWER, errors=[_describe_error(e)])
        logger.info("[graph:visualize] OUT chart_type=%s", (chart or {}).get("type"))
        return _branch_delta(CHART_NOTICE, chart=chart, used_chart=True)

    async def _retrieve_and_visualize(self, state: ExecutionState) -> dict:
        query = state["query"]
        logger.info("[graph:retrieve_and_visualize] IN  running retrieval and chart concurrently")
        retrieval, chart = await asyncio.gather(
            self._query_knowledge(query),
            self._bounded(self.chart_generator.generate(query), ChartError, "chart generation"),
            return_exceptions=True,
        )
        if isinstance(retrieval, BaseException):
            errors = [_describe_error(retrieval)]
            if isinstance(chart, BaseException):
                errors.append(_describe_error(chart))
            logger.warning("[graph:retrieve_and_visualize] retrieval failed: %s", errors)
            return _branch_delta(COMBINED_ERROR_ANSWER, errors=errors)
        if isinstance(chart, BaseException):
            logger.warning(
                "[graph:retrieve_and_visualize] chart failed (%s); degrading to retrieval only",
                _describe_error(chart),
            )
            return _branch_delta(
                retrieval.answer,
                retrieval=retrieval,
                used_retrieval=True,
                errors=[f"Chart generation failed: {_describe_error(chart)}"],
            )
        logger.info(
            "[graph:retrieve_and_visualize] OUT records=%d chart_type=%s",
            retrieval.result_count,
            (chart or {}).get("type"),
        )
        return _branch_delta(
            f"{retrieval.answer}\n\n{COMBINED_CHART_NOTICE}",
            retrieval=retrieval,
            chart=chart,
            used_retrieval=True,
            used_chart=True,
        )

    async def _respond_directly(self, state: ExecutionState) -> dict:
        prompt = DIRECT_PROMPT.format(query=state["query"])
        try:
            answer = await self._bounded(self.generator.invoke(prompt), GenerationError, "direct answer")
        except Exception as e:
            logger.warning("[graph:respond_directly] generation failed: %s", _describe_error(e))
            return _branch_delta(DIRECT_ERROR_ANSWER, errors=[_describe_error(e)])
        logger.info("[graph:respond_directly] OUT answer_len=%d", len(answer))
        return _branch_delta(answer)

    async def _format_response(self, state: ExecutionState) -> dict:
        if state.get("errors"):
            logger.info("[graph:format_response] errors=%s", state["errors"])
        return {"response": assemble_response(state)}

    async def run(self, query: str) -> ExecutionState:
        """Run the graph and return the final execution state (diagnostics included). May raise."""
        initial: ExecutionState = {
            "query": query,
            "classification": None,
            "retrieval": None,
            "chart": None,
            "answer_text": "",
            "used_retrieval": False,
            "used_chart": False,
            "errors": [],
            "response": None,
        }
        return await self._graph.ainvoke(initial)

    async def process(self, query: str) -> AgentResponse:
        """Answer one request. Always returns a contract-conformant response."""
        logger.info("[router:process] START query=%r", query)
        try:
            final = await self.run(query)
            response = final["response"]
        except Exception:
            logger.exception("[router:process] agent processing failed")
            response = assemble_response({"answer_text": GENERIC_ERROR_ANSWER})
        logger.info(
            "[router:process] END retrieval=%s chart=%s answer_len=%d",
            response.references.retrieval,
            response.references.chart,
            len(response.answer),
        )
        return response

    def describe(self) -> dict:
        """Agent configuration, for the stats command and /config route."""
        list_templates = getattr(self.chart_generator, "available_templates", None)
        describe_retrieval = getattr(self.retrieval_agent, "describe", None)
        return {
            "confidence_threshold": self.confidence_threshold,
            "backend_timeout": self.timeout,
            "retrieval_timeout": self.retrieval_timeout,
            "retrieval": describe_retrieval() if describe_retrieval else {},
            "chart_templates": list_templates() if list_templates else [],
        }
