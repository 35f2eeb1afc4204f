"""
Response assembly and contract checks.

assemble_response is the only place an AgentResponse is built: optional keys are
attached only when the matching reference flag is set and there is something to
attach. validate_response_contract checks an already-serialized response (e.g. one
read back from the API); render_response formats one for the terminal.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any

from agentic_rag.core.errors import ContractViolationError
from agentic_rag.schemas.contract import AgentResponse, References

logger = logging.getLogger(__name__)

DEFAULT_ANSWER = "No answer generated."
CONTRACT_KEYS = frozenset({"answer", "references", "fileIds", "chartSpec"})


def assemble_response(state: Mapping[str, Any]) -> AgentResponse:
    """Build the final response from whatever the chosen branch left in `state`. Never raises."""
    used_retrieval = bool(state.get("used_retrieval", False))
    used_chart = bool(state.get("used_chart", False))
    answer = (state.get("answer_text") or "").strip() or DEFAULT_ANSWER

    file_ids = None
    retrieval = state.get("retrieval")
    if used_retrieval and retrieval is not None and retrieval.file_ids:
        file_ids = list(retrieval.file_ids)

    chart_spec = None
    chart = state.get("chart")
    if used_chart and chart is not None:
        chart_spec = chart

    response = AgentResponse(
        answer=answer,
        references=References(retrieval=used_retrieval, chart=used_chart),
        file_ids=file_ids,
        chart_spec=chart_spec,
    )
    logger.info(
        "[formatter:assemble] OUT retrieval=%s chart=%s file_ids=%s chart_spec=%s",
        used_retrieval,
        used_chart,
        file_ids,
        chart_spec is not None,
    )
    return response


def validate_response_contract(payload: Mapping[str, Any]) -> None:
    """Raise ContractViolationError if a serialized response breaks the output contract."""
    errors: list[str] = []
    answer = payload.get("answer")
    if not isinstance(answer, str) or not answer:
        errors.append("answer must be a non-empty string")

    references = payload.get("references")
    if not isinstance(references, Mapping):
        errors.append("references must be an object")
        references = {}
    else:
        for flag in ("retrieval", "chart"):
            if not isinstance(references.get(flag), bool):
                errors.append(f"references.{flag} must be a boolean")

    if "fileIds" in payload:
        file_ids = payload["fileIds"]
        if not isinstance(file_ids, list) or not file_ids:
            errors.append("fileIds must be a non-empty list when present")
        elif references.get("retrieval") is not True:
            errors.append("fileIds present but references.retrieval is false")

    if "chartSpec" in payload:
        if not isinstance(payload["chartSpec"], Mapping):
            errors.append("chartSpec must be an object when present")
        elif references.get("chart") is not True:
            errors.append("chartSpec present but references.chart is false")

    unexpected = sorted(set(payload) - CONTRACT_KEYS)
    if unexpected:
        logger.warning("[formatter:validate] unexpected response keys: %s", ", ".join(unexpected))

    if errors:
        raise ContractViolationError(errors)


def render_response(response: AgentResponse) -> str:
    """Terminal rendering of a response."""
    rule = "━" * 70
    lines = [rule, "AGENT RESPONSE", rule, "", "Answer:", response.answer, ""]
    refs = response.references
    lines += [
        "References used:",
        f"  • Knowledge base: {'yes' if refs.retrieval else 'no'}",
        f"  • Chart tool: {'yes' if refs.chart else 'no'}",
        "",
    ]
    if response.file_ids:
        lines.append("Source documents:")
        lines += [f"  • {fid}" for fid in response.file_ids]
        lines.append("")
    if response.chart_spec is not None:
        lines.append("Chart specification:")
        lines.append(json.dumps(response.chart_spec, indent=2))
        lines.append("")
    lines.append(rule)
    return "\n".join(lines)
