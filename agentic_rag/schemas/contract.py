"""
Schemas for the agent's data model and output contract.

Intent / Classification come from the classifier, SourceRecord / RetrievalResult
from retrieval, and AgentResponse is the only shape handed back to callers.
Field aliases are the camelCase names used on the wire.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Opaque to the agent: only its presence is ever checked.
ChartSpec = dict[str, Any]


class Intent(str, Enum):
    """What kind of handling a request needs."""

    RETRIEVE = "retrieve"
    VISUALIZE = "visualize"
    BOTH = "both"
    DIRECT = "direct"


class Classification(BaseModel):
    """Classifier output. Unknown intents or out-of-range confidence are rejected."""

    model_config = ConfigDict(extra="ignore")

    intent: Intent
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""


class SourceRecord(BaseModel):
    """One knowledge-store entry. Lower distance means more similar."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    file_id: str = Field("", alias="fileId")
    question: str = ""
    answer: str = ""
    distance: float = 0.0


class RetrievalResult(BaseModel):
    """Synthesized retrieval answer plus the records it was built from."""

    model_config = ConfigDict(populate_by_name=True)

    answer: str
    file_ids: list[str] = Field(default_factory=list, alias="fileIds")
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    result_count: int = Field(0, ge=0, alias="resultCount")
    sources: list[SourceRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _empty_means_no_confidence(self) -> "RetrievalResult":
        if self.result_count == 0 and (self.confidence != 0.0 or self.file_ids):
            raise ValueError("a result with no records must have confidence 0 and no fileIds")
        return self


class References(BaseModel):
    """Which capabilities contributed to the answer. Both flags are always present."""

    retrieval: bool = False
    chart: bool = False


class AgentResponse(BaseModel):
    """Final response. Build it with formatter.assemble_response, never directly."""

    model_config = ConfigDict(populate_by_name=True)

    answer: str
    references: References = Field(default_factory=References)
    file_ids: list[str] | None = Field(None, alias="fileIds")
    chart_spec: ChartSpec | None = Field(None, alias="chartSpec")

    def to_contract(self) -> dict[str, Any]:
        """Wire form: camelCase keys, optional keys omitted when absent."""
        return self.model_dump(by_alias=True, exclude_none=True)
