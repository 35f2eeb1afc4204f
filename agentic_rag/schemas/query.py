"""Schemas for the query endpoint."""

from typing import Any

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    """Request body for POST /query."""

    question: str = Field(..., min_length=1, description="Free-text user request for the agent.")


class ReferencesBody(BaseModel):
    retrieval: bool = Field(..., description="True when the knowledge base was used.")
    chart: bool = Field(..., description="True when a chart specification was produced.")


class QueryResponse(BaseModel):
    """Response for POST /query (documentation model; fileIds/chartSpec are omitted when absent)."""

    answer: str = Field(..., description="Final answer from the agent.")
    references: ReferencesBody
    fileIds: list[str] | None = Field(None, description="Knowledge-base file ids, only when retrieval found records.")
    chartSpec: dict[str, Any] | None = Field(None, description="Chart specification, only when a chart was produced.")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "answer": "Employees are entitled to 20 days of paid annual leave per year.",
                    "references": {"retrieval": True, "chart": False},
                    "fileIds": ["HR-001"],
                }
            ]
        }
    }
