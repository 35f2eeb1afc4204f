"""
Chart tool: maps a free-text request to a Chart.js-shaped spec from a fixed catalog.

The LLM picks a template by name; if it fails, simple keyword matching picks one.
No rendering happens here; callers get a fresh copy of the template dict.
"""

import copy
import logging
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from agentic_rag.agent.llm import Generator
from agentic_rag.core.errors import ChartError, GenerationError
from agentic_rag.schemas.contract import ChartSpec

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "employeeAttendance"

_PALETTE = [
    "rgba(255, 99, 132, {a})",
    "rgba(54, 162, 235, {a})",
    "rgba(255, 206, 86, {a})",
    "rgba(75, 192, 192, {a})",
    "rgba(153, 102, 255, {a})",
]


def _palette(alpha: str) -> list[str]:
    return [c.format(a=alpha) for c in _PALETTE]


def _options(title: str, legend: dict, y_title: str | None = None, y_max: int | None = None) -> dict:
    options: dict = {
        "responsive": True,
        "plugins": {"title": {"display": True, "text": title}, "legend": legend},
    }
    if y_title is not None:
        y_axis: dict = {"beginAtZero": True, "title": {"display": True, "text": y_title}}
        if y_max is not None:
            y_axis["max"] = y_max
        options["scales"] = {"y": y_axis}
    return options


CHART_TEMPLATES: dict[str, ChartSpec] = {
    "employeeAttendance": {
        "type": "bar",
        "data": {
            "labels": ["January", "February", "March", "April", "May", "June"],
            "datasets": [
                {
                    "label": "Present",
                    "data": [245, 238, 251, 243, 239, 248],
                    "backgroundColor": "rgba(75, 192, 192, 0.6)",
                    "borderColor": "rgba(75, 192, 192, 1)",
                    "borderWidth": 1,
                },
                {
                    "label": "Absent",
                    "data": [5, 12, 9, 7, 11, 2],
                    "backgroundColor": "rgba(255, 99, 132, 0.6)",
                    "borderColor": "rgba(255, 99, 132, 1)",
                    "borderWidth": 1,
                },
            ],
        },
        "options": _options("Employee Attendance (6 Months)", {"position": "top"}, "Number of Days"),
    },
    "leaveBalance": {
        "type": "line",
        "data": {
            "labels": ["Q1", "Q2", "Q3", "Q4"],
            "datasets": [
                {
                    "label": "Annual Leave Remaining",
                    "data": [20, 15, 10, 5],
                    "borderColor": "rgba(54, 162, 235, 1)",
                    "backgroundColor": "rgba(54, 162, 235, 0.2)",
                    "tension": 0.4,
                    "fill": True,
                },
                {
                    "label": "Sick Leave Remaining",
                    "data": [10, 8, 6, 4],
                    "borderColor": "rgba(255, 206, 86, 1)",
                    "backgroundColor": "rgba(255, 206, 86, 0.2)",
                    "tension": 0.4,
                    "fill": True,
                },
            ],
        },
        "options": _options("Leave Balance Tracking", {"position": "top"}, "Days Remaining"),
    },
    "departmentDistribution": {
        "type": "pie",
        "data": {
            "labels": ["Engineering", "Sales", "Marketing", "HR", "Operations"],
            "datasets": [
                {
                    "label": "Employees",
                    "data": [45, 30, 20, 15, 25],
                    "backgroundColor": _palette("0.8"),
                    "borderColor": _palette("1"),
                    "borderWidth": 1,
                }
            ],
        },
        "options": _options("Department Distribution", {"position": "right"}),
    },
    "performanceMetrics": {
        "type": "bar",
        "data": {
            "labels": [
                "Project Completion",
                "Code Quality",
                "Team Collaboration",
                "Innovation",
                "Customer Satisfaction",
            ],
            "datasets": [
                {
                    "label": "Team Performance (%)",
                    "data": [92, 88, 95, 85, 90],
                    "backgroundColor": "rgba(75, 192, 192, 0.6)",
                    "borderColor": "rgba(75, 192, 192, 1)",
                    "borderWidth": 1,
                }
            ],
        },
        "options": _options("Team Performance Metrics", {"display": False}, "Score (%)", y_max=100),
    },
    "wellnessUsage": {
        "type": "doughnut",
        "data": {
            "labels": [
                "Gym Membership",
                "Mental Health",
                "Health Checkup",
                "Yoga Classes",
                "Ergonomic Setup",
            ],
            "datasets": [
                {
                    "label": "Utilization",
                    "data": [65, 45, 80, 55, 70],
                    "backgroundColor": _palette("0.8"),
                    "borderColor": _palette("1"),
                    "borderWidth": 1,
                }
            ],
        },
        "options": _options("Wellness Benefits Utilization (%)", {"position": "bottom"}),
    },
    "remoteWorkTrends": {
        "type": "line",
        "data": {
            "labels": ["Week 1", "Week 2", "Week 3", "Week 4"],
            "datasets": [
                {
                    "label": "Remote Days",
                    "data": [3, 2, 3, 3],
                    "borderColor": "rgba(75, 192, 192, 1)",
                    "backgroundColor": "rgba(75, 192, 192, 0.2)",
                    "tension": 0.4,
                    "fill": True,
                },
                {
                    "label": "Office Days",
                    "data": [2, 3, 2, 2],
                    "borderColor": "rgba(255, 159, 64, 1)",
                    "backgroundColor": "rgba(255, 159, 64, 0.2)",
                    "tension": 0.4,
                    "fill": True,
                },
            ],
        },
        "options": _options("Remote vs Office Work Trends", {"position": "top"}, "Days per Week", y_max=5),
    },
}

CHART_SELECTION_PROMPT = """You are a chart recommendation expert. Based on the user's request, select the most appropriate chart template.

Available chart templates:
1. employeeAttendance - Bar chart showing attendance over 6 months (present vs absent)
2. leaveBalance - Line chart tracking leave balances over quarters
3. departmentDistribution - Pie chart showing employee distribution across departments
4. performanceMetrics - Bar chart displaying team performance metrics
5. wellnessUsage - Doughnut chart showing wellness benefits utilization
6. remoteWorkTrends - Line chart comparing remote vs office work days

User Request: "{query}"

Select the MOST RELEVANT chart template. If the request is vague, choose the most general chart.

Respond with ONLY a JSON object:
{"chartTemplate": "templateName", "reasoning": "brief explanation of why this chart fits"}"""

# Checked in order; first match wins.
KEYWORD_TEMPLATES: list[tuple[tuple[str, ...], str]] = [
    (("attendance",), "employeeAttendance"),
    (("leave", "vacation"), "leaveBalance"),
    (("department", "distribution"), "departmentDistribution"),
    (("performance", "metric"), "performanceMetrics"),
    (("wellness", "benefit"), "wellnessUsage"),
    (("remote", "work from home"), "remoteWorkTrends"),
]


class ChartGenerator(Protocol):
    """Chart capability used by the router."""

    async def generate(self, context: str) -> ChartSpec: ...


class ChartSelection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chart_template: str = Field(..., min_length=1, alias="chartTemplate")
    reasoning: str = ""


def keyword_selection(query: str) -> ChartSelection:
    """Pick a template by keyword; the default template when nothing matches."""
    lowered = (query or "").lower()
    for keywords, template in KEYWORD_TEMPLATES:
        if any(k in lowered for k in keywords):
            return ChartSelection(chart_template=template, reasoning=f"Keyword match: {keywords[0]}")
    return ChartSelection(chart_template=DEFAULT_TEMPLATE, reasoning="Default chart")


class ChartTool:
    """ChartGenerator over CHART_TEMPLATES. Without a generator, selection is keyword-only."""

    def __init__(
        self,
        generator: Generator | None = None,
        templates: dict[str, ChartSpec] | None = None,
        default_template: str = DEFAULT_TEMPLATE,
    ) -> None:
        self.generator = generator
        self.templates = CHART_TEMPLATES if templates is None else templates
        self.default_template = default_template

    async def select_template(self, query: str) -> ChartSelection:
        if self.generator is None:
            return keyword_selection(query)
        prompt = CHART_SELECTION_PROMPT.replace("{query}", query)
        try:
            selection = await self.generator.invoke_structured(prompt, ChartSelection)
        except GenerationError as e:
            logger.warning("[chart:select] LLM selection failed (%s); using keywords", e)
            return keyword_selection(query)
        if selection.chart_template not in self.templates:
            logger.warning("[chart:select] unknown template %r; using default", selection.chart_template)
            return ChartSelection(chart_template=self.default_template, reasoning="Default fallback chart")
        return selection

    async def generate(self, context: str) -> ChartSpec:
        """Return a copy of the best-matching template. Raises ChartError if the catalog cannot serve one."""
        logger.info("[chart:generate] IN  context=%r", context)
        selection = await self.select_template(context)
        name = selection.chart_template if selection.chart_template in self.templates else self.default_template
        template = self.templates.get(name)
        if template is None:
            raise ChartError(f"Chart template {name!r} is not in the catalog")
        logger.info("[chart:generate] OUT template=%s reasoning=%r", name, selection.reasoning)
        return copy.deepcopy(template)

    def available_templates(self) -> list[str]:
        return list(self.templates)

    def get_template(self, name: str) -> ChartSpec | None:
        template = self.templates.get(name)
        return copy.deepcopy(template) if template is not None else None
