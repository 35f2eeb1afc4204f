"""
Interactive terminal interface for the agent.

Reads one request per line and prints the formatted response. Local commands:
`help`, `stats`, and `exit` / `quit` / `q`. Empty input is ignored; EOF and
Ctrl+C exit without a traceback.

Run from project root: python -m agentic_rag.cli
"""

import asyncio
import json
import logging
import sys

from agentic_rag.agent.formatter import render_response, validate_response_contract
from agentic_rag.agent.graph import Router
from agentic_rag.core.config import LOG_LEVEL, describe_config, validate_config
from agentic_rag.core.errors import ConfigError, ContractViolationError
from agentic_rag.services.agent_service import build_router

logger = logging.getLogger(__name__)

PROMPT = "\nYou: "
EXIT_COMMANDS = frozenset({"exit", "quit", "q"})

WELCOME = """
AGENTIC RAG SYSTEM - Terminal Interface

Ask about:
  • Company policies (leave, remote work, dress code, wellness)
  • IT procedures (password reset, technical support)
  • Charts and visualizations
  • General questions

Commands: 'help', 'stats', 'exit' / 'quit' / 'q'
"""

HELP = """
Query types:
  1. Knowledge base questions   e.g. "What is the leave policy?"
  2. Chart requests             e.g. "Show me an attendance chart"
  3. Combined                   e.g. "Explain leave policy and show a chart"
  4. General questions          e.g. "What is 25 + 17?"

Each request is classified and routed to the knowledge base, the chart tool,
both in parallel, or a direct LLM answer. Low-confidence classifications are
answered directly.
"""


def format_stats(agent: Router) -> str:
    return json.dumps({"agent": agent.describe(), "settings": describe_config()}, indent=2)


async def handle_line(agent: Router, line: str) -> str | None:
    """Return the text to print for one input line, or None to exit."""
    query = line.strip()
    if not query:
        return ""
    command = query.lower()
    if command in EXIT_COMMANDS:
        return None
    if command == "help":
        return HELP
    if command == "stats":
        return format_stats(agent)

    response = await agent.process(query)
    try:
        validate_response_contract(response.to_contract())
    except ContractViolationError as e:
        logger.warning("Response contract validation failed: %s", e)
    return render_response(response)


def main() -> int:
    logging.basicConfig(level=LOG_LEVEL)
    try:
        validate_config()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    agent = build_router()
    print(WELCOME)
    with asyncio.Runner() as runner:
        while True:
            try:
                line = input(PROMPT)
                output = runner.run(handle_line(agent, line))
            except (EOFError, KeyboardInterrupt):
                break
            if output is None:
                break
            if output:
                print(output)
        aclose = getattr(agent.generator, "aclose", None)
        if aclose is not None:
            runner.run(aclose())
    print("\nGoodbye!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
