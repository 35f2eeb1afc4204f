"""
Application errors.

Capability failures (generator, knowledge store, chart tool) each have their own
type so the agent can pick the matching fallback. Use ServiceUnavailableError when
a dependency is misconfigured or unreachable so the API can return 503 with a
user-facing message.
"""


class AgentError(Exception):
    """Base class for errors raised inside the agent and its backends."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(AgentError):
    """Raised when an environment setting is missing or out of range."""


class GenerationError(AgentError):
    """Raised when the text generator fails (backend, auth, quota, timeout)."""


class StructuredOutputError(GenerationError):
    """Raised when generator output does not validate against the requested shape."""


class StoreError(AgentError):
    """Raised when the knowledge store cannot be queried."""


class ChartError(AgentError):
    """Raised when a chart specification cannot be produced."""


class ClassificationError(AgentError):
    """Raised when intent classification fails; always recovered by keyword fallback."""


class RetrievalError(AgentError):
    """Raised when knowledge retrieval fails or times out; the router answers with an error message."""


class ContractViolationError(AgentError):
    """Raised by the contract validator when a response breaks the output contract."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__("; ".join(violations))


class ServiceUnavailableError(AgentError):
    """Raised when a required service (e.g. vector store, embeddings API) is unavailable or misconfigured."""
