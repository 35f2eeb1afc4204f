"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os

from dotenv import load_dotenv

from agentic_rag.core.errors import ConfigError

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


# Logging
LOG_LEVEL: str = (os.getenv("LOG_LEVEL", "INFO").strip() or "INFO").upper()
VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR"})

# OpenAI (primary generator). When set, OpenAI is tried before Hugging Face.
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_LLM_MODEL: str = (
    os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
)

# Hugging Face (fallback generator + embeddings)
HF_API_KEY: str = os.getenv("HF_API_KEY", "").strip()
# OpenAI-compatible endpoint; also used for structured output
HF_ROUTER_BASE_URL: str = "https://router.huggingface.co/v1"
HF_CHAT_URL: str = f"{HF_ROUTER_BASE_URL}/chat/completions"
HF_LLM_MODEL: str = (
    os.getenv("HF_LLM_MODEL", "meta-llama/Llama-3.2-3B-Instruct").strip()
    or "meta-llama/Llama-3.2-3B-Instruct"
)
HF_EMBED_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"

LLM_TEMPERATURE: float = _env_float("LLM_TEMPERATURE", 0.7)
LLM_MAX_TOKENS: int = _env_int("LLM_MAX_TOKENS", 512)

# Milvus (knowledge store). Tenants map to partitions of one collection.
MILVUS_URI: str = os.getenv("MILVUS_URI", "").strip()
MILVUS_TOKEN: str = os.getenv("MILVUS_TOKEN", "").strip()
COLLECTION_NAME: str = os.getenv("COLLECTION_NAME", "KnowledgeBase").strip() or "KnowledgeBase"
KNOWLEDGE_TENANT: str = os.getenv("KNOWLEDGE_TENANT", "tenant1").strip() or "tenant1"

# Vector dim for sentence-transformers/all-MiniLM-L6-v2
VECTOR_DIM: int = 384
EMBED_BATCH_SIZE: int = 32

# Retrieval
RAG_MAX_RESULTS: int = _env_int("RAG_MAX_RESULTS", 3)
FALLBACK_SCAN_LIMIT: int = _env_int("FALLBACK_SCAN_LIMIT", 100)

# Router
CONFIDENCE_THRESHOLD: float = _env_float("CONFIDENCE_THRESHOLD", 0.7)

# API timeouts (seconds)
LLM_API_TIMEOUT: float = _env_float("LLM_API_TIMEOUT", 60.0)
STORE_API_TIMEOUT: float = _env_float("STORE_API_TIMEOUT", 5.0)
EMBED_API_TIMEOUT: float = _env_float("EMBED_API_TIMEOUT", 10.0)
# Bound on each backend call made by the agents. A vector search with all its
# retries must fit inside it, see store_retry_budget().
BACKEND_CALL_TIMEOUT: float = _env_float("BACKEND_CALL_TIMEOUT", 90.0)

# Vector search retry: attempts and base delay (doubles each attempt)
STORE_RETRY_ATTEMPTS: int = _env_int("STORE_RETRY_ATTEMPTS", 3)
STORE_RETRY_BASE_DELAY: float = _env_float("STORE_RETRY_BASE_DELAY", 1.0)

# instructor re-asks on schema validation failure
STRUCTURED_MAX_RETRIES: int = _env_int("STRUCTURED_MAX_RETRIES", 1)


def store_retry_budget(
    attempts: int = STORE_RETRY_ATTEMPTS,
    store_timeout: float = STORE_API_TIMEOUT,
    embed_timeout: float = EMBED_API_TIMEOUT,
    base_delay: float = STORE_RETRY_BASE_DELAY,
) -> float:
    """
    Worst-case seconds for one vector search: every attempt times out on both
    embedding URLs and on Milvus, plus the exponential backoff between attempts.
    """
    backoff = base_delay * (2 ** (attempts - 1) - 1)
    return attempts * (2 * embed_timeout + store_timeout) + backoff


def validate_config() -> None:
    """Raise ConfigError if any setting is out of range. Called once by each entrypoint."""
    if not 0.0 <= LLM_TEMPERATURE <= 1.0:
        raise ConfigError("LLM_TEMPERATURE must be between 0 and 1")
    if not 1 <= RAG_MAX_RESULTS <= 10:
        raise ConfigError("RAG_MAX_RESULTS must be between 1 and 10")
    if FALLBACK_SCAN_LIMIT < 1:
        raise ConfigError("FALLBACK_SCAN_LIMIT must be positive")
    if not 0.0 <= CONFIDENCE_THRESHOLD <= 1.0:
        raise ConfigError("CONFIDENCE_THRESHOLD must be between 0 and 1")
    if STORE_RETRY_ATTEMPTS < 1:
        raise ConfigError("STORE_RETRY_ATTEMPTS must be at least 1")
    if store_retry_budget() >= BACKEND_CALL_TIMEOUT:
        raise ConfigError(
            f"Vector search retries need up to {store_retry_budget():.0f}s, which does not fit in "
            f"BACKEND_CALL_TIMEOUT={BACKEND_CALL_TIMEOUT:.0f}s; lower STORE_RETRY_ATTEMPTS or the store timeouts"
        )
    if STRUCTURED_MAX_RETRIES < 0:
        raise ConfigError("STRUCTURED_MAX_RETRIES must not be negative")
    if LOG_LEVEL not in VALID_LOG_LEVELS:
        raise ConfigError(f"LOG_LEVEL must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}")


def describe_config() -> dict:
    """Non-secret settings, for the stats command and /config route."""
    return {
        "llm_model": OPENAI_LLM_MODEL if OPENAI_API_KEY else HF_LLM_MODEL,
        "llm_provider": "openai" if OPENAI_API_KEY else "huggingface",
        "temperature": LLM_TEMPERATURE,
        "collection": COLLECTION_NAME,
        "tenant": KNOWLEDGE_TENANT,
        "rag_max_results": RAG_MAX_RESULTS,
        "confidence_threshold": CONFIDENCE_THRESHOLD,
        "log_level": LOG_LEVEL,
    }
