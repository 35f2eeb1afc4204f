"""
Agent LLM: OpenAI (primary) or Hugging Face (fallback).
When OPENAI_API_KEY is set, uses OpenAI chat completions first; otherwise (or when
OpenAI fails or returns nothing) uses the HF router. Failures surface as GenerationError.

Structured output goes through instructor over the same two backends; the HF router
is OpenAI-compatible, so both are wrapped with instructor.from_openai.
"""

import logging
from typing import Any, Protocol, TypeVar

import httpx
import instructor
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from agentic_rag.core.config import (
    HF_API_KEY,
    HF_CHAT_URL,
    HF_LLM_MODEL,
    HF_ROUTER_BASE_URL,
    LLM_API_TIMEOUT,
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
    OPENAI_API_KEY,
    OPENAI_LLM_MODEL,
    STRUCTURED_MAX_RETRIES,
)
from agentic_rag.core.errors import GenerationError, StructuredOutputError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class Generator(Protocol):
    """Text-completion capability used by the classifier, retrieval agent and router."""

    async def invoke(self, prompt: str) -> str: ...

    async def invoke_structured(self, prompt: str, shape: type[T]) -> T: ...


def _explain(error: Exception) -> str:
    """Turn provider errors into messages a user can act on."""
    text = str(error)
    lowered = text.lower()
    if "api key" in lowered or "api_key" in lowered or "401" in lowered:
        return "Invalid LLM API key. Check OPENAI_API_KEY / HF_API_KEY in .env"
    if "quota" in lowered:
        return "LLM API quota exceeded. Check your usage limits"
    if "rate limit" in lowered or "429" in lowered:
        return "LLM rate limit exceeded. Wait a moment and try again"
    return text or error.__class__.__name__


class LLMGenerator:
    """Generator backed by OpenAI chat completions with Hugging Face router as fallback."""

    def __init__(
        self,
        openai_api_key: str = OPENAI_API_KEY,
        openai_model: str = OPENAI_LLM_MODEL,
        hf_api_key: str = HF_API_KEY,
        hf_model: str = HF_LLM_MODEL,
        temperature: float = LLM_TEMPERATURE,
        max_tokens: int = LLM_MAX_TOKENS,
        timeout: float = LLM_API_TIMEOUT,
        structured_retries: int = STRUCTURED_MAX_RETRIES,
    ) -> None:
        self.openai_model = openai_model
        self.hf_api_key = hf_api_key
        self.hf_model = hf_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._openai = (
            AsyncOpenAI(api_key=openai_api_key, timeout=timeout, max_retries=2)
            if openai_api_key
            else None
        )
        self.structured_retries = structured_retries
        self._hf_openai = (
            AsyncOpenAI(api_key=hf_api_key, base_url=HF_ROUTER_BASE_URL, timeout=timeout, max_retries=0)
            if hf_api_key
            else None
        )
        # (provider, instructor client, model), tried in order
        self._structured: list[tuple[str, Any, str]] = []
        if self._openai is not None:
            self._structured.append(("openai", instructor.from_openai(self._openai), openai_model))
        if self._hf_openai is not None:
            # MD_JSON: schema goes in the prompt, JSON is read back from the reply text
            client = instructor.from_openai(self._hf_openai, mode=instructor.Mode.MD_JSON)
            self._structured.append(("huggingface", client, hf_model))

    @property
    def provider(self) -> str:
        return "openai" if self._openai is not None else "huggingface"

    async def _call_openai(self, prompt: str) -> str:
        """Call OpenAI chat completions. Returns generated text."""
        response = await self._openai.chat.completions.create(
            model=self.openai_model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        msg = response.choices[0].message if response.choices else None
        out = ((msg.content if msg else None) or "").strip()
        logger.info("[llm:openai] OUT response_len=%d", len(out))
        logger.debug("[llm:openai] OUT response_full=%r", out)
        return out

    async def _call_hf(self, prompt: str) -> str:
        """Call Hugging Face router chat completions. Returns generated text."""
        headers = {"Authorization": f"Bearer {self.hf_api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.hf_model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(HF_CHAT_URL, json=payload, headers=headers)
        if response.status_code != 200:
            raise GenerationError(f"HF LLM error {response.status_code}: {response.text[:200]}")
        data = response.json()
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        out = ((choices[0].get("message") or {}).get("content") or "").strip()
        logger.info("[llm:hf] OUT response_len=%d", len(out))
        logger.debug("[llm:hf] OUT response_full=%r", out)
        return out

    async def invoke(self, prompt: str) -> str:
        """
        Generate text for `prompt`. Tries OpenAI when configured, then Hugging Face.
        Raises GenerationError when no backend produces text.
        """
        logger.info("[llm] IN  prompt_len=%d max_tokens=%d", len(prompt), self.max_tokens)
        logger.debug("[llm] prompt_sample=%r", prompt[:500])
        last_error = ""
        if self._openai is not None:
            try:
                out = await self._call_openai(prompt)
            except OpenAIError as e:
                last_error = _explain(e)
                logger.warning("[llm:openai] request failed: %s", last_error)
            else:
                if out:
                    return out
                last_error = "OpenAI returned an empty response"
            if self.hf_api_key:
                logger.info("[llm] falling back to Hugging Face")
        if self.hf_api_key:
            try:
                out = await self._call_hf(prompt)
            except httpx.HTTPError as e:
                last_error = _explain(e)
                logger.warning("[llm:hf] request failed: %s", last_error)
            except GenerationError as e:
                last_error = _explain(e)
                logger.warning("[llm:hf] %s", last_error)
            else:
                if out:
                    return out
                last_error = "Hugging Face returned an empty response"
        if not last_error:
            last_error = "No LLM backend configured: set OPENAI_API_KEY or HF_API_KEY"
        raise GenerationError(last_error)

    async def invoke_structured(self, prompt: str, shape: type[T]) -> T:
        """
        Generate an instance of `shape` for `prompt` via instructor, OpenAI first, then HF.
        Raises StructuredOutputError when the output never validates against `shape`,
        GenerationError when no backend answers.
        """
        logger.info("[llm:structured] IN  shape=%s prompt_len=%d", shape.__name__, len(prompt))
        if not self._structured:
            raise GenerationError("No LLM backend configured: set OPENAI_API_KEY or HF_API_KEY")
        failure: GenerationError | None = None
        for provider, client, model in self._structured:
            try:
                result = await client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    response_model=shape,
                    max_retries=self.structured_retries,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
            except OpenAIError as e:
                failure = GenerationError(_explain(e))
            except Exception as e:
                # instructor gives up with its own exception once re-asks are exhausted
                failure = StructuredOutputError(
                    f"{provider} output does not match {shape.__name__}: {type(e).__name__}: {e}"
                )
            else:
                logger.info("[llm:structured] OUT provider=%s shape=%s", provider, shape.__name__)
                return result
            logger.warning("[llm:%s] structured request failed: %s", provider, failure.message)
        raise failure

    async def aclose(self) -> None:
        for client in (self._openai, self._hf_openai):
            if client is not None:
                await client.close()
