"""
Tests for the LLM generator: provider fallback for text and structured output.
"""

import pytest
from openai import OpenAIError

from agentic_rag.agent.llm import LLMGenerator, _explain
from agentic_rag.core.errors import GenerationError, StructuredOutputError
from agentic_rag.schemas.contract import Classification, Intent


class TestExplain:
    """Tests for _explain()."""

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("Error code: 401 - invalid api key", "Invalid LLM API key"),
            ("You exceeded your current quota", "quota exceeded"),
            ("Error code: 429", "rate limit exceeded"),
            ("connection reset", "connection reset"),
        ],
    )
    def test_messages(self, message: str, expected: str) -> None:
        assert expected in _explain(Exception(message))


@pytest.mark.asyncio
async def test_no_backend_configured() -> None:
    generator = LLMGenerator(openai_api_key="", hf_api_key="")

    with pytest.raises(GenerationError, match="No LLM backend configured"):
        await generator.invoke("hello")
    assert generator.provider == "huggingface"


@pytest.mark.asyncio
async def test_openai_failure_falls_back_to_hf(monkeypatch) -> None:
    generator = LLMGenerator(openai_api_key="sk-test", hf_api_key="hf-test")
    calls = []

    async def failing_openai(prompt: str) -> str:
        calls.append("openai")
        raise OpenAIError("Error code: 429")

    async def hf(prompt: str) -> str:
        calls.append("hf")
        return "from hf"

    monkeypatch.setattr(generator, "_call_openai", failing_openai)
    monkeypatch.setattr(generator, "_call_hf", hf)

    assert generator.provider == "openai"
    assert await generator.invoke("hello") == "from hf"
    assert calls == ["openai", "hf"]


@pytest.mark.asyncio
async def test_empty_openai_response_falls_back_to_hf(monkeypatch) -> None:
    generator = LLMGenerator(openai_api_key="sk-test", hf_api_key="hf-test")

    async def empty_openai(prompt: str) -> str:
        return ""

    async def hf(prompt: str) -> str:
        return "from hf"

    monkeypatch.setattr(generator, "_call_openai", empty_openai)
    monkeypatch.setattr(generator, "_call_hf", hf)

    assert await generator.invoke("hello") == "from hf"


@pytest.mark.asyncio
async def test_all_backends_fail(monkeypatch) -> None:
    generator = LLMGenerator(openai_api_key="", hf_api_key="hf-test")

    async def hf_error(prompt: str) -> str:
        raise GenerationError("HF LLM error 503: model loading")

    monkeypatch.setattr(generator, "_call_hf", hf_error)

    with pytest.raises(GenerationError, match="503"):
        await generator.invoke("hello")


class TestInvokeStructured:
    """Tests for LLMGenerator.invoke_structured() over instructor clients."""

    def test_backends_in_fallback_order(self) -> None:
        generator = LLMGenerator(openai_api_key="sk-test", hf_api_key="hf-test")
        assert [provider for provider, _, _ in generator._structured] == ["openai", "huggingface"]

    @pytest.mark.asyncio
    async def test_returns_validated_model(self, fakes, monkeypatch) -> None:
        generator = LLMGenerator(openai_api_key="", hf_api_key="", structured_retries=2)
        client = fakes.StructuredClient(payload={"intent": "retrieve", "confidence": 0.9})
        monkeypatch.setattr(generator, "_structured", [("openai", client, "gpt-4o-mini")])

        result = await generator.invoke_structured("classify this", Classification)

        assert result.intent is Intent.RETRIEVE
        call = client.calls[0]
        assert call["response_model"] is Classification
        assert call["model"] == "gpt-4o-mini"
        assert call["max_retries"] == 2
        assert call["messages"] == [{"role": "user", "content": "classify this"}]

    @pytest.mark.asyncio
    async def test_openai_error_falls_back_to_hf(self, fakes, monkeypatch) -> None:
        generator = LLMGenerator(openai_api_key="", hf_api_key="")
        openai_client = fakes.StructuredClient(error=OpenAIError("Error code: 429"))
        hf_client = fakes.StructuredClient(payload={"intent": "both", "confidence": 0.8})
        monkeypatch.setattr(
            generator, "_structured", [("openai", openai_client, "gpt"), ("huggingface", hf_client, "llama")]
        )

        result = await generator.invoke_structured("classify this", Classification)

        assert result.intent is Intent.BOTH
        assert len(openai_client.calls) == 1
        assert hf_client.calls[0]["model"] == "llama"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"intent": "retrieve"},
            {"intent": "retrieve", "confidence": 1.5},
            {"intent": "search", "confidence": 0.9},
        ],
    )
    async def test_invalid_output_raises_structured_error(self, fakes, monkeypatch, payload) -> None:
        generator = LLMGenerator(openai_api_key="", hf_api_key="")
        monkeypatch.setattr(generator, "_structured", [("openai", fakes.StructuredClient(payload=payload), "gpt")])

        with pytest.raises(StructuredOutputError, match="does not match Classification"):
            await generator.invoke_structured("classify this", Classification)

    @pytest.mark.asyncio
    async def test_last_backend_error_is_raised(self, fakes, monkeypatch) -> None:
        generator = LLMGenerator(openai_api_key="", hf_api_key="")
        clients = [
            ("openai", fakes.StructuredClient(payload={"intent": "nope"}), "gpt"),
            ("huggingface", fakes.StructuredClient(error=OpenAIError("You exceeded your current quota")), "llama"),
        ]
        monkeypatch.setattr(generator, "_structured", clients)

        with pytest.raises(GenerationError, match="quota exceeded") as exc_info:
            await generator.invoke_structured("classify this", Classification)
        assert not isinstance(exc_info.value, StructuredOutputError)

    @pytest.mark.asyncio
    async def test_no_backend_configured(self) -> None:
        generator = LLMGenerator(openai_api_key="", hf_api_key="")

        with pytest.raises(GenerationError, match="No LLM backend configured"):
            await generator.invoke_structured("classify this", Classification)
