"""Tests for the LLM backed field extractor and Ollama client."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from inbox_reminders.core.config import LlmSettings
from inbox_reminders.core.models import EmailMessage, Rule
from inbox_reminders.extraction import LLMError, LlmFieldExtractor, OllamaClient
from inbox_reminders.extraction.prompts import MAX_BODY_CHARS, build_extraction_prompt


class StubLLM:
    """Stub LLM client returning predefined payloads."""

    def __init__(self, response: str | None, *, raise_error: bool = False) -> None:
        self.response = response
        self.raise_error = raise_error
        self.prompts: list[str] = []

    @property
    def provider_id(self) -> str:
        return "stub-model"

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.raise_error:
            raise LLMError("stub failure")
        assert self.response is not None
        return self.response


def _message(body: str = "El monto es $45.000, vence el 15 de febrero de 2025") -> EmailMessage:
    return EmailMessage(
        id="gmail:7",
        sender="ggcc@edificio.cl",
        subject="Gastos Comunes Enero 2025",
        body=body,
        timestamp=datetime(2025, 1, 20, tzinfo=timezone.utc),
        source_provider="gmail",
    )


def _rule() -> Rule:
    return Rule(name="gastos_comunes", prompt="Extrae monto y vencimiento del cobro.")


def test_extractor_uses_llm_response() -> None:
    llm = StubLLM(
        'Aquí está: {"monto": 45000, "vencimiento": "2025-02-15", '
        '"periodo": " enero 2025 ", "tipo": "gastos_comunes", "edificio": ""}'
    )

    result = LlmFieldExtractor(llm).extract(_message(), _rule())

    assert result.fields == {
        "monto": "45000",
        "vencimiento": "2025-02-15",
        "periodo": "enero 2025",
        "tipo": "gastos_comunes",
        "edificio": None,
    }
    assert result.confidence == 100
    assert result.method == "stub-model"
    assert result.error is None
    assert "Extrae monto y vencimiento del cobro." in llm.prompts[0]
    assert '"monto", "vencimiento", "periodo", "tipo"' in llm.prompts[0]


def test_extractor_falls_back_on_llm_error() -> None:
    result = LlmFieldExtractor(StubLLM(None, raise_error=True)).extract(_message(), _rule())

    assert result.method == "pattern-fallback"
    assert result.error == "stub failure"
    assert result.fields["monto"] == "45000"
    assert result.fields["vencimiento"] == "2025-02-15"
    assert result.confidence == 100


def test_extractor_falls_back_on_unparseable_output() -> None:
    result = LlmFieldExtractor(StubLLM("no puedo ayudar")).extract(_message(), _rule())

    assert result.method == "pattern-fallback"
    assert result.error == "LLM output did not contain a JSON object"


def test_prompt_truncates_long_bodies() -> None:
    prompt = build_extraction_prompt(_message("x" * (MAX_BODY_CHARS + 500)), _rule())

    assert "x" * MAX_BODY_CHARS in prompt
    assert "x" * (MAX_BODY_CHARS + 1) not in prompt
    assert "Subject: Gastos Comunes Enero 2025" in prompt


def _response(status: int, payload: Any) -> httpx.Response:
    request = httpx.Request("POST", "http://ollama.local/api/generate")
    return httpx.Response(status, json=payload, request=request)


def test_ollama_client_posts_json_request(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_post(url: str, *, json: dict[str, Any], timeout: int) -> httpx.Response:
        captured.update(url=url, json=json, timeout=timeout)
        return _response(200, {"response": '{"monto": "1"}'})

    monkeypatch.setattr(httpx, "post", fake_post)
    client = OllamaClient(LlmSettings(base_url="http://ollama.local/", model="llama3"))

    assert client.generate("hola") == '{"monto": "1"}'
    assert captured["url"] == "http://ollama.local/api/generate"
    assert captured["json"]["format"] == "json"
    assert captured["json"]["options"] == {"temperature": 0.1, "num_predict": 1000}
    assert client.provider_id == "ollama:llama3"


def test_ollama_client_retries_then_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = {"count": 0}

    def failing_post(url: str, **_: Any) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(httpx, "post", failing_post)
    client = OllamaClient(LlmSettings(), retry_delay_cap=0)

    with pytest.raises(LLMError, match="after retries"):
        client.generate("hola")
    assert calls["count"] == 3


def test_ollama_client_requires_response_field(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(httpx, "post", lambda url, **_: _response(200, {"done": True}))

    with pytest.raises(LLMError, match="missing 'response'"):
        OllamaClient(LlmSettings()).generate("hola")
