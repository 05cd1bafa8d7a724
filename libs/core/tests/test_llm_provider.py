from __future__ import annotations

import io
import json
from urllib.error import HTTPError, URLError

import pytest

from libs.core import llm_provider as llm_provider_module
from libs.core.llm_provider import (
    ChatCompletionsProvider,
    MockLLMProvider,
    UpstreamServiceError,
    resolve_provider,
)


class _FakeHTTPResponse:
    def __init__(self, payload: dict) -> None:
        self._raw = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._raw

    def __enter__(self) -> "_FakeHTTPResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


def _success_payload(text: str = "Análisis listo") -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def test_provider_sends_system_and_user_messages(monkeypatch) -> None:
    captured: list[dict] = []

    def _fake_urlopen(request, timeout=None):  # type: ignore[no-untyped-def]
        captured.append(
            {
                "url": request.full_url,
                "auth": request.get_header("Authorization"),
                "body": json.loads(request.data.decode("utf-8")),
            }
        )
        return _FakeHTTPResponse(_success_payload())

    monkeypatch.setattr(llm_provider_module, "urlopen", _fake_urlopen)

    provider = ChatCompletionsProvider(
        api_key="test-key",
        model="openai/gpt-3.5-turbo",
        temperature=0.3,
    )
    response = provider.generate("hola", system="sos un asistente")

    assert response.content == "Análisis listo"
    assert len(captured) == 1
    assert captured[0]["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert captured[0]["auth"] == "Bearer test-key"
    body = captured[0]["body"]
    assert body["model"] == "openai/gpt-3.5-turbo"
    assert body["temperature"] == 0.3
    assert body["messages"] == [
        {"role": "system", "content": "sos un asistente"},
        {"role": "user", "content": "hola"},
    ]


def test_provider_omits_system_message_when_not_given(monkeypatch) -> None:
    bodies: list[dict] = []

    def _fake_urlopen(request, timeout=None):  # type: ignore[no-untyped-def]
        bodies.append(json.loads(request.data.decode("utf-8")))
        return _FakeHTTPResponse(_success_payload())

    monkeypatch.setattr(llm_provider_module, "urlopen", _fake_urlopen)

    ChatCompletionsProvider(api_key="k", model="m").generate("hola")
    assert bodies[0]["messages"] == [{"role": "user", "content": "hola"}]
    assert "temperature" not in bodies[0]


def test_provider_wraps_http_error_without_retrying(monkeypatch) -> None:
    calls = {"count": 0}

    def _fake_urlopen(request, timeout=None):  # type: ignore[no-untyped-def]
        calls["count"] += 1
        raise HTTPError(
            url=request.full_url,
            code=503,
            msg="Service Unavailable",
            hdrs=None,
            fp=io.BytesIO(b'{"error":{"message":"overloaded"}}'),
        )

    monkeypatch.setattr(llm_provider_module, "urlopen", _fake_urlopen)

    provider = ChatCompletionsProvider(api_key="k", model="m", max_retries=0)
    with pytest.raises(UpstreamServiceError) as excinfo:
        provider.generate("hola")
    assert "503" in str(excinfo.value)
    assert "overloaded" in str(excinfo.value)
    assert calls["count"] == 1


def test_provider_wraps_connection_error(monkeypatch) -> None:
    def _fake_urlopen(request, timeout=None):  # type: ignore[no-untyped-def]
        raise URLError("connection refused")

    monkeypatch.setattr(llm_provider_module, "urlopen", _fake_urlopen)

    with pytest.raises(UpstreamServiceError, match="connection refused"):
        ChatCompletionsProvider(api_key="k", model="m").generate("hola")


def test_provider_rejects_empty_choices(monkeypatch) -> None:
    monkeypatch.setattr(
        llm_provider_module,
        "urlopen",
        lambda request, timeout=None: _FakeHTTPResponse({"choices": []}),
    )
    with pytest.raises(UpstreamServiceError, match="empty output"):
        ChatCompletionsProvider(api_key="k", model="m").generate("hola")


def test_provider_passes_timeout_only_when_configured(monkeypatch) -> None:
    seen: list[object] = []

    def _fake_urlopen(request, **kwargs):  # type: ignore[no-untyped-def]
        seen.append(kwargs.get("timeout", "default"))
        return _FakeHTTPResponse(_success_payload())

    monkeypatch.setattr(llm_provider_module, "urlopen", _fake_urlopen)

    ChatCompletionsProvider(api_key="k", model="m").generate("a")
    ChatCompletionsProvider(api_key="k", model="m", timeout_s=5.0).generate("b")
    assert seen == ["default", 5.0]


def test_resolve_provider_requires_api_key() -> None:
    with pytest.raises(ValueError, match="OPENROUTER_API_KEY"):
        resolve_provider("openrouter", model="m")


def test_resolve_provider_defaults_to_mock() -> None:
    provider = resolve_provider("mock")
    assert isinstance(provider, MockLLMProvider)
    assert provider.generate("x").content == "Mock response"
